"""
frag_file_loader.py

Read fragment files in the HapCUT2 layout:

    n_blocks read_id [extra fields ...] start_1 alleles_1 ... start_n alleles_n qualities

start_k is the 1-based index of the first variant of a run of
consecutive variants and alleles_k holds one digit per variant ('-' for
no call). The quality string has one Phred+33 character per call.
"""

import warnings

from fragment_store import Frag


#%%
def phred_to_weight(qual_char):
    """
    Probability that a call with the given Phred+33 quality is right
    """
    q = ord(qual_char) - 33
    return 1.0 - 10 ** (-q / 10)

def parse_frag_line(line, counter_id):
    """
    Turn one fragment file line into a Frag. Raises ValueError for a
    line that does not follow the layout.
    """
    tokens = line.split()
    if len(tokens) < 3:
        raise ValueError(f"Too few fields in fragment line: {line!r}")

    try:
        n_blocks = int(tokens[0])
    except ValueError:
        raise ValueError(f"Number of blocks is not an integer: {tokens[0]!r}")
    id_name = tokens[1]

    #Block pairs sit just before the trailing quality string. Anything
    #between the read id and the first pair is extended-format metadata.
    if len(tokens) >= 2 * n_blocks + 3:
        qual_string = tokens[-1]
        block_tokens = tokens[-1 - 2 * n_blocks:-1]
    elif len(tokens) == 2 * n_blocks + 2:
        qual_string = ""
        block_tokens = tokens[2:]
    else:
        raise ValueError(f"Expected {n_blocks} blocks in fragment line: {line!r}")

    raw_calls = []
    for b in range(n_blocks):
        try:
            start = int(block_tokens[2 * b])
        except ValueError:
            raise ValueError(f"Block start is not an integer: {block_tokens[2*b]!r}")
        for (offset, allele_char) in enumerate(block_tokens[2 * b + 1]):
            if allele_char == "-":
                continue
            if not allele_char.isdigit():
                raise ValueError(f"Unknown allele {allele_char!r} in read {id_name}")
            raw_calls.append((start + offset, int(allele_char)))

    if len(qual_string) == len(raw_calls):
        calls = [(site, allele, phred_to_weight(q)) for ((site, allele), q) in zip(raw_calls, qual_string)]
    else:
        calls = raw_calls

    return Frag(id_name, counter_id, calls)

def get_frags_container(frag_file):
    """
    Read every fragment of frag_file. Blank lines and lines starting
    with '#' are skipped, as are fragments without calls.
    """
    all_frags = []
    counter_id = 0

    with open(frag_file) as f:
        for (line_num, line) in enumerate(f, start=1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            try:
                frag = parse_frag_line(line, counter_id)
            except ValueError as e:
                raise ValueError(f"{frag_file}:{line_num}: {e}") from e

            if len(frag) == 0:
                warnings.warn(f"{frag_file}:{line_num}: fragment {frag.id_name} has no calls, skipping")
                continue

            all_frags.append(frag)
            counter_id += 1

    return all_frags
