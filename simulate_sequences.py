"""
File which contains functions that simulate polyploid haplotypes and
noisy long read fragments sampled from them, for testing and
benchmarking the phasing pipeline
"""
import numpy as np

from fragment_store import Frag

#%%
def simulate_haplotypes(num_sites, ploidy, het_rate=1.0, rng=None):
    """
    Simulate ploidy biallelic haplotypes over num_sites variant sites.

    At each site, with probability het_rate, a random non-empty proper
    subset of the haplotypes carries the alternate allele; otherwise all
    haplotypes carry the reference allele.

    Returns an array of shape (ploidy, num_sites) of 0s and 1s.
    """
    if rng is None:
        rng = np.random.default_rng()

    haps = np.zeros((ploidy, num_sites), dtype=np.int8)

    for site in range(num_sites):
        if rng.random() >= het_rate:
            continue
        num_alt = rng.integers(1, ploidy) if ploidy > 1 else 0
        alt_haps = rng.choice(ploidy, size=num_alt, replace=False)
        haps[alt_haps, site] = 1

    return haps

def simulate_fragments(haps, num_frags, mean_length, error_rate=0.02,
                       rng=None, min_length=2):
    """
    Sample num_frags fragments from the haplotypes in haps.

    Each fragment picks a haplotype uniformly, a length from a Poisson
    distribution around mean_length (at least min_length sites) and a
    uniform start, then flips each allele with probability error_rate.

    Returns (frags, truth) where truth[i] is the haplotype fragment i
    was drawn from. Sites are numbered from 1.
    """
    if rng is None:
        rng = np.random.default_rng()

    (ploidy, num_sites) = haps.shape

    frags = []
    truth = []

    for counter_id in range(num_frags):
        hap = int(rng.integers(0, ploidy))
        length = int(min(num_sites, max(min_length, rng.poisson(mean_length))))
        start = int(rng.integers(0, num_sites - length + 1))

        alleles = haps[hap, start:start+length].copy()
        errors = rng.random(length) < error_rate
        alleles[errors] = 1 - alleles[errors]

        calls = [(start + 1 + i, int(alleles[i])) for i in range(length)]
        frags.append(Frag(f"read_{counter_id}", counter_id, calls))
        truth.append(hap)

    return (frags, truth)

def fragments_to_lines(frags):
    """
    Write fragments in the fragment file layout (single block per run
    of consecutive sites, all qualities set to Phred 40)
    """
    lines = []

    for frag in frags:
        blocks = []
        cur_start = None
        cur_alleles = []
        prev_site = None

        for (site, allele) in zip(frag.positions, frag.alleles):
            if prev_site is not None and site == prev_site + 1:
                cur_alleles.append(str(allele))
            else:
                if cur_start is not None:
                    blocks.append((cur_start, "".join(cur_alleles)))
                cur_start = site
                cur_alleles = [str(allele)]
            prev_site = site

        if cur_start is not None:
            blocks.append((cur_start, "".join(cur_alleles)))

        fields = [str(len(blocks)), frag.id_name]
        for (start, alleles) in blocks:
            fields.extend([str(start), alleles])
        fields.append("I" * len(frag))

        lines.append(" ".join(fields))

    return lines

def partition_accuracy(part, truth, all_frags):
    """
    Fraction of fragments whose cluster's majority truth haplotype
    matches their own truth haplotype. part holds indices into
    all_frags, truth is indexed by counter_id.
    """
    total = 0
    correct = 0

    for cluster in part:
        if len(cluster) == 0:
            continue
        labels = [truth[all_frags[idx].counter_id] for idx in cluster]
        majority = max(set(labels), key=lambda h: (labels.count(h), -h))
        correct += labels.count(majority)
        total += len(labels)

    if total == 0:
        return 0.0
    return correct / total
