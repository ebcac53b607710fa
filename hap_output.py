"""
hap_output.py

Write phased haplotypes and the fragment partition to text files.
"""


#%%
def format_site_label(site, snp_to_genome_pos):
    if snp_to_genome_pos and site - 1 < len(snp_to_genome_pos):
        return f"{site}:{snp_to_genome_pos[site-1]}"
    return f"{site}"

def write_blocks_to_file(out_file, hap_blocks, lengths, snp_to_genome_pos,
                         first_site=1):
    """
    Write each haplotype block as a table with one line per site:
    the site label (site_index:genome_position when positions are
    known) followed by the allele of every haplotype, '-' if uncalled.

    lengths[i] is the last site written for hap_blocks[i].
    """
    with open(out_file, "w") as f:
        for (hap_block, length) in zip(hap_blocks, lengths):
            ploidy = len(hap_block.blocks)
            hap_calls = hap_block.calls()

            f.write("**BLOCK**\n")
            for site in range(first_site, length + 1):
                row = [format_site_label(site, snp_to_genome_pos)]
                for h in range(ploidy):
                    allele = hap_calls[h].get(site)
                    row.append("-" if allele is None else str(allele))
                f.write("\t".join(row) + "\n")
            f.write("*****\n")

def write_partition_to_file(out_file, part, all_frags):
    """
    Write the read names assigned to each haplotype, one '#hap k'
    header per haplotype
    """
    with open(out_file, "w") as f:
        for (h, cluster) in enumerate(part):
            f.write(f"#hap {h+1}\n")
            for name in all_frags.names_for(cluster):
                f.write(f"{name}\n")
