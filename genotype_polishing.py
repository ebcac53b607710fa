"""
genotype_polishing.py

Correct haplotype consensus calls so that the multiset of alleles at
each site matches the genotype reported by a VCF.
"""

from collections import Counter

import analysis_utils


#%%
def _change_cost(counts, from_allele, to_allele):
    """
    Fragment weight given up by switching a call from from_allele to
    to_allele. An uncalled haplotype costs nothing to fill in.
    """
    if from_allele is None:
        return 0.0
    return counts.get(from_allele, 0.0) - counts.get(to_allele, 0.0)

def correct_site_calls(site_counts, current_calls, genotype):
    """
    Work out the smallest set of call changes at one site that turns the
    haplotype calls into the genotype multiset.

    Args:
        site_counts: list of {allele: weight} (possibly empty) per haplotype.
        current_calls: list of the called allele per haplotype, None if uncalled.
        genotype: {allele: count} from the VCF.

    Returns:
        dict {hap_index: new_allele} of the changes to make. Calls backed by
        the least fragment weight are changed first, ties going to the
        lower haplotype index.
    """
    current = Counter(a for a in current_calls if a is not None)
    target = Counter({a: c for a, c in genotype.items() if c > 0})

    if current == target:
        return {}

    #Alleles we have too many of and too few of
    excess = Counter()
    for allele, count in current.items():
        if count > target.get(allele, 0):
            excess[allele] = count - target.get(allele, 0)
    deficit = Counter()
    for allele, count in target.items():
        if count > current.get(allele, 0):
            deficit[allele] = count - current.get(allele, 0)

    candidates = []
    for h, allele in enumerate(current_calls):
        if allele is not None and excess.get(allele, 0) == 0:
            continue
        for to_allele in sorted(deficit):
            cost = _change_cost(site_counts[h], allele, to_allele)
            candidates.append((cost, h, to_allele))

    candidates.sort()

    changes = {}
    for (cost, h, to_allele) in candidates:
        if h in changes or deficit[to_allele] == 0:
            continue
        from_allele = current_calls[h]
        if from_allele is not None:
            if excess[from_allele] == 0:
                continue
            excess[from_allele] -= 1
        deficit[to_allele] -= 1
        changes[h] = to_allele

    return changes

def polish_using_vcf(genotype_dict, hap_block, positions, return_num_changes=False):
    """
    Make the haplotype calls at each site in positions agree with the
    genotype in genotype_dict ({site: {allele: count}}).

    Sites missing from genotype_dict, or whose genotype does not cover
    every haplotype, are left as they are. The input block is not
    modified; a corrected copy is returned. A changed call keeps the
    site's whole fragment weight on the new allele.
    """
    polished = hap_block.copy()
    ploidy = len(polished.blocks)
    num_changes = 0

    for site in positions:
        genotype = genotype_dict.get(site)
        if not genotype or sum(genotype.values()) != ploidy:
            continue

        site_counts = [polished.blocks[h].get(site, {}) for h in range(ploidy)]
        current_calls = [analysis_utils.best_allele(c) if c else None for c in site_counts]

        changes = correct_site_calls(site_counts, current_calls, genotype)

        for h, new_allele in changes.items():
            total = sum(site_counts[h].values())
            polished.blocks[h][site] = {new_allele: total if total > 0 else 1.0}
        num_changes += len(changes)

    if return_num_changes:
        return (polished, num_changes)
    return polished
