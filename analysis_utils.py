import math
import numpy as np
from scipy.stats import binom

np.seterr(divide='ignore',invalid="ignore")

#%%
class HapBlock:
    """
    Consensus alleles for ploidy haplotypes.

    blocks[h] maps site -> {allele: weight}, the summed call weights of
    the fragments assigned to haplotype h. The call at a site is the
    allele with the largest weight with ties going to the smaller allele.
    """

    def __init__(self, blocks):
        self.blocks = blocks

    def __len__(self):
        return len(self.blocks)

    def __eq__(self, other):
        return isinstance(other, HapBlock) and self.blocks == other.blocks

    def __repr__(self):
        return f"HapBlock(ploidy={len(self.blocks)}, sites={len(self.sites())})"

    def sites(self):
        all_sites = set()
        for block in self.blocks:
            all_sites.update(block.keys())
        return sorted(all_sites)

    def call(self, hap, site):
        """
        Called allele for haplotype hap at site, None if uncalled
        """
        counts = self.blocks[hap].get(site)
        if not counts:
            return None
        return best_allele(counts)

    def calls(self):
        """
        List of {site: allele} dictionaries, one per haplotype
        """
        return [{site: best_allele(counts) for site, counts in block.items() if counts}
                for block in self.blocks]

    def copy(self):
        return HapBlock([{site: dict(counts) for site, counts in block.items()}
                         for block in self.blocks])

def best_allele(counts):
    """
    Allele with the largest weight in counts, ties to the smaller allele
    """
    return min(counts.items(), key=lambda item: (-item[1], item[0]))[0]

def hap_block_from_partition(part, all_frags, start=None, end=None):
    """
    Build the HapBlock for a partition given as a list of sets of
    fragment indices. If start/end are given only calls inside
    [start, end) are counted.
    """
    blocks = []

    for cluster in part:
        block = {}
        for idx in sorted(cluster):
            frag = all_frags[idx]
            if start is None:
                calls = zip(frag.positions, frag.alleles, frag.weights)
            else:
                calls = frag.calls_in(start, end)

            for (site, allele, weight) in calls:
                site_counts = block.setdefault(site, {})
                site_counts[allele] = site_counts.get(allele, 0.0) + weight
        blocks.append(block)

    return HapBlock(blocks)

#%%
def compare_frag_to_calls(frag, hap_calls, start, end):
    """
    Compare the calls of frag inside [start, end) against one
    haplotype's {site: allele} calls.

    Returns (agree, disagree, unknown) where unknown counts sites at which
    the haplotype has no call.
    """
    agree = 0
    disagree = 0
    unknown = 0

    for (site, allele, _) in frag.calls_in(start, end):
        hap_allele = hap_calls.get(site)
        if hap_allele is None:
            unknown += 1
        elif hap_allele == allele:
            agree += 1
        else:
            disagree += 1

    return (agree, disagree, unknown)

def frag_distance(first_frag, second_frag, start, end):
    """
    Number of disagreeing calls and of shared sites between two fragments
    inside [start, end)
    """
    first_calls = {site: allele for (site, allele, _) in first_frag.calls_in(start, end)}

    mismatches = 0
    shared = 0
    for (site, allele, _) in second_frag.calls_in(start, end):
        if site in first_calls:
            shared += 1
            if first_calls[site] != allele:
                mismatches += 1

    return (mismatches, shared)

def frag_log_likelihood(agree, disagree, unknown, epsilon, binomial_factor):
    """
    Log-likelihood of a fragment's calls given a haplotype: each
    disagreement is an independent error with probability epsilon and
    sites the haplotype does not call are a coin flip. The total is
    divided by binomial_factor to normalise for fragment length.
    """
    log_li = (disagree * math.log(epsilon)
              + agree * math.log(1 - epsilon)
              + unknown * math.log(0.5))

    return log_li / binomial_factor

def binomial_tail_log(errors, bases, epsilon):
    """
    log P(X >= errors) for X ~ Binomial(bases, epsilon). Falls back to
    the log pmf at errors (a lower bound) when the tail underflows.
    """
    if bases <= 0 or errors <= 0:
        return 0.0

    tail = binom.logsf(errors - 1, bases, epsilon)
    if not np.isfinite(tail):
        tail = binom.logpmf(errors, bases, epsilon)

    return float(tail)

def mismatch_counts(part, hap_block, all_frags, start, end):
    """
    For each cluster of part the total number of fragment calls compared
    against the cluster's consensus and the number of those that disagree.

    Returns a list of (bases, errors) tuples.
    """
    hap_calls = hap_block.calls()
    counts = []

    for h, cluster in enumerate(part):
        bases = 0
        errors = 0
        for idx in cluster:
            (agree, disagree, _) = compare_frag_to_calls(all_frags[idx], hap_calls[h], start, end)
            bases += agree + disagree
            errors += disagree
        counts.append((bases, errors))

    return counts
