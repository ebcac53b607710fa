"""
local_clustering.py

Partitioning of the fragments that overlap a window of variant sites
into ploidy clusters, one cluster per haplotype copy.

A window is clustered in two steps:
  1. generate_hap_block: greedy seeding. The fragment with the most calls
     seeds the first cluster, each further seed is the fragment that
     disagrees most with the seeds chosen so far, then every other
     fragment joins the cluster it is most likely to have come from.
  2. optimize_clustering: iterative reassignment of every fragment to
     its most likely cluster, keeping the best scoring partition seen.

Scoring (UPEM) is described in upem_score. Partitions are lists of sets
of fragment indices into a FragmentStore.
"""

import numpy as np
from multiprocess import Pool
from tqdm import tqdm

import analysis_utils
import genotype_polishing

np.seterr(divide='ignore',invalid="ignore")

EMPTY_WINDOW_SCORE = float("-inf")

#Window length is the BLOCK_LEN_QUANT quantile of the fragment lengths,
#the length correction is the median length over HEURISTIC_MULTIPLIER
BLOCK_LEN_QUANT = 0.33
HEURISTIC_MULTIPLIER = 25.0

#%%
def get_binomial_factor(all_frags):
    """
    Sample size correction for the binomial error model: the median
    fragment length over HEURISTIC_MULTIPLIER. Always positive.
    """
    avg_read_length = all_frags.average_fragment_length(0.5)
    binomial_factor = avg_read_length / HEURISTIC_MULTIPLIER

    if binomial_factor <= 0:
        return 1.0
    return binomial_factor

def get_block_length(all_frags):
    return max(1, all_frags.average_fragment_length(BLOCK_LEN_QUANT))

def _calls_against_counts(calls, counts):
    """
    (agree, disagree, unknown) of a list of calls against running
    {site: {allele: weight}} cluster counts
    """
    agree = 0
    disagree = 0
    unknown = 0
    for (site, allele, _) in calls:
        site_counts = counts.get(site)
        if not site_counts:
            unknown += 1
        elif analysis_utils.best_allele(site_counts) == allele:
            agree += 1
        else:
            disagree += 1
    return (agree, disagree, unknown)

def _add_calls(counts, calls):
    for (site, allele, weight) in calls:
        site_counts = counts.setdefault(site, {})
        site_counts[allele] = site_counts.get(allele, 0.0) + weight

def _most_likely_cluster(calls, cluster_counts, epsilon, binomial_factor, current=None):
    """
    Index of the cluster under which calls are most likely. The current
    cluster wins ties, otherwise the lowest index does.
    """
    log_lis = [analysis_utils.frag_log_likelihood(
                   *_calls_against_counts(calls, counts), epsilon, binomial_factor)
               for counts in cluster_counts]

    best = 0 if current is None else current
    for k in range(len(log_lis)):
        if log_lis[k] > log_lis[best]:
            best = k
    return best

#%%
def upem_score(part, hap_block, all_frags, block_start, block_end,
               epsilon, binomial_factor):
    """
    Score a partition of the window [block_start, block_end).

    For every non-empty cluster with N fragment calls compared against
    the cluster consensus, E of which disagree, take
    n = round(N/binomial_factor) and e = round(E/binomial_factor) and add
    log P(X >= e) for X ~ Binomial(n, epsilon). Clusters that fit the
    error model contribute close to 0, clusters with more errors than
    epsilon explains are strongly negative. Empty clusters add nothing.

    Returns EMPTY_WINDOW_SCORE if the partition holds no fragments.
    """
    if all(len(cluster) == 0 for cluster in part):
        return EMPTY_WINDOW_SCORE

    score = 0.0
    for (bases, errors) in analysis_utils.mismatch_counts(
            part, hap_block, all_frags, block_start, block_end):
        if bases == 0:
            continue
        n = int(round(bases / binomial_factor))
        e = int(round(errors / binomial_factor))
        score += analysis_utils.binomial_tail_log(e, n, epsilon)

    return score

def window_hap_block(part, all_frags, block_start, block_end,
                     genotype_dict=None, polish=False):
    """
    Consensus of part restricted to the window, polished against the
    genotypes if polish is set
    """
    hap_block = analysis_utils.hap_block_from_partition(part, all_frags, block_start, block_end)

    if polish and genotype_dict:
        hap_block = genotype_polishing.polish_using_vcf(
            genotype_dict, hap_block, range(block_start, block_end))

    return hap_block

#%%
def generate_hap_block(block_start, block_end, ploidy, all_frags, epsilon,
                       binomial_factor=1.0):
    """
    Build an initial partition of the fragments with calls in
    [block_start, block_end) into ploidy clusters.

    Windows with fewer fragments than ploidy leave some clusters empty,
    windows without fragments give ploidy empty clusters.
    """
    part = [set() for _ in range(ploidy)]

    frag_idxs = all_frags.frags_in_window(block_start, block_end)
    if len(frag_idxs) == 0:
        return part

    window_calls = {idx: all_frags[idx].calls_in(block_start, block_end) for idx in frag_idxs}

    #Most informative fragments first
    order = sorted(frag_idxs, key=lambda idx: (-len(window_calls[idx]), idx))

    seeds = [order[0]]
    min_dists = {}
    while len(seeds) < min(ploidy, len(order)):
        last_seed = all_frags[seeds[-1]]
        best_idx = None
        for idx in order:
            if idx in seeds:
                continue
            (mismatches, _) = analysis_utils.frag_distance(
                last_seed, all_frags[idx], block_start, block_end)
            min_dists[idx] = min(min_dists.get(idx, mismatches), mismatches)
            if best_idx is None or min_dists[idx] > min_dists[best_idx]:
                best_idx = idx
        seeds.append(best_idx)

    cluster_counts = [{} for _ in range(ploidy)]
    for (h, idx) in enumerate(seeds):
        part[h].add(idx)
        _add_calls(cluster_counts[h], window_calls[idx])

    seed_set = set(seeds)
    for idx in order:
        if idx in seed_set:
            continue
        best = _most_likely_cluster(window_calls[idx], cluster_counts, epsilon, binomial_factor)
        part[best].add(idx)
        _add_calls(cluster_counts[best], window_calls[idx])

    return part

def optimize_clustering(part, epsilon, genotype_dict, polish, num_iters,
                        binomial_factor, all_frags, block_start, block_end):
    """
    Iteratively improve a partition of the window [block_start, block_end).

    Each round moves every fragment to the cluster whose consensus makes
    its calls most likely (see analysis_utils.frag_log_likelihood),
    keeping its current cluster on ties. With polish set the consensus is
    corrected against genotype_dict before fragments are compared to it.
    Stops after num_iters rounds or once no fragment moves.

    Reassignment is greedy and the score can go down between rounds, so
    the best partition seen is returned rather than the last one.

    Returns:
        (best_score, best_part, best_hap_block)
    """
    current = [set(cluster) for cluster in part]

    hap_block = window_hap_block(current, all_frags, block_start, block_end,
                                 genotype_dict, polish)
    best_score = upem_score(current, hap_block, all_frags, block_start, block_end,
                            epsilon, binomial_factor)
    best_part = [set(cluster) for cluster in current]
    best_block = hap_block

    for _ in range(num_iters):
        hap_calls = hap_block.calls()
        new_part = [set() for _ in range(len(current))]
        moved = 0

        for (h, cluster) in enumerate(current):
            for idx in cluster:
                frag = all_frags[idx]
                log_lis = [analysis_utils.frag_log_likelihood(
                               *analysis_utils.compare_frag_to_calls(frag, calls, block_start, block_end),
                               epsilon, binomial_factor)
                           for calls in hap_calls]

                best = h
                for k in range(len(log_lis)):
                    if log_lis[k] > log_lis[best]:
                        best = k

                new_part[best].add(idx)
                if best != h:
                    moved += 1

        if moved == 0:
            break

        current = new_part
        hap_block = window_hap_block(current, all_frags, block_start, block_end,
                                     genotype_dict, polish)
        score = upem_score(current, hap_block, all_frags, block_start, block_end,
                           epsilon, binomial_factor)

        if score > best_score:
            best_score = score
            best_part = [set(cluster) for cluster in current]
            best_block = hap_block

    return (best_score, best_part, best_block)

def complete_partition(part, all_frags, block_start, block_end, epsilon, binomial_factor):
    """
    Copy of part restricted to the fragments with calls in the window,
    with the window's missing fragments added to their most likely
    cluster (most informative fragments first).
    """
    frag_idxs = all_frags.frags_in_window(block_start, block_end)
    in_window = set(frag_idxs)

    completed = [set(cluster) & in_window for cluster in part]
    placed = set().union(*completed) if completed else set()

    cluster_counts = []
    for cluster in completed:
        counts = {}
        for idx in sorted(cluster):
            _add_calls(counts, all_frags[idx].calls_in(block_start, block_end))
        cluster_counts.append(counts)

    missing = [idx for idx in frag_idxs if idx not in placed]
    window_calls = {idx: all_frags[idx].calls_in(block_start, block_end) for idx in missing}
    missing.sort(key=lambda idx: (-len(window_calls[idx]), idx))

    for idx in missing:
        best = _most_likely_cluster(window_calls[idx], cluster_counts, epsilon, binomial_factor)
        completed[best].add(idx)
        _add_calls(cluster_counts[best], window_calls[idx])

    return completed

def cluster_window(block_start, block_end, ploidy, all_frags, epsilon,
                   genotype_dict=None, polish=False, num_iters=10,
                   binomial_factor=1.0):
    """
    Seed and optimize one window. Returns (score, part, hap_block).
    """
    part = generate_hap_block(block_start, block_end, ploidy, all_frags,
                              epsilon, binomial_factor=binomial_factor)

    (best_score, best_part, best_block) = optimize_clustering(
        part, epsilon, genotype_dict, polish, num_iters,
        binomial_factor, all_frags, block_start, block_end)

    return (best_score, best_part, best_block)

#%%
_WORKER_CONTEXT = {}

def _init_worker(context):
    global _WORKER_CONTEXT
    _WORKER_CONTEXT = context

def _run_window_task(task, context):
    (x, block_start, block_end) = task
    (score, part, _) = cluster_window(
        block_start, block_end,
        context["ploidy"], context["all_frags"], context["epsilon"],
        genotype_dict=context["genotype_dict"],
        polish=context["polish"],
        num_iters=context["num_iters"],
        binomial_factor=context["binomial_factor"])
    return (x, score, part)

def _window_worker(task):
    return _run_window_task(task, _WORKER_CONTEXT)

def generate_hap_blocks_all(windows, ploidy, all_frags, epsilon,
                            genotype_dict=None, polish=False, num_iters=10,
                            binomial_factor=1.0, num_processes=1,
                            verbose=True, desc="Clustering windows"):
    """
    Cluster every window of windows (a list of (start, end) tuples)
    using a pool of num_processes workers.

    The fragment store is handed to each worker once when the pool starts;
    tasks only carry the window index and bounds. Results come back in
    completion order and are sorted by window index afterwards.

    Returns:
        (scores, parts) in window order.
    """
    tasks = [(x, block_start, block_end) for (x, (block_start, block_end)) in enumerate(windows)]

    context = {
        "ploidy": ploidy,
        "all_frags": all_frags,
        "epsilon": epsilon,
        "genotype_dict": genotype_dict if genotype_dict is not None else {},
        "polish": polish,
        "num_iters": num_iters,
        "binomial_factor": binomial_factor,
    }

    results = []
    if num_processes > 1 and len(tasks) > 1:
        with Pool(processes=num_processes, initializer=_init_worker,
                  initargs=(context,)) as pool:
            for result in tqdm(pool.imap_unordered(_window_worker, tasks),
                               total=len(tasks), desc=desc, disable=not verbose):
                results.append(result)
    else:
        for task in tqdm(tasks, desc=desc, disable=not verbose):
            results.append(_run_window_task(task, context))

    #Restore window order, workers finish in any order
    results.sort(key=lambda r: r[0])

    scores = [r[1] for r in results]
    parts = [r[2] for r in results]

    return (scores, parts)
