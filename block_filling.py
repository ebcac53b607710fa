"""
block_filling.py

Find windows whose partition scores are extreme low outliers and try to
replace their partitions with better ones.
"""

import math
import numpy as np

import local_clustering
from fragment_store import layout_windows


#%%
def get_outlier_blocks(scores, iqr_factor):
    """
    Indices of the scores below Q1 - iqr_factor*IQR. Quartiles are taken
    over the finite scores, windows without fragments (score -inf) are
    always below the cutoff.
    """
    finite_scores = [s for s in scores if math.isfinite(s)]
    if len(finite_scores) == 0:
        return []

    (q1, q3) = np.percentile(finite_scores, [25, 75])
    cutoff = q1 - iqr_factor * (q3 - q1)

    return [i for (i, s) in enumerate(scores) if s < cutoff]

def _candidate_partitions(x, windows, parts, ploidy, all_frags, epsilon,
                          genotype_dict, polish, num_iters, binomial_factor):
    """
    Starting partitions for re-optimizing window x:
      - clustering of a window extended by half a window on each side,
        cut back to the window's fragments
      - the left and right neighbours' partitions on the shared
        fragments, completed with the window's other fragments
    """
    (block_start, block_end) = windows[x]
    half = max(1, (block_end - block_start) // 2)

    candidates = []

    (_, ext_part, _) = local_clustering.cluster_window(
        max(1, block_start - half), block_end + half, ploidy, all_frags, epsilon,
        genotype_dict=genotype_dict, polish=polish, num_iters=num_iters,
        binomial_factor=binomial_factor)
    candidates.append(("extended", ext_part))

    for (name, y) in (("left", x - 1), ("right", x + 1)):
        if 0 <= y < len(parts):
            candidates.append((name, parts[y]))

    completed = []
    for (name, part) in candidates:
        completed.append((name, local_clustering.complete_partition(
            part, all_frags, block_start, block_end, epsilon, binomial_factor)))

    return completed

def replace_with_filled_blocks(scores, parts, iqr_factor, length_block,
                               all_frags, epsilon, binomial_factor=None,
                               genotype_dict=None, polish=False,
                               num_iters=10, first_site=1, overlap=0,
                               return_scores=False, verbose=False):
    """
    Recompute the partitions of low outlier windows.

    Windows are laid out as in the main clustering pass: window x is
    [first_site + x*length_block, first_site + (x+1)*length_block + overlap).
    Every window flagged by get_outlier_blocks is re-optimized from each
    of the starting partitions of _candidate_partitions. The best result
    replaces the original partition only when it scores strictly higher,
    so no window ever gets a worse score.

    Returns:
        List of partitions (and the list of scores if return_scores).
    """
    if binomial_factor is None:
        binomial_factor = local_clustering.get_binomial_factor(all_frags)

    new_parts = [[set(cluster) for cluster in part] for part in parts]
    new_scores = list(scores)

    windows = layout_windows(first_site, first_site + len(parts) * length_block - 1,
                             length_block, overlap=overlap)

    outliers = get_outlier_blocks(scores, iqr_factor)
    if verbose:
        print(f"{len(outliers)} outlier blocks out of {len(scores)}")

    num_replaced = 0
    for x in outliers:
        (block_start, block_end) = windows[x]
        if len(all_frags.frags_in_window(block_start, block_end)) == 0:
            continue

        ploidy = len(parts[x])
        best_score = scores[x]
        best_part = None
        best_name = None

        for (name, start_part) in _candidate_partitions(
                x, windows, parts, ploidy, all_frags, epsilon,
                genotype_dict, polish, num_iters, binomial_factor):
            (score, part, _) = local_clustering.optimize_clustering(
                start_part, epsilon, genotype_dict, polish, num_iters,
                binomial_factor, all_frags, block_start, block_end)
            if score > best_score:
                best_score = score
                best_part = part
                best_name = name

        if best_part is not None:
            new_parts[x] = best_part
            new_scores[x] = best_score
            num_replaced += 1
            if verbose:
                print(f"Block {x}: score {scores[x]:.3f} -> {best_score:.3f} ({best_name})")

    if verbose:
        print(f"Replaced {num_replaced} blocks")

    if return_scores:
        return (new_parts, new_scores)
    return new_parts
