"""
epsilon_estimation.py

Estimate the fragment error rate by clustering a sample of windows and
measuring how often fragments disagree with their cluster's consensus.
"""

import math
import warnings

import numpy as np

import analysis_utils
import local_clustering

#Used when the sampled windows show no errors at all
EPSILON_FLOOR = 0.010

#Optimization rounds per sampled window
NUM_ITERS_ESTIMATE = 10

#%%
def window_error_rate(part, all_frags, block_start, block_end):
    """
    Fraction of fragment calls in the window that disagree with their
    cluster's consensus, None if the window has no calls
    """
    hap_block = analysis_utils.hap_block_from_partition(part, all_frags, block_start, block_end)
    counts = analysis_utils.mismatch_counts(part, hap_block, all_frags, block_start, block_end)

    bases = sum(c[0] for c in counts)
    errors = sum(c[1] for c in counts)

    if bases == 0:
        return None
    return errors / bases

def sample_windows(num_iters, num_epsilon_attempts, length_block, first_site=1):
    """
    Up to num_epsilon_attempts windows evenly spaced over the num_iters
    windows of the genome
    """
    if num_iters <= 0 or num_epsilon_attempts <= 0:
        return []

    attempts = min(num_epsilon_attempts, num_iters)
    window_indices = np.unique(np.round(np.linspace(0, num_iters - 1, attempts)).astype(int))

    windows = []
    for x in window_indices:
        block_start = first_site + int(x) * length_block
        windows.append((block_start, block_start + length_block))
    return windows

def estimate_epsilon(num_iters, num_epsilon_attempts, ploidy, all_frags,
                     length_block, initial_epsilon, binomial_factor=None,
                     num_processes=1, first_site=1, num_rounds=1,
                     verbose=False):
    """
    Estimate the fragment error rate.

    Clusters num_epsilon_attempts sample windows with the current
    estimate (starting from initial_epsilon) and takes the median of the
    per-window rates at which fragments disagree with their cluster
    consensus as the new estimate. num_rounds repeats this with each
    estimate fed back in.

    An estimate of exactly zero, or a non-finite one, is replaced by
    EPSILON_FLOOR. If no sampled window has any calls the current estimate
    (initial_epsilon in the first round) is returned.
    """
    if binomial_factor is None:
        binomial_factor = local_clustering.get_binomial_factor(all_frags)

    windows = sample_windows(num_iters, num_epsilon_attempts, length_block, first_site=first_site)

    epsilon = initial_epsilon
    for round_num in range(num_rounds):
        (_, parts) = local_clustering.generate_hap_blocks_all(
            windows, ploidy, all_frags, epsilon,
            num_iters=NUM_ITERS_ESTIMATE,
            binomial_factor=binomial_factor,
            num_processes=num_processes,
            verbose=verbose,
            desc="Estimating epsilon")

        rates = []
        for ((block_start, block_end), part) in zip(windows, parts):
            rate = window_error_rate(part, all_frags, block_start, block_end)
            if rate is not None:
                rates.append(rate)

        if len(rates) == 0:
            return epsilon

        new_epsilon = float(np.median(rates))

        if new_epsilon == 0.0 or not math.isfinite(new_epsilon):
            warnings.warn(f"Estimated error rate {new_epsilon} unusable, using {EPSILON_FLOOR}")
            new_epsilon = EPSILON_FLOOR

        if verbose:
            print(f"Epsilon round {round_num+1}: {epsilon} -> {new_epsilon} from {len(rates)} windows")

        epsilon = new_epsilon

    return epsilon
