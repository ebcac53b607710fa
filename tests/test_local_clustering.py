"""Tests for local_clustering.py."""

import math

import pytest

import analysis_utils
import local_clustering
import simulate_sequences
from fragment_store import FragmentStore, layout_windows


# ==============================================================================
# Tests for generate_hap_block / optimize_clustering
# ==============================================================================

def test_identical_fragments_single_haplotype(make_store):
    """Three identical fragments with ploidy 1 form one perfect cluster."""
    store = make_store(["010", "010", "010"])

    part = local_clustering.generate_hap_block(1, 4, 1, store, 0.03)
    assert part == [{0, 1, 2}]

    (score, best_part, best_block) = local_clustering.optimize_clustering(
        part, 0.03, {}, False, 10, 1.0, store, 1, 4)

    assert score == 0.0
    assert best_part == [{0, 1, 2}]
    assert best_block.calls() == [{1: 0, 2: 1, 3: 0}]


def test_two_distinct_haplotypes_are_separated(make_store):
    store = make_store(["0000000000"] * 4 + ["1111111111"] * 4)

    (score, part, hap_block) = local_clustering.cluster_window(1, 11, 2, store, 0.02)

    assert sorted(part, key=min) == [{0, 1, 2, 3}, {4, 5, 6, 7}]
    assert score == 0.0
    calls = sorted(hap_block.calls(), key=lambda c: c[1])
    assert calls[0] == {site: 0 for site in range(1, 11)}
    assert calls[1] == {site: 1 for site in range(1, 11)}


def test_empty_window_gives_empty_partition(make_store):
    store = make_store(["010", "110"])

    part = local_clustering.generate_hap_block(10, 20, 2, store, 0.03)
    assert part == [set(), set()]

    (score, best_part, _) = local_clustering.optimize_clustering(
        part, 0.03, {}, False, 10, 1.0, store, 10, 20)
    assert score == local_clustering.EMPTY_WINDOW_SCORE
    assert score == float("-inf")
    assert best_part == [set(), set()]


def test_fewer_fragments_than_ploidy_leaves_empty_clusters(make_store):
    store = make_store(["0101"])

    (score, part, _) = local_clustering.cluster_window(1, 5, 3, store, 0.03)

    assert sorted(len(c) for c in part) == [0, 0, 1]
    assert score == 0.0


def test_partition_is_disjoint_and_covers_window(simulated_triploid):
    (_, store, _) = simulated_triploid

    (_, part, _) = local_clustering.cluster_window(1, 21, 3, store, 0.02)

    members = [idx for cluster in part for idx in cluster]
    assert len(members) == len(set(members))
    assert set(members) == set(store.frags_in_window(1, 21))


def test_clustering_recovers_haplotypes(simulated_triploid):
    (_, store, truth) = simulated_triploid

    (_, part, _) = local_clustering.cluster_window(1, 21, 3, store, 0.02)

    assert simulate_sequences.partition_accuracy(part, truth, store) >= 0.95


def test_reoptimizing_best_partition_never_scores_lower(simulated_triploid):
    (_, store, _) = simulated_triploid

    (score, part, _) = local_clustering.cluster_window(1, 21, 3, store, 0.02, num_iters=3)
    (rescore, _, _) = local_clustering.optimize_clustering(
        part, 0.02, {}, False, 10, 1.0, store, 1, 21)

    assert rescore >= score


def test_polishing_pulls_consensus_to_genotype(make_store):
    store = make_store(["0000", "0000", "0000"])
    genotype_dict = {site: {0: 1, 1: 1} for site in range(1, 5)}

    part = local_clustering.generate_hap_block(1, 5, 2, store, 0.03)
    (score, best_part, best_block) = local_clustering.optimize_clustering(
        part, 0.03, genotype_dict, True, 10, 1.0, store, 1, 5)

    assert best_part == [{0, 1, 2}, set()]
    assert best_block.calls()[0] == {site: 0 for site in range(1, 5)}
    assert best_block.calls()[1] == {site: 1 for site in range(1, 5)}
    assert score == 0.0


# ==============================================================================
# Tests for upem_score
# ==============================================================================

def test_upem_score_penalizes_mixed_cluster(make_store):
    store = make_store(["000000", "000000", "111111", "111111"])

    good = [{0, 1}, {2, 3}]
    bad = [{0, 2}, {1, 3}]

    good_block = analysis_utils.hap_block_from_partition(good, store, 1, 7)
    bad_block = analysis_utils.hap_block_from_partition(bad, store, 1, 7)

    good_score = local_clustering.upem_score(good, good_block, store, 1, 7, 0.02, 1.0)
    bad_score = local_clustering.upem_score(bad, bad_block, store, 1, 7, 0.02, 1.0)

    assert good_score == 0.0
    assert bad_score < good_score
    assert math.isfinite(bad_score)


def test_upem_score_ignores_empty_clusters(make_store):
    store = make_store(["0101", "0101"])
    part = [{0, 1}, set(), set()]
    hap_block = analysis_utils.hap_block_from_partition(part, store, 1, 5)

    assert local_clustering.upem_score(part, hap_block, store, 1, 5, 0.02, 1.0) == 0.0


def test_binomial_factor_scales_down_counts(make_store):
    store = make_store(["0000000000", "0000000001", "0000000000"])
    part = [{0, 1, 2}]
    hap_block = analysis_utils.hap_block_from_partition(part, store, 1, 11)

    raw = local_clustering.upem_score(part, hap_block, store, 1, 11, 0.001, 1.0)
    corrected = local_clustering.upem_score(part, hap_block, store, 1, 11, 0.001, 4.0)

    # One error in 30 calls, corrected to none in 8
    assert raw < 0.0
    assert corrected == 0.0


def test_get_binomial_factor_is_positive(make_store):
    assert local_clustering.get_binomial_factor(make_store(["0"])) > 0
    store = make_store(["0" * 50] * 3)
    assert local_clustering.get_binomial_factor(store) == 50 / local_clustering.HEURISTIC_MULTIPLIER


# ==============================================================================
# Tests for complete_partition
# ==============================================================================

def test_complete_partition_adds_missing_fragments(make_store):
    store = make_store(["0000", "1111", "0000", "1111", "0001"])

    completed = local_clustering.complete_partition(
        [{0}, {1}], store, 1, 5, 0.02, 1.0)

    assert completed == [{0, 2, 4}, {1, 3}]


def test_complete_partition_drops_fragments_outside_window(make_store):
    store = make_store(["00--", "--11"])

    completed = local_clustering.complete_partition(
        [{0}, {1}], store, 3, 5, 0.02, 1.0)

    assert completed == [set(), {1}]


# ==============================================================================
# Tests for generate_hap_blocks_all
# ==============================================================================

def test_parallel_clustering_matches_sequential(simulated_diploid):
    (_, frags, _) = simulated_diploid
    store = FragmentStore(frags)
    windows = layout_windows(1, store.genome_length(), 10)

    (seq_scores, seq_parts) = local_clustering.generate_hap_blocks_all(
        windows, 2, store, 0.02, num_processes=1, verbose=False)
    (par_scores, par_parts) = local_clustering.generate_hap_blocks_all(
        windows, 2, store, 0.02, num_processes=2, verbose=False)

    assert len(seq_parts) == len(windows)
    assert par_scores == seq_scores
    assert par_parts == seq_parts


def test_worker_failure_aborts_clustering(simulated_diploid):
    (_, frags, _) = simulated_diploid
    store = FragmentStore(frags)
    windows = layout_windows(1, store.genome_length(), 10)

    #An error rate of 0 makes the likelihood of any fragment log(0)
    with pytest.raises(ValueError):
        local_clustering.generate_hap_blocks_all(
            windows, 2, store, 0.0, num_processes=2, verbose=False)
