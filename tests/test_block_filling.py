"""Tests for block_filling.py."""

import pytest

import block_filling
import local_clustering
from fragment_store import FragmentStore, layout_windows


# ==============================================================================
# Tests for get_outlier_blocks
# ==============================================================================

def test_single_low_outlier_flagged():
    assert block_filling.get_outlier_blocks([-1, -1.2, -0.9, -1.1, -50], 3.0) == [4]


def test_no_outliers_in_uniform_scores():
    assert block_filling.get_outlier_blocks([-1.0, -1.1, -0.9, -1.05], 3.0) == []


def test_empty_window_always_flagged():
    assert block_filling.get_outlier_blocks([-1, -1, float("-inf")], 3.0) == [2]


def test_all_windows_empty():
    assert block_filling.get_outlier_blocks([float("-inf")] * 3, 3.0) == []


def test_no_scores():
    assert block_filling.get_outlier_blocks([], 3.0) == []


# ==============================================================================
# Tests for replace_with_filled_blocks
# ==============================================================================

EPSILON = 0.02


@pytest.fixture
def clustered_windows(simulated_diploid):
    (_, frags, _) = simulated_diploid
    store = FragmentStore(frags)
    length_block = 10
    windows = layout_windows(1, 80, length_block)
    (scores, parts) = local_clustering.generate_hap_blocks_all(
        windows, 2, store, EPSILON, num_processes=1, verbose=False)
    return (store, length_block, windows, scores, parts)


def _rescore(part, store, window):
    (block_start, block_end) = window
    hap_block = local_clustering.window_hap_block(part, store, block_start, block_end)
    return local_clustering.upem_score(part, hap_block, store, block_start, block_end,
                                       EPSILON, 1.0)


def test_corrupted_window_is_repaired(clustered_windows):
    (store, length_block, windows, scores, parts) = clustered_windows
    assert len(windows) == 8

    #Interleave the fragments of window 3 so both clusters are mixed
    bad = 3
    idxs = store.frags_in_window(*windows[bad])
    parts[bad] = [set(idxs[0::2]), set(idxs[1::2])]
    scores[bad] = _rescore(parts[bad], store, windows[bad])

    assert bad in block_filling.get_outlier_blocks(scores, 3.0)

    (new_parts, new_scores) = block_filling.replace_with_filled_blocks(
        scores, parts, 3.0, length_block, store, EPSILON,
        binomial_factor=1.0, return_scores=True)

    assert new_scores[bad] > scores[bad]
    for (old, new) in zip(scores, new_scores):
        assert new >= old

    assert new_scores[bad] == pytest.approx(_rescore(new_parts[bad], store, windows[bad]))

    repaired = new_parts[bad]
    assert repaired[0].isdisjoint(repaired[1])
    assert repaired[0] | repaired[1] == set(idxs)


def test_unflagged_windows_untouched(clustered_windows):
    (store, length_block, windows, scores, parts) = clustered_windows

    new_parts = block_filling.replace_with_filled_blocks(
        scores, parts, 3.0, length_block, store, EPSILON, binomial_factor=1.0)

    flagged = set(block_filling.get_outlier_blocks(scores, 3.0))
    for x in range(len(parts)):
        if x not in flagged:
            assert new_parts[x] == parts[x]


def test_input_partitions_not_modified(clustered_windows):
    (store, length_block, windows, scores, parts) = clustered_windows
    parts[2] = [set().union(*parts[2]), set()]
    scores[2] = _rescore(parts[2], store, windows[2])
    before = [[set(c) for c in part] for part in parts]
    scores_before = list(scores)

    block_filling.replace_with_filled_blocks(
        scores, parts, 3.0, length_block, store, EPSILON, binomial_factor=1.0)

    assert parts == before
    assert scores == scores_before


def test_repair_uses_clustering_window_layout(simulated_diploid):
    (_, frags, _) = simulated_diploid
    store = FragmentStore(frags)
    windows = layout_windows(5, 80, 10, overlap=3)
    (scores, parts) = local_clustering.generate_hap_blocks_all(
        windows, 2, store, EPSILON, num_processes=1, verbose=False)

    bad = 2
    idxs = store.frags_in_window(*windows[bad])
    parts[bad] = [set(idxs[0::2]), set(idxs[1::2])]
    scores[bad] = _rescore(parts[bad], store, windows[bad])

    (new_parts, new_scores) = block_filling.replace_with_filled_blocks(
        scores, parts, 3.0, 10, store, EPSILON, binomial_factor=1.0,
        first_site=5, overlap=3, return_scores=True)

    assert new_scores[bad] > scores[bad]
    assert new_parts[bad][0] | new_parts[bad][1] == set(idxs)
    assert new_scores[bad] == pytest.approx(_rescore(new_parts[bad], store, windows[bad]))
