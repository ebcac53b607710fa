"""Tests for epsilon_estimation.py."""

import math

import numpy as np
import pytest

import epsilon_estimation
import simulate_sequences
from fragment_store import FragmentStore


# ==============================================================================
# Tests for sample_windows
# ==============================================================================

def test_sample_windows_evenly_spaced():
    windows = epsilon_estimation.sample_windows(100, 20, 10)

    assert len(windows) == 20
    assert windows[0] == (1, 11)
    assert windows[-1] == (991, 1001)
    starts = [w[0] for w in windows]
    assert starts == sorted(set(starts))


def test_sample_windows_capped_by_window_count():
    windows = epsilon_estimation.sample_windows(5, 20, 10, first_site=3)
    assert windows == [(3, 13), (13, 23), (23, 33), (33, 43), (43, 53)]


def test_sample_windows_without_windows():
    assert epsilon_estimation.sample_windows(0, 20, 10) == []


# ==============================================================================
# Tests for estimate_epsilon
# ==============================================================================

def test_error_free_data_uses_floor(make_store):
    store = make_store(["0000000000"] * 5 + ["1111111111"] * 5)

    with pytest.warns(UserWarning):
        epsilon = epsilon_estimation.estimate_epsilon(1, 20, 2, store, 10, 0.03)

    assert epsilon == epsilon_estimation.EPSILON_FLOOR


def test_estimate_tracks_simulated_error_rate():
    rng = np.random.default_rng(3)
    haps = simulate_sequences.simulate_haplotypes(200, 2, het_rate=1.0, rng=rng)
    (frags, _) = simulate_sequences.simulate_fragments(
        haps, 400, mean_length=15, error_rate=0.05, rng=rng)
    store = FragmentStore(frags)

    epsilon = epsilon_estimation.estimate_epsilon(20, 10, 2, store, 10, 0.03)

    assert 0.02 < epsilon < 0.1


def test_estimate_is_positive_and_finite(simulated_diploid):
    (_, frags, _) = simulated_diploid
    store = FragmentStore(frags)

    epsilon = epsilon_estimation.estimate_epsilon(8, 20, 2, store, 10, 0.03, num_rounds=2)

    assert epsilon > 0
    assert math.isfinite(epsilon)


def test_no_sampled_calls_returns_initial_guess(make_store):
    store = make_store(["0101"])
    assert epsilon_estimation.estimate_epsilon(0, 20, 2, store, 10, 0.03) == 0.03


def test_window_error_rate(make_store):
    store = make_store(["0000", "0000", "0001"])
    rate = epsilon_estimation.window_error_rate([{0, 1, 2}], store, 1, 5)
    assert rate == pytest.approx(1 / 12)

    assert epsilon_estimation.window_error_rate([set()], store, 1, 5) is None


def test_later_round_without_calls_keeps_estimate(make_store, monkeypatch):
    store = make_store(["0000000000"] * 5 + ["1111111111"] * 5)
    rates = iter([0.05, None])
    monkeypatch.setattr(epsilon_estimation, "window_error_rate",
                        lambda part, all_frags, block_start, block_end: next(rates))

    epsilon = epsilon_estimation.estimate_epsilon(1, 20, 2, store, 10, 0.03, num_rounds=2)

    assert epsilon == 0.05
