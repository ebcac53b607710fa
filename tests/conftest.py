"""Shared fixtures for the polyhap tests."""

import numpy as np
import pytest

import simulate_sequences
from fragment_store import Frag, FragmentStore


def make_frags(rows, first_site=1):
    """Build fragments from allele strings, '-' meaning no call.

    Row i becomes fragment read_i with counter_id i, its first character
    at first_site.
    """
    frags = []
    for (counter_id, row) in enumerate(rows):
        calls = [(first_site + offset, int(c)) for (offset, c) in enumerate(row) if c != "-"]
        frags.append(Frag(f"read_{counter_id}", counter_id, calls))
    return frags


@pytest.fixture
def make_store():
    def _make(rows, first_site=1):
        return FragmentStore(make_frags(rows, first_site=first_site))
    return _make


@pytest.fixture
def simulated_triploid():
    """Three haplotypes over 20 sites with fragments spanning most of them."""
    rng = np.random.default_rng(7)
    haps = simulate_sequences.simulate_haplotypes(20, 3, het_rate=1.0, rng=rng)
    (frags, truth) = simulate_sequences.simulate_fragments(
        haps, 60, mean_length=20, error_rate=0.01, rng=rng)
    return (haps, FragmentStore(frags), truth)


@pytest.fixture
def simulated_diploid():
    """Two haplotypes over 80 sites, fragments of about 12 sites."""
    rng = np.random.default_rng(11)
    haps = simulate_sequences.simulate_haplotypes(80, 2, het_rate=1.0, rng=rng)
    (frags, truth) = simulate_sequences.simulate_fragments(
        haps, 200, mean_length=12, error_rate=0.02, rng=rng)
    return (haps, frags, truth)
