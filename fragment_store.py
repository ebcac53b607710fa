"""
fragment_store.py

Read-only container for sequencing fragments. Every other module refers
to fragments by their integer index into a FragmentStore, so worker
processes only ever hand indices around and never copy fragment data.
"""

import math
from bisect import bisect_left

import numpy as np


class Frag:
    """
    One read's allele observations over variant sites.

    positions are 1-based variant site indices in ascending order,
    alleles and weights are parallel to them. weights are call
    confidences in (0,1].
    """
    __slots__ = ("id_name", "counter_id", "positions", "alleles",
                 "weights", "first_position", "last_position")

    def __init__(self, id_name, counter_id, calls):
        """
        calls is an iterable of (site, allele) or (site, allele, weight)
        tuples in any order. Later duplicates of a site are ignored.
        """
        seen = {}
        for call in calls:
            site = int(call[0])
            if site in seen:
                continue
            weight = float(call[2]) if len(call) > 2 else 1.0
            seen[site] = (int(call[1]), weight)

        ordered = sorted(seen.items())

        object.__setattr__(self, "id_name", id_name)
        object.__setattr__(self, "counter_id", counter_id)
        object.__setattr__(self, "positions", tuple(s for s, _ in ordered))
        object.__setattr__(self, "alleles", tuple(v[0] for _, v in ordered))
        object.__setattr__(self, "weights", tuple(v[1] for _, v in ordered))

        if ordered:
            object.__setattr__(self, "first_position", ordered[0][0])
            object.__setattr__(self, "last_position", ordered[-1][0])
        else:
            object.__setattr__(self, "first_position", 0)
            object.__setattr__(self, "last_position", 0)

    def __setattr__(self, name, value):
        raise AttributeError("Frag is immutable")

    def __eq__(self, other):
        return isinstance(other, Frag) and self.counter_id == other.counter_id

    def __hash__(self):
        return hash(self.counter_id)

    def __len__(self):
        return len(self.positions)

    def __repr__(self):
        return (f"Frag({self.id_name!r}, id={self.counter_id}, "
                f"sites={self.first_position}-{self.last_position}, n={len(self.positions)})")

    def __getstate__(self):
        return {k: getattr(self, k) for k in self.__slots__}

    def __setstate__(self, state):
        for k, v in state.items():
            object.__setattr__(self, k, v)

    @property
    def seq_dict(self):
        return dict(zip(self.positions, self.alleles))

    def span(self):
        """Number of variant sites spanned from first to last call"""
        if not self.positions:
            return 0
        return self.last_position - self.first_position + 1

    def calls_in(self, start, end):
        """
        Return the (site, allele, weight) calls with start <= site < end
        """
        lo = bisect_left(self.positions, start)
        hi = bisect_left(self.positions, end)
        return list(zip(self.positions[lo:hi], self.alleles[lo:hi], self.weights[lo:hi]))


#%%
def get_avg_length(all_frags, quantile):
    """
    Length (in sites spanned) of the fragment at the given quantile
    of the sorted fragment lengths. Returns 0 for no fragments.
    """
    if len(all_frags) == 0:
        return 0

    lengths = sorted(frag.span() for frag in all_frags)
    idx = int(quantile * len(lengths))
    idx = min(max(idx, 0), len(lengths) - 1)

    return lengths[idx]

def get_length_gn(all_frags):
    """
    Last variant site covered by any fragment
    """
    if len(all_frags) == 0:
        return 0
    return max(frag.last_position for frag in all_frags)

def layout_windows(first_site, last_site, length_block, overlap=0):
    """
    Tile the sites first_site..last_site (inclusive) into windows
    [start, start+length_block+overlap). The last window is kept even
    if the remaining sites do not fill it.
    """
    if length_block < 1:
        raise ValueError(f"Window length must be positive, got {length_block}")
    if last_site < first_site:
        return []

    num_windows = math.ceil((last_site - first_site + 1) / length_block)

    windows = []
    for x in range(num_windows):
        block_start = first_site + x * length_block
        windows.append((block_start, block_start + length_block + overlap))

    return windows


class FragmentStore:
    """
    Immutable, sorted collection of fragments. Fragments are sorted by
    first_position (load order breaks ties) and addressed by index.
    """

    def __init__(self, all_frags):
        ordered = sorted(all_frags, key=lambda f: (f.first_position, f.counter_id))
        self.frags = tuple(frag for frag in ordered if len(frag) > 0)

        self._first_positions = np.array([f.first_position for f in self.frags], dtype=np.int64)
        self._max_span = max((f.span() for f in self.frags), default=0)

    def __len__(self):
        return len(self.frags)

    def __getitem__(self, idx):
        return self.frags[idx]

    def __iter__(self):
        return iter(self.frags)

    def average_fragment_length(self, quantile):
        return get_avg_length(self.frags, quantile)

    def genome_length(self):
        return get_length_gn(self.frags)

    def frags_in_window(self, start, end):
        """
        Indices of the fragments with at least one call in [start, end)
        """
        if len(self.frags) == 0 or end <= start:
            return []

        #Fragments starting before start-max_span cannot reach the window
        lo = int(np.searchsorted(self._first_positions, start - self._max_span, side="left"))
        hi = int(np.searchsorted(self._first_positions, end, side="left"))

        found = []
        for idx in range(lo, hi):
            frag = self.frags[idx]
            if frag.last_position < start:
                continue
            p_lo = bisect_left(frag.positions, start)
            if p_lo < len(frag.positions) and frag.positions[p_lo] < end:
                found.append(idx)

        return found

    def names_for(self, indices):
        return [self.frags[i].id_name for i in sorted(indices)]
