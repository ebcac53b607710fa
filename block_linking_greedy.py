"""
block_linking_greedy.py

Join the per-window partitions into one genome wide partition.

Cluster labels carry no meaning across windows: cluster 0 of one window
has nothing to do with cluster 0 of the next. For every window boundary
we pick the permutation of the next window's clusters that best
continues the running global clusters and then merge under it.
"""

import analysis_utils


#%%
def greedy_assignment(score_matrix):
    """
    Greedy maximum weight matching on a square score matrix
    (score_matrix[g][l] for global cluster g and local cluster l).

    Pairs are taken in decreasing order of score, each row and column
    used once. Equal scores go to the lowest global index and then the
    lowest local index.

    Returns a list mapping local cluster -> global cluster.
    """
    ploidy = len(score_matrix)

    pairs = []
    for g in range(ploidy):
        for l in range(ploidy):
            pairs.append((-score_matrix[g][l], g, l))
    pairs.sort()

    local_to_global = [None] * ploidy
    used_global = set()
    for (_, g, l) in pairs:
        if g in used_global or local_to_global[l] is not None:
            continue
        local_to_global[l] = g
        used_global.add(g)

    return local_to_global

def fragment_overlap_scores(global_part, local_part):
    """
    Number of fragments shared by each (global cluster, local cluster) pair
    """
    return [[len(global_cluster & local_cluster) for local_cluster in local_part]
            for global_cluster in global_part]

def consensus_similarity_scores(global_part, local_part, all_frags):
    """
    Agreement minus disagreement between the consensus calls of each
    global cluster and each local cluster over the sites both call.
    Only global fragments reaching the local clusters' first site are used.
    """
    local_block = analysis_utils.hap_block_from_partition(local_part, all_frags)
    local_calls = local_block.calls()

    local_sites = local_block.sites()
    if len(local_sites) == 0:
        return [[0] * len(local_part) for _ in global_part]
    first_site = local_sites[0]

    recent_part = [{idx for idx in cluster if all_frags[idx].last_position >= first_site}
                   for cluster in global_part]
    global_calls = analysis_utils.hap_block_from_partition(recent_part, all_frags).calls()

    scores = []
    for g_calls in global_calls:
        row = []
        for l_calls in local_calls:
            similarity = 0
            for (site, allele) in l_calls.items():
                g_allele = g_calls.get(site)
                if g_allele is None:
                    continue
                similarity += 1 if g_allele == allele else -1
            row.append(similarity)
        scores.append(row)

    return scores

def link_blocks_greedy(all_parts, all_frags, return_mappings=False):
    """
    Fold the window partitions, ordered left to right, into ploidy
    genome wide fragment sets.

    At each boundary the overlap score of a (global, local) cluster pair
    is the number of fragments they share, i.e. fragments spanning the
    boundary. If no fragment is shared the consensus calls of the two
    sides are compared instead (consensus_similarity_scores). The local
    clusters are then mapped to global clusters by greedy_assignment and
    their fragments added. A fragment already in a global cluster stays
    where it was first placed, so the output sets are disjoint and
    together hold every fragment of every window.

    Returns:
        List of ploidy sets of fragment indices (and the per window
        local -> global mappings if return_mappings).
    """
    if len(all_parts) == 0:
        if return_mappings:
            return ([], [])
        return []

    ploidy = len(all_parts[0])
    global_part = [set() for _ in range(ploidy)]
    placed = set()
    mappings = []

    for (x, local_part) in enumerate(all_parts):
        if x == 0:
            local_to_global = list(range(ploidy))
        else:
            overlap_scores = fragment_overlap_scores(global_part, local_part)
            if sum(sum(row) for row in overlap_scores) == 0:
                overlap_scores = consensus_similarity_scores(global_part, local_part, all_frags)
            local_to_global = greedy_assignment(overlap_scores)

        for (l, cluster) in enumerate(local_part):
            g = local_to_global[l]
            for idx in cluster:
                if idx in placed:
                    continue
                global_part[g].add(idx)
                placed.add(idx)

        mappings.append(local_to_global)

    if return_mappings:
        return (global_part, mappings)
    return global_part
