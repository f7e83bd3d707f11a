"""Unit tests for minimum spanning tree construction."""

from __future__ import annotations

from itertools import combinations

import networkx as nx
import numpy as np
import pandas as pd
import pytest

from regionalization.adjacency import graph_from_neighbors
from regionalization.costs import edge_costs
from regionalization.errors import DisconnectedInputError, InvalidParameterError
from regionalization.mst import minimum_spanning_tree, total_cost, tree_edges


def _brute_force_min_cost(nodes, edges):
    """Cheapest spanning tree by enumerating every (n-1)-edge subset."""
    best = np.inf
    for subset in combinations(edges, len(nodes) - 1):
        g = nx.Graph()
        g.add_nodes_from(nodes)
        g.add_weighted_edges_from(subset)
        if nx.is_tree(g):
            best = min(best, sum(c for _, _, c in subset))
    return best


class TestMinimumSpanningTree:
    """Test Kruskal construction, validation and tie-breaking."""

    def test_chain_is_its_own_tree(self, step_chain):
        df, w = step_chain
        tree = minimum_spanning_tree(edge_costs(w, df[['x0']].to_numpy()), list(w.id_order))

        assert tree.number_of_edges() == 4
        assert nx.is_tree(tree)
        assert total_cost(tree) == pytest.approx(10.0)

    def test_tree_invariants_on_grid(self, block_grid):
        df, w = block_grid
        tree = minimum_spanning_tree(edge_costs(w, df[['x0', 'x1']].to_numpy()), list(w.id_order))

        assert tree.number_of_nodes() == 16
        assert tree.number_of_edges() == 15
        assert nx.is_tree(tree)
        assert sorted(d['index'] for _, _, d in tree.edges(data=True)) == list(range(15))

    @pytest.mark.parametrize("seed", [0, 1, 2, 3, 4])
    def test_optimal_against_brute_force(self, seed):
        rng = np.random.default_rng(seed)
        nodes = list(range(7))
        # Random connected graph: a spanning path plus extra random chords
        edges = [(i, i + 1, float(rng.integers(1, 6))) for i in range(6)]
        for i, j in combinations(nodes, 2):
            if j > i + 1 and rng.random() < 0.4:
                edges.append((i, j, float(rng.integers(1, 6))))

        tree = minimum_spanning_tree(edges, nodes)

        assert nx.is_tree(tree)
        assert total_cost(tree) == pytest.approx(_brute_force_min_cost(nodes, edges))

    def test_matches_networkx_total(self, large_block_grid):
        df, w = large_block_grid
        costs = edge_costs(w, df[['x0', 'x1', 'x2']].to_numpy())
        tree = minimum_spanning_tree(costs, list(w.id_order))

        reference = nx.Graph()
        reference.add_weighted_edges_from(costs.itertuples(index=False, name=None), weight='cost')
        expected = total_cost(nx.minimum_spanning_tree(reference, weight='cost'))

        assert total_cost(tree) == pytest.approx(expected)

    def test_ties_follow_input_order(self):
        """Equal-cost cycle: the last listed edge is the one left out."""
        edges = [('a', 'b', 1.0), ('b', 'c', 1.0), ('c', 'a', 1.0)]
        tree = minimum_spanning_tree(edges, ['a', 'b', 'c'])
        assert tree_edges(tree) == [('a', 'b', 1.0), ('b', 'c', 1.0)]

        reordered = minimum_spanning_tree(edges[::-1], ['a', 'b', 'c'])
        assert {frozenset(e[:2]) for e in tree_edges(reordered)} == {frozenset('ca'), frozenset('bc')}

    def test_deterministic(self, block_grid):
        df, w = block_grid
        costs = edge_costs(w, df[['x0', 'x1']].to_numpy())
        first = tree_edges(minimum_spanning_tree(costs, list(w.id_order)))
        second = tree_edges(minimum_spanning_tree(costs, list(w.id_order)))
        assert first == second

    def test_zero_cost_edges_are_usable(self):
        tree = minimum_spanning_tree([(1, 2, 0.0), (2, 3, 0.0)], [1, 2, 3])
        assert tree.number_of_edges() == 2

    def test_accepts_dataframe(self):
        edges = pd.DataFrame({'source': ['a', 'b'], 'target': ['b', 'c'], 'cost': [2.0, 1.0]})
        tree = minimum_spanning_tree(edges, ['a', 'b', 'c'])
        assert tree_edges(tree) == [('b', 'c', 1.0), ('a', 'b', 2.0)]

    def test_disconnected_input(self):
        w = graph_from_neighbors({1: [2], 3: [4]}, [1, 2, 3, 4])
        costs = edge_costs(w, np.array([[0.0], [1.0], [2.0], [3.0]]))

        with pytest.raises(DisconnectedInputError, match="2 connected components"):
            minimum_spanning_tree(costs, [1, 2, 3, 4])

    def test_single_unit(self):
        tree = minimum_spanning_tree([], ['only'])
        assert list(tree.nodes) == ['only']
        assert tree.number_of_edges() == 0

    def test_negative_cost_rejected(self):
        with pytest.raises(InvalidParameterError, match="invalid cost"):
            minimum_spanning_tree([('a', 'b', -1.0)], ['a', 'b'])

    def test_unknown_unit_rejected(self):
        with pytest.raises(InvalidParameterError, match="unknown unit"):
            minimum_spanning_tree([('a', 'z', 1.0)], ['a', 'b'])

    @pytest.mark.parametrize("cost", [float('nan'), float('inf')])
    def test_non_finite_cost_rejected(self, cost):
        with pytest.raises(InvalidParameterError, match="invalid cost"):
            minimum_spanning_tree([('a', 'b', cost)], ['a', 'b'])
