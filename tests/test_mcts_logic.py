import unittest
import math
import random
import numpy as np
import sys
import os

# --- Path Setup ---
current_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(current_dir)
sys.path.insert(0, project_root)

# --- Project Imports ---
from mcts import MCTSEngine, SearchTree, Node, mask_policy, ROOT
from game import ConnectGame, move_to_index
from oracle import Oracle, UniformOracle
from config import Config
from exceptions import DegeneratePolicyError, TerminalStateError, OracleShapeError

# =====================================================================
#                      Mock Objects for Predictable Testing
# =====================================================================

class FixedPolicyOracle(Oracle):
    """Always returns the same raw policy and value."""
    def __init__(self, policy, value=0.0):
        self.policy, self.value = np.asarray(policy, dtype=np.float64), value
        self.calls = 0

    def evaluate(self, encoded_state):
        self.calls += 1
        return self.policy.copy(), self.value

    def train(self, sample):
        pass

class RecordingRandom(random.Random):
    """A seeded random source that remembers the tie sets it was asked to choose from."""
    def __init__(self, seed=0):
        super().__init__(seed)
        self.choices = []

    def choice(self, seq):
        self.choices.append(list(seq))
        return super().choice(seq)


def small_config(**overrides):
    settings = dict(BOARD_ROWS=3, BOARD_COLS=3, CONNECT_K=3, NUM_SIMULATIONS=20, EPSILON=1.0, SEED=0)
    settings.update(overrides)
    return Config(**settings)


def play(game, moves):
    for move in moves:
        game.place(move)
    return game

# =====================================================================
#                           MCTS Test Class
# =====================================================================

class TestNodeAndTree(unittest.TestCase):

    def test_node_value(self):
        node = Node()
        self.assertEqual(node.get_value(), 0.0)
        node.visit_count = 5
        node.total_value = 2.5
        self.assertEqual(node.get_value(), 0.5)

    def test_uct_unvisited_is_pure_exploration(self):
        node = Node(move=(1, 1), parent=ROOT, prior=0.25)
        self.assertAlmostEqual(node.uct(parent_visits=16, epsilon=2.0), 2.0 * 0.25 * 4.0)
        self.assertEqual(node.uct(parent_visits=0, epsilon=1.0), 0.0)

    def test_uct_exploitation_polarity_at_value_bounds(self):
        # Average +1 (good for the player to move at the node) -> exploitation 0.
        winning_for_mover = Node(move=(1, 1), parent=ROOT, prior=0.0)
        winning_for_mover.visit_count, winning_for_mover.total_value = 4, 4.0
        self.assertAlmostEqual(winning_for_mover.uct(10, 1.0), 0.0)
        # Average -1 -> exploitation 1.
        losing_for_mover = Node(move=(1, 1), parent=ROOT, prior=0.0)
        losing_for_mover.visit_count, losing_for_mover.total_value = 4, -4.0
        self.assertAlmostEqual(losing_for_mover.uct(10, 1.0), 1.0)
        # Exploration adds on top: 1 + 1 * 0.5 * sqrt(15 / 5)
        losing_for_mover.prior = 0.5
        self.assertAlmostEqual(losing_for_mover.uct(15, 1.0), 1.0 + 0.5 * math.sqrt(3.0))

    def test_add_children_only_once(self):
        tree = SearchTree(ConnectGame(2, 2, connect_k=2))
        children = tree.add_children(ROOT, [(1, 1), (2, 1)], [0.5, 0.5])
        self.assertEqual(children, [1, 2])
        self.assertEqual(tree.nodes[1].parent, ROOT)
        with self.assertRaises(RuntimeError):
            tree.add_children(ROOT, [(1, 2)], [1.0])

    def test_subtree_is_compacted_and_rerooted(self):
        game = ConnectGame(2, 2, connect_k=2)
        tree = SearchTree(game)
        tree.add_children(ROOT, [(1, 1), (2, 1)], [0.5, 0.5])
        grandchildren = tree.add_children(2, [(1, 1), (1, 2)], [0.3, 0.7])
        tree.nodes[2].visit_count = 3
        tree.nodes[grandchildren[1]].visit_count = 2

        sub = tree.subtree(2, game.clone().place((2, 1)))
        self.assertEqual(len(sub), 3)
        self.assertIsNone(sub.root.move)
        self.assertIsNone(sub.root.parent)
        self.assertEqual(sub.root.visit_count, 3)
        self.assertEqual([sub.nodes[c].move for c in sub.root.children], [(1, 1), (1, 2)])
        self.assertEqual(sub.nodes[2].visit_count, 2)
        self.assertTrue(all(sub.nodes[c].parent == ROOT for c in sub.root.children))

    def test_mask_policy(self):
        mask = np.array([True, False, True, True])
        policy = mask_policy([0.2, 0.6, 0.1, 0.1], mask)
        np.testing.assert_allclose(policy, [0.5, 0.0, 0.25, 0.25])
        with self.assertRaises(DegeneratePolicyError):
            mask_policy([0.0, 1.0, 0.0, 0.0], mask)
        with self.assertRaises(DegeneratePolicyError):
            mask_policy([np.nan, 0.0, 0.5, 0.5], np.array([True, True, True, True]))
        with self.assertRaises(OracleShapeError):
            mask_policy([0.5, 0.5], mask)


class TestMCTSSteps(unittest.TestCase):

    def setUp(self):
        self.cfg = small_config()
        self.oracle = UniformOracle(3, 3)

    def test_backup_alternates_sign(self):
        engine = MCTSEngine(self.oracle, self.cfg)
        engine.tree = SearchTree(ConnectGame(cfg=self.cfg))
        child = engine.tree.add_children(ROOT, [(1, 1)], [1.0])[0]
        grandchild = engine.tree.add_children(child, [(2, 2)], [1.0])[0]

        engine.backup(grandchild, 0.8)
        nodes = engine.tree.nodes
        self.assertEqual([nodes[i].visit_count for i in (ROOT, child, grandchild)], [1, 1, 1])
        self.assertAlmostEqual(nodes[grandchild].total_value, 0.8)
        self.assertAlmostEqual(nodes[child].total_value, -0.8)
        self.assertAlmostEqual(nodes[ROOT].total_value, 0.8)
        self.assertEqual([nodes[i].is_root() for i in (ROOT, child, grandchild)], [True, False, False])
        self.assertEqual([nodes[i].is_expanded() for i in (ROOT, child, grandchild)], [True, True, False])

    def test_expand_reads_priors_from_policy_index(self):
        cfg = small_config(BOARD_ROWS=2, BOARD_COLS=3, CONNECT_K=2)
        engine = MCTSEngine(UniformOracle(2, 3), cfg)
        game = ConnectGame(cfg=cfg).place((2, 1))
        engine.tree = SearchTree(game)
        policy = np.arange(6, dtype=np.float64)
        children = engine.expand(ROOT, game, policy)
        self.assertEqual(len(children), 5)
        for idx in children:
            node = engine.tree.nodes[idx]
            self.assertEqual(node.prior, policy[move_to_index(node.move, 3)])
        # A second expansion is a no-op.
        self.assertEqual(engine.expand(ROOT, game, policy), children)
        self.assertEqual(len(engine.tree), 6)

    def test_expand_skips_terminal_states(self):
        engine = MCTSEngine(self.oracle, self.cfg)
        game = play(ConnectGame(cfg=self.cfg), [(1, 1), (1, 3), (2, 1), (2, 3), (3, 1)])
        engine.tree = SearchTree(game)
        self.assertEqual(engine.expand(ROOT, game, np.full(9, 1 / 9)), [])

    def test_select_breaks_exact_ties_randomly(self):
        rng = RecordingRandom(3)
        engine = MCTSEngine(self.oracle, self.cfg, rng=rng)
        game = ConnectGame(cfg=self.cfg)
        engine.tree = SearchTree(game)
        engine.expand(ROOT, game, np.full(9, 1 / 9))
        engine.tree.root.visit_count = 1

        idx, state = engine.select(epsilon=1.0)
        self.assertEqual(len(rng.choices), 1)
        self.assertEqual(rng.choices[0], engine.tree.root.children)
        self.assertIn(idx, engine.tree.root.children)
        self.assertEqual(state.move_count, 1)
        self.assertEqual(state.board[engine.tree.nodes[idx].move[1] - 1, engine.tree.nodes[idx].move[0] - 1], -1)
        # The tree's own root state is never touched by selection.
        self.assertEqual(engine.tree.root_state.move_count, 0)

    def test_select_ignores_nan_scores(self):
        engine = MCTSEngine(self.oracle, self.cfg, rng=RecordingRandom(0))
        game = ConnectGame(cfg=self.cfg)
        engine.tree = SearchTree(game)
        policy = np.full(9, 0.1)
        policy[4] = 0.2
        engine.expand(ROOT, game, policy)
        engine.tree.root.visit_count = 1
        for idx in engine.tree.root.children:
            if engine.tree.nodes[idx].move == (2, 2):
                best = idx
            else:
                engine.tree.nodes[idx].prior = float('nan') if idx % 2 else 0.05
        idx, _ = engine.select(epsilon=1.0)
        self.assertEqual(idx, best)

        for idx in engine.tree.root.children:
            engine.tree.nodes[idx].prior = float('nan')
        idx, state = engine.select(epsilon=1.0)
        self.assertEqual(idx, ROOT)
        self.assertEqual(state.move_count, 0)


class TestSearch(unittest.TestCase):

    def test_root_visits_equal_simulations(self):
        for simulations in (1, 7, 40):
            cfg = small_config()
            engine = MCTSEngine(UniformOracle(3, 3), cfg)
            engine.search(ConnectGame(cfg=cfg), num_simulations=simulations)
            self.assertEqual(engine.tree.root.visit_count, simulations)

    def test_oracle_consulted_once_per_non_terminal_simulation(self):
        cfg = small_config(BOARD_ROWS=9, BOARD_COLS=9, CONNECT_K=9)
        oracle = UniformOracle(9, 9)
        MCTSEngine(oracle, cfg).search(ConnectGame(cfg=cfg), num_simulations=10)
        self.assertEqual(oracle.evaluate_calls, 10)

    def test_policy_is_a_distribution_over_legal_moves(self):
        for mode in ("visits", "network"):
            for simulations in (1, 30):
                cfg = small_config(BOARD_ROWS=4, BOARD_COLS=4, SEARCH_POLICY=mode)
                game = play(ConnectGame(cfg=cfg), [(1, 1), (2, 2), (4, 3)])
                policy = MCTSEngine(UniformOracle(4, 4), cfg).search(game, num_simulations=simulations)
                self.assertEqual(policy.shape, (16,))
                self.assertAlmostEqual(policy.sum(), 1.0, places=9)
                for move in [(1, 1), (2, 2), (4, 3)]:
                    self.assertEqual(policy[move_to_index(move, 4)], 0.0)
                self.assertTrue((policy >= 0).all())

    def test_search_finds_the_immediate_win(self):
        cfg = small_config(NUM_SIMULATIONS=200)
        game = play(ConnectGame(cfg=cfg), [(1, 1), (1, 3), (2, 1), (2, 3)])
        engine = MCTSEngine(UniformOracle(3, 3), cfg)
        policy = engine.search(game)
        self.assertEqual(int(np.argmax(policy)), move_to_index((3, 1), 3))
        winning_child = engine.tree.nodes[engine.tree.child_for_move(ROOT, (3, 1))]
        self.assertEqual(winning_child.get_value(), -1.0)

    def test_terminal_root_is_rejected(self):
        cfg = small_config()
        game = play(ConnectGame(cfg=cfg), [(1, 1), (1, 3), (2, 1), (2, 3), (3, 1)])
        with self.assertRaises(TerminalStateError):
            MCTSEngine(UniformOracle(3, 3), cfg).search(game)

    def test_non_positive_simulation_count_is_rejected(self):
        cfg = small_config()
        engine = MCTSEngine(UniformOracle(3, 3), cfg)
        for simulations in (0, -3):
            with self.assertRaises(ValueError):
                engine.search(ConnectGame(cfg=cfg), num_simulations=simulations)
        self.assertIsNone(engine.tree)

    def test_drawn_leaf_backs_up_zero(self):
        cfg = small_config()
        # Eight stones, no line; black's only move (3, 3) fills the board without connecting.
        game = play(ConnectGame(cfg=cfg), [(1, 1), (2, 1), (3, 1), (2, 2), (1, 2), (3, 2), (2, 3), (1, 3)])
        oracle = UniformOracle(3, 3, value=0.5)
        engine = MCTSEngine(oracle, cfg)
        policy = engine.search(game, num_simulations=5)

        self.assertEqual(oracle.evaluate_calls, 1)
        self.assertEqual(policy[move_to_index((3, 3), 3)], 1.0)
        drawn = engine.tree.nodes[engine.tree.child_for_move(ROOT, (3, 3))]
        self.assertEqual(drawn.visit_count, 4)
        self.assertEqual(drawn.total_value, 0.0)
        self.assertEqual(engine.tree.root.total_value, 0.5)

    def test_degenerate_policy_aborts_search(self):
        cfg = small_config()
        game = ConnectGame(cfg=cfg).place((1, 1))
        policy = np.zeros(9)
        policy[0] = 1.0  # all mass on the occupied cell
        with self.assertRaises(DegeneratePolicyError):
            MCTSEngine(FixedPolicyOracle(policy), cfg).search(game)

    def test_tree_is_reused_after_advance(self):
        cfg = small_config(NUM_SIMULATIONS=30)
        game = ConnectGame(cfg=cfg)
        engine = MCTSEngine(UniformOracle(3, 3), cfg)
        policy = engine.search(game)
        move = (int(np.argmax(policy)) % 3 + 1, int(np.argmax(policy)) // 3 + 1)
        child_visits = engine.tree.nodes[engine.tree.child_for_move(ROOT, move)].visit_count

        engine.advance(move)
        game.place(move)
        self.assertTrue(engine.tree.root_state.same_position(game))
        self.assertEqual(engine.tree.root.visit_count, child_visits)

        engine.search(game, num_simulations=10)
        self.assertEqual(engine.tree.root.visit_count, child_visits + 10)

    def test_mismatched_position_starts_a_fresh_tree(self):
        cfg = small_config()
        engine = MCTSEngine(UniformOracle(3, 3), cfg)
        engine.search(ConnectGame(cfg=cfg), num_simulations=5)
        engine.search(ConnectGame(cfg=cfg).place((2, 2)), num_simulations=5)
        self.assertEqual(engine.tree.root.visit_count, 5)

    def test_same_seed_gives_same_policy(self):
        cfg = small_config(BOARD_ROWS=5, BOARD_COLS=5, CONNECT_K=4)
        policies = [MCTSEngine(UniformOracle(5, 5), cfg, rng=random.Random(11)).search(ConnectGame(cfg=cfg), 50)
                    for _ in range(2)]
        np.testing.assert_array_equal(policies[0], policies[1])


if __name__ == '__main__':
    unittest.main(verbosity=2)
