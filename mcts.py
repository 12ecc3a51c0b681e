# mcts.py

import math
import random
import logging
from collections import deque

import numpy as np

from config import config
from game import ConnectGame, move_to_index
from exceptions import DegeneratePolicyError, OracleShapeError, TerminalStateError

ROOT = 0


class Node:
    """
    A node of the search tree. Links to parent and children are indices
    into the owning SearchTree's arena, never object references.
    """
    def __init__(self, move=None, parent=None, prior=1.0):
        self.move, self.parent, self.prior = move, parent, prior
        self.visit_count, self.total_value = 0, 0.0
        self.children = []

    def get_value(self) -> float:
        return self.total_value / self.visit_count if self.visit_count > 0 else 0.0

    def is_expanded(self) -> bool:
        return bool(self.children)

    def is_root(self) -> bool:
        return self.parent is None

    def uct(self, parent_visits: int, epsilon: float) -> float:
        # The stored value is from the perspective of the player to move at
        # this node, i.e. the opponent of whoever chooses it; a high average
        # therefore lowers the exploitation term.
        exploration = epsilon * self.prior * math.sqrt(parent_visits / (self.visit_count + 1))
        if self.visit_count == 0:
            return exploration
        return (1 - 0.5 * (self.total_value / self.visit_count + 1)) + exploration

    def copy_stats(self, parent):
        node = Node(self.move, parent, self.prior)
        node.visit_count, node.total_value = self.visit_count, self.total_value
        return node


class SearchTree:
    """Arena of nodes rooted at a fixed board state."""

    def __init__(self, root_state: ConnectGame):
        self.root_state = root_state.clone()
        self.nodes = [Node()]

    def __len__(self):
        return len(self.nodes)

    @property
    def root(self) -> Node:
        return self.nodes[ROOT]

    def add_children(self, parent_idx: int, moves, priors) -> list:
        parent = self.nodes[parent_idx]
        if parent.is_expanded():
            raise RuntimeError(f"Node {parent_idx} is already expanded")
        first = len(self.nodes)
        self.nodes.extend(Node(move, parent_idx, prior) for move, prior in zip(moves, priors))
        parent.children = list(range(first, len(self.nodes)))
        return parent.children

    def child_for_move(self, idx: int, move):
        for child_idx in self.nodes[idx].children:
            if self.nodes[child_idx].move == move:
                return child_idx
        return None

    def subtree(self, child_idx: int, root_state: ConnectGame):
        """A compacted copy of the subtree under `child_idx`, re-rooted at `root_state`."""
        tree = SearchTree(root_state)
        old_root = self.nodes[child_idx]
        tree.nodes[ROOT] = old_root.copy_stats(None)
        tree.nodes[ROOT].move = None

        queue = deque([(child_idx, ROOT)])
        while queue:
            old_idx, new_idx = queue.popleft()
            for old_child in self.nodes[old_idx].children:
                tree.nodes.append(self.nodes[old_child].copy_stats(new_idx))
                new_child = len(tree.nodes) - 1
                tree.nodes[new_idx].children.append(new_child)
                queue.append((old_child, new_child))
        return tree

    def policy_from_priors(self, idx: int = ROOT) -> np.ndarray:
        policy = np.zeros(self.root_state.num_rows * self.root_state.num_cols)
        for child_idx in self.nodes[idx].children:
            child = self.nodes[child_idx]
            policy[move_to_index(child.move, self.root_state.num_cols)] = child.prior
        total = policy.sum()
        return policy / total if total > 0 else policy

    def visit_policy(self, idx: int = ROOT) -> np.ndarray:
        policy = np.zeros(self.root_state.num_rows * self.root_state.num_cols)
        for child_idx in self.nodes[idx].children:
            child = self.nodes[child_idx]
            policy[move_to_index(child.move, self.root_state.num_cols)] = child.visit_count
        total = policy.sum()
        if total == 0:
            return self.policy_from_priors(idx)
        return policy / total


def mask_policy(raw_policy, legal_mask) -> np.ndarray:
    """Zero out illegal entries of a raw policy and renormalise the rest to sum to 1."""
    policy = np.asarray(raw_policy, dtype=np.float64).reshape(-1)
    if policy.shape != legal_mask.shape:
        raise OracleShapeError("Oracle policy", legal_mask.shape, policy.shape)
    policy = np.where(legal_mask, np.clip(policy, 0.0, None), 0.0)
    total = policy.sum()
    if not np.isfinite(total) or total <= 0:
        raise DegeneratePolicyError(float(total))
    return policy / total


class MCTSEngine:
    """
    Oracle-guided Monte-Carlo Tree Search: select -> expand -> backup,
    repeated once per simulation.
    """
    def __init__(self, oracle, cfg=config, rng=None):
        self.oracle = oracle
        self.cfg = cfg
        self.rng = rng if rng is not None else random.Random(cfg.SEED)
        self.tree = None
        self.last_policy = None
        self.logger = logging.getLogger(f"MCTS-{self.__class__.__name__}")

    def reset(self):
        self.tree, self.last_policy = None, None

    def advance(self, move):
        """Re-root the tree at the child reached by `move`, dropping everything else."""
        if self.tree is None:
            return
        child_idx = self.tree.child_for_move(ROOT, move)
        if child_idx is None or not self.cfg.REUSE_TREE:
            self.tree = None
            return
        next_state = self.tree.root_state.clone().place(move)
        self.tree = self.tree.subtree(child_idx, next_state)

    # --- Core MCTS steps ---
    def select(self, epsilon: float):
        tree = self.tree
        idx, state = ROOT, tree.root_state.clone()
        while not state.is_terminal:
            node = tree.nodes[idx]
            if not node.is_expanded():
                break
            scores = [tree.nodes[c].uct(node.visit_count, epsilon) for c in node.children]
            valid_scores = [s for s in scores if not math.isnan(s)]
            if not valid_scores:
                break
            best = max(valid_scores)
            candidates = [c for c, s in zip(node.children, scores) if s == best]
            idx = candidates[0] if len(candidates) == 1 else self.rng.choice(candidates)

            child = tree.nodes[idx]
            state.place(child.move)
            if child.visit_count == 0:
                break
        return idx, state

    def expand(self, idx: int, state: ConnectGame, policy) -> list:
        node = self.tree.nodes[idx]
        if state.is_terminal or node.is_expanded():
            return node.children
        moves = state.get_legal_moves()
        priors = [float(policy[move_to_index(m, state.num_cols)]) for m in moves]
        return self.tree.add_children(idx, moves, priors)

    def backup(self, idx: int, value: float):
        while True:
            node = self.tree.nodes[idx]
            node.visit_count += 1
            node.total_value += value
            if node.is_root():
                break
            value = -value
            idx = node.parent

    def evaluate(self, state: ConnectGame):
        """Masked oracle policy and value for the player to move in `state`."""
        raw_policy, value = self.oracle.evaluate(state.get_encoded_state())
        return mask_policy(raw_policy, state.legal_mask()), float(value)

    # --- Search ---
    def search(self, game: ConnectGame, num_simulations=None, epsilon=None) -> np.ndarray:
        num_simulations = self.cfg.NUM_SIMULATIONS if num_simulations is None else num_simulations
        epsilon = self.cfg.EPSILON if epsilon is None else epsilon
        if num_simulations < 1:
            raise ValueError(f"num_simulations must be positive, got {num_simulations}")
        if game.is_terminal:
            raise TerminalStateError()

        if self.tree is None or not self.cfg.REUSE_TREE or not game.same_position(self.tree.root_state):
            self.tree = SearchTree(game)
        self.last_policy = None

        for _ in range(num_simulations):
            idx, state = self.select(epsilon)
            if state.is_terminal:
                # The player to move at a finished position either lost or drew.
                value = -1.0 if state.winner is not None else 0.0
            else:
                policy, value = self.evaluate(state)
                self.last_policy = policy
                self.expand(idx, state, policy)
            self.backup(idx, value)

        self.logger.debug(f"Search done: {num_simulations} simulations, root visits {self.tree.root.visit_count}, "
                          f"tree size {len(self.tree)}, root value {self.tree.root.get_value():.3f}")

        if self.cfg.SEARCH_POLICY == "network" and self.last_policy is not None:
            return self.last_policy
        return self.tree.visit_policy(ROOT)
