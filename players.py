# players.py

import random
import logging

import numpy as np

from config import config
from game import ConnectGame, index_to_move, move_to_index
from mcts import MCTSEngine


class RandomPlayer:
    """Plays uniformly random legal moves."""

    def __init__(self, rng=None):
        self.rng = rng if rng is not None else random.Random()

    def get_best_moves(self, game: ConnectGame, k):
        """Up to `k` shuffled legal moves, each paired with its uniform probability."""
        moves = game.get_legal_moves()
        if not moves:
            return []
        probability = 1 / len(moves)
        self.rng.shuffle(moves)
        return [(move, probability) for move in moves[:k]]

    def get_move(self, game: ConnectGame):
        return self.get_best_moves(game, 1)[0][0]


class PolicyPlayer:
    """Plays the legal move the oracle's raw policy likes best, without search."""

    def __init__(self, oracle):
        self.oracle = oracle

    def get_move(self, game: ConnectGame):
        policy, _ = self.oracle.evaluate(game.get_encoded_state())
        scores = np.where(game.legal_mask(), np.asarray(policy, dtype=np.float64), -np.inf)
        return index_to_move(int(np.argmax(scores)), game.num_cols)


class MCTSPlayer:
    """Searches from the current position and plays the move with the most policy mass."""

    def __init__(self, oracle, cfg=config, rng=None):
        self.cfg = cfg
        self.engine = MCTSEngine(oracle, cfg, rng=rng)
        self.logger = logging.getLogger("MCTSPlayer")

    def get_move(self, game: ConnectGame):
        policy = self.engine.search(game)
        move = index_to_move(int(np.argmax(policy)), game.num_cols)
        self.logger.debug(f"Chose {move} with policy mass {policy[move_to_index(move, game.num_cols)]:.3f}")
        return move
