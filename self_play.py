# self_play.py

import random
import logging

import numpy as np
from tqdm import tqdm

from config import config
from game import ConnectGame, COLOR_NAMES, index_to_move
from mcts import MCTSEngine
from data_structures import TrainingSample, GameRecord
from exceptions import DegeneratePolicyError
from utils import uniform_policy


class SelfPlayTrainer:
    """
    Plays full games against itself with MCTS-derived policies and feeds the
    resulting samples to the oracle, one sample at a time.
    """
    def __init__(self, oracle, cfg=config, engine=None, rng=None):
        self.oracle = oracle
        self.cfg = cfg
        self.rng = rng if rng is not None else random.Random(cfg.SEED)
        self.engine = engine if engine is not None else MCTSEngine(oracle, cfg, rng=self.rng)
        self.logger = logging.getLogger("SelfPlay")

    def new_game(self):
        return ConnectGame(cfg=self.cfg)

    def sample_move(self, policy, game: ConnectGame):
        """Weighted random draw over `policy`, returned as a (col, row) move."""
        draw = self.rng.random()
        last_legal = None
        for index, probability in enumerate(policy):
            if probability <= 0:
                continue
            last_legal = index
            draw -= probability
            if draw <= 0:
                return index_to_move(index, game.num_cols)
        if last_legal is None:
            raise DegeneratePolicyError(0.0)
        # Rounding can leave a tiny positive residue after the last entry.
        return index_to_move(last_legal, game.num_cols)

    def _search_policy(self, game, num_simulations, epsilon):
        try:
            return self.engine.search(game, num_simulations, epsilon)
        except DegeneratePolicyError as e:
            self.logger.warning(f"{e} Falling back to a uniform policy at move {game.move_count + 1}.")
            self.engine.reset()
            return uniform_policy(game.legal_mask())

    def _terminal_value(self, game: ConnectGame, final_mover):
        if self.cfg.VALUE_TARGET == "oracle":
            _, value = self.oracle.evaluate(game.get_encoded_state(perspective=final_mover))
            return float(value)
        return 1.0 if game.winner == final_mover else 0.0

    def play_game(self, game=None, num_simulations=None, epsilon=None) -> GameRecord:
        """Play one game to the end from (a clone of) `game`."""
        game = self.new_game() if game is None else game.clone()
        num_simulations = self.cfg.NUM_SIMULATIONS if num_simulations is None else num_simulations
        epsilon = self.cfg.EPSILON if epsilon is None else epsilon
        self.engine.reset()

        memory, moves, movers = [], [], []
        while not game.is_terminal:
            policy = self._search_policy(game, num_simulations, epsilon)
            move = self.sample_move(policy, game)
            mover = game.to_move

            memory.append((game.get_encoded_state(), policy, mover))
            moves.append(move)
            movers.append(mover)

            game.place(move)
            self.engine.advance(move)

        final_mover = movers[-1] if movers else -game.to_move
        value = self._terminal_value(game, final_mover)
        samples = [TrainingSample(encoded, policy, value if mover == final_mover else -value)
                   for encoded, policy, mover in memory]
        return GameRecord(moves, movers, game.winner, samples)

    def self_play(self, game=None, num_simulations=None, epsilon=None):
        return self.play_game(game, num_simulations, epsilon).samples

    def train(self, num_games=None, simulations_per_move=None, epsilon=None, game=None):
        num_games = self.cfg.NUM_GAMES if num_games is None else num_games
        stats = {'games': 0, 'samples': 0, 'black_wins': 0, 'white_wins': 0, 'draws': 0}
        losses = []

        for game_idx in tqdm(range(num_games), desc="Self-play", unit="game", disable=num_games < 2):
            record = self.play_game(game, simulations_per_move, epsilon)
            for sample in record.samples:
                loss = self.oracle.train(sample)
                if loss is not None:
                    losses.append(loss)

            stats['games'] += 1
            stats['samples'] += len(record.samples)
            if record.winner is None:
                stats['draws'] += 1
            else:
                stats[f"{COLOR_NAMES[record.winner]}_wins"] += 1
            winner = COLOR_NAMES.get(record.winner, "nobody (draw)")
            self.logger.info(f"Game {game_idx + 1}/{num_games} finished in {len(record.moves)} moves, winner: {winner}.")

        stats['mean_loss'] = float(np.mean(losses)) if losses else None
        self.logger.info(f"Training finished: {stats}")
        return stats
