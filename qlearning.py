# qlearning.py

import random
import logging

import numpy as np
import torch
import torch.nn as nn
import torch.nn.functional as F
import torch.optim as optim
from tqdm import tqdm

from config import config
from game import ConnectGame, COLOR_NAMES, index_to_move, move_to_index
from network import Trunk
from data_structures import QEpisode
from utils import save_model_json, load_model_json, state_dict_from_json
from exceptions import OracleError, OracleShapeError


class QNetwork(nn.Module):
    """One action value per cell for the player to move."""
    def __init__(self, config_obj=config, num_rows=None, num_cols=None):
        super().__init__()
        num_rows = num_rows if num_rows is not None else config_obj.BOARD_ROWS
        num_cols = num_cols if num_cols is not None else config_obj.BOARD_COLS
        cells = num_rows * num_cols
        self.trunk = Trunk(config_obj.NUM_RES_BLOCKS, config_obj.NUM_FILTERS)
        self.q_head = nn.Sequential(
            nn.Conv2d(config_obj.NUM_FILTERS, 2, kernel_size=1), nn.BatchNorm2d(2), nn.ReLU(),
            nn.Flatten(), nn.Linear(2 * cells, cells))

    def forward(self, obs):
        return self.q_head(self.trunk(obs))


def _legal_from_encoding(encoded_state):
    # Plane 1 marks the empty cells.
    return np.asarray(encoded_state[1], dtype=bool).reshape(-1)


class QLearningAgent:
    """
    Epsilon-greedy self-play agent whose network scores every cell directly.

    After each decisive game the winner's moves are trained towards a
    discounted reward, bootstrapped from the best value of the winner's next
    position, and the loser's last position is taught to value the cell that
    would have blocked the win.
    """
    def __init__(self, cfg=config, num_rows=None, num_cols=None, model=None, rng=None):
        self.cfg = cfg
        self.num_rows = num_rows if num_rows is not None else cfg.BOARD_ROWS
        self.num_cols = num_cols if num_cols is not None else cfg.BOARD_COLS
        self.model = (model if model is not None else QNetwork(cfg, self.num_rows, self.num_cols)).to(cfg.DEVICE)
        self.optimizer = optim.SGD(self.model.parameters(), lr=cfg.QL_LEARNING_RATE,
                                   momentum=cfg.QL_MOMENTUM, weight_decay=cfg.WEIGHT_DECAY)
        self.rng = rng if rng is not None else random.Random(cfg.SEED)
        self.epsilon = cfg.QL_EPSILON
        self.train_steps = 0
        self.logger = logging.getLogger("QLearning")

    @property
    def observation_shape(self):
        return (3, self.num_rows, self.num_cols)

    def _to_obs_tensor(self, encoded_state):
        obs = np.asarray(encoded_state, dtype=np.float32)
        if obs.shape != self.observation_shape:
            raise OracleShapeError("Encoded state", self.observation_shape, obs.shape)
        return torch.from_numpy(obs).unsqueeze(0).to(self.cfg.DEVICE)

    # --- Acting ---
    @torch.no_grad()
    def q_values(self, encoded_state) -> np.ndarray:
        self.model.eval()
        return self.model(self._to_obs_tensor(encoded_state)).squeeze(0).cpu().numpy().astype(np.float64)

    def best_legal_value(self, encoded_state) -> float:
        legal = _legal_from_encoding(encoded_state)
        if not legal.any():
            return 0.0
        return float(self.q_values(encoded_state)[legal].max())

    def get_move(self, game: ConnectGame):
        """The legal move with the highest Q value."""
        encoded = game.get_encoded_state()
        scores = np.where(game.legal_mask(), self.q_values(encoded), -np.inf)
        return index_to_move(int(np.argmax(scores)), game.num_cols)

    def choose_move(self, game: ConnectGame, epsilon):
        if self.rng.random() < epsilon:
            return self.rng.choice(game.get_legal_moves())
        return self.get_move(game)

    def simulate_game(self, game=None, epsilon=None) -> QEpisode:
        game = ConnectGame(cfg=self.cfg) if game is None else game.clone()
        epsilon = self.epsilon if epsilon is None else epsilon
        states, moves, movers = [], [], []
        while not game.is_terminal:
            move = self.choose_move(game, epsilon)
            states.append(game.get_encoded_state())
            moves.append(move)
            movers.append(game.to_move)
            game.place(move)
        return QEpisode(states, moves, movers, game.winner)

    # --- Learning ---
    def update(self, encoded_state, move, target) -> float:
        """One SGD step pulling Q(state, move) towards `target`."""
        obs = self._to_obs_tensor(encoded_state)
        self.model.train()
        q = self.model(obs)[0, move_to_index(move, self.num_cols)]
        loss = F.mse_loss(q, torch.tensor(float(target), device=self.cfg.DEVICE))
        if not torch.isfinite(loss):
            raise OracleError(f"Q-learning diverged at step {self.train_steps}")
        self.optimizer.zero_grad()
        loss.backward()
        self.optimizer.step()
        self.train_steps += 1
        return loss.item()

    def q_learning(self, states, moves, reward):
        """
        Trains the winner's positions from the last to the first:
        Q(s_t, a_t) <- discount^(n-1-t) * reward + alpha * max_a Q(s_t+1, a)
        where the final move gets the bare reward.
        """
        n = len(states)
        losses = [self.update(states[-1], moves[-1], reward)]
        next_best = self.best_legal_value(states[-1])
        for t in range(n - 2, -1, -1):
            target = self.cfg.QL_DISCOUNT ** (n - 1 - t) * reward + self.cfg.QL_ALPHA * next_best
            losses.append(self.update(states[t], moves[t], target))
            next_best = self.best_legal_value(states[t])
        return losses

    def learn_from(self, episode: QEpisode):
        if episode.winner is None:
            return []
        reward = self.cfg.QL_REWARD
        won = [(s, m) for s, m, mover in zip(episode.states, episode.moves, episode.movers) if mover == episode.winner]
        lost = [s for s, mover in zip(episode.states, episode.movers) if mover != episode.winner]
        losses = self.q_learning([s for s, _ in won], [m for _, m in won], reward)
        if lost:
            # The winning cell was still empty on the loser's last turn.
            losses.append(self.update(lost[-1], episode.moves[-1], self.cfg.QL_BLOCK_FRACTION * reward))
        return losses

    def train(self, num_episodes=None, game=None):
        num_episodes = self.cfg.QL_NUM_EPISODES if num_episodes is None else num_episodes
        stats = {'episodes': 0, 'updates': 0, 'black_wins': 0, 'white_wins': 0, 'draws': 0}
        losses = []

        for episode_idx in tqdm(range(num_episodes), desc="Q-learning", unit="game", disable=num_episodes < 2):
            episode = self.simulate_game(game, self.epsilon)
            self.epsilon *= self.cfg.QL_EPSILON_DECAY
            episode_losses = self.learn_from(episode)
            losses.extend(episode_losses)

            stats['episodes'] += 1
            stats['updates'] += len(episode_losses)
            if episode.winner is None:
                stats['draws'] += 1
            else:
                stats[f"{COLOR_NAMES[episode.winner]}_wins"] += 1
            self.logger.debug(f"Episode {episode_idx + 1}/{num_episodes}: {len(episode.moves)} moves, "
                              f"winner {COLOR_NAMES.get(episode.winner, 'none')}, epsilon now {self.epsilon:.4f}")

        stats['epsilon'] = self.epsilon
        stats['mean_loss'] = float(np.mean(losses)) if losses else None
        self.logger.info(f"Q-learning finished: {stats}")
        return stats

    # --- Persistence ---
    def save_weights(self, path):
        save_model_json(path, self.model, rows=self.num_rows, cols=self.num_cols,
                        train_steps=self.train_steps, epsilon=self.epsilon, config=self.cfg.as_dict())
        self.logger.info(f"Saved Q-network after {self.train_steps} updates to {path}")

    def load_weights(self, path):
        document = load_model_json(path)
        if (document['rows'], document['cols']) != (self.num_rows, self.num_cols):
            raise OracleShapeError("Stored board", (self.num_rows, self.num_cols), (document['rows'], document['cols']))
        self.model.load_state_dict(state_dict_from_json(document, self.model))
        self.train_steps = document.get('train_steps', 0)
        self.epsilon = document.get('epsilon', self.epsilon)
        self.logger.info(f"Loaded Q-network from {path}")
