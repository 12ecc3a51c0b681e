# oracle.py

import logging
import threading
from abc import ABC, abstractmethod

import numpy as np
import torch
import torch.optim as optim

from config import config
from network import PolicyValueNet
from loss import calculate_loss
from utils import save_model_json, load_model_json, state_dict_from_json
from exceptions import OracleError, OracleShapeError


class Oracle(ABC):
    """
    The learned policy/value model consumed by search and self-play.
    Implementations are expected to handle one call at a time.
    """

    @abstractmethod
    def evaluate(self, encoded_state):
        """
        Given a (3, R, C) encoded board in canonical perspective, return:
        - policy: array of R*C move probabilities (illegal cells may be non-zero)
        - value: a float in [-1, 1] for the player to move
        """
        pass

    @abstractmethod
    def train(self, sample):
        """Learn from one (encoded_state, target_policy, target_value) sample."""
        pass


class UniformOracle(Oracle):
    """Uniform policy and a constant value. Remembers what it was trained on."""

    def __init__(self, num_rows, num_cols, value=0.0):
        self.observation_shape = (3, num_rows, num_cols)
        self.value = value
        self.samples = []
        self.evaluate_calls = 0

    def evaluate(self, encoded_state):
        shape = np.shape(encoded_state)
        if shape != self.observation_shape:
            raise OracleShapeError("Encoded state", self.observation_shape, shape)
        self.evaluate_calls += 1
        size = self.observation_shape[1] * self.observation_shape[2]
        return np.full(size, 1.0 / size), self.value

    def train(self, sample):
        self.samples.append(sample)


class TorchOracle(Oracle):
    """Oracle backed by a PolicyValueNet, trained one sample at a time."""

    def __init__(self, cfg=config, num_rows=None, num_cols=None, model=None):
        self.cfg = cfg
        self.num_rows = num_rows if num_rows is not None else cfg.BOARD_ROWS
        self.num_cols = num_cols if num_cols is not None else cfg.BOARD_COLS
        self.model = (model if model is not None else PolicyValueNet(cfg, self.num_rows, self.num_cols)).to(cfg.DEVICE)
        self.optimizer = self._make_optimizer()
        self.train_steps = 0
        self._lock = threading.Lock()
        self.logger = logging.getLogger("Oracle")

    @property
    def observation_shape(self):
        return (3, self.num_rows, self.num_cols)

    def _make_optimizer(self):
        if self.cfg.OPTIMIZER_TYPE == 'Adam':
            return optim.Adam(self.model.parameters(), lr=self.cfg.LEARNING_RATE, weight_decay=self.cfg.WEIGHT_DECAY)
        return optim.Adadelta(self.model.parameters(), lr=self.cfg.LEARNING_RATE, weight_decay=self.cfg.WEIGHT_DECAY)

    def _to_obs_tensor(self, encoded_state):
        obs = np.asarray(encoded_state, dtype=np.float32)
        if obs.shape != self.observation_shape:
            raise OracleShapeError("Encoded state", self.observation_shape, obs.shape)
        return torch.from_numpy(obs).unsqueeze(0).to(self.cfg.DEVICE)

    def evaluate(self, encoded_state):
        obs = self._to_obs_tensor(encoded_state)
        with self._lock:
            policy, value = self.model.inference(obs)
        return policy.squeeze(0).cpu().numpy().astype(np.float64), float(value.item())

    def train(self, sample):
        encoded_state, target_policy, target_value = sample
        obs = self._to_obs_tensor(encoded_state)
        target_policy = np.asarray(target_policy, dtype=np.float32).reshape(-1)
        if target_policy.shape[0] != self.num_rows * self.num_cols:
            raise OracleShapeError("Target policy", (self.num_rows * self.num_cols,), target_policy.shape)

        pi_b = torch.from_numpy(target_policy).unsqueeze(0).to(self.cfg.DEVICE)
        val_b = torch.tensor([float(target_value)], device=self.cfg.DEVICE)
        with self._lock:
            loss, policy_loss, value_loss = calculate_loss(self.model, (obs, pi_b, val_b), self.cfg)
            if not torch.isfinite(loss):
                raise OracleError(f"Training diverged at step {self.train_steps} (policy={policy_loss}, value={value_loss})")
            self.optimizer.zero_grad()
            loss.backward()
            self.optimizer.step()
            self.train_steps += 1
        return loss.item()

    # --- Persistence ---
    def save_weights(self, path):
        save_model_json(path, self.model, rows=self.num_rows, cols=self.num_cols,
                        train_steps=self.train_steps, config=self.cfg.as_dict())
        self.logger.info(f"Saved weights after {self.train_steps} training steps to {path}")

    def load_weights(self, path):
        document = load_model_json(path)
        if (document['rows'], document['cols']) != (self.num_rows, self.num_cols):
            raise OracleShapeError("Stored board", (self.num_rows, self.num_cols), (document['rows'], document['cols']))
        self.model.load_state_dict(state_dict_from_json(document, self.model))
        self.train_steps = document.get('train_steps', 0)
        self.logger.info(f"Loaded weights from {path}")
