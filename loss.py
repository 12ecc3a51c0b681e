# loss.py

import torch
import torch.nn.functional as F

from config import config
from network import scalar_to_support

def augment(obs_b, pi_b, num_rows, num_cols, flip_rows, flip_cols):
    """Mirror observations and policy targets together. Mirrors keep every K-in-a-row line a line."""
    b = obs_b.size(0)
    pi_b = pi_b.view(b, num_rows, num_cols)
    dims_obs, dims_pi = [], []
    if flip_rows: dims_obs.append(2); dims_pi.append(1)
    if flip_cols: dims_obs.append(3); dims_pi.append(2)
    if dims_obs:
        obs_b = torch.flip(obs_b, dims=dims_obs)
        pi_b = torch.flip(pi_b, dims=dims_pi)
    return obs_b, pi_b.reshape(b, -1)

def calculate_loss(model, batch, cfg=config, generator=None):
    """
    Loss for a batch of (observations, policy targets, value targets).

    Policy: cross-entropy against the (soft) search policy.
    Value:  cross-entropy against the target projected onto the value support.
    Returns (total_loss, policy_loss, value_loss); the last two are detached floats.
    """
    model.train()
    obs_b, pi_b, val_b = batch
    obs_b, pi_b, val_b = obs_b.float(), pi_b.float(), val_b.float().view(-1)
    LOSS_WEIGHTS = cfg.LOSS_WEIGHTS

    if cfg.AUGMENT:
        flips = torch.randint(0, 2, (2,), generator=generator)
        obs_b, pi_b = augment(obs_b, pi_b, model.num_rows, model.num_cols, bool(flips[0]), bool(flips[1]))

    policy_logits, value_logits = model(obs_b)
    policy_loss = -(pi_b * F.log_softmax(policy_logits, dim=1)).sum(dim=1).mean()
    value_target = scalar_to_support(val_b, cfg.VALUE_SUPPORT_MIN, cfg.VALUE_SUPPORT_MAX, cfg.VALUE_SUPPORT_BINS)
    value_loss = F.cross_entropy(value_logits, value_target)

    total_loss = LOSS_WEIGHTS['policy'] * policy_loss + LOSS_WEIGHTS['value'] * value_loss
    return total_loss, policy_loss.item(), value_loss.item()
