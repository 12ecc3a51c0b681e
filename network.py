# network.py

import torch
import torch.nn as nn
import torch.nn.functional as F
from config import config

def support_to_scalar(logits, support_min, support_max, support_bins):
    """Expected value of a categorical distribution over evenly spaced support points."""
    support = torch.linspace(support_min, support_max, support_bins, device=logits.device)
    return (F.softmax(logits, dim=1) * support).sum(dim=1, keepdim=True)

def scalar_to_support(scalar, support_min, support_max, support_bins):
    """Two-hot target: each scalar split between its neighbouring support points."""
    position = (scalar.clamp(support_min, support_max) - support_min) * (support_bins - 1) / (support_max - support_min)
    lower = position.floor().long()
    upper_weight = position - lower.float()
    upper = (lower + 1).clamp(max=support_bins - 1)
    target = torch.zeros(scalar.size(0), support_bins, device=scalar.device)
    target.scatter_add_(1, lower.unsqueeze(1), (1 - upper_weight).unsqueeze(1))
    target.scatter_add_(1, upper.unsqueeze(1), upper_weight.unsqueeze(1))
    return target

def conv3x3(in_channels, out_channels):
    # Same-size padding keeps every cell of a rectangular board aligned with its policy index.
    return nn.Conv2d(in_channels, out_channels, kernel_size=3, padding=1, bias=False)

class ResBlock(nn.Module):
    def __init__(self, channels):
        super().__init__()
        self.conv1 = conv3x3(channels, channels)
        self.bn1 = nn.BatchNorm2d(channels)
        self.conv2 = conv3x3(channels, channels)
        self.bn2 = nn.BatchNorm2d(channels)

    def forward(self, x):
        out = F.relu(self.bn1(self.conv1(x)))
        return F.relu(x + self.bn2(self.conv2(out)))

class Trunk(nn.Module):
    """Stem convolution over the three board planes followed by residual blocks."""
    def __init__(self, num_blocks, num_channels):
        super().__init__()
        self.stem = nn.Sequential(conv3x3(3, num_channels), nn.BatchNorm2d(num_channels), nn.ReLU())
        self.blocks = nn.Sequential(*[ResBlock(num_channels) for _ in range(num_blocks)])

    def forward(self, obs):
        return self.blocks(self.stem(obs))

class PredictionHeads(nn.Module):
    def __init__(self, num_channels, num_cells, value_support_bins, head_hidden_dim):
        super().__init__()
        self.policy_head = nn.Sequential(
            nn.Conv2d(num_channels, 2, kernel_size=1), nn.BatchNorm2d(2), nn.ReLU(),
            nn.Flatten(), nn.Linear(2 * num_cells, num_cells))
        self.value_head = nn.Sequential(
            nn.Conv2d(num_channels, 1, kernel_size=1), nn.BatchNorm2d(1), nn.ReLU(),
            nn.Flatten(), nn.Linear(num_cells, head_hidden_dim), nn.ReLU(),
            nn.Linear(head_hidden_dim, value_support_bins))

    def forward(self, features):
        return self.policy_head(features), self.value_head(features)

class PolicyValueNet(nn.Module):
    """Policy logits over every cell plus a categorical value over [-1, 1]."""
    def __init__(self, config_obj=config, num_rows=None, num_cols=None):
        super().__init__()
        self.num_rows = num_rows if num_rows is not None else config_obj.BOARD_ROWS
        self.num_cols = num_cols if num_cols is not None else config_obj.BOARD_COLS
        self.value_support = (config_obj.VALUE_SUPPORT_MIN, config_obj.VALUE_SUPPORT_MAX, config_obj.VALUE_SUPPORT_BINS)

        self.trunk = Trunk(config_obj.NUM_RES_BLOCKS, config_obj.NUM_FILTERS)
        self.heads = PredictionHeads(config_obj.NUM_FILTERS, self.num_rows * self.num_cols,
                                     config_obj.VALUE_SUPPORT_BINS, config_obj.HEAD_HIDDEN_DIM)

        # Residual blocks start as identity maps.
        for m in self.modules():
            if isinstance(m, ResBlock): nn.init.constant_(m.bn2.weight, 0)

    def forward(self, obs):
        return self.heads(self.trunk(obs))

    @torch.no_grad()
    def inference(self, obs):
        self.eval()
        policy_logits, value_logits = self(obs)
        return F.softmax(policy_logits, dim=1), support_to_scalar(value_logits, *self.value_support)
