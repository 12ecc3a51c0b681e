# main.py

import logging

from config import config
from game import ConnectGame
from oracle import TorchOracle
from qlearning import QLearningAgent
from self_play import SelfPlayTrainer
from logger_config import setup_logging

def log_and_display_config(logger, cfg):
    """Logs the key configuration parameters at startup."""
    header = "="*30
    config_details = f"\n{header} Key Configuration {header}\n"
    config_details += f"[System & Environment]\n  - Device: {cfg.DEVICE}\n  - Seed: {cfg.SEED}\n  - Engine: {cfg.ENGINE}\n\n"
    config_details += f"[Game]\n  - Board: {cfg.BOARD_ROWS}x{cfg.BOARD_COLS}\n  - Connect-K: {cfg.CONNECT_K}\n\n"
    if cfg.ENGINE == "qlearning":
        config_details += f"[Q-learning]\n  - Episodes: {cfg.QL_NUM_EPISODES}\n  - Reward: {cfg.QL_REWARD} (discount {cfg.QL_DISCOUNT}, alpha {cfg.QL_ALPHA})\n  - Exploration: {cfg.QL_EPSILON} (decay {cfg.QL_EPSILON_DECAY})\n  - SGD lr: {cfg.QL_LEARNING_RATE}\n"
    else:
        config_details += f"[MCTS Configuration]\n  - Simulations per move: {cfg.NUM_SIMULATIONS}\n  - Exploration epsilon: {cfg.EPSILON}\n  - Search policy: {cfg.SEARCH_POLICY}\n  - Tree reuse: {cfg.REUSE_TREE}\n\n"
        config_details += f"[Network & Training]\n  - Games: {cfg.NUM_GAMES}\n  - Value target: {cfg.VALUE_TARGET}\n  - ResNet Blocks: {cfg.NUM_RES_BLOCKS}\n  - Optimizer: {cfg.OPTIMIZER_TYPE} (lr={cfg.LEARNING_RATE}, wd={cfg.WEIGHT_DECAY})\n"
    config_details += header + "===================" + header
    logger.info(config_details)
    print(config_details)

def run_mcts(cfg):
    oracle = TorchOracle(cfg)
    trainer = SelfPlayTrainer(oracle, cfg)
    stats = trainer.train(cfg.NUM_GAMES, cfg.NUM_SIMULATIONS, cfg.EPSILON, game=ConnectGame(cfg=cfg))
    oracle.save_weights(cfg.WEIGHTS_FILE)
    print(f"Finished {stats['games']} games ({stats['samples']} samples). "
          f"Black {stats['black_wins']} / White {stats['white_wins']} / Draw {stats['draws']}. "
          f"Weights saved to {cfg.WEIGHTS_FILE}")
    return stats

def run_qlearning(cfg):
    agent = QLearningAgent(cfg)
    stats = agent.train(cfg.QL_NUM_EPISODES, game=ConnectGame(cfg=cfg))
    agent.save_weights(cfg.QL_WEIGHTS_FILE)
    print(f"Finished {stats['episodes']} episodes ({stats['updates']} updates, final epsilon {stats['epsilon']:.4f}). "
          f"Black {stats['black_wins']} / White {stats['white_wins']} / Draw {stats['draws']}. "
          f"Weights saved to {cfg.QL_WEIGHTS_FILE}")
    return stats

def run(cfg=config):
    cfg.validate()
    logger = logging.getLogger("Main")
    log_and_display_config(logger, cfg)
    if cfg.ENGINE == "qlearning":
        return run_qlearning(cfg)
    return run_mcts(cfg)

# =====================================================================
#                      MAIN EXECUTION BLOCK
# =====================================================================
if __name__ == "__main__":
    setup_logging(config.LOG_FILE)
    run(config)
