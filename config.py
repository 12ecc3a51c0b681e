# config.py
import torch

class Config:
    def __init__(self, **overrides):
        # ================================================================
        #                      System & environment
        # ================================================================
        self.DEVICE = torch.device("cuda" if torch.cuda.is_available() else "cpu")
        self.SEED = None  # None -> nondeterministic random source
        self.ENGINE = "mcts"  # "mcts" or "qlearning"

        # ================================================================
        #                      Game & MCTS
        # ================================================================
        self.BOARD_ROWS = 9
        self.BOARD_COLS = 9
        self.CONNECT_K = 5

        self.NUM_SIMULATIONS = 50
        self.EPSILON = 1.0  # exploration weight in the UCT score

        # "visits": normalised root child-visit counts.
        # "network": the last masked network policy computed during the search.
        self.SEARCH_POLICY = "visits"
        # Keep the subtree under the played move between searches of one game.
        self.REUSE_TREE = True

        # ================================================================
        #                      Self-play
        # ================================================================
        self.NUM_GAMES = 10
        # "outcome": +1/-1/0 from the real game result.
        # "oracle": the oracle's value estimate of the terminal position.
        self.VALUE_TARGET = "outcome"

        # ================================================================
        #                      Network
        # ================================================================
        # VALUE: win, draw, loss.
        self.VALUE_SUPPORT_MIN = -1
        self.VALUE_SUPPORT_MAX = 1
        self.VALUE_SUPPORT_BINS = 3

        self.NUM_RES_BLOCKS = 2
        self.NUM_FILTERS = 32
        self.HEAD_HIDDEN_DIM = 64

        # ================================================================
        #                      Training
        # ================================================================
        self.OPTIMIZER_TYPE = 'Adadelta'  # 'Adadelta' or 'Adam'
        self.LEARNING_RATE = 1.0
        self.WEIGHT_DECAY = 1e-3
        self.AUGMENT = True

        self.LOSS_WEIGHTS = {
            'policy': 1.0,
            'value': 1.0,
        }

        # ================================================================
        #                      Q-learning engine
        # ================================================================
        self.QL_NUM_EPISODES = 100
        self.QL_REWARD = 1.0
        self.QL_DISCOUNT = 0.9  # per-move decay of the reward, counted back from the winning move
        self.QL_ALPHA = 0.5     # weight of the best Q value of the following position
        self.QL_EPSILON = 0.5   # probability of a random move
        self.QL_EPSILON_DECAY = 0.99
        self.QL_BLOCK_FRACTION = 0.75  # target for the cell the loser failed to block
        self.QL_LEARNING_RATE = 1e-3
        self.QL_MOMENTUM = 0.5

        # ================================================================
        #                      Output
        # ================================================================
        self.LOG_FILE = "outputs/training.log"
        self.WEIGHTS_FILE = "outputs/weights.json"
        self.QL_WEIGHTS_FILE = "outputs/q_weights.json"

        for key, value in overrides.items():
            if not hasattr(self, key):
                raise AttributeError(f"Unknown config key '{key}'")
            setattr(self, key, value)

    @property
    def ACTION_SPACE_SIZE(self):
        return self.BOARD_ROWS * self.BOARD_COLS

    def validate(self):
        if self.BOARD_ROWS < 1 or self.BOARD_COLS < 1:
            raise ValueError(f"Board must be at least 1x1, got {self.BOARD_ROWS}x{self.BOARD_COLS}")
        if self.CONNECT_K < 1 or self.CONNECT_K > max(self.BOARD_ROWS, self.BOARD_COLS):
            raise ValueError(f"CONNECT_K={self.CONNECT_K} can never be reached on a {self.BOARD_ROWS}x{self.BOARD_COLS} board")
        if self.NUM_SIMULATIONS < 1:
            raise ValueError("NUM_SIMULATIONS must be positive")
        if self.SEARCH_POLICY not in ("visits", "network"):
            raise ValueError(f"Unknown SEARCH_POLICY '{self.SEARCH_POLICY}'")
        if self.VALUE_TARGET not in ("outcome", "oracle"):
            raise ValueError(f"Unknown VALUE_TARGET '{self.VALUE_TARGET}'")
        if self.OPTIMIZER_TYPE not in ("Adadelta", "Adam"):
            raise ValueError(f"Unknown OPTIMIZER_TYPE '{self.OPTIMIZER_TYPE}'")
        if self.ENGINE not in ("mcts", "qlearning"):
            raise ValueError(f"Unknown ENGINE '{self.ENGINE}'")
        if not 0.0 <= self.QL_EPSILON <= 1.0 or not 0.0 <= self.QL_EPSILON_DECAY <= 1.0:
            raise ValueError("QL_EPSILON and QL_EPSILON_DECAY must lie in [0, 1]")
        if not 0.0 <= self.QL_DISCOUNT <= 1.0:
            raise ValueError("QL_DISCOUNT must lie in [0, 1]")
        return self

    def as_dict(self):
        """Plain, JSON-friendly view of the settings (device excluded)."""
        return {key: value for key, value in vars(self).items() if key != 'DEVICE'}

config = Config()
