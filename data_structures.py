# data_structures.py

from collections import namedtuple

# A single, ready-to-use sample for the oracle.
TrainingSample = namedtuple('TrainingSample', [
    'encoded_state',   # (3, R, C) planes, canonical for the player to move (np.ndarray)
    'policy',          # Target policy over all R*C cells (np.ndarray)
    'value'            # Outcome from that player's perspective (float)
])

# The complete record of one self-play game, used for logging and stats.
GameRecord = namedtuple('GameRecord', [
    'moves',           # List of (col, row) moves in play order
    'movers',          # List of colors, one per move
    'winner',          # BLACK, WHITE or None for a draw
    'samples'          # List of TrainingSample
])

# One epsilon-greedy game played by the Q-learning agent.
QEpisode = namedtuple('QEpisode', [
    'states',          # (3, R, C) planes before each move, canonical for its mover
    'moves',           # List of (col, row) moves in play order
    'movers',          # List of colors, one per move
    'winner'           # BLACK, WHITE or None for a draw
])
