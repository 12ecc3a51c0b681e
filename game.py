# game.py
import numpy as np

from config import config
from exceptions import IllegalMoveError, TerminalStateError

EMPTY, BLACK, WHITE = 0, -1, 1
COLOR_NAMES = {BLACK: "black", WHITE: "white"}

# horizontal, vertical, diagonal down-right, diagonal up-right (row, col steps)
DIRECTIONS = [(0, 1), (1, 0), (1, 1), (-1, 1)]


def check_connect(board, move):
    """
    Length of the longest same-colored line through the stone at `move`.

    `board` is a (rows, cols) array, `move` a 1-indexed (col, row) pair.
    """
    col, row = move
    r, c = row - 1, col - 1
    rows, cols = board.shape
    player = board[r, c]
    if player == EMPTY:
        return 0

    best = 1
    for dr, dc in DIRECTIONS:
        count = 1
        for sign in (1, -1):
            nr, nc = r + sign * dr, c + sign * dc
            while 0 <= nr < rows and 0 <= nc < cols and board[nr, nc] == player:
                count += 1
                nr, nc = nr + sign * dr, nc + sign * dc
        best = max(best, count)
    return best


def legal_moves(board):
    """Empty cells as 1-indexed (col, row) pairs, column-major."""
    cols, rows = np.nonzero(board.T == EMPTY)
    return [(int(c) + 1, int(r) + 1) for c, r in zip(cols, rows)]


def move_to_index(move, num_cols):
    col, row = move
    return num_cols * (row - 1) + col - 1


def index_to_move(index, num_cols):
    return (index % num_cols + 1, index // num_cols + 1)


def canonical_board(board, perspective):
    """The board as seen by `perspective`: its stones always carry the BLACK value."""
    return board.copy() if perspective == BLACK else -board


def encode_state(board):
    # Planes: black-occupied, empty, white-occupied.
    encoded = np.zeros((3,) + board.shape, dtype=np.float32)
    encoded[0] = (board == BLACK)
    encoded[1] = (board == EMPTY)
    encoded[2] = (board == WHITE)
    return encoded


class ConnectGame:
    """
    Authoritative state of one connect-K game.

    Also acts as the game session: it owns the board dimensions and the
    connection criterion, and exposes the query surface the engines use.
    """

    def __init__(self, num_rows=None, num_cols=None, connect_k=None, cfg=config):
        self.num_rows = num_rows if num_rows is not None else cfg.BOARD_ROWS
        self.num_cols = num_cols if num_cols is not None else cfg.BOARD_COLS
        self.connect_k = connect_k if connect_k is not None else cfg.CONNECT_K
        self.reset()

    def reset(self):
        self.board = np.zeros((self.num_rows, self.num_cols), dtype=np.int8)
        self.to_move, self.last_move, self.move_count = BLACK, None, 0
        self.is_terminal, self.winner = False, None
        return self

    @classmethod
    def from_board(cls, board, to_move=None, connect_k=None, cfg=config):
        """Build a game from an existing grid; the mover is inferred from stone parity when omitted."""
        board = np.asarray(board, dtype=np.int8)
        game = cls(board.shape[0], board.shape[1], connect_k, cfg=cfg)
        game.board = board.copy()
        game.move_count = int(np.count_nonzero(board))
        if to_move is None:
            to_move = BLACK if game.move_count % 2 == 0 else WHITE
        game.to_move = to_move
        for r, c in zip(*np.nonzero(game.board)):
            if check_connect(game.board, (int(c) + 1, int(r) + 1)) >= game.connect_k:
                game.is_terminal, game.winner = True, int(game.board[r, c])
                break
        if not game.is_terminal and not game.get_legal_moves():
            game.is_terminal = True
        return game

    def clone(self):
        other = ConnectGame.__new__(ConnectGame)
        other.num_rows, other.num_cols, other.connect_k = self.num_rows, self.num_cols, self.connect_k
        other.board = self.board.copy()
        other.to_move, other.last_move, other.move_count = self.to_move, self.last_move, self.move_count
        other.is_terminal, other.winner = self.is_terminal, self.winner
        return other

    # --- Mutation ---
    def place(self, move):
        col, row = move
        if self.is_terminal:
            raise TerminalStateError(move)
        if not (1 <= col <= self.num_cols and 1 <= row <= self.num_rows):
            raise IllegalMoveError(move, "outside the board")
        if self.board[row - 1, col - 1] != EMPTY:
            raise IllegalMoveError(move, "cell already occupied")

        mover = self.to_move
        self.board[row - 1, col - 1] = mover
        self.to_move = -mover
        self.move_count += 1
        self.last_move = (col, row)

        if check_connect(self.board, self.last_move) >= self.connect_k:
            self.is_terminal, self.winner = True, mover
        elif self.move_count >= self.num_rows * self.num_cols:
            self.is_terminal = True
        return self

    def set_piece(self, row, col):
        return self.place((col, row))

    # --- Queries ---
    def get_num_rows(self): return self.num_rows
    def get_num_cols(self): return self.num_cols
    def get_connection_criteria(self): return self.connect_k
    def get_board_state(self): return self.board.copy()
    def is_black_move(self): return self.to_move == BLACK

    def get_legal_moves(self):
        return legal_moves(self.board)

    def legal_mask(self):
        """Flat boolean mask over policy indices, True on empty cells."""
        return (self.board == EMPTY).reshape(-1)

    def check_connect(self, move=None):
        return check_connect(self.board, move if move is not None else self.last_move)

    def get_encoded_state(self, perspective=None):
        """Three-plane encoding, canonicalised so `perspective` (default: the mover) plays black."""
        perspective = self.to_move if perspective is None else perspective
        return encode_state(canonical_board(self.board, perspective))

    def get_game_ended(self):
        """None while running, otherwise the winner's color, or 0 on a draw."""
        if not self.is_terminal:
            return None
        return self.winner if self.winner is not None else 0

    def same_position(self, other):
        return (other is not None and self.to_move == other.to_move
                and self.board.shape == other.board.shape
                and np.array_equal(self.board, other.board))

    def __str__(self):
        symbols = {EMPTY: '.', BLACK: 'X', WHITE: 'O'}
        return "\n".join(" ".join(symbols[int(v)] for v in line) for line in self.board)
