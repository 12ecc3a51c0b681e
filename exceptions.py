# exceptions.py


class ConnectKError(Exception):
    """Base class for errors raised by the board, search and oracle layers."""


class IllegalMoveError(ConnectKError):
    def __init__(self, move, reason):
        self.move, self.reason = move, reason
        super().__init__(f"Illegal move {move}: {reason}")


class TerminalStateError(IllegalMoveError):
    """A move or search was requested on a finished game."""
    def __init__(self, move=None):
        super().__init__(move, "game already finished")


class DegeneratePolicyError(ConnectKError):
    def __init__(self, legal_mass):
        self.legal_mass = legal_mass
        super().__init__(f"Policy has no usable mass on legal moves (mass={legal_mass}).")


class OracleError(ConnectKError):
    pass


class OracleShapeError(OracleError):
    def __init__(self, what, expected, actual):
        self.expected, self.actual = expected, actual
        super().__init__(f"{what}: expected shape {tuple(expected)}, got {tuple(actual)}")
