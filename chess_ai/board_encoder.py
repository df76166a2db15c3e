"""
Chess Board Encoder — Converts a chess.Board into the network's input vector
and game events into Pavlovian stimuli.

The position is a one-hot 8x8x12 tensor flattened square-major:

    index = square * 12 + (piece_type - 1) * 2 + color_offset

with color_offset 0 for white and 1 for black, giving 768 inputs. A square
holds at most one piece, so each 12-wide block has at most one 1.0.

Game outcomes become unconditioned stimuli: +1 win, 0 draw, -1 loss, seen
from the side the agent plays.
"""

from typing import Optional

import chess
import numpy as np

from learning.pavlovian import ConditionedStimulus, UnconditionedStimulus

NUM_CHANNELS = 12
INPUT_SIZE = 64 * NUM_CHANNELS  # 768

# Standard piece values (in pawns)
PIECE_VALUES = {
    chess.PAWN: 1,
    chess.KNIGHT: 3,
    chess.BISHOP: 3,
    chess.ROOK: 5,
    chess.QUEEN: 9,
    chess.KING: 0,
}


def channel_index(piece: chess.Piece) -> int:
    return (piece.piece_type - 1) * 2 + (0 if piece.color == chess.WHITE else 1)


class ChessBoardEncoder:
    """Encodes chess positions as network inputs and outcomes as rewards."""

    input_size = INPUT_SIZE

    def encode_board(self, board: chess.Board) -> np.ndarray:
        """One-hot 768-vector of the piece placement."""
        vector = np.zeros(INPUT_SIZE)
        for square, piece in board.piece_map().items():
            vector[square * NUM_CHANNELS + channel_index(piece)] = 1.0
        return vector

    def decode_board(self, vector) -> chess.Board:
        """
        Rebuild piece placement from a (possibly soft) 768-vector.

        Each square takes its strongest channel if that is above 0.5.
        Side to move, castling and en passant are not encoded and come back
        as white to move with no rights.
        """
        planes = np.asarray(vector, dtype=np.float64).reshape(64, NUM_CHANNELS)
        board = chess.Board(None)
        for square in chess.SQUARES:
            channel = int(np.argmax(planes[square]))
            if planes[square, channel] <= 0.5:
                continue
            piece_type = channel // 2 + 1
            color = chess.WHITE if channel % 2 == 0 else chess.BLACK
            board.set_piece_at(square, chess.Piece(piece_type, color))
        return board

    def position_to_cs(self, board: chess.Board,
                       intensity: float = 1.0) -> ConditionedStimulus:
        return ConditionedStimulus(self.encode_board(board), intensity)

    def outcome_to_us(self, board: chess.Board, color: chess.Color,
                      outcome: Optional[chess.Outcome] = None) -> UnconditionedStimulus:
        """
        Reward for ``color`` given a finished game (win 1, draw 0, loss -1).

        The US vector is the final position, so it matches the CS of that
        position.
        """
        outcome = outcome if outcome is not None else board.outcome(claim_draw=True)
        return UnconditionedStimulus(self.encode_board(board),
                                     outcome_reward(outcome, color))

    def material_balance(self, board: chess.Board, color: chess.Color) -> int:
        """Material of ``color`` minus material of the opponent, in pawns."""
        total = 0
        for piece in board.piece_map().values():
            value = PIECE_VALUES[piece.piece_type]
            total += value if piece.color == color else -value
        return total


def outcome_reward(outcome: Optional[chess.Outcome], color: chess.Color) -> float:
    if outcome is None or outcome.winner is None:
        return 0.0
    return 1.0 if outcome.winner == color else -1.0
