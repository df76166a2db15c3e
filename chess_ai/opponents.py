"""
Chess Players — Everything that can make a move in a training game.

All implement: get_move(board, color) → chess.Move

- RandomPlayer: uniformly random legal move
- GreedyPlayer: captures highest-value piece if possible, else random
- NetworkPlayer: the hybrid network, through the InferenceEngine
"""

import random
import chess
from typing import Optional

from chess_ai.board_encoder import PIECE_VALUES
from chess_ai.inference import InferenceEngine


class RandomPlayer:
    """Picks a uniformly random legal move."""

    def __init__(self, seed: Optional[int] = None):
        self.rng = random.Random(seed)

    def get_move(self, board: chess.Board, color: chess.Color) -> Optional[chess.Move]:
        moves = list(board.legal_moves)
        return self.rng.choice(moves) if moves else None


class GreedyPlayer(RandomPlayer):
    """Captures highest-value piece if possible, else random."""

    def get_move(self, board: chess.Board, color: chess.Color) -> Optional[chess.Move]:
        best_move = None
        best_value = -1

        for move in board.legal_moves:
            if board.is_capture(move):
                captured = board.piece_at(move.to_square)
                # En passant leaves the target square empty
                value = PIECE_VALUES[captured.piece_type if captured else chess.PAWN]
                if value > best_value:
                    best_value = value
                    best_move = move

        if best_move is not None:
            return best_move
        return super().get_move(board, color)


class NetworkPlayer:
    """
    Plays the network's choice.

    With ``depth`` > 0 the move comes from alpha-beta search, otherwise from
    the one-ply move distribution. ``explore`` is the chance of sampling from
    that distribution instead of taking its top move.
    """

    def __init__(self, inference: InferenceEngine, depth: int = 0,
                 explore: float = 0.0, seed: Optional[int] = None):
        self.inference = inference
        self.depth = depth
        self.explore = explore
        self.rng = random.Random(seed)

    def get_move(self, board: chess.Board, color: chess.Color) -> Optional[chess.Move]:
        if self.explore > 0 and self.rng.random() < self.explore:
            evaluations = self.inference.predict_moves(board)
            if not evaluations:
                return None
            weights = [e.probability for e in evaluations]
            return self.rng.choices(evaluations, weights=weights)[0].move
        if self.depth > 0:
            return self.inference.search_move(board, self.depth)
        return self.inference.select_best_move(board)


# Lookup for training script
CHESS_OPPONENTS = {
    'random': RandomPlayer,
    'greedy': GreedyPlayer,
}
