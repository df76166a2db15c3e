"""
Chess AI — The chess boundary of the curriculum learning stack.

python-chess supplies boards, move legality and game outcomes; this package
turns them into network inputs and Pavlovian stimuli, and plays with the
trained network:

- ChessBoardEncoder: position -> 768-vector / CS, outcome -> US
- InferenceEngine: evaluation, move prediction, alpha-beta search
- ChessTrainingAgent: plays games and learns from their outcomes
"""

from chess_ai.board_encoder import ChessBoardEncoder, PIECE_VALUES, INPUT_SIZE
from chess_ai.inference import InferenceEngine, MoveEvaluation
from chess_ai.opponents import RandomPlayer, GreedyPlayer, NetworkPlayer
from chess_ai.chess_agent import ChessTrainingAgent

__all__ = [
    "ChessBoardEncoder",
    "PIECE_VALUES",
    "INPUT_SIZE",
    "InferenceEngine",
    "MoveEvaluation",
    "RandomPlayer",
    "GreedyPlayer",
    "NetworkPlayer",
    "ChessTrainingAgent",
]
