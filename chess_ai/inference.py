"""
Inference Engine — Plays chess with a trained hybrid network.

The network maps an encoded position to a value; the first output is read as
the evaluation from White's point of view, in [-1, 1]. On top of that:

- evaluate_position: network value of a board
- predict_moves: softmax (with temperature) over the values of every legal move
- search_move: negamax with alpha-beta pruning, network values at the leaves

Every call runs inside ``network.preserved_state()``, so looking at positions
never advances the recurrent state the trainer depends on.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

import chess
import numpy as np

from core.activations import softmax
from core.network import HybridNetwork
from chess_ai.board_encoder import ChessBoardEncoder, outcome_reward

logger = logging.getLogger(__name__)

# Beyond any value the network can output
MATE_SCORE = 2.0


@dataclass
class MoveEvaluation:
    move: chess.Move
    score: float        # value for the side making the move
    probability: float  # softmax share among all legal moves
    is_legal: bool = True

    @property
    def confidence(self) -> float:
        return self.probability


class InferenceEngine:
    """Position evaluation, move prediction and search over a HybridNetwork."""

    def __init__(self, network: HybridNetwork,
                 encoder: Optional[ChessBoardEncoder] = None,
                 temperature: float = 1.0, max_depth: int = 3):
        if temperature <= 0:
            raise ValueError(f"temperature must be > 0, got {temperature}")
        self.network = network
        self.encoder = encoder or ChessBoardEncoder()
        if network.input_size != self.encoder.input_size:
            raise ValueError(
                f"network takes {network.input_size} inputs, "
                f"encoder produces {self.encoder.input_size}")
        self.temperature = temperature
        self.max_depth = max_depth
        self.positions_evaluated = 0

    # ── Evaluation ────────────────────────────────────────────────────

    def evaluate_vector(self, vector) -> np.ndarray:
        with self.network.preserved_state():
            return self.network.forward(vector)

    def evaluate_position(self, board: chess.Board) -> float:
        """Network value of ``board`` for White."""
        self.positions_evaluated += 1
        return float(self.evaluate_vector(self.encoder.encode_board(board))[0])

    def _side_to_move_value(self, board: chess.Board) -> float:
        outcome = board.outcome(claim_draw=False)
        if outcome is not None:
            return MATE_SCORE * outcome_reward(outcome, board.turn)
        value = self.evaluate_position(board)
        return value if board.turn == chess.WHITE else -value

    def batch_predict(self, inputs) -> np.ndarray:
        """Raw network outputs, one row per input vector."""
        inputs = np.asarray(inputs, dtype=np.float64).reshape(-1, self.network.input_size)
        outputs = np.zeros((len(inputs), self.network.output_size))
        with self.network.preserved_state():
            for i, x in enumerate(inputs):
                outputs[i] = self.network.forward(x)
        return outputs

    # ── Move prediction ───────────────────────────────────────────────

    def predict_moves(self, board: chess.Board,
                      top_k: Optional[int] = None) -> List[MoveEvaluation]:
        """Every legal move, most probable first."""
        moves = list(board.legal_moves)
        if not moves:
            return []

        probe = board.copy(stack=False)
        scores = []
        for move in moves:
            probe.push(move)
            # After the push it is the opponent's turn
            scores.append(-self._side_to_move_value(probe))
            probe.pop()

        probabilities = softmax(np.array(scores), self.temperature)
        evaluations = [MoveEvaluation(move, float(s), float(p))
                       for move, s, p in zip(moves, scores, probabilities)]
        evaluations.sort(key=lambda e: e.probability, reverse=True)
        return evaluations[:top_k] if top_k else evaluations

    def select_best_move(self, board: chess.Board) -> Optional[chess.Move]:
        evaluations = self.predict_moves(board, top_k=1)
        return evaluations[0].move if evaluations else None

    def get_confidence(self, board: chess.Board, move: chess.Move) -> float:
        """Probability the network assigns to ``move``; 0.0 if illegal."""
        for evaluation in self.predict_moves(board):
            if evaluation.move == move:
                return evaluation.probability
        return 0.0

    def detect_uncertainty(self, board: chess.Board, threshold: float = 0.001) -> bool:
        """
        True when the network barely distinguishes the legal moves.

        A flat score distribution (variance below ``threshold``) means the
        network has no real preference in this position.
        """
        evaluations = self.predict_moves(board)
        if len(evaluations) < 2:
            return not evaluations
        return float(np.var([e.score for e in evaluations])) < threshold

    # ── Search ────────────────────────────────────────────────────────

    def search_move(self, board: chess.Board,
                    depth: Optional[int] = None) -> Optional[chess.Move]:
        """Negamax with alpha-beta pruning; depth 0 falls back to one-ply prediction."""
        depth = self.max_depth if depth is None else depth
        if depth <= 0:
            return self.select_best_move(board)

        moves = self._ordered_moves(board)
        if not moves:
            return None

        probe = board.copy()
        best_move = None
        best_score = float('-inf')
        alpha = float('-inf')
        beta = float('inf')

        for move in moves:
            probe.push(move)
            score = -self._negamax(probe, depth - 1, -beta, -alpha)
            probe.pop()

            if score > best_score:
                best_score = score
                best_move = move
            alpha = max(alpha, score)

        logger.debug(f"Search depth {depth}: {best_move} scored {best_score:.4f}")
        return best_move

    def _negamax(self, board: chess.Board, depth: int,
                 alpha: float, beta: float) -> float:
        if depth == 0 or board.is_game_over():
            return self._side_to_move_value(board)

        best = float('-inf')
        for move in self._ordered_moves(board):
            board.push(move)
            score = -self._negamax(board, depth - 1, -beta, -alpha)
            board.pop()
            best = max(best, score)
            alpha = max(alpha, score)
            if alpha >= beta:
                break
        return best

    def _ordered_moves(self, board: chess.Board) -> List[chess.Move]:
        # Captures and checks first so alpha-beta cuts earlier
        return sorted(board.legal_moves,
                      key=lambda m: (board.is_capture(m), board.gives_check(m)),
                      reverse=True)
