"""
Chess Training Agent — Training loop for the network-based chess AI.

Runs games of chess with a NetworkPlayer, then replays the final positions of
each game through the training engine's Pavlovian strategy: every position is
paired with the game outcome (+1 White win, 0 draw, -1 Black win) and the
network is trained toward the expected reward.

Usage:
    python -m chess_ai.train_chess --episodes 500
"""

import json
import os
import time
import chess
import numpy as np
from typing import Dict, List, Optional

from core.errors import ConfigurationError
from training.checkpoint import to_native
from training.config import TrainingConfig
from training.engine import TrainingEngine
from chess_ai.board_encoder import ChessBoardEncoder
from chess_ai.inference import InferenceEngine
from chess_ai.opponents import CHESS_OPPONENTS, NetworkPlayer

ENGINE_FILE = 'engine.npz'
STATS_FILE = 'training_stats.json'


class ChessTrainingAgent:
    """
    Training coordinator for the network-based chess AI.

    Owns the network, the training engine wrapped around it and the
    inference engine the NetworkPlayer moves with.
    """

    def __init__(self, config: Optional[TrainingConfig] = None,
                 depth: int = 0, explore: float = 0.1,
                 max_positions: int = 20, seed: Optional[int] = None):
        self.config = config or TrainingConfig.for_chess(seed=seed)
        if not self.config.use_pavlovian:
            raise ConfigurationError("chess training needs use_pavlovian=True")

        self.encoder = ChessBoardEncoder()
        net = self.config.network
        if net.input_size != self.encoder.input_size:
            raise ConfigurationError(
                f"chess networks take {self.encoder.input_size} inputs, "
                f"config says {net.input_size}")
        network = net.build()

        self.depth = depth
        self.explore = explore
        self.max_positions = max_positions
        self.seed = seed
        self._attach(TrainingEngine(network, self.config))

        # Training stats
        self.episodes_completed = 0
        self.win_history: List[float] = []  # 1.0=win, 0.5=draw, 0.0=loss
        self.game_lengths: List[int] = []

    def _attach(self, engine: TrainingEngine):
        self.engine = engine
        self.network = engine.network
        self.inference = InferenceEngine(self.network, self.encoder)
        self.player = NetworkPlayer(self.inference, depth=self.depth,
                                    explore=self.explore, seed=self.seed)

    def play_episode(self, opponent, color: chess.Color = chess.WHITE,
                     max_moves: int = 200) -> Dict:
        """
        Play one full chess game and learn from its outcome.

        Args:
            opponent: object with get_move(board, color) -> chess.Move
            color: which color the network plays
            max_moves: max half-moves before declaring draw

        Returns:
            Dict with game outcome info.
        """
        board = chess.Board()
        positions = []
        move_count = 0

        while not board.is_game_over(claim_draw=True) and move_count < max_moves:
            if board.turn == color:
                move = self.player.get_move(board, color)
            else:
                move = opponent.get_move(board, not color)

            if move is None:
                break
            board.push(move)
            positions.append(board.copy(stack=False))
            move_count += 1

        outcome = board.outcome(claim_draw=True)
        won = outcome is not None and outcome.winner == color
        draw = outcome is None or outcome.winner is None

        self.episodes_completed += 1
        self.win_history.append(1.0 if won else (0.5 if draw else 0.0))
        self.game_lengths.append(move_count)

        losses = self.learn_from_game(positions, board, outcome)

        return {
            'won': won,
            'draw': draw,
            'num_moves': move_count,
            'result': board.result(claim_draw=True),
            'material_balance': self.encoder.material_balance(board, color),
            'mean_loss': float(np.mean(losses)) if losses else 0.0,
        }

    def learn_from_game(self, positions: List[chess.Board], final_board: chess.Board,
                        outcome: Optional[chess.Outcome]) -> List[float]:
        """Pair the last ``max_positions`` positions with the outcome, in game order."""
        us = self.encoder.outcome_to_us(final_board, chess.WHITE, outcome)
        if self.max_positions:
            positions = positions[-self.max_positions:]

        self.network.reset_state()
        losses = []
        for position in positions:
            result = self.engine.train_with_pavlovian(
                self.encoder.position_to_cs(position), us)
            if result is not None and not result.hallucination:
                losses.append(result.loss)
        self.network.reset_state()
        return losses

    def recent_rates(self, window: int = 100):
        """Win and draw rate over the last ``window`` games."""
        recent = self.win_history[-window:]
        if not recent:
            return 0.0, 0.0
        wins = sum(1 for x in recent if x == 1.0)
        draws = sum(1 for x in recent if x == 0.5)
        return wins / len(recent), draws / len(recent)

    def train(self, total_episodes: int = 500,
              opponent_name: str = 'random',
              color: chess.Color = chess.WHITE,
              log_interval: int = 10,
              save_path: str = None,
              max_moves: int = 200) -> Dict:
        """
        Main training loop. Plays chess games and learns from outcomes.
        """
        start_time = time.time()

        opp_factory = CHESS_OPPONENTS.get(opponent_name)
        if opp_factory is None:
            raise ValueError(
                f"Unknown opponent: {opponent_name}. "
                f"Options: {list(CHESS_OPPONENTS.keys())}")
        opponent = opp_factory(seed=self.seed)

        print(f"Starting chess network training: {total_episodes} episodes")
        print(f"  Playing as: {'White' if color == chess.WHITE else 'Black'}")
        print(f"  Opponent: {opponent_name}")
        print(f"  Network: {self.network}")
        print()

        losses = []
        for ep in range(1, total_episodes + 1):
            losses.append(self.play_episode(opponent, color, max_moves)['mean_loss'])

            if ep % log_interval == 0:
                win_rate, draw_rate = self.recent_rates()
                print(
                    f"Episode {ep}/{total_episodes} | "
                    f"Win: {win_rate:.1%} | "
                    f"Draw: {draw_rate:.1%} | "
                    f"Avg Moves: {np.mean(self.game_lengths[-100:]):.0f} | "
                    f"Loss: {np.mean(losses[-log_interval:]):.5f} | "
                    f"Associations: {len(self.engine.pavlovian)}")

            if save_path and ep % (log_interval * 10) == 0:
                self.save(save_path)

        if save_path:
            self.save(save_path)

        elapsed = time.time() - start_time
        win_rate, draw_rate = self.recent_rates()
        stats = self.engine.get_stats()

        print(f"\n{'=' * 60}")
        print("TRAINING COMPLETE")
        print(f"{'=' * 60}")
        print(f"  Episodes:         {self.episodes_completed}")
        print(f"  Win rate:         {win_rate:.1%}")
        print(f"  Draw rate:        {draw_rate:.1%}")
        print(f"  Positions seen:   {stats.examples_seen}")
        print(f"  Average loss:     {stats.average_loss:.5f}")
        print(f"  Hallucinations:   {stats.hallucinations}")
        print(f"  Elapsed:          {elapsed:.1f}s")
        if save_path:
            print(f"\n  Checkpoint saved to: {save_path}")

        return {
            'episodes': self.episodes_completed,
            'final_win_rate': win_rate,
            'final_draw_rate': draw_rate,
            'average_loss': stats.average_loss,
            'elapsed_time': elapsed,
        }

    def save(self, path: str):
        """Save engine checkpoint and game history."""
        os.makedirs(path, exist_ok=True)
        self.engine.save_checkpoint(os.path.join(path, ENGINE_FILE))

        stats = to_native({
            'episodes_completed': self.episodes_completed,
            'win_history': self.win_history[-1000:],
            'game_lengths': self.game_lengths[-1000:],
        })
        with open(os.path.join(path, STATS_FILE), 'w') as f:
            json.dump(stats, f, indent=2)

    def load(self, path: str):
        """Load engine checkpoint and game history."""
        engine = TrainingEngine.load_checkpoint(os.path.join(path, ENGINE_FILE))
        self.config = engine.config
        self._attach(engine)

        stats_path = os.path.join(path, STATS_FILE)
        if os.path.exists(stats_path):
            with open(stats_path, 'r') as f:
                stats = json.load(f)
            self.episodes_completed = stats.get('episodes_completed', 0)
            self.win_history = stats.get('win_history', [])
            self.game_lengths = stats.get('game_lengths', [])
