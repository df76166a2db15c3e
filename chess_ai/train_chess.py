"""
Training script for the network-based Chess AI.

The hybrid network learns a position value from game outcomes through
Pavlovian conditioning: positions of won games are paired with reward,
positions of lost games with punishment.

Usage:
    python -m chess_ai.train_chess                              # 500 episodes vs random
    python -m chess_ai.train_chess --episodes 1000              # More training
    python -m chess_ai.train_chess --opponent greedy            # Train vs greedy
    python -m chess_ai.train_chess --depth 2                    # Search 2 plies when moving
    python -m chess_ai.train_chess --resume checkpoints_chess/  # Resume training
    python -m chess_ai.train_chess --color black                # Play as black
"""

import argparse
import logging
import chess

from chess_ai.chess_agent import ChessTrainingAgent
from chess_ai.opponents import CHESS_OPPONENTS
from training.config import TrainingConfig


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Train the network-based Chess AI agent'
    )
    parser.add_argument(
        '--episodes', type=int, default=500,
        help='Number of training games (default: 500)')
    parser.add_argument(
        '--opponent', type=str, default='random',
        choices=list(CHESS_OPPONENTS.keys()),
        help='Opponent to train against (default: random)')
    parser.add_argument(
        '--color', type=str, default='white',
        choices=['white', 'black'],
        help='Color to play as (default: white)')
    parser.add_argument(
        '--depth', type=int, default=0,
        help='Alpha-beta search depth for the network player (default: 0)')
    parser.add_argument(
        '--explore', type=float, default=0.1,
        help='Chance of sampling a move instead of playing the best (default: 0.1)')
    parser.add_argument(
        '--max-moves', type=int, default=200,
        help='Max half-moves per game (default: 200)')
    parser.add_argument(
        '--log-interval', type=int, default=10,
        help='Print stats every N episodes (default: 10)')
    parser.add_argument(
        '--save-path', type=str, default='checkpoints_chess',
        help='Where to save checkpoints (default: checkpoints_chess)')
    parser.add_argument(
        '--config', type=str, default=None,
        help='TrainingConfig JSON file (default: chess preset)')
    parser.add_argument(
        '--seed', type=int, default=None,
        help='Seed for the network and the players')
    parser.add_argument(
        '--resume', type=str, default=None,
        help='Resume from checkpoint path')
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.WARNING,
                        format='%(asctime)s %(name)s %(levelname)s: %(message)s')

    print("=" * 70)
    print("CURRICULUM CHESS - Network Training")
    print("Dense -> LSTM value network | Pavlovian outcome conditioning")
    print("=" * 70)
    print()

    color = chess.WHITE if args.color == 'white' else chess.BLACK
    config = (TrainingConfig.load(args.config) if args.config
              else TrainingConfig.for_chess(seed=args.seed))

    agent = ChessTrainingAgent(config, depth=args.depth, explore=args.explore,
                               seed=args.seed)

    if args.resume:
        print(f"Resuming from checkpoint: {args.resume}")
        agent.load(args.resume)
        print(f"  Episodes so far: {agent.episodes_completed}")
        print(f"  Positions seen:  {agent.engine.get_stats().examples_seen}")
        print()

    return agent.train(
        total_episodes=args.episodes,
        opponent_name=args.opponent,
        color=color,
        log_interval=args.log_interval,
        save_path=args.save_path,
        max_moves=args.max_moves,
    )


if __name__ == '__main__':
    main()
