#!/usr/bin/env python3
"""
Curriculum Chess - Command Line Interface

Train, inspect and evaluate hybrid networks.

Usage:
    python cli.py train --epochs 50 --checkpoint run.npz
    python cli.py evaluate run.npz --examples 200
    python cli.py stats run.npz
    python cli.py config training.json
    python cli.py chess --episodes 100
"""

import argparse
import json
import logging
import sys

from core.errors import ConfigurationError
from core.activations import Activation
from core.optimizer import OptimizerType
from learning.puzzles import PuzzleGenerator
from training.checkpoint import CheckpointError
from training.config import TrainingConfig, NetworkConfig
from training.engine import TrainingEngine


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='curriculum-chess',
        description='Curriculum, spaced-repetition and Pavlovian training '
                    'of a dense -> LSTM network'
    )
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Verbose output')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # Train command
    train_parser = subparsers.add_parser('train', help='Train on generated puzzles')
    train_parser.add_argument('--config', '-c', type=str, default=None,
                              help='TrainingConfig JSON file')
    train_parser.add_argument('--input-size', type=int, default=None,
                              help='Network input size')
    train_parser.add_argument('--hidden-size', type=int, default=None,
                              help='Network hidden size')
    train_parser.add_argument('--output-size', type=int, default=None,
                              help='Network output size')
    train_parser.add_argument('--activation', choices=[a.value for a in Activation],
                              default=None, help='Dense layer activation')
    train_parser.add_argument('--optimizer', '-o', choices=[t.value for t in OptimizerType],
                              default=None, help='Optimizer')
    train_parser.add_argument('--epochs', '-e', type=int, default=None,
                              help='Maximum epochs')
    train_parser.add_argument('--per-level', type=int, default=20,
                              help='Puzzles generated per curriculum level')
    train_parser.add_argument('--reviews', type=int, default=20,
                              help='Puzzles added to the spaced-repetition pool')
    train_parser.add_argument('--seed', type=int, default=None,
                              help='Seed for network and puzzles')
    train_parser.add_argument('--checkpoint', type=str, default=None,
                              help='Where to save the trained engine (.npz)')

    # Evaluate command
    eval_parser = subparsers.add_parser('evaluate', help='Evaluate a checkpoint')
    eval_parser.add_argument('checkpoint', type=str, help='Checkpoint file')
    eval_parser.add_argument('--examples', '-n', type=int, default=100,
                             help='Number of generated puzzles')
    eval_parser.add_argument('--seed', type=int, default=None,
                             help='Puzzle seed')

    # Stats command
    stats_parser = subparsers.add_parser('stats', help='Show checkpoint statistics')
    stats_parser.add_argument('checkpoint', type=str, help='Checkpoint file')

    # Config command
    config_parser = subparsers.add_parser('config', help='Write a default config file')
    config_parser.add_argument('output', type=str, help='Output JSON file')
    config_parser.add_argument('--chess', action='store_true',
                               help='Use the chess preset')

    # Chess command
    chess_parser = subparsers.add_parser('chess', help='Train the chess agent')
    chess_parser.add_argument('chess_args', nargs=argparse.REMAINDER,
                              help='Arguments for chess_ai.train_chess')

    return parser


def cmd_train(args):
    """Train on generated curriculum puzzles"""
    config = TrainingConfig.load(args.config) if args.config else TrainingConfig()
    net = config.network
    config.network = NetworkConfig(
        input_size=args.input_size or net.input_size,
        hidden_size=args.hidden_size or net.hidden_size,
        output_size=args.output_size or net.output_size,
        seed=args.seed if args.seed is not None else net.seed,
        activation=Activation(args.activation) if args.activation else net.activation
    )
    if args.optimizer:
        config.optimizer_type = OptimizerType(args.optimizer)
    if args.epochs:
        config.max_epochs = args.epochs
    try:
        config.validate()
    except ConfigurationError as e:
        print(f"Invalid configuration: {e}")
        return 1

    net = config.network
    network = net.build()
    engine = TrainingEngine(network, config)
    generator = PuzzleGenerator(net.input_size, net.output_size,
                                num_levels=config.num_levels, seed=net.seed)

    print(f"Training {network}")
    print(f"  Optimizer: {engine.optimizer}")
    if engine.curriculum is not None:
        added = generator.populate(engine.curriculum, args.per_level)
        print(f"  Curriculum: {added} puzzles over {config.num_levels} levels")
    if engine.scheduler is not None:
        for _ in range(args.reviews):
            engine.add_review_example(generator.create_progressive_puzzle(
                generator.rng.uniform()))
        print(f"  Review pool: {args.reviews} puzzles")

    examples = None
    if engine.curriculum is None:
        examples = [generator.create_puzzle(level)
                    for level in range(config.num_levels)
                    for _ in range(args.per_level)]
    validation = [generator.create_puzzle(0) for _ in range(args.per_level)]

    stats = engine.train_full(examples, validation=validation)
    print_stats(stats.to_dict())

    if args.checkpoint:
        try:
            engine.save_checkpoint(args.checkpoint)
        except CheckpointError as e:
            print(f"Error saving checkpoint: {e}")
            return 1
        print(f"\nCheckpoint saved to: {args.checkpoint}")
    return 0


def cmd_evaluate(args):
    """Accuracy and hallucination count on fresh puzzles"""
    try:
        engine = TrainingEngine.load_checkpoint(args.checkpoint)
    except CheckpointError as e:
        print(f"Error loading checkpoint: {e}")
        return 1

    network = engine.network
    generator = PuzzleGenerator(network.input_size, network.output_size,
                                num_levels=engine.config.num_levels, seed=args.seed)
    puzzles = [generator.create_progressive_puzzle(generator.rng.uniform())
               for _ in range(args.examples)]
    inputs = [p.input for p in puzzles]
    targets = [p.target for p in puzzles]

    accuracy = engine.evaluate(inputs, targets)
    flags = engine.validate_predictions(inputs, targets)

    print(f"Evaluated {len(puzzles)} puzzles")
    print(f"  Accuracy:       {accuracy:.1%}")
    print(f"  Hallucinations: {sum(flags)}")
    return 0


def cmd_stats(args):
    """Show checkpoint statistics"""
    try:
        engine = TrainingEngine.load_checkpoint(args.checkpoint)
    except CheckpointError as e:
        print(f"Error loading checkpoint: {e}")
        return 1

    print(f"{engine}")
    print_stats(engine.get_stats().to_dict())
    if engine.curriculum is not None:
        print(f"  Curriculum level: {engine.curriculum.current_level_name}")
    print("\nConfiguration")
    print(json.dumps(engine.config.to_dict(), indent=2))
    return 0


def cmd_config(args):
    """Write a default configuration"""
    config = TrainingConfig.for_chess() if args.chess else TrainingConfig()
    config.save(args.output)
    print(f"Configuration written to {args.output}")
    return 0


def cmd_chess(args):
    """Run the chess training script"""
    from chess_ai.train_chess import main as chess_main
    chess_main(args.chess_args)
    return 0


def print_stats(stats: dict):
    print("\nTraining Statistics")
    print("=" * 50)
    for key, value in stats.items():
        if isinstance(value, float):
            print(f"  {key:<22} {value:.6f}")
        else:
            print(f"  {key:<22} {value}")


def main(argv=None):
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(name)s %(levelname)s: %(message)s'
    )

    if not args.command:
        parser.print_help()
        return 0

    # Map commands to functions
    commands = {
        'train': cmd_train,
        'evaluate': cmd_evaluate,
        'stats': cmd_stats,
        'config': cmd_config,
        'chess': cmd_chess,
    }

    if args.command in commands:
        return commands[args.command](args)
    else:
        parser.print_help()
        return 1


if __name__ == '__main__':
    sys.exit(main() or 0)
