"""CLI script for running federated training rounds."""

import argparse
import json
import sys
from pathlib import Path

import pandas as pd

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from configs.config_loader import ConfigLoader
from data.partitioner import ShardPartitioner
from training import RunHandle, initialize, advance, status, train
from utils.exceptions import FedRoundsError
from utils.logging_utils import setup_logger, ROOT_LOGGER_NAME


def cmd_init(args) -> int:
    config = ConfigLoader.load_run_config(Path(args.config))
    handle = initialize(config, overwrite=args.overwrite)
    print(f"Initialized run '{config.run_name}' with {len(config.shards)} shards")
    print(f"Run directory: {handle.root}")
    return 0


def cmd_advance(args) -> int:
    outcome = advance(RunHandle(args.run_dir), steps_per_round=args.steps, verbose=args.verbose)

    if outcome.converged and not outcome.progressed:
        print("Nothing to do. Model is already converged.")
    elif outcome.completed_round:
        print(f"Round aggregated: iteration={outcome.iteration}, "
              f"average_loss={outcome.average_loss:.6g}")
    else:
        print(f"Recorded {len(outcome.recorded_shards)} shards, "
              f"{len(outcome.pending_shards)} pending")

    if outcome.converged:
        print("✓ Model converged")
    return 0


def cmd_train(args) -> int:
    outcomes = train(
        RunHandle(args.run_dir),
        steps_per_round=args.steps,
        max_calls=args.max_calls,
        verbose=args.verbose
    )
    if not outcomes:
        print("No calls made")
        return 0

    last = outcomes[-1]
    completed = sum(1 for o in outcomes if o.completed_round)
    print(f"{len(outcomes)} calls, {completed} rounds aggregated")
    print(f"iteration={last.iteration}, average_loss={last.average_loss:.6g}, "
          f"converged={last.converged}")
    if last.pending_shards:
        print(f"Unreachable shards: {last.pending_shards}")
    return 0


def cmd_status(args) -> int:
    print(json.dumps(status(RunHandle(args.run_dir)).to_dict(), indent=2))
    return 0


def cmd_split(args) -> int:
    frame = pd.read_csv(args.table)
    partitioner = ShardPartitioner(args.num_shards, strategy=args.strategy, seed=args.seed)
    paths = partitioner.write(frame, Path(args.output_dir), fmt=args.format)
    for path in paths:
        print(path)
    return 0


def positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Coordinate federated training rounds over local data shards'
    )
    parser.add_argument(
        '--log-file',
        type=str,
        default=None,
        help='Optional log file'
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    init_parser = subparsers.add_parser('init', help='Create a new run from a YAML config')
    init_parser.add_argument('--config', type=str, default='configs/experiment.yaml',
                             help='Path to run configuration file')
    init_parser.add_argument('--overwrite', action='store_true',
                             help='Discard existing run state')
    init_parser.set_defaults(func=cmd_init)

    for name, func, help_text in (
        ('advance', cmd_advance, 'Run one step of the round state machine'),
        ('train', cmd_train, 'Advance until converged or blocked'),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument('run_dir', type=str, help='Run directory returned by init')
        sub.add_argument('--steps', type=positive_int, default=1,
                         help='Local optimizer steps per round')
        sub.add_argument('--verbose', action='store_true', help='Log round progress')
        sub.set_defaults(func=func)
        if name == 'train':
            sub.add_argument('--max-calls', type=positive_int, default=None,
                             help='Maximum number of advance calls')

    status_parser = subparsers.add_parser('status', help='Show run state')
    status_parser.add_argument('run_dir', type=str, help='Run directory returned by init')
    status_parser.set_defaults(func=cmd_status)

    split_parser = subparsers.add_parser('split', help='Split a CSV table into shard files')
    split_parser.add_argument('table', type=str, help='CSV table to split')
    split_parser.add_argument('output_dir', type=str, help='Directory for shard files')
    split_parser.add_argument('--num-shards', type=positive_int, required=True)
    split_parser.add_argument('--strategy', choices=['iid', 'quantity'], default='iid')
    split_parser.add_argument('--format', choices=['csv', 'tsv', 'json'], default='csv')
    split_parser.add_argument('--seed', type=int, default=None)
    split_parser.set_defaults(func=cmd_split)

    return parser


def main(argv=None) -> int:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)
    setup_logger(ROOT_LOGGER_NAME, log_file=Path(args.log_file) if args.log_file else None)

    try:
        return args.func(args)
    except FedRoundsError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
