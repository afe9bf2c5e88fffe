# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 SIZESPEC Team <dev@sizespec.org>

"""
SIZESPEC command-line interface.

Subcommands:
    - align: Align observed catch to a snapshot and build the optimizer's
      objective data for one species
    - history: List the snapshots in the persisted undo/redo log
    - clear-log: Delete the persisted undo/redo log

Exit codes: 0 on success, 1 on errors, 2 when a species has too little data
to be fitted, 130 when interrupted.
"""

import argparse
import json
import sys
from argparse import Namespace
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np

from sizespec.sizespec_version import __version__

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INSUFFICIENT_DATA = 2


def _load_config(args: Namespace, overrides: Optional[Dict[str, Any]] = None):
    """Load the configuration named by ``--config`` or fall back to defaults and environment.

    Command-line values take precedence over both.
    """
    from sizespec.core.config import SizespecConfig
    from sizespec.core.config.factories import from_dict_factory

    overrides = {k: v for k, v in (overrides or {}).items() if v is not None}
    config_path = getattr(args, 'config', None)
    if config_path:
        return SizespecConfig.from_file(Path(config_path), overrides=overrides)
    return from_dict_factory(SizespecConfig, {}, overrides, use_env=True)


def _setup_logging(args: Namespace, config) -> None:
    from sizespec.core.logging_config import configure_logging

    level = 'DEBUG' if getattr(args, 'debug', False) else config.logging.level
    configure_logging(level=level, log_file=config.logging.log_file)


def _jsonable(value: Any) -> Any:
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    return value


class AlignCommands:
    """Handlers for observation alignment."""

    @staticmethod
    def align(args: Namespace) -> int:
        from sizespec.calibration.objective_data import InsufficientData, prepare_objective_data
        from sizespec.data.observations import read_catch
        from sizespec.state.serialization import load_snapshot

        config = _load_config(args, {
            'OBSERVATION_LENGTH_UNIT': args.length_unit,
            'YIELD_LAMBDA': args.yield_lambda,
            'PRODUCTION_LAMBDA': args.production_lambda,
        })
        _setup_logging(args, config)

        snapshot = load_snapshot(args.snapshot)
        catch = read_catch(args.catch_csv)
        data = prepare_objective_data(
            snapshot,
            args.species,
            catch,
            yield_lambda=config.match.yield_lambda,
            production_lambda=config.match.production_lambda,
            length_unit=config.alignment.length_unit,
        )

        if isinstance(data, InsufficientData):
            print(f"Insufficient data for {data.species}: {data.reason}")
            return EXIT_INSUFFICIENT_DATA

        print(f"Species:            {data.species}")
        print(f"Observed bins:      {data.counts.size} ({'used' if data.use_counts else 'no counts'})")
        print(f"Interpolation rows: {data.bin_index.size}")
        print(f"Grid points:        {data.w.size} (from index {data.grid_start})")
        print(f"Cutoff biomass:     {data.biomass:.6g}")
        print(f"Yield:              {data.yield_observed:.6g} (lambda {data.yield_lambda:g})")
        print(f"Production:         {data.production_observed:.6g} (lambda {data.production_lambda:g})")

        if args.output:
            output = Path(args.output)
            output.parent.mkdir(parents=True, exist_ok=True)
            payload = {k: _jsonable(v) for k, v in data.to_dict().items()}
            output.write_text(json.dumps(payload, indent=2), encoding='utf-8')
            print(f"Objective data written to {output}")
        return EXIT_OK


class LogCommands:
    """Handlers for the persisted snapshot log."""

    @staticmethod
    def history(args: Namespace) -> int:
        from sizespec.state.snapshot_log import SnapshotLog

        config = _load_config(args)
        _setup_logging(args, config)
        log = SnapshotLog.from_config(config)
        entries = log.scan()
        if not entries:
            print(f"No snapshots for session '{log.session_id}' in {log.log_dir}")
            return EXIT_OK
        print(f"{len(entries)} snapshot(s) for session '{log.session_id}' in {log.log_dir}:")
        for position, entry in enumerate(entries, start=1):
            print(f"  [{position}] {entry.label}  {entry.path.name}")
        return EXIT_OK

    @staticmethod
    def clear_log(args: Namespace) -> int:
        from sizespec.state.snapshot_log import SnapshotLog

        config = _load_config(args)
        _setup_logging(args, config)
        log = SnapshotLog.from_config(config)
        count = len(log.scan())
        log.close()
        print(f"Deleted {count} snapshot(s) for session '{log.session_id}'")
        return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser with all subcommands registered."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument('--config', type=str, help='Path to a YAML configuration file')
    common.add_argument('--debug', action='store_true', help='Enable debug output')

    parser = argparse.ArgumentParser(
        prog='sizespec',
        description='SIZESPEC - size-spectrum model calibration',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  sizespec align catch.csv --snapshot params.npz --species Cod
  sizespec history --config session.yaml
  sizespec clear-log --config session.yaml
""",
    )
    parser.add_argument('--version', action='version', version=f'SIZESPEC {__version__}')
    subparsers = parser.add_subparsers(dest='command', required=True, metavar='<command>')

    align_parser = subparsers.add_parser(
        'align',
        help='Build objective data for one species',
        parents=[common],
    )
    align_parser.add_argument('catch_csv', metavar='CATCH_CSV', help='Observed catch table (CSV)')
    align_parser.add_argument('--snapshot', required=True, help='Snapshot file (.npz)')
    align_parser.add_argument('--species', required=True, help='Species to align')
    align_parser.add_argument('--length-unit', dest='length_unit', choices=['cm', 'mm'],
                              help='Unit of the lengths in CATCH_CSV')
    align_parser.add_argument('--yield-lambda', dest='yield_lambda', type=float,
                              help='Weight of the yield penalty')
    align_parser.add_argument('--production-lambda', dest='production_lambda', type=float,
                              help='Weight of the production penalty')
    align_parser.add_argument('--output', type=str, help='Write the objective data to this JSON file')
    align_parser.set_defaults(func=AlignCommands.align)

    history_parser = subparsers.add_parser(
        'history',
        help='List persisted snapshots',
        parents=[common],
    )
    history_parser.set_defaults(func=LogCommands.history)

    clear_parser = subparsers.add_parser(
        'clear-log',
        help='Delete persisted snapshots',
        parents=[common],
    )
    clear_parser.set_defaults(func=LogCommands.clear_log)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point of the ``sizespec`` command."""
    from sizespec.core.exceptions import SizespecError

    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        return args.func(args)
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return 130
    except (SizespecError, FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR
    except Exception as e:  # noqa: BLE001
        print(f"Unexpected error: {e}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
