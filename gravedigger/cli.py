"""Command-line interface for gravedigger.

Commands:
- run: Replicate the database from the latest shadow copy
- init: Create a default config file
- shadows: List shadow copies of the configured volume
- generations: List generation directories in the destination
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Optional

from gravedigger import __version__
from gravedigger.config import (
    ConfigurationError,
    ReplicationConfig,
    ValidationError,
    DEFAULT_CONFIG_PATH,
    create_default_config,
    describe_config,
    parse_config,
)
from gravedigger.engine import ReplicationEngine
from gravedigger.formatting import format_bytes, format_duration
from gravedigger.logger import (
    LoggingError,
    cleanup_old_logs,
    get_session_log_path,
    log_session_end,
    log_session_start,
    resolve_log_dir,
    setup_logging,
)
from gravedigger.retention import RetentionManager
from gravedigger.shadow import SnapshotSource, VssSnapshotSource


EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2

RULE = "=" * 46


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog='gravedigger',
        description='Replicate DBISAM databases from Volume Shadow Copy snapshots'
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )
    parser.add_argument(
        '--config', '-c',
        type=Path,
        help=f'Path to config file (default: {DEFAULT_CONFIG_PATH})',
        metavar='PATH'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Verbose output'
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    subparsers.add_parser('run', help='Run a replication now')

    init_parser = subparsers.add_parser('init', help='Create default config')
    init_parser.add_argument(
        '--force', '-f',
        action='store_true',
        help='Overwrite existing config file'
    )

    shadows_parser = subparsers.add_parser(
        'shadows',
        help='List shadow copies of the source volume'
    )
    shadows_parser.add_argument('--json', action='store_true', help='Output as JSON')

    generations_parser = subparsers.add_parser(
        'generations',
        help='List replicated generations, newest first'
    )
    generations_parser.add_argument('--json', action='store_true', help='Output as JSON')

    return parser


def load_config(config_path: Optional[Path], verbose: bool = False) -> Optional[ReplicationConfig]:
    """
    Load configuration from file.

    Returns None and prints error on failure.
    """
    try:
        config = parse_config(config_path)
        if verbose:
            print(f"Loaded config from: {config_path or DEFAULT_CONFIG_PATH}")
        return config
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        print(f"To create a default configuration file, run: gravedigger init", file=sys.stderr)
        return None
    except ValidationError as e:
        print(f"Validation error: {e}", file=sys.stderr)
        return None


def cmd_run(
    args: argparse.Namespace,
    snapshot_source: Optional[SnapshotSource] = None,
) -> int:
    """Execute the 'run' command - one replication from the latest shadow copy."""
    config = load_config(args.config, args.verbose)
    if config is None:
        return EXIT_CONFIG_ERROR

    try:
        logger = setup_logging(config.logging)
    except LoggingError as e:
        print(f"Logging error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    log_session_start(logger, config.logging.level)
    logger.info(f"Configuration loaded from: {args.config or DEFAULT_CONFIG_PATH}")
    for line in describe_config(config).splitlines():
        logger.info(line)

    cleanup_old_logs(resolve_log_dir(config.logging), config.logging.retention_days, logger)

    engine = ReplicationEngine(config, snapshot_source or VssSnapshotSource())
    result = engine.execute()

    log_session_end(logger, result.success, result.summary)

    print()
    print(RULE)
    if result.success:
        print("   REPLICATION SUCCESSFUL")
        print(f"   Files: {result.files_copied}")
        print(f"   Bytes: {format_bytes(result.bytes_copied)}")
        print(f"   Duration: {format_duration(result.duration_seconds)}")
        if result.generation_path:
            print(f"   Generation: {result.generation_path}")
    else:
        print("   REPLICATION FAILED")
        print(f"   Error: {result.error_message}")

    if result.warnings:
        print(f"   Warnings: {len(result.warnings)}")
        if args.verbose:
            for warning in result.warnings:
                print(f"     - {warning}")

    session_log = get_session_log_path(logger)
    if session_log:
        print(f"   Log File: {session_log}")
    print(RULE)

    return result.exit_code


def cmd_init(args: argparse.Namespace) -> int:
    """Execute the 'init' command - write the default config file."""
    config_path = args.config or DEFAULT_CONFIG_PATH

    if config_path.exists() and not args.force:
        print(f"Config file already exists: {config_path}", file=sys.stderr)
        print("Use --force to overwrite", file=sys.stderr)
        return EXIT_FAILURE

    try:
        if config_path.parent != Path(""):
            config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(create_default_config(), encoding="utf-8")
    except OSError as e:
        print(f"Failed to create configuration file: {e}", file=sys.stderr)
        return EXIT_FAILURE

    print(f"Created default configuration file: {config_path}")
    print("Edit at least [source], [destination] path and [logging] log_dir before running.")
    return EXIT_SUCCESS


def cmd_shadows(
    args: argparse.Namespace,
    snapshot_source: Optional[SnapshotSource] = None,
) -> int:
    """Execute the 'shadows' command - list shadow copies of the source volume."""
    config = load_config(args.config, args.verbose)
    if config is None:
        return EXIT_CONFIG_ERROR

    source = snapshot_source or VssSnapshotSource()
    records = sorted(
        source.list_snapshots(config.source.volume),
        key=lambda r: (r.creation_time, r.snapshot_id),
        reverse=True,
    )

    if args.json:
        output = [
            {
                "snapshot_id": r.snapshot_id,
                "device_path": r.device_path,
                "creation_time": r.creation_time.isoformat(),
                "source_volume": r.source_volume,
            }
            for r in records
        ]
        print(json.dumps(output, indent=2))
        return EXIT_SUCCESS

    if not records:
        print(f"No shadow copies found for volume {config.source.volume}.")
        return EXIT_SUCCESS

    print(f"{'Created':<20} {'Shadow Copy ID':<40} Device Path")
    print("-" * 100)
    for r in records:
        print(f"{r.creation_time:%Y-%m-%d %H:%M:%S}  {r.snapshot_id:<40} {r.device_path}")
    print("-" * 100)
    print(f"Total: {len(records)} shadow cop{'y' if len(records) == 1 else 'ies'}")
    return EXIT_SUCCESS


def cmd_generations(args: argparse.Namespace) -> int:
    """Execute the 'generations' command - list generation directories."""
    config = load_config(args.config, args.verbose)
    if config is None:
        return EXIT_CONFIG_ERROR

    manager = RetentionManager(
        config.destination.path,
        config.destination.retain_generations,
    )
    generations = manager.list_generations()

    if args.json:
        output = [
            {"name": g.name, "path": str(g.path), "created_at": g.created_at.isoformat()}
            for g in generations
        ]
        print(json.dumps(output, indent=2))
        return EXIT_SUCCESS

    if not generations:
        print("No generations found.")
        return EXIT_SUCCESS

    print(f"{'Generation':<24} Created")
    print("-" * 46)
    for g in generations:
        print(f"{g.name:<24} {g.created_at:%Y-%m-%d %H:%M:%S}")
    print("-" * 46)
    print(
        f"Total: {len(generations)} generation(s), "
        f"keeping {config.destination.retain_generations}"
    )
    return EXIT_SUCCESS


def main(argv: Optional[list] = None) -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_SUCCESS

    try:
        if args.command == 'run':
            return cmd_run(args)
        elif args.command == 'init':
            return cmd_init(args)
        elif args.command == 'shadows':
            return cmd_shadows(args)
        elif args.command == 'generations':
            return cmd_generations(args)
        else:
            print(f"Unknown command: {args.command}", file=sys.stderr)
            return EXIT_FAILURE
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return 130  # Standard exit code for SIGINT


if __name__ == "__main__":
    sys.exit(main())
