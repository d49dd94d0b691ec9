"""
Entry point for running perp_keeper as a module.

Usage:
    python -m perp_keeper [command] [options]

Commands:
    run            Start the keeper (default)
    status         Show the pending batch for a pool
    clear-pending  Delete all pending reveals for a pool
    sweep          Run one ledger sweep
    doctor         Run preflight checks

Options:
    --env ENV           Environment (development/production)
    --pool-id HEX       Pool id (defaults to the configured pool)
"""

from __future__ import annotations

import argparse
import asyncio
import sys


def main() -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Perp Batch Keeper",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "command",
        nargs="?",
        default="run",
        choices=["run", "status", "clear-pending", "sweep", "doctor"],
        help="Command to execute (default: run)",
    )
    parser.add_argument(
        "--env",
        default="development",
        help="Environment (development/production)",
    )
    parser.add_argument(
        "--pool-id",
        default=None,
        help="Pool id as 0x-prefixed hex (defaults to the configured pool)",
    )

    args = parser.parse_args()

    # Import here to avoid slow startup for --help
    from perp_keeper.app.run import (
        run_clear_pending,
        run_doctor,
        run_keeper,
        run_status,
        run_sweep,
    )

    try:
        if args.command == "run":
            return asyncio.run(run_keeper(env=args.env))
        elif args.command == "status":
            return asyncio.run(run_status(env=args.env, pool_id=args.pool_id))
        elif args.command == "clear-pending":
            return asyncio.run(run_clear_pending(env=args.env, pool_id=args.pool_id))
        elif args.command == "sweep":
            return asyncio.run(run_sweep(env=args.env, pool_id=args.pool_id))
        elif args.command == "doctor":
            return asyncio.run(run_doctor(env=args.env))
        else:
            parser.print_help()
            return 1
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 130
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
