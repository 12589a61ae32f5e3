#!/usr/bin/env python3
"""Dev entrypoint for running the reminder scheduler outside the web app.

Usage:
    # Single tick (plan reminders, dispatch what is due)
    python scripts/run_scheduler.py --once

    # Continuous loop (Ctrl+C to stop)
    python scripts/run_scheduler.py --loop

    # Loop with custom interval
    python scripts/run_scheduler.py --loop --interval 10

    # Limit iterations (for testing)
    python scripts/run_scheduler.py --loop --max-iterations 5

Environment variables:
    DATABASE_URL: Database to read tasks from and write notifications to
    TICK_INTERVAL_SECONDS: Seconds between ticks (default: 60)
    WORKER_BATCH_SIZE: Due notifications per tick (default: 100)
    EMAIL_API_KEY: Email API key (emails are simulated when unset)

Push notifications need live WebSocket connections, which only the web app
holds; in this process the push leg finds no subscribers.
"""

import argparse
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlmodel import SQLModel

from app.config import get_settings
from app.db.session import engine
from app.engine import build_reminder_engine
from app.workers import configure_worker_logging


def main() -> int:
    """Main entrypoint for the scheduler runner."""
    parser = argparse.ArgumentParser(
        description="Run the task reminder scheduler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    # Mode selection
    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument(
        "--once",
        action="store_true",
        help="Run one tick and exit",
    )
    mode.add_argument(
        "--loop",
        action="store_true",
        help="Run ticks continuously in a loop",
    )

    # Configuration
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between ticks (loop mode only)",
    )
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=None,
        help="Maximum ticks before stopping (loop mode only)",
    )

    # Logging
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Reduce logging to warnings only",
    )

    args = parser.parse_args()

    # Configure logging
    if args.verbose:
        configure_worker_logging(logging.DEBUG)
    elif args.quiet:
        configure_worker_logging(logging.WARNING)
    else:
        configure_worker_logging(logging.INFO)

    logger = logging.getLogger(__name__)

    settings = get_settings()
    SQLModel.metadata.create_all(engine)
    reminder_engine = build_reminder_engine(engine, settings)
    if args.interval is not None:
        reminder_engine.scheduler.interval_seconds = args.interval

    try:
        if args.once:
            logger.info("Running one tick...")
            result = reminder_engine.tick()

            # Print summary
            print("\n--- Tick Summary ---")
            print(f"Workers run: {result.workers_run}")
            print(f"Total processed: {result.total_processed}")
            print(f"Total failed: {result.total_failed}")

            if result.errors:
                print(f"Errors: {len(result.errors)}")
                for err in result.errors:
                    print(f"  - {err}")

            for name, worker_result in result.worker_results.items():
                print(f"\n{name}:")
                print(f"  Status: {worker_result.status.value}")
                print(f"  Processed: {worker_result.processed_count}")
                print(f"  Skipped: {worker_result.skipped_count}")
                print(f"  Failed: {worker_result.failed_count}")
                for key, value in worker_result.metadata.items():
                    print(f"  {key}: {value}")

            return 0 if not result.errors else 1

        logger.info("Starting scheduler loop (Ctrl+C to stop)...")
        reminder_engine.scheduler.run_loop(max_iterations=args.max_iterations)
        return 0

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except Exception as e:
        logger.error(f"Scheduler failed: {e}", exc_info=True)
        return 1
    finally:
        reminder_engine.close()


if __name__ == "__main__":
    sys.exit(main())
