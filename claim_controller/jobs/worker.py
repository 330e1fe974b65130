"""Controller worker process.

Runs the resync job and the reconcile workers apart from the HTTP API, so
several API replicas never reconcile the same claims twice.

Usage:
    python -m claim_controller.jobs.worker
"""

import asyncio
import signal
import sys
from claim_controller import __version__
from claim_controller.core.config import settings
from claim_controller.db.dynamodb import db_client
from claim_controller.jobs import scheduler


async def run_worker():
    """Run the controller in a single worker process."""
    print(f"🚀 Sandbox Claim Controller v{__version__} starting...")
    print(f"🗄️  DynamoDB table: {settings.ddb_table_name}")
    if settings.ddb_endpoint_url:
        print(f"🔧 Using local DynamoDB: {settings.ddb_endpoint_url}")
    print("📋 Background jobs:")
    print(f"   - resync_job: queue every claim every {settings.resync_interval_sec}s")
    print(f"   - reconcile_worker x{settings.max_concurrent_reconciles}: reconcile queued claims")
    print()

    controller = scheduler.Controller(db_client)
    tasks = scheduler.start_background_jobs(controller)

    print("Worker is running. Press Ctrl+C to stop.")
    print()

    # Setup signal handlers for graceful shutdown
    def signal_handler(sig, frame):
        print("\n🛑 Shutdown signal received. Stopping background jobs...")
        scheduler.request_shutdown()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        # Wait for all tasks to complete (or shutdown signal)
        await asyncio.gather(*tasks, return_exceptions=True)
    except Exception as e:
        print(f"❌ Worker error: {e}")
        scheduler.request_shutdown()
    finally:
        await scheduler.stop_background_jobs()
        print("👋 Worker shutdown complete")


def main():
    """Main entry point for the worker."""
    try:
        asyncio.run(run_worker())
    except KeyboardInterrupt:
        print("\n👋 Worker stopped by user")
        sys.exit(0)
    except Exception as e:
        print(f"❌ Worker failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
