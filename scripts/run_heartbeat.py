#!/usr/bin/env python3
"""
Periodic index reconciliation: keeps the vector index consistent with the content store.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from portfolio_rag.core import config
from portfolio_rag.core.heartbeat import register_task, start, stop
from portfolio_rag.core.services import get_services


def reconcile_task():
    """Detect missing, stale and orphaned documents and correct them."""
    report = get_services().synchronizer.reconcile(apply=True)
    counts = report.counts()

    if not report.findings:
        print("✅ No drift detected")
        return

    print(f"⚠️  Drift: {counts['missing']} missing, {counts['stale']} stale, {counts['orphaned']} orphaned")
    print(f"🔧 Re-synced {report.resynced}, removed {report.removed}, {report.errors} errors")


def main():
    """Main entry point for heartbeat script."""
    try:
        if not config.RECONCILE_ENABLED:
            print("❌ Heartbeat requires RECONCILE_ENABLED=true")
            sys.exit(1)

        register_task("index_reconcile", config.RECONCILE_INTERVAL_SEC, reconcile_task)
        print(f"🏃 Reconciling the index every {config.RECONCILE_INTERVAL_SEC} seconds")

        start()

    except KeyboardInterrupt:
        print("\n👋 Shutting down gracefully...")
        stop()


if __name__ == "__main__":
    main()
