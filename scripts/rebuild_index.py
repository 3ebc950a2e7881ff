#!/usr/bin/env python3
"""
Index Rebuild Utility
Rebuilds the vector index from the content store after lost or corrupted vectors.
"""

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from portfolio_rag.core.config import validate_config
from portfolio_rag.core.errors import StoreRejected, StoreUnavailable, UnknownContentType
from portfolio_rag.core.services import build_services


def main(argv=None):
    """Rebuild the vector index. Returns a process exit code."""
    parser = argparse.ArgumentParser(
        description="Rebuild the portfolio vector index from the content store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                   # Purge everything and re-index every type
  %(prog)s --type project    # Purge and re-index projects only
  %(prog)s --keep            # Re-index in place without purging
        """
    )
    parser.add_argument("--type", "-t", dest="content_type", help="Only rebuild this content type")
    parser.add_argument("--keep", "-k", action="store_true", help="Do not purge before re-indexing")
    args = parser.parse_args(argv)

    issues = validate_config()
    if issues:
        for issue in issues:
            print(f"ERROR: {issue}")
        return 1

    services = build_services()
    print("Starting vector index rebuild...")

    try:
        services.vector_store.ensure_collection()

        if not args.keep:
            if args.content_type:
                removed = services.vector_store.purge_by_type(args.content_type)
            else:
                removed = services.vector_store.purge_all()
            print(f"✓ Cleared {removed} existing documents")

        if args.content_type:
            stats = services.synchronizer.sync_type(args.content_type)
        else:
            stats = services.synchronizer.sync_all()
    except UnknownContentType as e:
        print(f"ERROR: {e}")
        return 1
    except (StoreUnavailable, StoreRejected) as e:
        print(f"ERROR: Vector store unavailable: {e}")
        return 1

    print(f"✓ Indexed {stats.synced}/{stats.total} records ({stats.skipped} skipped, {stats.errors} errors)")
    for document_id in stats.failed_ids:
        print(f"  failed: {document_id}")

    print(f"Index now holds {services.vector_store.count()} documents")
    print("Index rebuild complete!")
    return 1 if stats.errors else 0


if __name__ == "__main__":
    sys.exit(main())
