#!/usr/bin/env python3
"""
Content Seeding Utility
Loads portfolio records from a JSON file ({"project": [...], "me": [...]}) into the content store.
"""

import argparse
import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from portfolio_rag.core.services import build_services

DEFAULT_SEED_FILE = Path(__file__).parent / "sample_portfolio.json"


def main(argv=None):
    parser = argparse.ArgumentParser(description="Seed the portfolio content store")
    parser.add_argument("file", nargs="?", default=str(DEFAULT_SEED_FILE), help="JSON seed file")
    parser.add_argument(
        "--bulk", action="store_true",
        help="Bulk import without lifecycle hooks (run rebuild_index.py afterwards)"
    )
    args = parser.parse_args(argv)

    seed = json.loads(Path(args.file).read_text(encoding="utf-8"))
    services = build_services()
    content_store = services.content_store

    for content_type, records in seed.items():
        if args.bulk:
            count = content_store.import_records(content_type, records)
        else:
            count = 0
            for record in records:
                if content_store.find_one(content_type, record["id"]) is None:
                    content_store.create(content_type, record, record_id=record["id"])
                else:
                    content_store.update(content_type, record["id"], record)
                count += 1
        print(f"✓ Seeded {count} {content_type} records")

    print(f"Index holds {services.vector_store.count()} documents")
    return 0


if __name__ == "__main__":
    sys.exit(main())
