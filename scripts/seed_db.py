"""
Seed script for the EcoWatch Firestore database.

Usage:
  - Dry run (default): python scripts/seed_db.py
  - Apply to configured Firestore: python scripts/seed_db.py --apply
  - Custom seed file: python scripts/seed_db.py --seed ./demo.json --apply

Behavior:
  - Loads `db_seed.json` from repo root (see ecowatch/utils/seed.py for the layout).
  - Reports are validated through the Report model before writing, so ISO
    timestamps are stored as Firestore timestamps.
  - Users are written as-is to the `users` collection (roles live there).

For local development without Firebase, point MOCK_SEED_PATH at the same file
and start the API with USE_MOCK_DB=true instead.
"""

import argparse
import os

from ecowatch.config.firebase import get_db
from ecowatch.services.store.firestore import REPORTS_COLLECTION
from ecowatch.services.user_service import USERS_COLLECTION
from ecowatch.utils.seed import load_seed, seed_reports


def write_to_db(db, seed: dict, apply: bool = False):
    documents = [(USERS_COLLECTION, uid, data) for uid, data in (seed.get("users") or {}).items()]
    documents += [(REPORTS_COLLECTION, r.id, r.to_document()) for r in seed_reports(seed)]

    for collection, doc_id, data in documents:
        print(f"Preparing: {collection}/{doc_id}")
        if not apply:
            continue
        try:
            db.collection(collection).document(doc_id).set(data)
            print(f"Wrote: {collection}/{doc_id}")
        except Exception as e:
            print(f"Failed to write {collection}/{doc_id}: {e}")


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--apply", action="store_true", help="Write seed to Firestore instead of dry-run")
    parser.add_argument("--seed", default=os.path.join(os.getcwd(), "db_seed.json"), help="Seed file path")
    args = parser.parse_args()

    if not os.path.exists(args.seed):
        print(f"Seed file not found: {args.seed}")
        return

    seed = load_seed(args.seed)
    db = get_db() if args.apply else None

    write_to_db(db, seed, apply=args.apply)

    if args.apply:
        print("Seeding completed.")
    else:
        print("Dry run complete. Re-run with --apply to write to Firestore.")


if __name__ == "__main__":
    main()
