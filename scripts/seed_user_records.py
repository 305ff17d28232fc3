#!/usr/bin/env python3
"""
seed_user_records.py — Populate MongoDB with random user records for local runs.

Usage (from the repository root):
    python scripts/seed_user_records.py                  # replace with 200 users
    python scripts/seed_user_records.py --count 50 --append
    python scripts/seed_user_records.py --trickle 2      # then insert one user every 2 s

Prerequisites:
    • MONGO_URI env var set (or .env file present)
    • `pip install -e .`

The --trickle mode keeps inserting users so a running API with
DATA_SOURCE=inserts or DATA_SOURCE=collection shows live activity.
Change streams need a replica set (MongoDB Atlas, or a local
`mongod --replSet rs0`).

Documents look like:
    {"_id": "demo_3f2a...", "language": "Japanese",
     "results": {"stage_01": {"maxScore": 1800, "clearRate": 72}}}
"""

import argparse
import asyncio
import os
import sys
from pathlib import Path

ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT))

from dotenv import load_dotenv

load_dotenv(ROOT / ".env")

import certifi  # noqa: E402
from motor.motor_asyncio import AsyncIOMotorClient  # noqa: E402

from livemap.services.sources import DemoSource  # noqa: E402

MONGO_URI = os.environ.get("MONGO_URI", "")
MONGO_DB_NAME = os.environ.get("MONGO_DB_NAME", "livemap")
COLLECTION = os.environ.get("USER_RECORDS_COLLECTION", "users")

if not MONGO_URI:
    print("ERROR: MONGO_URI not set. Add it to .env")
    sys.exit(1)


def _to_document(generator: DemoSource) -> dict:
    record = generator.make_record()
    return {"_id": record.id, "language": record.language, "results": record.results}


async def seed(count: int, append: bool, trickle: float | None) -> None:
    client = AsyncIOMotorClient(MONGO_URI, tlsCAFile=certifi.where())
    collection = client[MONGO_DB_NAME][COLLECTION]
    generator = DemoSource()

    try:
        await client.admin.command("ping")
        print(f"Connected to MongoDB ({MONGO_DB_NAME}.{COLLECTION})")
    except Exception as exc:
        print(f"ERROR: Cannot connect to MongoDB: {exc}")
        return

    if not append:
        result = await collection.delete_many({})
        print(f"  Deleted {result.deleted_count} existing users")

    docs = [_to_document(generator) for _ in range(count)]
    if docs:
        result = await collection.insert_many(docs)
        print(f"  Inserted {len(result.inserted_ids)} users")

    languages = await collection.distinct("language")
    print(f"  users total : {await collection.count_documents({})}")
    print(f"  languages   : {sorted(languages)}")

    if trickle:
        print(f"\nInserting one user every {trickle}s (Ctrl+C to stop)")
        try:
            while True:
                doc = _to_document(generator)
                await collection.insert_one(doc)
                print(f"  + {doc['_id']} ({doc['language']})")
                await asyncio.sleep(trickle)
        except (KeyboardInterrupt, asyncio.CancelledError):
            pass

    client.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the realtime user-record store")
    parser.add_argument("--count", type=int, default=200, help="Users to insert up front")
    parser.add_argument("--append", action="store_true", help="Keep existing users")
    parser.add_argument("--trickle", type=float, default=None, help="Seconds between live inserts")
    args = parser.parse_args()
    asyncio.run(seed(args.count, args.append, args.trickle))
