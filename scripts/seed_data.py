#!/usr/bin/env python3
"""Seed a tenant's remote collections with the demo records of a profile.

Documents keep their seed ids (A001, T-001, ...), so running the script
twice reports the existing documents instead of duplicating them.

Usage:
    python scripts/seed_data.py OWNER_ID
    python scripts/seed_data.py OWNER_ID --profile fleet --only assets inventory
"""

import argparse
import asyncio

from herdbook.config import configure_logging, get_settings
from herdbook.errors import RemoteStoreError
from herdbook.profiles import PROFILES, Profile, get_profile
from herdbook.store import RemoteDocumentStore

ENTITIES = ("assets", "inventory", "transactions", "invoices")


async def seed_entity(
    client: RemoteDocumentStore, profile: Profile, owner_id: str, entity: str
) -> tuple[int, int]:
    """Push one entity's seed documents. Returns (created, skipped)."""
    created = skipped = 0
    for seed in profile.seeds_for(entity):
        document = dict(seed)
        document_id = str(document.pop("id"))
        try:
            await client.add(entity, owner_id, document, document_id=document_id)
            created += 1
            print(f"    ✓ {document_id}")
        except RemoteStoreError as e:
            if e.status_code != 409:
                raise
            skipped += 1
            print(f"    - {document_id} (exists)")
    return created, skipped


async def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Herdbook - Demo Data Seeding")
    parser.add_argument("owner_id", help="Tenant to seed")
    parser.add_argument(
        "--profile",
        choices=sorted(PROFILES),
        default=None,
        help="Deployment profile (default: HERDBOOK_PROFILE)",
    )
    parser.add_argument(
        "--only",
        nargs="+",
        choices=ENTITIES,
        default=list(ENTITIES),
        help="Entities to seed (default: all)",
    )
    args = parser.parse_args()

    configure_logging()
    settings = get_settings()
    profile = get_profile(args.profile or settings.profile)

    print("=" * 60)
    print("Herdbook - Demo Data Seeding")
    print("=" * 60)
    print(f"\nStore URL: {settings.store_url}")
    print(f"Profile:   {profile.name}")
    print(f"Owner:     {args.owner_id}")

    total_created = total_skipped = 0
    async with RemoteDocumentStore() as client:
        for entity in args.only:
            print(f"\n  [{entity}]")
            created, skipped = await seed_entity(client, profile, args.owner_id, entity)
            total_created += created
            total_skipped += skipped

    print("\n" + "=" * 60)
    print(f"SEEDING COMPLETE: {total_created} created, {total_skipped} already present")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
