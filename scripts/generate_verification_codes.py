"""Assign verification codes to unclaimed profiles.

Organisers pre-seed profiles for people who have not signed in yet.  Such a
profile has no contact email and no linking email; giving it a code lets the
owner claim it later through ``POST /api/profile/link``.

Usage:
    python scripts/generate_verification_codes.py --dry-run
    python scripts/generate_verification_codes.py --overwrite
"""
import argparse
import asyncio
import sys
sys.path.insert(0, ".")

from app.config import get_settings
from app.services.linking_service import generate_verification_code
from app.services.profile_gateway import ProfileFields, ProfileGateway
from app.store import build_store
from app.store.query import all_of, blank


async def assign_codes(dry_run: bool, overwrite: bool) -> int:
    settings = get_settings()
    store = build_store(settings)
    gateway = ProfileGateway(store, settings.PROFILES_TABLE_ID)

    conditions = [blank(ProfileFields.EMAIL), blank(ProfileFields.LINKING_EMAIL)]
    if not overwrite:
        conditions.append(blank(ProfileFields.VERIFICATION_CODE))

    try:
        records = await store.select(
            settings.PROFILES_TABLE_ID,
            where=all_of(*conditions),
            fields=[ProfileFields.NAME, ProfileFields.EMAIL, ProfileFields.VERIFICATION_CODE],
        )
        print(f"Found {len(records)} unclaimed profile(s).")

        for record in records:
            name = record.get(ProfileFields.NAME) or record.id
            code = generate_verification_code()
            if dry_run:
                print(f"  [dry-run] {name}: would set code {code}")
                continue
            await gateway.set_verification_code(record.id, code)
            print(f"  {name}: {code}")
    finally:
        await store.aclose()

    print("Done.")
    return len(records)


def main() -> None:
    parser = argparse.ArgumentParser(description="Assign verification codes to unclaimed profiles")
    parser.add_argument("--dry-run", action="store_true", help="Print codes without writing them")
    parser.add_argument(
        "--overwrite",
        action="store_true",
        help="Replace codes on profiles that already have one",
    )
    args = parser.parse_args()
    asyncio.run(assign_codes(args.dry_run, args.overwrite))


if __name__ == "__main__":
    main()
