#!/usr/bin/env python3
"""
Migrate legacy per-semester balances (student_balances) into the fee ledger.

Each legacy row becomes one student fee balance on the item standing for its
fee schedule in the "Legacy - {program}" structure of that period. Rows
already migrated are skipped, so the script can be re-run safely.

Usage:
  python3 scripts/migrate_legacy_balances.py --dry-run
  python3 scripts/migrate_legacy_balances.py --confirm
"""

import asyncio
import sys
from pathlib import Path

# Add project root to PYTHONPATH
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import settings
from src.core.database.session import async_session
from src.core.logging_config import setup_logging
from src.modules.legacy_migration.service import LegacyMigrationService


async def migrate(session: AsyncSession, *, dry_run: bool) -> None:
    service = LegacyMigrationService(session)
    result = await service.migrate_old_student_balances(actor="script:migrate-legacy")

    for failure in result.failed:
        print(f"⚠️  {failure.item}: {failure.error}")

    summary = (
        f"{result.migrated} migrated, {result.skipped} skipped, {result.failed_count} failed"
    )
    if dry_run:
        await session.rollback()
        print(f"\n🧪 DRY-RUN: {summary}")
        return

    await session.commit()
    print(f"\n{'✅' if result.success else '❌'} Applied: {summary}")


async def main() -> None:
    import argparse

    parser = argparse.ArgumentParser(description="Migrate legacy student balances")
    parser.add_argument("--dry-run", action="store_true", help="Preview changes, rollback at end")
    parser.add_argument("--confirm", action="store_true", help="Apply changes (COMMIT)")
    args = parser.parse_args()

    if not args.dry_run and not args.confirm:
        print("❌ ERROR: specify --dry-run or --confirm")
        sys.exit(1)
    if args.dry_run and args.confirm:
        print("❌ ERROR: choose only one of --dry-run / --confirm")
        sys.exit(1)

    setup_logging(settings.log_level)

    print("\n" + "=" * 70)
    print("MIGRATE LEGACY STUDENT BALANCES")
    print("=" * 70)
    print(f"\n🌍 Environment: {settings.app_env}")
    print(
        f"🗄️  DB: {settings.database_url.split('@')[1] if '@' in settings.database_url else 'unknown'}"
    )
    print(f"🔧 Mode: {'DRY-RUN' if args.dry_run else 'APPLY (COMMIT)'}")

    if args.confirm:
        print("\n⚠️  This will INSERT fee structures and balances into the database.")
        print("💡 Make a DB backup before running on production.")
        response = input("\n❓ Type 'MIGRATE LEGACY BALANCES' to continue: ")
        if response != "MIGRATE LEGACY BALANCES":
            print("\n❌ Cancelled by user")
            sys.exit(0)

    async with async_session() as session:
        await migrate(session, dry_run=args.dry_run)


if __name__ == "__main__":
    asyncio.run(main())
