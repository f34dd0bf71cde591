#!/usr/bin/env python3
"""
Reconcile student fee balances against recorded payments.

Every balance is credited with its student's total recorded payments (see
FlatTotalPaidStrategy); outstanding amounts and statuses are recomputed where
they differ. Running it twice without new payments changes nothing.

Usage:
  python3 scripts/reconcile_fee_balances.py --dry-run
  python3 scripts/reconcile_fee_balances.py --confirm
  python3 scripts/reconcile_fee_balances.py --confirm --strict
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
from src.modules.reconciliation.service import ReconciliationService
from src.modules.reconciliation.strategy import FlatTotalPaidStrategy


async def reconcile(session: AsyncSession, *, strict: bool, dry_run: bool) -> None:
    service = ReconciliationService(session, FlatTotalPaidStrategy(strict=strict))
    result = await service.reconcile_student_fee_balances(actor="script:reconcile")

    if not result.updated:
        await session.rollback()
        print(f"✅ Nothing to fix: {result.balances_examined} balances already match payments.")
        return

    for student_number in result.students_affected:
        print(f"- {student_number}")

    if dry_run:
        await session.rollback()
        print(
            f"\n🧪 DRY-RUN: would update {result.balances_updated} of "
            f"{result.balances_examined} balances for {len(result.students_affected)} students."
        )
        return

    await session.commit()
    print(
        f"\n✅ Applied: updated {result.balances_updated} of {result.balances_examined} "
        f"balances for {len(result.students_affected)} students."
    )


async def main() -> None:
    import argparse

    parser = argparse.ArgumentParser(description="Reconcile fee balances against payments")
    parser.add_argument("--dry-run", action="store_true", help="Preview changes, rollback at end")
    parser.add_argument("--confirm", action="store_true", help="Apply changes (COMMIT)")
    parser.add_argument(
        "--strict", action="store_true", help="Fail when payments exceed a balance total"
    )
    args = parser.parse_args()

    if not args.dry_run and not args.confirm:
        print("❌ ERROR: specify --dry-run or --confirm")
        sys.exit(1)
    if args.dry_run and args.confirm:
        print("❌ ERROR: choose only one of --dry-run / --confirm")
        sys.exit(1)

    setup_logging(settings.log_level)

    print("\n" + "=" * 70)
    print("RECONCILE FEE BALANCES")
    print("=" * 70)
    print(f"\n🌍 Environment: {settings.app_env}")
    print(
        f"🗄️  DB: {settings.database_url.split('@')[1] if '@' in settings.database_url else 'unknown'}"
    )
    print(f"🔧 Mode: {'DRY-RUN' if args.dry_run else 'APPLY (COMMIT)'}")

    if args.confirm:
        print("\n⚠️  This will UPDATE student fee balances in the database.")
        print("💡 Make a DB backup before running on production.")
        response = input("\n❓ Type 'APPLY RECONCILIATION' to continue: ")
        if response != "APPLY RECONCILIATION":
            print("\n❌ Cancelled by user")
            sys.exit(0)

    async with async_session() as session:
        await reconcile(session, strict=args.strict, dry_run=args.dry_run)


if __name__ == "__main__":
    asyncio.run(main())
