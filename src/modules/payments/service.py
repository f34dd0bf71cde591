"""Read access to the payment record stream."""

from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.modules.payments.models import PaymentRecord
from src.shared.utils.money import round_money


class PaymentRecordReader:
    """Read-only access to recorded payments."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def total_paid_by_student(self, student_number: str) -> Decimal:
        result = await self.db.execute(
            select(func.coalesce(func.sum(PaymentRecord.amount_paid), 0)).where(
                PaymentRecord.student_number == student_number
            )
        )
        return round_money(result.scalar_one())

    async def list_all(self) -> list[PaymentRecord]:
        result = await self.db.execute(select(PaymentRecord).order_by(PaymentRecord.id))
        return list(result.scalars().all())

    async def list_for_student(self, student_number: str) -> list[PaymentRecord]:
        result = await self.db.execute(
            select(PaymentRecord)
            .where(PaymentRecord.student_number == student_number)
            .order_by(PaymentRecord.payment_date, PaymentRecord.id)
        )
        return list(result.scalars().all())
