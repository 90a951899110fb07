"""Coupon usage ledger."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import func, select

from admission.engine.models import ConsumeResult, UsageCounts
from admission.store.models import Coupon, CouponUsage, normalize_coupon_code

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


class CouponUsageLedger:
    """Enforces coupon usage limits with an append-only usage table.

    Consumption is written into the caller's session, so it commits or rolls
    back together with the registration it pays for.
    """

    def load_coupon(self, session: Session, code: str) -> Coupon | None:
        """Load and lock a coupon by code, case-insensitively."""
        stmt = (
            select(Coupon).where(Coupon.code == normalize_coupon_code(code)).with_for_update()
        )
        return session.execute(stmt).scalar_one_or_none()

    def usage_counts(self, session: Session, coupon: Coupon, student_id: str) -> UsageCounts:
        """Current total and per-student consumption of a coupon."""
        total_stmt = select(func.count(CouponUsage.id)).where(CouponUsage.coupon_id == coupon.id)
        student_stmt = total_stmt.where(CouponUsage.student_id == student_id)
        return UsageCounts(
            total=session.execute(total_stmt).scalar_one(),
            by_student=session.execute(student_stmt).scalar_one(),
        )

    def check_limits(self, session: Session, coupon: Coupon, student_id: str) -> ConsumeResult:
        """Compare current usage against the coupon's limits without writing."""
        counts = self.usage_counts(session, coupon, student_id)
        if coupon.usage_limit_total is not None and counts.total >= coupon.usage_limit_total:
            return ConsumeResult.TOTAL_LIMIT_REACHED
        if (
            coupon.usage_limit_per_student is not None
            and counts.by_student >= coupon.usage_limit_per_student
        ):
            return ConsumeResult.PER_STUDENT_LIMIT_REACHED
        return ConsumeResult.CONSUMED

    def try_consume(
        self,
        session: Session,
        coupon: Coupon,
        student_id: str,
        registration_id: str,
        now: datetime,
    ) -> ConsumeResult:
        """Check limits and, if both pass, append a usage record.

        Args:
            session: The unit of work's session.
            coupon: The coupon being redeemed.
            student_id: The redeeming student.
            registration_id: The registration the coupon is applied to.
            now: Redemption time.

        Returns:
            CONSUMED when a usage row was appended, otherwise the limit hit.
        """
        result = self.check_limits(session, coupon, student_id)
        if result != ConsumeResult.CONSUMED:
            logger.info("Coupon %s not consumed: %s", coupon.code, result.value)
            return result

        session.add(
            CouponUsage(
                coupon_id=coupon.id,
                coupon_code=coupon.code,
                student_id=student_id,
                registration_id=registration_id,
                used_at=now,
            )
        )
        logger.debug("Coupon %s consumed by student %s", coupon.code, student_id)
        return ConsumeResult.CONSUMED
