"""Request, usage and conversion telemetry persisted for monitoring."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.errors import StorageError
from app.logging import conversion_log_extra
from app.models import ConversionLog, IntegrationUsage, RequestLog
from app.utils.datetime import ensure_utc, utc_now

logger = logging.getLogger(__name__)

DEFAULT_RECENT_LIMIT = 100
DEFAULT_USAGE_DAYS = 30


@dataclass(frozen=True)
class UsageDay:
    date: date
    calls_made: int
    calls_limit: Optional[int]
    calls_remaining: Optional[int]
    reset_at: Optional[datetime]
    last_error: Optional[str]
    last_error_at: Optional[datetime]


@dataclass(frozen=True)
class RequestLogEntry:
    id: int
    integration_id: str
    base_currency: str
    success: bool
    response_time_ms: Optional[int]
    error_message: Optional[str]
    created_at: datetime


@dataclass(frozen=True)
class ConversionLogEntry:
    id: int
    from_currency: str
    to_currency: str
    amount: Decimal
    result: Decimal
    rate: Decimal
    created_at: datetime


class UsageRecorder:
    """Writes per-request and per-day telemetry rows.

    ``record_request`` feeds the daily counter as well, so ``calls_made``
    matches the number of provider requests attempted that day.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def record_request(
        self,
        integration_id: str,
        base_currency: str,
        success: bool,
        response_time_ms: Optional[int] = None,
        error_message: Optional[str] = None,
    ) -> None:
        now = self._clock()
        session = self._session_factory()
        try:
            session.add(
                RequestLog(
                    integration_id=integration_id,
                    base_currency=base_currency.upper(),
                    success=success,
                    response_time_ms=response_time_ms,
                    error_message=error_message,
                    created_at=now,
                )
            )
            usage = self._usage_row(session, integration_id, now.date())
            usage.calls_made = (usage.calls_made or 0) + 1
            if not success:
                usage.last_error = error_message
                usage.last_error_at = now
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise StorageError(f"Failed to record request for {integration_id}: {exc}") from exc
        finally:
            session.close()

    def record_usage(
        self,
        integration_id: str,
        *,
        calls_limit: Optional[int],
        calls_remaining: Optional[int],
        reset_at: Optional[datetime] = None,
    ) -> None:
        """Store the provider-reported quota snapshot for today."""

        now = self._clock()
        session = self._session_factory()
        try:
            usage = self._usage_row(session, integration_id, now.date())
            usage.calls_limit = calls_limit
            usage.calls_remaining = calls_remaining
            usage.reset_at = ensure_utc(reset_at) if reset_at else None
            session.commit()
        except IntegrityError:
            session.rollback()
            logger.info("Concurrent usage row creation for %s; skipping snapshot.", integration_id)
        except SQLAlchemyError as exc:
            session.rollback()
            raise StorageError(f"Failed to record usage for {integration_id}: {exc}") from exc
        finally:
            session.close()

    def record_error(self, integration_id: str, error_message: str) -> None:
        """Stamp today's ``last_error`` without counting a provider call."""

        now = self._clock()
        session = self._session_factory()
        try:
            usage = self._usage_row(session, integration_id, now.date())
            usage.last_error = error_message
            usage.last_error_at = now
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise StorageError(f"Failed to record error for {integration_id}: {exc}") from exc
        finally:
            session.close()

    def log_conversion(
        self,
        from_currency: str,
        to_currency: str,
        amount: Decimal,
        result: Decimal,
        rate: Decimal,
    ) -> None:
        session = self._session_factory()
        try:
            session.add(
                ConversionLog(
                    from_currency=from_currency,
                    to_currency=to_currency,
                    amount=amount,
                    result=result,
                    rate=rate,
                    created_at=self._clock(),
                )
            )
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise StorageError(f"Failed to log conversion: {exc}") from exc
        finally:
            session.close()
        logger.info(
            "Conversion logged",
            extra=conversion_log_extra(
                from_currency=from_currency, to_currency=to_currency, amount=amount, rate=rate
            ),
        )

    def get_usage_stats(
        self, integration_id: str, *, days: int = DEFAULT_USAGE_DAYS
    ) -> list[UsageDay]:
        stmt = (
            select(IntegrationUsage)
            .where(IntegrationUsage.integration_id == integration_id)
            .order_by(IntegrationUsage.date.desc())
            .limit(days)
        )
        return self._fetch(stmt, _usage_from_row)

    def get_recent_requests(
        self, *, integration_id: Optional[str] = None, limit: int = DEFAULT_RECENT_LIMIT
    ) -> list[RequestLogEntry]:
        stmt = select(RequestLog)
        if integration_id:
            stmt = stmt.where(RequestLog.integration_id == integration_id)
        stmt = stmt.order_by(RequestLog.created_at.desc(), RequestLog.id.desc()).limit(limit)
        return self._fetch(stmt, _request_from_row)

    def get_recent_conversions(self, *, limit: int = DEFAULT_RECENT_LIMIT) -> list[ConversionLogEntry]:
        stmt = (
            select(ConversionLog)
            .order_by(ConversionLog.created_at.desc(), ConversionLog.id.desc())
            .limit(limit)
        )
        return self._fetch(stmt, _conversion_from_row)

    @staticmethod
    def _usage_row(session: Session, integration_id: str, day: date) -> IntegrationUsage:
        usage = session.execute(
            select(IntegrationUsage).where(
                IntegrationUsage.integration_id == integration_id,
                IntegrationUsage.date == day,
            )
        ).scalar_one_or_none()
        if usage is None:
            usage = IntegrationUsage(integration_id=integration_id, date=day, calls_made=0)
            session.add(usage)
        return usage

    def _fetch(self, stmt, converter: Callable[[Any], Any]) -> list:
        session = self._session_factory()
        try:
            return [converter(row) for row in session.execute(stmt).scalars().all()]
        except SQLAlchemyError as exc:
            raise StorageError(f"Telemetry query failed: {exc}") from exc
        finally:
            session.close()


def _usage_from_row(row: IntegrationUsage) -> UsageDay:
    return UsageDay(
        date=row.date,
        calls_made=row.calls_made or 0,
        calls_limit=row.calls_limit,
        calls_remaining=row.calls_remaining,
        reset_at=ensure_utc(row.reset_at) if row.reset_at else None,
        last_error=row.last_error,
        last_error_at=ensure_utc(row.last_error_at) if row.last_error_at else None,
    )


def _request_from_row(row: RequestLog) -> RequestLogEntry:
    return RequestLogEntry(
        id=row.id,
        integration_id=row.integration_id,
        base_currency=row.base_currency,
        success=row.success,
        response_time_ms=row.response_time_ms,
        error_message=row.error_message,
        created_at=ensure_utc(row.created_at),
    )


def _conversion_from_row(row: ConversionLog) -> ConversionLogEntry:
    return ConversionLogEntry(
        id=row.id,
        from_currency=row.from_currency,
        to_currency=row.to_currency,
        amount=Decimal(row.amount),
        result=Decimal(row.result),
        rate=Decimal(row.rate),
        created_at=ensure_utc(row.created_at),
    )
