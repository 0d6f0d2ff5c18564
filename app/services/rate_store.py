"""Durable latest-rate table and append-only rate history."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.errors import StorageError
from app.models import LatestRate, RateHistory
from app.utils.datetime import ensure_utc, utc_now

logger = logging.getLogger(__name__)

LATEST_QUERY_LIMIT = 100
DEFAULT_HISTORY_LIMIT = 1000


def make_pair(base: str, target: str) -> str:
    """Build the ``BASE-TARGET`` key for an ordered currency pair."""

    return f"{base.strip().upper()}-{target.strip().upper()}"


@dataclass(frozen=True)
class LatestRateRecord:
    pair: str
    base: str
    target: str
    rate: Decimal
    fetched_at: datetime
    source_integration_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "pair": self.pair,
            "base": self.base,
            "target": self.target,
            "rate": str(self.rate),
            "fetched_at": self.fetched_at.isoformat(),
            "source_integration_id": self.source_integration_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LatestRateRecord:
        return cls(
            pair=data["pair"],
            base=data["base"],
            target=data["target"],
            rate=Decimal(str(data["rate"])),
            fetched_at=ensure_utc(datetime.fromisoformat(data["fetched_at"])),
            source_integration_id=data.get("source_integration_id"),
        )

    @classmethod
    def from_row(cls, row: LatestRate) -> LatestRateRecord:
        return cls(
            pair=row.pair,
            base=row.base,
            target=row.target,
            rate=Decimal(row.rate),
            fetched_at=ensure_utc(row.fetched_at),
            source_integration_id=row.source_integration_id,
        )


@dataclass(frozen=True)
class RateHistoryRecord:
    id: int
    base: str
    target: str
    rate: Decimal
    fetched_at: datetime
    source_integration_id: Optional[str] = None

    @classmethod
    def from_row(cls, row: RateHistory) -> RateHistoryRecord:
        return cls(
            id=row.id,
            base=row.base,
            target=row.target,
            rate=Decimal(row.rate),
            fetched_at=ensure_utc(row.fetched_at),
            source_integration_id=row.source_integration_id,
        )


class RateStore:
    """Owns writes and point reads against ``rates_latest`` and ``rates_history``."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def upsert_latest(
        self,
        base: str,
        target: str,
        rate: Decimal,
        source_id: Optional[str],
        fetched_at: Optional[datetime] = None,
    ) -> LatestRateRecord:
        """Insert or overwrite the pair's row; the most recent write always wins."""

        record = LatestRateRecord(
            pair=make_pair(base, target),
            base=base.upper(),
            target=target.upper(),
            rate=Decimal(rate),
            fetched_at=ensure_utc(fetched_at or utc_now()),
            source_integration_id=source_id,
        )
        try:
            self._write_latest(record)
        except IntegrityError as exc:
            # Only a concurrent insert of the same pair is worth overwriting;
            # anything else (e.g. a deleted source integration) is final.
            if self.get_latest(record.pair) is None:
                raise StorageError(f"Failed to store latest rate {record.pair}: {exc.orig}") from exc
            try:
                self._write_latest(record)
            except IntegrityError as retry_exc:
                raise StorageError(
                    f"Failed to store latest rate {record.pair}: {retry_exc.orig}"
                ) from retry_exc
        return record

    def _write_latest(self, record: LatestRateRecord) -> None:
        session = self._session_factory()
        try:
            row = session.get(LatestRate, record.pair)
            if row is None:
                session.add(
                    LatestRate(
                        pair=record.pair,
                        base=record.base,
                        target=record.target,
                        rate=record.rate,
                        fetched_at=record.fetched_at,
                        source_integration_id=record.source_integration_id,
                    )
                )
            else:
                row.rate = record.rate
                row.fetched_at = record.fetched_at
                row.source_integration_id = record.source_integration_id
            session.commit()
        except IntegrityError:
            session.rollback()
            raise
        except SQLAlchemyError as exc:
            session.rollback()
            raise StorageError(f"Failed to store latest rate {record.pair}: {exc}") from exc
        finally:
            session.close()

    def append_history(
        self,
        base: str,
        target: str,
        rate: Decimal,
        source_id: Optional[str],
        fetched_at: Optional[datetime] = None,
    ) -> None:
        """Append one history row; duplicates are expected."""

        session = self._session_factory()
        try:
            session.add(
                RateHistory(
                    base=base.upper(),
                    target=target.upper(),
                    rate=Decimal(rate),
                    fetched_at=ensure_utc(fetched_at or utc_now()),
                    source_integration_id=source_id,
                )
            )
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise StorageError(f"Failed to append history for {base}-{target}: {exc}") from exc
        finally:
            session.close()

    def get_latest(self, pair: str) -> Optional[LatestRateRecord]:
        session = self._session_factory()
        try:
            row = session.get(LatestRate, pair.upper())
            return LatestRateRecord.from_row(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read latest rate {pair}: {exc}") from exc
        finally:
            session.close()

    def list_latest(
        self,
        *,
        base: Optional[str] = None,
        target: Optional[str] = None,
        q: Optional[str] = None,
        limit: int = LATEST_QUERY_LIMIT,
    ) -> list[LatestRateRecord]:
        """Return latest rates, most recently fetched first."""

        stmt = select(LatestRate)
        if base:
            stmt = stmt.where(LatestRate.base == base.upper())
        if target:
            stmt = stmt.where(LatestRate.target == target.upper())
        if q:
            pattern = f"%{q.strip().upper()}%"
            stmt = stmt.where(LatestRate.pair.like(pattern))
        stmt = stmt.order_by(LatestRate.fetched_at.desc(), LatestRate.pair).limit(limit)
        return self._fetch(stmt, LatestRateRecord.from_row)

    def get_history(
        self,
        base: str,
        target: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> list[RateHistoryRecord]:
        """Return history for a pair, most recent first; the date range is inclusive."""

        stmt = select(RateHistory).where(
            RateHistory.base == base.upper(), RateHistory.target == target.upper()
        )
        if start is not None:
            stmt = stmt.where(RateHistory.fetched_at >= _start_of_day(start))
        if end is not None:
            stmt = stmt.where(RateHistory.fetched_at < _start_of_day(end + timedelta(days=1)))
        stmt = stmt.order_by(RateHistory.fetched_at.desc(), RateHistory.id.desc()).limit(limit)
        return self._fetch(stmt, RateHistoryRecord.from_row)

    def list_available_currencies(self) -> list[str]:
        """Union of every base and target observed in the latest-rate table."""

        session = self._session_factory()
        try:
            bases = session.execute(select(LatestRate.base).distinct()).scalars().all()
            targets = session.execute(select(LatestRate.target).distinct()).scalars().all()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to list currencies: {exc}") from exc
        finally:
            session.close()
        return sorted(set(bases) | set(targets))

    def reset(self) -> None:
        """Delete all latest and historical rates."""

        session = self._session_factory()
        try:
            session.execute(delete(RateHistory))
            session.execute(delete(LatestRate))
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise StorageError(f"Failed to reset rate data: {exc}") from exc
        finally:
            session.close()
        logger.warning("All latest and historical rates deleted.")

    def _fetch(self, stmt, converter: Callable[[Any], Any]) -> list:
        session = self._session_factory()
        try:
            return [converter(row) for row in session.execute(stmt).scalars().all()]
        except SQLAlchemyError as exc:
            raise StorageError(f"Rate query failed: {exc}") from exc
        finally:
            session.close()


def _start_of_day(value: date) -> datetime:
    return ensure_utc(datetime.combine(value, time.min))
