"""SQLAlchemy ORM models for integrations, rates and telemetry."""

from __future__ import annotations

import datetime as dt
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base

RATE_NUMERIC = Numeric(24, 10)


class Integration(Base):
    """A configured external rate source."""

    __tablename__ = "integrations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    provider: Mapped[str] = mapped_column(String(40), nullable=False)
    base_url: Mapped[str] = mapped_column(String(255), nullable=False)
    api_key_enc: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    poll_interval_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=300)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<Integration id={self.id} provider={self.provider} active={self.active}>"


class LatestRate(Base):
    """Most recent rate per ordered currency pair (last writer wins)."""

    __tablename__ = "rates_latest"

    pair: Mapped[str] = mapped_column(String(7), primary_key=True)
    base: Mapped[str] = mapped_column(String(3), nullable=False, index=True)
    target: Mapped[str] = mapped_column(String(3), nullable=False, index=True)
    rate: Mapped[Decimal] = mapped_column(RATE_NUMERIC, nullable=False)
    fetched_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    source_integration_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("integrations.id", ondelete="SET NULL"), nullable=True
    )

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<LatestRate {self.pair} rate={self.rate}>"


class RateHistory(Base):
    """Append-only record of every fetched rate."""

    __tablename__ = "rates_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    base: Mapped[str] = mapped_column(String(3), nullable=False)
    target: Mapped[str] = mapped_column(String(3), nullable=False)
    rate: Mapped[Decimal] = mapped_column(RATE_NUMERIC, nullable=False)
    fetched_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    source_integration_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("integrations.id", ondelete="SET NULL"), nullable=True
    )


Index(
    "ix_rates_history_pair_fetched_desc",
    RateHistory.base,
    RateHistory.target,
    RateHistory.fetched_at.desc(),
)


class IntegrationUsage(Base):
    """Per-integration, per-day call counters and last error."""

    __tablename__ = "integration_usage"
    __table_args__ = (
        UniqueConstraint("integration_id", "date", name="uq_integration_usage_day"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    integration_id: Mapped[str] = mapped_column(
        ForeignKey("integrations.id", ondelete="CASCADE"), nullable=False
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    calls_made: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    calls_limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    calls_remaining: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    reset_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_error_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class RequestLog(Base):
    """One row per provider request made by the polling scheduler."""

    __tablename__ = "request_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    integration_id: Mapped[str] = mapped_column(
        ForeignKey("integrations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    base_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    response_time_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class ConversionLog(Base):
    """One row per served conversion."""

    __tablename__ = "conversion_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    from_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    to_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(28, 10), nullable=False)
    result: Mapped[Decimal] = mapped_column(Numeric(28, 10), nullable=False)
    rate: Mapped[Decimal] = mapped_column(RATE_NUMERIC, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
