"""Persistence and validation for configured rate-source integrations."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional

from sqlalchemy import asc, delete, desc, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.errors import NotFoundError, StorageError, ValidationError
from app.models import Integration
from app.providers.registry import normalize_kind
from app.utils.crypto import CredentialCipher
from app.utils.datetime import ensure_utc, utc_now
from app.validation import (
    validate_base_url,
    validate_name,
    validate_poll_interval,
    validate_priority,
)

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY = 100
DEFAULT_POLL_INTERVAL_SECONDS = 300

UPDATABLE_FIELDS = ("name", "provider", "base_url", "api_key", "priority", "poll_interval_seconds", "active")


@dataclass(frozen=True)
class IntegrationDTO:
    """Read model of an integration; the credential is never exposed."""

    id: str
    name: str
    provider: str
    base_url: str
    has_api_key: bool
    priority: int
    poll_interval_seconds: int
    active: bool
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


@dataclass(frozen=True)
class IntegrationConfig:
    """Active integration with its decrypted credential, held only in memory."""

    id: str
    name: str
    provider: str
    base_url: str
    api_key: Optional[str]
    priority: int
    poll_interval_seconds: int

    def __repr__(self) -> str:
        return (
            f"IntegrationConfig(id={self.id!r}, name={self.name!r}, provider={self.provider!r}, "
            f"poll_interval_seconds={self.poll_interval_seconds})"
        )


class IntegrationStore:
    """CRUD over the ``integrations`` table.

    Every successful mutation calls ``on_change`` so the polling scheduler
    can resynchronise its jobs without waiting for the periodic pass.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        cipher: CredentialCipher,
        *,
        on_change: Optional[Callable[[], Any]] = None,
    ) -> None:
        self._session_factory = session_factory
        self._cipher = cipher
        self.on_change = on_change

    def create(self, data: Mapping[str, Any]) -> IntegrationDTO:
        integration = Integration(
            id=str(uuid.uuid4()),
            name=validate_name(data.get("name")),
            provider=normalize_kind(_require(data, "provider")),
            base_url=validate_base_url(data.get("base_url")),
            api_key_enc=self._cipher.encrypt(data.get("api_key")),
            priority=validate_priority(data.get("priority", DEFAULT_PRIORITY)),
            poll_interval_seconds=validate_poll_interval(
                data.get("poll_interval_seconds", DEFAULT_POLL_INTERVAL_SECONDS)
            ),
            active=bool(data.get("active", True)),
        )
        now = utc_now()
        integration.created_at = now
        integration.updated_at = now

        session = self._session_factory()
        try:
            session.add(integration)
            session.commit()
            dto = _to_dto(integration)
        except SQLAlchemyError as exc:
            session.rollback()
            raise StorageError(f"Failed to create integration: {exc}") from exc
        finally:
            session.close()

        logger.info(
            "Integration created",
            extra={"integration_id": dto.id, "provider": dto.provider},
        )
        self._notify()
        return dto

    def list(
        self, *, active: Optional[bool] = None, provider: Optional[str] = None
    ) -> list[IntegrationDTO]:
        stmt = select(Integration)
        if active is not None:
            stmt = stmt.where(Integration.active.is_(active))
        if provider:
            stmt = stmt.where(Integration.provider == normalize_kind(provider))
        stmt = stmt.order_by(asc(Integration.priority), desc(Integration.created_at))

        session = self._session_factory()
        try:
            return [_to_dto(row) for row in session.execute(stmt).scalars().all()]
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to list integrations: {exc}") from exc
        finally:
            session.close()

    def get_by_id(self, integration_id: str) -> IntegrationDTO:
        session = self._session_factory()
        try:
            return _to_dto(self._get(session, integration_id))
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to load integration {integration_id}: {exc}") from exc
        finally:
            session.close()

    def update(self, integration_id: str, data: Mapping[str, Any]) -> IntegrationDTO:
        unknown = set(data) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(
                f"Unsupported integration fields: {', '.join(sorted(unknown))}.",
                payload={"fields": sorted(unknown)},
            )

        session = self._session_factory()
        try:
            integration = self._get(session, integration_id)
            if "name" in data:
                integration.name = validate_name(data["name"])
            if "provider" in data:
                integration.provider = normalize_kind(data["provider"])
            if "base_url" in data:
                integration.base_url = validate_base_url(data["base_url"])
            if "api_key" in data:
                integration.api_key_enc = self._cipher.encrypt(data["api_key"])
            if "priority" in data:
                integration.priority = validate_priority(data["priority"])
            if "poll_interval_seconds" in data:
                integration.poll_interval_seconds = validate_poll_interval(
                    data["poll_interval_seconds"]
                )
            if "active" in data:
                integration.active = bool(data["active"])
            integration.updated_at = utc_now()
            session.commit()
            dto = _to_dto(integration)
        except SQLAlchemyError as exc:
            session.rollback()
            raise StorageError(f"Failed to update integration {integration_id}: {exc}") from exc
        finally:
            session.close()

        logger.info("Integration updated", extra={"integration_id": integration_id})
        self._notify()
        return dto

    def soft_deactivate(self, integration_id: str) -> IntegrationDTO:
        return self.update(integration_id, {"active": False})

    def hard_delete(self, integration_id: str) -> None:
        session = self._session_factory()
        try:
            self._get(session, integration_id)
            session.execute(delete(Integration).where(Integration.id == integration_id))
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise StorageError(f"Failed to delete integration {integration_id}: {exc}") from exc
        finally:
            session.close()

        logger.warning("Integration permanently deleted", extra={"integration_id": integration_id})
        self._notify()

    def list_active_with_decrypted_credentials(self) -> list[IntegrationConfig]:
        """Return active integrations ready for polling.

        An integration whose credential no longer decrypts is skipped and
        logged rather than failing the whole list.
        """

        stmt = (
            select(Integration)
            .where(Integration.active.is_(True))
            .order_by(asc(Integration.priority), desc(Integration.created_at))
        )
        session = self._session_factory()
        try:
            rows = session.execute(stmt).scalars().all()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to load active integrations: {exc}") from exc
        finally:
            session.close()

        configs: list[IntegrationConfig] = []
        for row in rows:
            try:
                configs.append(self._to_config(row))
            except ValueError as exc:
                logger.error(
                    "Skipping integration with undecryptable credential: %s",
                    exc,
                    extra={"integration_id": row.id},
                )
                continue
        return configs

    def get_active_config(self, integration_id: str) -> IntegrationConfig:
        """Return one active integration with its decrypted credential."""

        session = self._session_factory()
        try:
            row = self._get(session, integration_id)
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to load integration {integration_id}: {exc}") from exc
        finally:
            session.close()
        if not row.active:
            raise NotFoundError(
                f"Integration '{integration_id}' is not active.",
                payload={"integration_id": integration_id},
            )
        return self._to_config(row)

    def _to_config(self, row: Integration) -> IntegrationConfig:
        return IntegrationConfig(
            id=row.id,
            name=row.name,
            provider=row.provider,
            base_url=row.base_url,
            api_key=self._cipher.decrypt(row.api_key_enc),
            priority=row.priority,
            poll_interval_seconds=row.poll_interval_seconds,
        )

    @staticmethod
    def _get(session: Session, integration_id: str) -> Integration:
        integration = session.get(Integration, integration_id)
        if integration is None:
            raise NotFoundError(
                f"Integration '{integration_id}' not found.",
                payload={"integration_id": integration_id},
            )
        return integration

    def _notify(self) -> None:
        if self.on_change is None:
            return
        try:
            self.on_change()
        except Exception as exc:  # noqa: BLE001 - the next periodic resync will catch up
            logger.warning("Integration change hook failed: %s", exc)


def _require(data: Mapping[str, Any], field: str) -> Any:
    value = data.get(field)
    if value is None or not str(value).strip():
        raise ValidationError(f"'{field}' is required.", payload={"field": field})
    return value


def _to_dto(row: Integration) -> IntegrationDTO:
    return IntegrationDTO(
        id=row.id,
        name=row.name,
        provider=row.provider,
        base_url=row.base_url,
        has_api_key=bool(row.api_key_enc),
        priority=row.priority,
        poll_interval_seconds=row.poll_interval_seconds,
        active=row.active,
        created_at=ensure_utc(row.created_at) if row.created_at else None,
        updated_at=ensure_utc(row.updated_at) if row.updated_at else None,
    )
