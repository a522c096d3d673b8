"""
streakbot.database.tenants — Per-Guild Directory Layout
========================================================

Each tenant (guild) owns one directory under ``data_dir``::

    <data_dir>/<tenant_id>/config.json
    <data_dir>/<tenant_id>/userDatabase.json

:class:`TenantRepository` turns those raw documents into typed
:class:`~streakbot.database.models.TenantConfig` and
:class:`~streakbot.database.models.UserRecord` objects, running the
migration chain on every load.  All file access goes through one shared
:class:`~streakbot.database.store.DocumentStore` so the per-path write
queue covers every caller.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from streakbot.constants import CONFIG_FILENAME, USER_DATABASE_FILENAME
from streakbot.database.migrations import migrate_config, migrate_user_database
from streakbot.database.models import TenantConfig, UserRecord
from streakbot.database.store import DocumentStore

logger = logging.getLogger(__name__)

_TENANT_ID = re.compile(r"^[A-Za-z0-9_-]+$")


@dataclass(frozen=True, slots=True)
class TenantPaths:
    root: Path

    @property
    def config(self) -> Path:
        return self.root / CONFIG_FILENAME

    @property
    def users(self) -> Path:
        return self.root / USER_DATABASE_FILENAME


class TenantRepository:
    """Typed access to every tenant's documents under *data_dir*."""

    def __init__(self, data_dir: str | Path, store: DocumentStore | None = None) -> None:
        self.data_dir = Path(data_dir)
        self.store = store or DocumentStore()

    def paths(self, tenant_id: str) -> TenantPaths:
        tenant_id = str(tenant_id)
        if not _TENANT_ID.match(tenant_id):
            raise ValueError(f"Invalid tenant id: {tenant_id!r}")
        return TenantPaths(self.data_dir / tenant_id)

    def list_tenants(self) -> list[str]:
        """Tenant ids that have a directory on disk."""
        if not self.data_dir.is_dir():
            return []
        return sorted(
            p.name for p in self.data_dir.iterdir()
            if p.is_dir() and _TENANT_ID.match(p.name)
        )

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    async def initialize(self, tenant_id: str, *, now: datetime | None = None) -> bool:
        """Create the tenant directory with default documents.

        Returns True when the tenant was created, False when it already
        existed (in which case the config is loaded so defaults such as
        ``streak.enabledAt`` get backfilled).
        """
        paths = self.paths(tenant_id)
        now = now or datetime.now(UTC)

        if await self.store.exists(paths.config):
            await self.load_config(tenant_id, now=now)
            return False

        await asyncio.to_thread(paths.root.mkdir, parents=True, exist_ok=True)
        config = TenantConfig()
        config.streak.enabled_at = now.isoformat()
        await self.store.save(paths.config, config.to_dict())
        await self.store.save(paths.users, {}, allow_empty=True)
        logger.info("Initialized tenant %s at %s", tenant_id, paths.root)
        return True

    # -------------------------------------------------------------------
    # Config
    # -------------------------------------------------------------------
    async def load_config(self, tenant_id: str, *, now: datetime | None = None) -> TenantConfig:
        """Load, upgrade and backfill the tenant config.

        If the upgraded document differs from what is on disk it is written
        back, so legacy configs are converted once.
        """
        path = self.paths(tenant_id).config
        raw = await self.store.load(path)
        config = migrate_config(raw, now=now or datetime.now(UTC))
        upgraded = config.to_dict()
        if upgraded != raw:
            logger.info("Backfilled config defaults for tenant %s", tenant_id)
            await self.store.save(path, upgraded)
        return config

    async def save_config(self, tenant_id: str, config: TenantConfig) -> bool:
        return await self.store.save(self.paths(tenant_id).config, config.to_dict())

    # -------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------
    async def load_users(self, tenant_id: str) -> dict[str, UserRecord]:
        document = await self.store.load(self.paths(tenant_id).users)
        return migrate_user_database(document)

    async def save_users(
        self,
        tenant_id: str,
        users: dict[str, UserRecord],
        *,
        allow_empty: bool = False,
    ) -> bool:
        document = {user_id: record.to_dict() for user_id, record in users.items()}
        return await self.store.save(
            self.paths(tenant_id).users, document, allow_empty=allow_empty,
        )
