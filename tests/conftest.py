"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from streakbot.database.models import TenantConfig, UserRecord
from streakbot.database.store import DocumentStore
from streakbot.database.tenants import TenantRepository
from streakbot.engine.progression import ProgressionEngine, StreakCooldownTracker
from streakbot.engine.spam import SpamFilter
from streakbot.services.platform import MemberInfo
from streakbot.services.progression_service import ProgressionService, TenantLocks
from streakbot.services.report_service import ReportService

TENANT = "1000"


@pytest.fixture
def store() -> DocumentStore:
    return DocumentStore()


@pytest.fixture
def repo(tmp_path, store) -> TenantRepository:
    """A TenantRepository rooted in a per-test temp directory."""
    return TenantRepository(tmp_path / "databases", store)


@pytest.fixture
def platform() -> MagicMock:
    """A PlatformClient double; every member exists unless a test says otherwise."""
    client = MagicMock()
    client.grant_role = AsyncMock()
    client.revoke_role = AsyncMock()
    client.send_message = AsyncMock()
    client.send_direct_message = AsyncMock()
    client.fetch_member = AsyncMock(
        side_effect=lambda tenant_id, user_id: MemberInfo(user_id, f"user-{user_id}"),
    )
    client.tenant_name = MagicMock(return_value="Test Guild")
    return client


@pytest.fixture
def locks() -> TenantLocks:
    return TenantLocks()


@pytest.fixture
def service(repo, platform, locks) -> ProgressionService:
    """ProgressionService with its own cooldown tracker and spam filter."""
    return ProgressionService(
        repo,
        platform,
        engine=ProgressionEngine(StreakCooldownTracker()),
        spam=SpamFilter(),
        locks=locks,
    )


@pytest.fixture
def reports(repo, platform, locks) -> ReportService:
    return ReportService(repo, platform, locks)


@pytest.fixture
def seed(repo):
    """Write a tenant's config and users straight to disk.

    Usage::

        await seed(config, {"1": UserRecord(streak=2)})
    """

    async def _seed(
        config: TenantConfig | None = None,
        users: dict[str, UserRecord] | None = None,
        tenant_id: str = TENANT,
    ) -> None:
        config = config or TenantConfig()
        if config.streak.enabled_at is None:
            config.streak.enabled_at = "2024-01-01T00:00:00+00:00"
        await repo.save_config(tenant_id, config)
        await repo.save_users(tenant_id, users or {}, allow_empty=True)

    return _seed
