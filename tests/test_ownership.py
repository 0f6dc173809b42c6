"""
Tests for ownership migration and the destructive cleanup.
"""

from datetime import datetime, timezone

import pytest

from luna.core.errors import MigrationError, NoIdentityError
from luna.core.models import Identity
from luna.services.ownership import OwnershipMigrator
from luna.storage.local import InMemoryResourceStorage


class RecordingSleep:
    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def resources(storage):
    return storage.resources


@pytest.fixture
def migrator(storage, bus):
    return OwnershipMigrator(storage.identities, storage.resources, bus=bus)


async def add_users(storage) -> tuple[Identity, Identity]:
    first = Identity(
        id="user_1",
        external_id="g-1",
        email="first@b.com",
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )
    second = Identity(
        id="user_2",
        external_id="g-2",
        email="second@b.com",
        created_at=datetime(2024, 6, 1, tzinfo=timezone.utc),
    )
    # Insert the newer one first so order of insertion can't pick the owner.
    await storage.identities.create(second)
    await storage.identities.create(first)
    return first, second


# =============================================================================
# Migration
# =============================================================================


class TestMigrate:
    @pytest.mark.asyncio
    async def test_unowned_records_go_to_earliest_user(self, migrator, storage, resources):
        await add_users(storage)
        resources.insert("clients", {"_id": "c1", "name": "Acme", "userId": None})
        resources.insert("clients", {"_id": "c2", "name": "Globex"})

        report = await migrator.migrate()

        assert report.owner_id == "user_1"
        assert report.owner_email == "first@b.com"
        assert report.migrated == {"clients": 2, "leads": 0}
        assert report.total_owned["clients"] == 2
        assert all(doc["userId"] == "user_1" for doc in resources.collections["clients"])

    @pytest.mark.asyncio
    async def test_empty_string_owner_is_unowned(self, migrator, storage, resources):
        await add_users(storage)
        resources.insert("leads", {"_id": "l1", "userId": ""})

        report = await migrator.migrate()
        assert report.migrated["leads"] == 1

    @pytest.mark.asyncio
    async def test_owned_records_untouched(self, migrator, storage, resources):
        await add_users(storage)
        resources.insert("clients", {"_id": "c1", "userId": "user_2"})
        resources.insert("clients", {"_id": "c2"})

        await migrator.migrate()

        owners = {d["_id"]: d["userId"] for d in resources.collections["clients"]}
        assert owners == {"c1": "user_2", "c2": "user_1"}

    @pytest.mark.asyncio
    async def test_rerun_migrates_nothing(self, migrator, storage, resources):
        await add_users(storage)
        resources.insert("clients", {"_id": "c1"})
        resources.insert("leads", {"_id": "l1", "userId": None})

        first = await migrator.migrate()
        second = await migrator.migrate()

        assert first.migrated_total == 2
        assert second.migrated_total == 0
        assert second.total_owned == first.total_owned

    @pytest.mark.asyncio
    async def test_no_identity_writes_nothing(self, migrator, resources, bus):
        resources.insert("clients", {"_id": "c1", "userId": None})

        with pytest.raises(NoIdentityError):
            await migrator.migrate()

        assert resources.collections["clients"][0]["userId"] is None
        assert not bus.get_history("ownership.migrated")

    def test_no_identity_is_a_migration_error(self):
        assert issubclass(NoIdentityError, MigrationError)

    @pytest.mark.asyncio
    async def test_non_canonical_owners_reported_not_rewritten(self, migrator, storage, resources):
        await add_users(storage)
        resources.insert("clients", {"_id": "c1", "userId": 42})
        resources.insert("clients", {"_id": "c2", "userId": None})

        report = await migrator.migrate()

        assert report.non_canonical["clients"] == 1
        assert report.migrated["clients"] == 1
        assert resources.collections["clients"][0]["userId"] == 42

    @pytest.mark.asyncio
    async def test_delay_before_writes(self, migrator, storage, resources):
        await add_users(storage)
        resources.insert("clients", {"_id": "c1"})
        sleep = RecordingSleep()

        await migrator.migrate(delay_seconds=5, sleep=sleep)
        assert sleep.calls == [5]

    @pytest.mark.asyncio
    async def test_no_delay_when_nothing_to_do(self, migrator, storage):
        await add_users(storage)
        sleep = RecordingSleep()

        await migrator.migrate(delay_seconds=5, sleep=sleep)
        assert sleep.calls == []

    @pytest.mark.asyncio
    async def test_publishes_event(self, migrator, storage, resources, bus):
        await add_users(storage)
        resources.insert("leads", {"_id": "l1"})

        await migrator.migrate()

        [event] = bus.get_history("ownership.migrated")
        assert event.identity_id == "user_1"
        assert event.payload["migrated"]["leads"] == 1


# =============================================================================
# Cleanup
# =============================================================================


class TestCleanupUnowned:
    @pytest.mark.asyncio
    async def test_deletes_only_unowned(self, migrator, resources):
        resources.insert("clients", {"_id": "c1", "userId": "user_1"})
        resources.insert("clients", {"_id": "c2", "userId": None})
        resources.insert("leads", {"_id": "l1"})
        sleep = RecordingSleep()

        report = await migrator.cleanup_unowned(sleep=sleep)

        assert report.deleted == {"clients": 1, "leads": 1}
        assert [d["_id"] for d in resources.collections["clients"]] == ["c1"]
        assert resources.collections["leads"] == []
        assert sleep.calls == [10]

    @pytest.mark.asyncio
    async def test_nothing_to_delete(self, migrator, resources):
        resources.insert("clients", {"_id": "c1", "userId": "user_1"})
        sleep = RecordingSleep()

        report = await migrator.cleanup_unowned(sleep=sleep)

        assert report.deleted_total == 0
        assert sleep.calls == []

    @pytest.mark.asyncio
    async def test_migrate_never_deletes(self, migrator, storage, resources):
        await add_users(storage)
        resources.insert("clients", {"_id": "c1", "userId": 42})

        await migrator.migrate()
        assert len(resources.collections["clients"]) == 1


# =============================================================================
# In-memory resources
# =============================================================================


class TestInMemoryResourceStorage:
    @pytest.mark.asyncio
    async def test_shares_caller_supplied_empty_dict(self):
        collections = {}
        resources = InMemoryResourceStorage(collections)

        collections["clients"] = [{"_id": "c1"}]

        assert resources.collections is collections
        assert await resources.count_unowned("clients") == 1
