"""
Ownership migration - assign un-owned business records to a user.

Records created before multi-user support have no owner. `migrate` gives
them to the earliest-registered identity; it is safe to re-run since
already-owned records are never selected. `cleanup_unowned` is the
destructive alternative and is never called by `migrate`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from luna.core import events
from luna.core.errors import NoIdentityError
from luna.core.events import EventBus
from luna.core.models import RESOURCE_TYPES
from luna.storage.base import IdentityStorage, ResourceStorage

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class MigrationReport:
    owner_id: str
    owner_email: str
    migrated: dict[str, int] = field(default_factory=dict)
    total_owned: dict[str, int] = field(default_factory=dict)
    non_canonical: dict[str, int] = field(default_factory=dict)

    @property
    def migrated_total(self) -> int:
        return sum(self.migrated.values())


@dataclass
class CleanupReport:
    deleted: dict[str, int] = field(default_factory=dict)

    @property
    def deleted_total(self) -> int:
        return sum(self.deleted.values())


class OwnershipMigrator:
    def __init__(
        self,
        identities: IdentityStorage,
        resources: ResourceStorage,
        resource_types: tuple[str, ...] = RESOURCE_TYPES,
        bus: EventBus | None = None,
    ):
        self.identities = identities
        self.resources = resources
        self.resource_types = resource_types
        self.bus = bus

    async def migrate(self, delay_seconds: float = 0, sleep: Sleep = asyncio.sleep) -> MigrationReport:
        """
        Assign every un-owned record to the earliest identity.

        The delay runs after the counts are logged and before any write, so
        an operator can still cancel.

        Raises:
            NoIdentityError: no identity exists yet (nothing is written)
        """
        owner = await self.identities.earliest()
        if owner is None:
            raise NoIdentityError("No users found. Sign in once before migrating data.")
        logger.info(f"Assigning un-owned records to {owner.email} ({owner.id})")

        report = MigrationReport(owner_id=owner.id, owner_email=owner.email)

        pending: dict[str, int] = {}
        for resource_type in self.resource_types:
            pending[resource_type] = await self.resources.count_unowned(resource_type)
            report.non_canonical[resource_type] = await self.resources.count_non_canonical(
                resource_type
            )
            logger.info(f"{resource_type}: {pending[resource_type]} without an owner")
            if report.non_canonical[resource_type]:
                logger.warning(
                    f"{resource_type}: {report.non_canonical[resource_type]} records have a "
                    f"non-string owner reference and need manual cleanup"
                )

        if not any(pending.values()):
            logger.info("No records need migration")
        elif delay_seconds > 0:
            logger.info(f"Migrating in {delay_seconds:g}s (Ctrl+C to cancel)")
            await sleep(delay_seconds)

        for resource_type in self.resource_types:
            if pending[resource_type]:
                report.migrated[resource_type] = await self.resources.assign_unowned(
                    resource_type, owner.id
                )
            else:
                report.migrated[resource_type] = 0
            report.total_owned[resource_type] = await self.resources.count_owned_by(
                resource_type, owner.id
            )
            logger.info(
                f"{resource_type}: migrated {report.migrated[resource_type]}, "
                f"{report.total_owned[resource_type]} now owned by {owner.email}"
            )

        if self.bus is not None:
            await self.bus.publish(events.ownership_migrated(owner.id, report.migrated))
        return report

    async def cleanup_unowned(
        self, confirm_delay_seconds: float = 10, sleep: Sleep = asyncio.sleep
    ) -> CleanupReport:
        """Delete every record that still has no owner. Irreversible."""
        report = CleanupReport()

        counts = {t: await self.resources.count_unowned(t) for t in self.resource_types}
        for resource_type, count in counts.items():
            logger.warning(f"{resource_type}: {count} un-owned records will be DELETED")

        if not any(counts.values()):
            logger.info("No un-owned records to delete")
            report.deleted = {t: 0 for t in self.resource_types}
            return report

        if confirm_delay_seconds > 0:
            logger.warning(f"Deleting in {confirm_delay_seconds:g}s (Ctrl+C to cancel)")
            await sleep(confirm_delay_seconds)

        for resource_type in self.resource_types:
            report.deleted[resource_type] = await self.resources.delete_unowned(resource_type)
            logger.info(f"{resource_type}: deleted {report.deleted[resource_type]}")
        return report
