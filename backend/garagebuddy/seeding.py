"""One-shot population of reference tables.

Each seeder checks whether its table already holds seeded rows and, if
not, schedules the static records through the generic repository.
Seeders never commit; `ApplicationDbContextSeeder` runs them all and then
saves once, so a failing seeder leaves the store untouched.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Sequence, Type

from sqlmodel.ext.asyncio.session import AsyncSession

from .config import settings
from .constants import ADMINISTRATOR_ROLE_NAME
from .identity import normalize
from .models import ApplicationRole, AuditedModel, Brand, GearboxType
from .repositories import SQLModelRepository

logger = logging.getLogger(__name__)


def get_seed_data_from_json(file_name: str, model: Type[AuditedModel], seed_dir: Optional[Path] = None) -> List[AuditedModel]:
    """Load `file_name` (a JSON list of records) and build `model` instances."""
    path = Path(seed_dir or settings.SEED_DATA_DIR) / file_name
    records = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(records, list):
        raise ValueError(f"seed file {path} must contain a JSON list")
    return [model.model_validate(record) for record in records]


class Seeder(ABC):
    @abstractmethod
    async def seed(self, session: AsyncSession) -> int:
        """Seed through `session`; return the rows scheduled, or written when the seeder saves."""


class ReferenceDataSeeder(Seeder):
    """Seeds a table whose rows carry an `is_seeded` flag."""
    model: Type[AuditedModel]
    file_name: str

    def __init__(self, seed_dir: Optional[Path] = None):
        self.seed_dir = seed_dir

    async def seed(self, session: AsyncSession) -> int:
        repository = SQLModelRepository(session, self.model)
        if await repository.any(self.model.is_seeded == True):  # noqa: E712
            logger.debug("%s already seeded", self.model.__tablename__)
            return 0
        records = get_seed_data_from_json(self.file_name, self.model, self.seed_dir)
        for record in records:
            record.is_seeded = True
        repository.add_range(records)
        logger.info("scheduled %d seed row(s) for %s", len(records), self.model.__tablename__)
        return len(records)


class BrandSeeder(ReferenceDataSeeder):
    model = Brand
    file_name = "BrandSeed.json"


class GearboxTypeSeeder(ReferenceDataSeeder):
    model = GearboxType
    file_name = "GearboxTypeSeed.json"


class RoleSeeder(Seeder):
    """Schedules the built-in roles that do not exist yet."""

    def __init__(self, role_names: Sequence[str] = (ADMINISTRATOR_ROLE_NAME,)):
        self.role_names = role_names

    async def seed(self, session: AsyncSession) -> int:
        roles = SQLModelRepository(session, ApplicationRole)
        scheduled = 0
        for name in self.role_names:
            if await roles.any(ApplicationRole.normalized_name == normalize(name)):
                continue
            roles.add(ApplicationRole(name=name, normalized_name=normalize(name)))
            scheduled += 1
            logger.info("scheduled role %s", name)
        return scheduled


class ApplicationDbContextSeeder(Seeder):
    """Runs every seeder in order, then saves the whole batch once."""

    def __init__(self, seeders: Optional[Sequence[Seeder]] = None, seed_dir: Optional[Path] = None):
        self.seeders = list(seeders) if seeders is not None else [
            RoleSeeder(),
            BrandSeeder(seed_dir),
            GearboxTypeSeeder(seed_dir),
        ]

    async def seed(self, session: AsyncSession) -> int:
        for seeder in self.seeders:
            scheduled = await seeder.seed(session)
            logger.info("seeder %s scheduled %d row(s)", type(seeder).__name__, scheduled)
        return await SQLModelRepository(session, ApplicationRole).save_changes()
