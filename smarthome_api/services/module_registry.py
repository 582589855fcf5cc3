"""
Module Registry

Durable store of installed modules. One row per module, keyed by the module
name from mfe-manifest.json; the primary key is what keeps two installs of the
same name from both succeeding.

Older releases kept the same records in a flat JSON file
(installed-modules.json, name -> record). ensure_migrated() copies that file
into the database once and renames it to <file>.bak.
"""

import json
import logging
import os
from typing import Any, Dict, List, Optional

from pydantic.alias_generators import to_snake
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..models import ModuleRecord
from ..schemas import InstalledModule

logger = logging.getLogger(__name__)

# Legacy keys that do not map 1:1 onto the current field names
_LEGACY_KEY_ALIASES = {
    "node_port": "mfe_node_port",
}


class DuplicateModuleError(Exception):
    """A module with the same name is already installed."""

    def __init__(self, name: str):
        super().__init__(f"Module '{name}' is already installed")
        self.name = name


class ModuleNotInstalledError(Exception):
    """No installed module with the given name."""

    def __init__(self, name: str):
        super().__init__(f"Module '{name}' not found")
        self.name = name


def _normalize_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    normalized = {}
    for key, value in data.items():
        snake = to_snake(key)
        normalized[_LEGACY_KEY_ALIASES.get(snake, snake)] = value
    return normalized


def legacy_record_to_module(data: Dict[str, Any]) -> InstalledModule:
    """
    Convert one entry of installed-modules.json into an InstalledModule.

    The file was written with PascalCase keys; camelCase and snake_case are
    accepted too. Nested tile/fields objects are normalized the same way, but
    the keys of serviceFieldValues are field names and are kept verbatim.
    """
    record = _normalize_keys(data)
    if isinstance(record.get("tile"), dict):
        record["tile"] = _normalize_keys(record["tile"])
    if isinstance(record.get("fields"), list):
        record["fields"] = [
            _normalize_keys(field) if isinstance(field, dict) else field
            for field in record["fields"]
        ]
    if record.get("service_field_values") is None:
        record.pop("service_field_values", None)
    return InstalledModule.model_validate(record)


class ModuleRegistry:
    """CRUD access to installed module records."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    @staticmethod
    def _to_schema(record: ModuleRecord) -> InstalledModule:
        return InstalledModule.model_validate(record)

    @staticmethod
    def _to_row(module: InstalledModule) -> Dict[str, Any]:
        return module.model_dump(mode="python")

    async def find_all(self) -> List[InstalledModule]:
        async with self.session_factory() as session:
            result = await session.execute(select(ModuleRecord).order_by(ModuleRecord.installed_at))
            return [self._to_schema(record) for record in result.scalars().all()]

    async def find_by_name(self, name: str) -> Optional[InstalledModule]:
        async with self.session_factory() as session:
            record = await session.get(ModuleRecord, name)
            return self._to_schema(record) if record else None

    async def count(self) -> int:
        async with self.session_factory() as session:
            result = await session.execute(select(func.count()).select_from(ModuleRecord))
            return result.scalar_one()

    async def insert(self, module: InstalledModule) -> None:
        """
        Insert a new module record.

        Raises:
            DuplicateModuleError: If a module with the same name exists
        """
        async with self.session_factory() as session:
            session.add(ModuleRecord(**self._to_row(module)))
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise DuplicateModuleError(module.name) from e
        logger.debug(f"[REGISTRY] Inserted module {module.name}")

    async def update(self, module: InstalledModule) -> None:
        """
        Replace the stored record with the same name.

        Raises:
            ModuleNotInstalledError: If no module with that name exists
        """
        async with self.session_factory() as session:
            record = await session.get(ModuleRecord, module.name)
            if record is None:
                raise ModuleNotInstalledError(module.name)

            for key, value in self._to_row(module).items():
                if key != "name":
                    setattr(record, key, value)
            await session.commit()
        logger.debug(f"[REGISTRY] Updated module {module.name}")

    async def delete(self, name: str) -> bool:
        """Delete a module record. Returns False if there was none."""
        async with self.session_factory() as session:
            result = await session.execute(delete(ModuleRecord).where(ModuleRecord.name == name))
            await session.commit()
            deleted = result.rowcount > 0
        logger.debug(f"[REGISTRY] Deleted module {name}: {deleted}")
        return deleted

    async def ensure_migrated(self, json_file_path: str) -> int:
        """
        Import installed-modules.json into an empty registry.

        Failures are logged and swallowed; the registry keeps working (possibly
        empty) either way.

        Returns:
            Number of migrated modules
        """
        try:
            existing = await self.count()
            if existing > 0:
                logger.info(f"[REGISTRY] Database already contains {existing} modules, skipping migration")
                return 0

            if not os.path.exists(json_file_path):
                logger.info("[REGISTRY] No existing JSON file to migrate")
                return 0

            with open(json_file_path, 'r', encoding='utf-8') as f:
                legacy = json.load(f)

            if not legacy:
                logger.info("[REGISTRY] No modules found in JSON file")
                return 0

            modules = [legacy_record_to_module(entry) for entry in legacy.values()]

            # Single commit: a failed import leaves the registry empty
            async with self.session_factory() as session:
                session.add_all([ModuleRecord(**self._to_row(module)) for module in modules])
                await session.commit()

            logger.info(f"[REGISTRY] Migrated {len(modules)} modules from JSON to database")

            backup_path = json_file_path + ".bak"
            os.replace(json_file_path, backup_path)
            logger.info(f"[REGISTRY] Renamed old JSON file to {backup_path}")
            return len(modules)

        except Exception as e:
            logger.error(f"[REGISTRY] Failed to migrate modules from JSON file: {e}", exc_info=True)
            return 0


# Global instance - lazily initialized
_registry_instance: Optional[ModuleRegistry] = None


def get_module_registry() -> ModuleRegistry:
    """Get or create the global registry bound to the application database."""
    global _registry_instance
    if _registry_instance is None:
        from ..database import AsyncSessionLocal
        _registry_instance = ModuleRegistry(AsyncSessionLocal)
    return _registry_instance
