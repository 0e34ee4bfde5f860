"""
Restore behavior configuration.

Two options decide what restore does when it would break a type's shape:

    singleTypeRestoreBehavior:  soft-delete | delete-permanently
        What happens to the live record of a single-kind type when another
        record of that type is restored.
    versionedRestoreBehavior:   restore-as-draft | restore-unchanged
        Whether a versioned document comes back as a draft only, or with
        every version as it was.

The configuration is stored as one settings value in the record store.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..store.base import RecordStore

logger = logging.getLogger(__name__)

SETTINGS_KEY = "soft-delete.behavior"


class SingleTypeRestoreBehavior(str, Enum):
    SOFT_DELETE = "soft-delete"
    DELETE_PERMANENTLY = "delete-permanently"


class VersionedRestoreBehavior(str, Enum):
    RESTORE_AS_DRAFT = "restore-as-draft"
    RESTORE_UNCHANGED = "restore-unchanged"


class BehaviorConfig(BaseModel):
    """Restore behavior options.

    Accepts both snake_case field names and the camelCase aliases.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)

    single_type_restore_behavior: SingleTypeRestoreBehavior = Field(
        default=SingleTypeRestoreBehavior.SOFT_DELETE,
        alias="singleTypeRestoreBehavior",
    )
    versioned_restore_behavior: VersionedRestoreBehavior = Field(
        default=VersionedRestoreBehavior.RESTORE_UNCHANGED,
        alias="versionedRestoreBehavior",
    )

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class BehaviorConfigStore:
    """Reads and writes the BehaviorConfig settings value."""

    def __init__(self, store: RecordStore, key: str = SETTINGS_KEY) -> None:
        self.store = store
        self.key = key

    async def ensure_defaults(self) -> BehaviorConfig:
        """Back-fill missing options with their defaults and persist."""
        raw = await self.store.get_setting(self.key)
        stored = raw if isinstance(raw, dict) else {}
        config = BehaviorConfig.model_validate(stored)

        if config.to_storage() != stored:
            await self.store.put_setting(self.key, config.to_storage())
            logger.info("Initialized restore behavior defaults", extra=config.to_storage())
        return config

    async def get(self) -> BehaviorConfig:
        raw = await self.store.get_setting(self.key)
        return BehaviorConfig.model_validate(raw if isinstance(raw, dict) else {})

    async def set(self, config: BehaviorConfig | dict[str, Any]) -> BehaviorConfig:
        """Validate and persist a new configuration.

        Partial dicts are merged over the current values.

        Raises:
            pydantic.ValidationError: If an option has an unrecognized value
        """
        if isinstance(config, dict):
            current = (await self.get()).model_dump(by_alias=False)
            merged = BehaviorConfig.model_validate(config).model_dump(
                by_alias=False, exclude_unset=True
            )
            config = BehaviorConfig.model_validate({**current, **merged})

        await self.store.put_setting(self.key, config.to_storage())
        logger.info("Updated restore behavior", extra=config.to_storage())
        return config
