"""
Runtime rating overrides.

Values live in the ``configurations`` table as JSON, are cached in memory and
every change is written to the audit log. The ``elo`` category overlays the
environment defaults from Config to produce the EloSettings snapshot that both
the live updater and the replay worker use.
"""

import json
import logging
from dataclasses import replace
from typing import Any, Dict

from sqlalchemy import select

from flight_elo.data_models.settings import EloSettings
from flight_elo.database.models import Configuration, AuditLog
from flight_elo.services.base import BaseService

logger = logging.getLogger(__name__)

ELO_CATEGORY = 'elo'


class ConfigurationService(BaseService):
    """Cached, audited key/value overrides for rating settings."""

    def __init__(self, session_factory):
        super().__init__(session_factory)
        self._cache: Dict[str, Any] = {}

    async def load_all(self):
        """Reload every override from the database into memory."""
        new_cache = {}
        async with self.get_session() as session:
            result = await session.execute(select(Configuration))
            for config in result.scalars().all():
                try:
                    new_cache[config.key] = json.loads(config.value)
                except json.JSONDecodeError:
                    logger.warning(f"Invalid JSON for config key '{config.key}', skipping")

        self._cache = new_cache
        logger.info(f"Loaded {len(self._cache)} configuration overrides")

    def get(self, key: str, default: Any = None) -> Any:
        return self._cache.get(key, default)

    def get_by_category(self, category: str) -> Dict[str, Any]:
        """Overrides for one category with the ``category.`` prefix stripped."""
        prefix = f"{category}."
        return {
            key[len(prefix):]: value
            for key, value in self._cache.items()
            if key.startswith(prefix)
        }

    def get_elo_settings(self) -> EloSettings:
        """Environment defaults with any ``elo.*`` overrides applied."""
        return EloSettings.from_config().with_overrides(self.get_by_category(ELO_CATEGORY))

    async def set(self, key: str, value: Any, user_id: int):
        """
        Persist an override and record who changed it.

        Args:
            key: Configuration key, e.g. ``elo.max_steal_points``
            value: New value (JSON-encodable)
            user_id: Discord user id for the audit trail

        Raises:
            ValueError: If an ``elo.*`` key or its value is not usable, or the
                new value would put min steal points above max steal points
        """
        category, _, name = key.partition('.')
        if category == ELO_CATEGORY:
            value = EloSettings.coerce(name, value)
            replace(self.get_elo_settings(), **{name: value}).validate()

        async with self.get_session() as session:
            result = await session.execute(select(Configuration).where(Configuration.key == key))
            config = result.scalar_one_or_none()

            old_value = None
            if config:
                try:
                    old_value = json.loads(config.value)
                except json.JSONDecodeError:
                    old_value = {"error": "invalid JSON", "raw": config.value}
                config.value = json.dumps(value)
            else:
                session.add(Configuration(key=key, value=json.dumps(value)))

            session.add(AuditLog(
                user_id=user_id,
                action='config_set',
                details=json.dumps({'key': key, 'old_value': old_value, 'new_value': value})
            ))

        # Reload so the cache only ever reflects committed values
        await self.load_all()
