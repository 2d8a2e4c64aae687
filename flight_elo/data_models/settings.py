"""
Immutable rating settings snapshot.

Built from Config plus any runtime overrides, then handed unchanged to both
the live updater and the replay worker so they apply identical rules.
"""

import logging
import math
from dataclasses import asdict, dataclass, fields, replace
from typing import Any, Dict, Mapping

from flight_elo.config import Config

logger = logging.getLogger(__name__)

_POSITIVE_SETTINGS = frozenset({'base_elo', 'base_steal_points', 'max_steal_points', 'multiplier_cap'})


@dataclass(frozen=True)
class EloSettings:
    base_elo: float = 2000
    base_steal_points: float = 10
    min_steal_points: float = 0.1
    max_steal_points: float = 150
    steal_gain_rate: float = 1 / 100
    steal_loss_rate: float = 0.5 / 100
    team_kill_penalty: float = 0.0
    multiplier_cap: float = math.inf
    kills_to_rank: int = 10

    @classmethod
    def from_config(cls) -> 'EloSettings':
        return cls(
            base_elo=Config.BASE_ELO,
            base_steal_points=Config.BASE_STEAL_POINTS,
            min_steal_points=Config.MIN_STEAL_POINTS,
            max_steal_points=Config.MAX_STEAL_POINTS,
            steal_gain_rate=Config.STEAL_GAIN_RATE,
            steal_loss_rate=Config.STEAL_LOSS_RATE,
            team_kill_penalty=Config.TEAM_KILL_PENALTY,
            multiplier_cap=Config.MULTIPLIER_CAP,
            kills_to_rank=Config.KILLS_TO_RANK,
        )

    @classmethod
    def coerce(cls, key: str, value: Any):
        """
        Convert one override to the type its setting holds.

        Raises:
            ValueError: If ``key`` is not a rating setting or ``value`` is not
                a usable number for it
        """
        if key not in {f.name for f in fields(cls)}:
            raise ValueError(f"Unknown rating setting '{key}'")
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            raise ValueError(f"{key} must be a number, got {value!r}")
        try:
            number = float(value)
        except ValueError:
            raise ValueError(f"{key} must be a number, got {value!r}") from None

        if math.isnan(number) or (math.isinf(number) and key != 'multiplier_cap'):
            raise ValueError(f"{key} must be a finite number, got {value!r}")
        if key in _POSITIVE_SETTINGS and number <= 0:
            raise ValueError(f"{key} must be greater than 0, got {value!r}")
        if number < 0:
            raise ValueError(f"{key} cannot be negative, got {value!r}")
        if key == 'kills_to_rank':
            if not number.is_integer():
                raise ValueError(f"{key} must be a whole number, got {value!r}")
            return int(number)
        return number

    def validate(self):
        """Raise ValueError if the settings contradict each other"""
        if self.min_steal_points > self.max_steal_points:
            raise ValueError(
                f"min_steal_points ({self.min_steal_points}) is above "
                f"max_steal_points ({self.max_steal_points})"
            )

    def with_overrides(self, overrides: Mapping[str, Any]) -> 'EloSettings':
        """
        Apply known keys from ``overrides``.

        Unknown keys are ignored. A value that does not fit its setting is
        logged and skipped, and if the result contradicts itself none of the
        overrides are applied.
        """
        known = {f.name for f in fields(self)}
        changes = {}
        for key, value in overrides.items():
            if key not in known or value is None:
                continue
            try:
                changes[key] = self.coerce(key, value)
            except ValueError as e:
                logger.warning(f"Ignoring rating override: {e}")
        if not changes:
            return self

        updated = replace(self, **changes)
        try:
            updated.validate()
        except ValueError as e:
            logger.warning(f"Ignoring rating overrides {sorted(changes)}: {e}")
            return self
        return updated

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if not math.isfinite(data['multiplier_cap']):
            data['multiplier_cap'] = None
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'EloSettings':
        data = dict(data)
        if data.get('multiplier_cap') is None:
            data['multiplier_cap'] = math.inf
        return cls().with_overrides(data)
