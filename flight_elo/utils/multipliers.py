"""
Inverse-frequency balance multipliers.

Rare kill categories earn more than common ones; the reference category is
pinned so an ordinary kill stays close to 1x.
"""

import math
from collections import Counter
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Tuple

from flight_elo.constants import EloConstants


@dataclass(frozen=True)
class KillMetric:
    kill_str: str
    count: int
    precision: float
    multiplier: float

    def to_dict(self) -> Dict[str, Any]:
        # JSON has no infinity, and the cap can be unbounded
        multiplier = self.multiplier if math.isfinite(self.multiplier) else None
        return {
            'killStr': self.kill_str,
            'count': self.count,
            'prec': self.precision,
            'multiplier': multiplier,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'KillMetric':
        multiplier = data.get('multiplier')
        return cls(
            kill_str=str(data['killStr']),
            count=int(data['count']),
            precision=float(data['prec']),
            multiplier=math.inf if multiplier is None else float(multiplier),
        )


class MultiplierTable:
    """Immutable snapshot of one calculator run.

    The live updater holds a reference to one of these and replaces the whole
    reference when a new run finishes, so readers never see a half-built table.
    """

    __slots__ = ('_metrics', '_by_kill_str')

    def __init__(self, metrics: Iterable[KillMetric] = ()):
        self._metrics: Tuple[KillMetric, ...] = tuple(metrics)
        self._by_kill_str: Mapping[str, KillMetric] = MappingProxyType(
            {m.kill_str: m for m in self._metrics}
        )

    @property
    def metrics(self) -> Tuple[KillMetric, ...]:
        return self._metrics

    def find(self, kill_str: str):
        return self._by_kill_str.get(kill_str)

    def get_multiplier(self, kill_str: str, default: float = 1.0) -> float:
        metric = self._by_kill_str.get(kill_str)
        return metric.multiplier if metric else default

    def to_list(self) -> List[Dict[str, Any]]:
        return [m.to_dict() for m in self._metrics]

    @classmethod
    def from_list(cls, data: Iterable[Dict[str, Any]]) -> 'MultiplierTable':
        return cls(KillMetric.from_dict(d) for d in data)

    def __len__(self):
        return len(self._metrics)

    def __iter__(self):
        return iter(self._metrics)

    def __repr__(self):
        return f"<MultiplierTable(metrics={len(self._metrics)})>"


def calculate_normalizer(precisions: Mapping[str, float], expected: float, reference_kill_str: str) -> float:
    """Scale factor that brings the reference category to exactly 1x."""
    reference_precision = precisions.get(reference_kill_str)
    if not reference_precision:
        return 1.0
    return reference_precision / expected


def calculate_multipliers(
    kill_strings: Iterable[str],
    multiplier_cap: float = math.inf,
    reference_kill_str: str = EloConstants.REFERENCE_KILL_STRING
) -> MultiplierTable:
    """
    Compute a multiplier per kill string from a multiset of counted kill strings.

    Args:
        kill_strings: Kill strings of every kill that counts towards statistics
        multiplier_cap: Upper bound for any single multiplier (may be infinite)
        reference_kill_str: Category whose multiplier becomes the normalizer

    Returns:
        MultiplierTable sorted by descending count
    """
    counts = Counter(kill_strings)
    total = sum(counts.values())
    if total == 0:
        return MultiplierTable()

    precisions = {kill_str: count / total for kill_str, count in counts.items()}
    expected = 1 / len(counts)

    normalizer = calculate_normalizer(precisions, expected, reference_kill_str)

    # Ties broken by name so two runs over the same corpus list identically
    ordered = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    metrics = [
        KillMetric(
            kill_str=kill_str,
            count=count,
            precision=precisions[kill_str],
            multiplier=min(expected / precisions[kill_str] * normalizer, multiplier_cap),
        )
        for kill_str, count in ordered
    ]
    return MultiplierTable(metrics)
