"""
Mutable working copy of a pilot's rating record.

The rule engine only ever touches UserState objects. The live updater loads one
from the store, mutates it and writes it back; the replay engine keeps the
whole season in memory as UserState objects and writes back only the ones that
changed.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple


@dataclass
class UserState:
    id: str
    elo: float
    max_elo: float
    pilot_names: List[str] = field(default_factory=list)
    kills: int = 0
    deaths: int = 0
    team_kills: int = 0
    rank: Optional[int] = None
    elo_history: List[Dict[str, float]] = field(default_factory=list)
    history: List[str] = field(default_factory=list)
    is_banned: bool = False
    is_baha_banned: bool = False
    ignore_kills_against_users: List[str] = field(default_factory=list)
    login_times: List[int] = field(default_factory=list)
    logout_times: List[int] = field(default_factory=list)
    sessions: List[Dict[str, Optional[int]]] = field(default_factory=list)
    discord_id: Optional[str] = None

    @classmethod
    def new(cls, user_id: str, base_elo: float, pilot_name: Optional[str] = None) -> 'UserState':
        return cls(
            id=user_id,
            elo=base_elo,
            max_elo=base_elo,
            pilot_names=[pilot_name] if pilot_name else [],
        )

    @property
    def display_name(self) -> str:
        return self.pilot_names[0] if self.pilot_names else "Unknown"

    @property
    def has_sessions(self) -> bool:
        return bool(self.sessions or self.login_times or self.logout_times)

    def snapshot_key(self) -> Tuple[int, Optional[int], int, int]:
        """The fields a replay compares to decide whether a write is needed."""
        return round(self.elo), self.rank, self.kills, self.deaths

    def reset_for_replay(self, base_elo: float):
        self.elo = base_elo
        self.max_elo = base_elo
        self.kills = 0
        self.deaths = 0
        self.history = []
        self.elo_history = []

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'UserState':
        return cls(**data)

    def __repr__(self):
        return f"<UserState(id='{self.id}', name='{self.display_name}', elo={self.elo:.1f}, rank={self.rank})>"
