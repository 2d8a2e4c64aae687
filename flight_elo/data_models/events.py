"""
Event data models shared by the live updater and the replay engine.

Kills, deaths and login/logout actions are immutable records. Raw payloads
(API bodies, NDJSON dump lines) are validated into these dataclasses at the
boundary through ``from_dict`` and never reach the rating engine untyped.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, Optional, Tuple, Union

from flight_elo.utils.elo_exceptions import InvalidRecordError


class Aircraft(IntEnum):
    AV42C = 0
    FA26B = 1
    F45A = 2
    AH94 = 3
    INVALID = 4
    T55 = 5
    EF24G = 6


class Weapon(IntEnum):
    GUN = 0
    AIM120 = 1
    AIM9 = 2
    AIM7 = 3
    AIM9X = 4
    AIRST = 5
    HARM = 6
    INVALID = 7
    AIM9E = 8
    CFIT = 9
    COLLISION = 10
    AIM54 = 11
    AGM88 = 12
    AGM145 = 13
    MALD = 14


class Team(IntEnum):
    ALLIED = 0
    ENEMY = 1
    INVALID = 2


class TimeOfDay(IntEnum):
    MORNING = 0
    DAY = 1
    NIGHT = 2
    INVALID = 3


class SessionActionType(Enum):
    LOGIN = "Login"
    LOGOUT = "Logout"


class EventKind(Enum):
    KILL = "kill"
    DEATH = "death"
    ACTION = "action"


def _require(data: Dict[str, Any], key: str, record: str) -> Any:
    if not isinstance(data, dict):
        raise InvalidRecordError(record, f"expected an object, got {type(data).__name__}")
    if key not in data or data[key] is None:
        raise InvalidRecordError(record, f"missing field '{key}'")
    return data[key]


def _enum_value(enum_cls, raw: Any, record: str):
    try:
        return enum_cls(int(raw))
    except (TypeError, ValueError):
        raise InvalidRecordError(record, f"invalid {enum_cls.__name__} value {raw!r}")


@dataclass(frozen=True)
class Vector3:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'Vector3':
        if not data:
            return cls()
        try:
            return cls(float(data.get('x', 0)), float(data.get('y', 0)), float(data.get('z', 0)))
        except (TypeError, ValueError, AttributeError):
            raise InvalidRecordError("vector", f"non-numeric component in {data!r}")

    def to_dict(self) -> Dict[str, float]:
        return {'x': self.x, 'y': self.y, 'z': self.z}


@dataclass(frozen=True)
class AircraftSnapshot:
    """State of one player's aircraft at the moment of an event."""
    owner_id: str
    type: Aircraft
    team: Team
    occupants: Tuple[str, ...] = ()
    position: Vector3 = field(default_factory=Vector3)
    velocity: Vector3 = field(default_factory=Vector3)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AircraftSnapshot':
        owner_id = _require(data, 'ownerId', 'aircraft')
        return cls(
            owner_id=str(owner_id),
            type=_enum_value(Aircraft, _require(data, 'type', 'aircraft'), 'aircraft'),
            team=_enum_value(Team, _require(data, 'team', 'aircraft'), 'aircraft'),
            occupants=tuple(str(o) for o in data.get('occupants') or ()),
            position=Vector3.from_dict(data.get('position')),
            velocity=Vector3.from_dict(data.get('velocity')),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ownerId': self.owner_id,
            'type': int(self.type),
            'team': int(self.team),
            'occupants': list(self.occupants),
            'position': self.position.to_dict(),
            'velocity': self.velocity.to_dict(),
        }


@dataclass(frozen=True)
class ServerInfo:
    online_users: Tuple[str, ...] = ()
    time_of_day: TimeOfDay = TimeOfDay.INVALID
    mission_id: str = ""

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'ServerInfo':
        if not data:
            return cls()
        return cls(
            online_users=tuple(str(u) for u in data.get('onlineUsers') or ()),
            time_of_day=_enum_value(TimeOfDay, data.get('timeOfDay', TimeOfDay.INVALID), 'serverInfo'),
            mission_id=str(data.get('missionId') or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'onlineUsers': list(self.online_users),
            'timeOfDay': int(self.time_of_day),
            'missionId': self.mission_id,
        }


@dataclass(frozen=True)
class Kill:
    """A single kill. Never mutated after creation; replayed identically every run."""
    id: str
    killer: AircraftSnapshot
    victim: AircraftSnapshot
    weapon: Weapon
    time: int  # epoch milliseconds
    season: int
    weapon_uuid: str = ""
    previous_damaged_by_user_id: Optional[str] = None
    previous_damaged_by_weapon: Weapon = Weapon.INVALID
    server_info: ServerInfo = field(default_factory=ServerInfo)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Kill':
        try:
            time = int(_require(data, 'time', 'kill'))
            season = int(_require(data, 'season', 'kill'))
        except (TypeError, ValueError):
            raise InvalidRecordError("kill", "time and season must be integers")

        return cls(
            id=str(_require(data, 'id', 'kill')),
            killer=AircraftSnapshot.from_dict(_require(data, 'killer', 'kill')),
            victim=AircraftSnapshot.from_dict(_require(data, 'victim', 'kill')),
            weapon=_enum_value(Weapon, _require(data, 'weapon', 'kill'), 'kill'),
            time=time,
            season=season,
            weapon_uuid=str(data.get('weaponUuid') or ""),
            previous_damaged_by_user_id=data.get('previousDamagedByUserId'),
            previous_damaged_by_weapon=_enum_value(
                Weapon, data.get('previousDamagedByWeapon', Weapon.INVALID), 'kill'
            ),
            server_info=ServerInfo.from_dict(data.get('serverInfo')),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'killer': self.killer.to_dict(),
            'victim': self.victim.to_dict(),
            'weapon': int(self.weapon),
            'weaponUuid': self.weapon_uuid,
            'previousDamagedByUserId': self.previous_damaged_by_user_id,
            'previousDamagedByWeapon': int(self.previous_damaged_by_weapon),
            'serverInfo': self.server_info.to_dict(),
            'time': self.time,
            'season': self.season,
        }


@dataclass(frozen=True)
class Death:
    """A death. When ``kill_id`` is set the matching Kill already accounts for it."""
    id: str
    victim: AircraftSnapshot
    time: int
    season: int
    kill_id: Optional[str] = None
    server_info: ServerInfo = field(default_factory=ServerInfo)

    @property
    def is_duplicate_of_kill(self) -> bool:
        return bool(self.kill_id)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Death':
        try:
            time = int(_require(data, 'time', 'death'))
            season = int(_require(data, 'season', 'death'))
        except (TypeError, ValueError):
            raise InvalidRecordError("death", "time and season must be integers")

        return cls(
            id=str(_require(data, 'id', 'death')),
            victim=AircraftSnapshot.from_dict(_require(data, 'victim', 'death')),
            time=time,
            season=season,
            kill_id=data.get('killId') or None,
            server_info=ServerInfo.from_dict(data.get('serverInfo')),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'victim': self.victim.to_dict(),
            'killId': self.kill_id,
            'serverInfo': self.server_info.to_dict(),
            'time': self.time,
            'season': self.season,
        }


@dataclass(frozen=True)
class SessionAction:
    action: SessionActionType
    user_id: str


@dataclass(frozen=True)
class ReplayEvent:
    """One entry of the globally time-ordered replay stream."""
    kind: EventKind
    time: int
    payload: Union[Kill, Death, SessionAction]
