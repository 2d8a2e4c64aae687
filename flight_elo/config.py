import math
import os
from dotenv import load_dotenv

load_dotenv()


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    if raw.strip().lower() in ('inf', 'infinity', 'none'):
        return math.inf
    return float(raw)


class Config:
    """Service configuration settings"""

    # Discord settings
    DISCORD_TOKEN = os.getenv('DISCORD_TOKEN')
    OWNER_DISCORD_ID = int(os.getenv('OWNER_DISCORD_ID', 0))
    COMMAND_PREFIX = os.getenv('COMMAND_PREFIX', '!')

    # Database settings
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///flight_elo.db')

    DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'

    # Rating settings
    BASE_ELO = _float_env('ELO_BASE', 2000)
    BASE_STEAL_POINTS = _float_env('ELO_BASE_STEAL_POINTS', 10)
    MIN_STEAL_POINTS = _float_env('ELO_MIN_STEAL_POINTS', 0.1)
    MAX_STEAL_POINTS = _float_env('ELO_MAX_STEAL_POINTS', 150)
    STEAL_GAIN_RATE = _float_env('ELO_STEAL_GAIN_RATE', 1 / 100)    # Per point the victim is above the killer
    STEAL_LOSS_RATE = _float_env('ELO_STEAL_LOSS_RATE', 0.5 / 100)  # Per point the victim is below the killer
    TEAM_KILL_PENALTY = _float_env('ELO_TEAM_KILL_PENALTY', 0.0)
    MULTIPLIER_CAP = _float_env('ELO_MULTIPLIER_CAP', math.inf)
    KILLS_TO_RANK = int(os.getenv('KILLS_TO_RANK', 10))

    # Replay settings
    REPLAY_INTERVAL_HOURS = float(os.getenv('REPLAY_INTERVAL_HOURS', 1))
    REPLAY_TIMEOUT_SECONDS = float(os.getenv('REPLAY_TIMEOUT_SECONDS', 1800))
    REPLAY_BATCH_SIZE = int(os.getenv('REPLAY_BATCH_SIZE', 1000))
    DUMP_DIR = os.getenv('DUMP_DIR', '../hourlyReport')
    USER_LOG_DIR = os.getenv('USER_LOG_DIR', '../userLogs')
    USER_BACKUP_DIR = os.getenv('USER_BACKUP_DIR', '../users')

    @classmethod
    def get_async_database_url(cls, database_url: str = None) -> str:
        """Convert a sqlite URL to its aiosqlite form if needed"""
        url = database_url or cls.DATABASE_URL
        if url.startswith('sqlite:///'):
            url = url.replace('sqlite:///', 'sqlite+aiosqlite:///')
        return url

    @classmethod
    def validate(cls):
        """Validate that required configuration is present"""
        if not cls.DISCORD_TOKEN:
            raise ValueError("DISCORD_TOKEN is required")
        if cls.MIN_STEAL_POINTS > cls.MAX_STEAL_POINTS:
            raise ValueError("ELO_MIN_STEAL_POINTS must not exceed ELO_MAX_STEAL_POINTS")
        if cls.MULTIPLIER_CAP <= 0:
            raise ValueError("ELO_MULTIPLIER_CAP must be positive")
        if cls.REPLAY_BATCH_SIZE <= 0:
            raise ValueError("REPLAY_BATCH_SIZE must be positive")
