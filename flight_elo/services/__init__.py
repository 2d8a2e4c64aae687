"""
Services package for the rating engine.

Long-lived objects wired up by the bot at startup: configuration overrides,
the live updater and the replay orchestrator.
"""

from .base import BaseService
from .configuration import ConfigurationService
from .elo_updater import LiveEloService

__all__ = ['BaseService', 'ConfigurationService', 'LiveEloService']
