"""Flight sim rating engine: live kill/death updates plus an hourly season replay."""

__version__ = "1.0.0"
