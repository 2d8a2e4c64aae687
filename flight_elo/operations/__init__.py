"""
Operations layer.

Business rules that compose the pure utilities into event handling. They work
on in-memory UserState objects only; services decide what gets loaded and
persisted around them.

- EloRules: per-event rating rules shared by the live updater and the replay
"""
