"""
Custom exceptions for the rating engine with user-friendly error messages.
"""

class EloEngineError(Exception):
    """Base exception for rating engine errors."""
    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message

class MissingUserError(EloEngineError):
    """Raised when the killer or victim of an event has no user record."""
    def __init__(self, user_id: str, role: str = "user"):
        self.user_id = user_id
        self.role = role
        super().__init__(
            f"{role.capitalize()} {user_id} not found",
            "❌ That pilot has no rating record yet."
        )

class InvalidRecordError(EloEngineError):
    """Raised when an incoming payload cannot be validated into an event record."""
    def __init__(self, record_type: str, reason: str):
        self.record_type = record_type
        super().__init__(
            f"Invalid {record_type} record: {reason}",
            "❌ Malformed event data."
        )

class StreamParseError(EloEngineError):
    """Raised when a dump file contains a malformed line. Aborts the replay run."""
    def __init__(self, path: str, line_number: int, details: str = None):
        self.path = path
        self.line_number = line_number
        super().__init__(
            f"Malformed record in {path} at line {line_number}: {details}",
            "❌ Rating recalculation failed, previous multipliers stay in effect."
        )

class NoActiveSeasonError(EloEngineError):
    """Raised when an operation needs the active season and there is none."""
    def __init__(self):
        super().__init__(
            "No active season found",
            "❌ There is no active season."
        )

class ReplayProcessError(EloEngineError):
    """Raised when the replay subprocess fails to start, times out or exits non-zero."""
    def __init__(self, reason: str, exit_code: int = None):
        self.exit_code = exit_code
        super().__init__(
            f"Replay process failed ({reason}), exit code {exit_code}",
            "❌ Rating recalculation failed, previous multipliers stay in effect."
        )
