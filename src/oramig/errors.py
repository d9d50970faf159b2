"""Domain errors for oramig."""


class MigrationError(RuntimeError):
    """Raised when the migration planning cannot continue safely."""
