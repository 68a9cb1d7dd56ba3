"""Persistence layer exceptions.

All persistence exceptions inherit from PersistenceError so callers can catch
every store failure with a single except clause. The delivery path classifies
the subclasses differently: connectivity problems are worth retrying, missing
records and constraint violations are not.
"""


class PersistenceError(Exception):
    """Base exception for all persistence layer errors."""

    pass


class DatabaseConnectionError(PersistenceError):
    """Raised when database connection or initialization fails.

    Examples:
    - Invalid database URL format
    - Database file not accessible
    - Session requested before init_database()
    """

    pass


class RecordNotFoundError(PersistenceError):
    """Raised when a required database record is not found.

    Used by operations that expect a record to exist (loading the trip request
    being distributed, status writes on a distribution). Optional lookups
    return None instead.
    """

    pass


class DataIntegrityError(PersistenceError):
    """Raised when a database constraint is violated.

    Examples:
    - A second Distribution for the same (trip request, agency) pair
    - A Distribution referencing an unknown trip request or agency
    """

    pass
