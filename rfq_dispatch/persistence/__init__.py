"""Persistence layer: the Distribution Store.

Public API:
    # Database initialization and session management
    - init_database(database_url: str) -> None
    - get_session() -> ContextManager[Session]
    - close_database() -> None
    - get_engine() -> Engine

    # Repository classes
    - TripRequestRepository: trip request reads and the distributed flip
    - AgencyRepository: approved agencies and active agent targets
    - DistributionRepository: distribution records and their status writes

    # Exceptions
    - PersistenceError and its subclasses

Example usage:
    >>> from rfq_dispatch.persistence import init_database, get_session, DistributionRepository
    >>> init_database("sqlite:///./data/rfq_dispatch.db")
    >>> with get_session() as session:
    ...     DistributionRepository(session).count_for_request("req-001")
"""

from .database import close_database, get_engine, get_session, init_database
from .exceptions import (
    DatabaseConnectionError,
    DataIntegrityError,
    PersistenceError,
    RecordNotFoundError,
)
from .repositories import AgencyRepository, DistributionRepository, TripRequestRepository

__all__ = [
    "init_database",
    "get_session",
    "close_database",
    "get_engine",
    "TripRequestRepository",
    "AgencyRepository",
    "DistributionRepository",
    "PersistenceError",
    "DatabaseConnectionError",
    "RecordNotFoundError",
    "DataIntegrityError",
]
