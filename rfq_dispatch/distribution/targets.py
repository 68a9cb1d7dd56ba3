"""Target resolution: where a delivery for one agency should go."""

from typing import Callable, ContextManager, Optional, Set

from sqlalchemy.orm import Session

from rfq_dispatch.logging import get_logger
from rfq_dispatch.persistence import AgencyRepository, get_session

logger = get_logger(__name__, component="targets")


class TargetResolver:
    """Expands an agency into its de-duplicated set of delivery targets.

    The set is the union of the legacy target carried by the job, the
    agency's broadcast targets and one target per currently ACTIVE agent.
    Agents are read at delivery time, so membership changes made after
    matching are honored. Blank identifiers are ignored.
    """

    def __init__(self, session_factory: Callable[[], ContextManager[Session]] = get_session):
        self.session_factory = session_factory

    def resolve(self, agency_id: str, legacy_target: Optional[str] = None) -> Set[str]:
        targets: Set[str] = set()
        _add(targets, legacy_target)

        with self.session_factory() as session:
            repo = AgencyRepository(session)
            agency = repo.get(agency_id)
            agent_targets = repo.active_agent_targets(agency_id)

        if agency is None:
            logger.warning(
                f"Agency {agency_id} not found while resolving targets",
                extra={"event": "targets.agency_missing", "agency_id": agency_id},
            )
        else:
            for target in agency.broadcast_targets:
                _add(targets, target)

        for target in agent_targets:
            _add(targets, target)

        logger.debug(
            f"Resolved {len(targets)} targets for agency {agency_id}",
            extra={"event": "targets.resolved", "agency_id": agency_id, "target_count": len(targets)},
        )
        return targets


def _add(targets: Set[str], candidate: Optional[str]) -> None:
    if candidate is None:
        return
    cleaned = candidate.strip()
    if cleaned:
        targets.add(cleaned)
