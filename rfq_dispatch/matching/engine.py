"""Agency matching engine.

Selects the approved agencies that may receive a trip request and scores
them:
1. Drop agencies that cannot be reached or would deliver to the requester
2. Score region (+3), specialization (+2) and rating (up to +1) matches
3. Keep only scored agencies, or every eligible one when nothing scored
"""

from typing import Callable, ContextManager, List, Optional, Sequence

from sqlalchemy.orm import Session

from rfq_dispatch.config.models import MatchingConfig
from rfq_dispatch.domain.models import Agency
from rfq_dispatch.logging import get_logger
from rfq_dispatch.persistence import AgencyRepository, get_session

from .models import (
    AgencyMatchResult,
    MatchCriteria,
    MatchOutcome,
    RejectedAgency,
    RejectionReason,
)

logger = get_logger(__name__, component="matching")


def normalize_tag(value: Optional[str]) -> Optional[str]:
    """Strip and casefold a tag; blank values become None."""
    if value is None:
        return None
    normalized = value.strip().casefold()
    return normalized or None


class AgencyMatcher:
    """Scores approved agencies against a trip request's criteria.

    Agencies are loaded through ``session_factory`` on every call, so a match
    always reflects the current catalog. Given the same catalog snapshot the
    result is deterministic.
    """

    def __init__(
        self,
        config: Optional[MatchingConfig] = None,
        session_factory: Callable[[], ContextManager[Session]] = get_session,
    ):
        self.config = config or MatchingConfig()
        self.session_factory = session_factory

    def match(self, criteria: MatchCriteria) -> List[AgencyMatchResult]:
        """Return matched agencies, best first."""
        with self.session_factory() as session:
            agencies = AgencyRepository(session).list_approved(self.config.min_rating)

        return self.evaluate(criteria, agencies).results

    def evaluate(self, criteria: MatchCriteria, agencies: Sequence[Agency]) -> MatchOutcome:
        """Filter and score an already loaded list of approved agencies.

        ``agencies`` must be ordered by rating descending; that order is kept
        among agencies with equal scores.
        """
        outcome = MatchOutcome(considered=len(agencies))

        if not agencies:
            logger.warning(
                "No approved agencies found",
                extra={"event": "matching.no_agencies", "destination": criteria.destination},
            )
            return outcome

        eligible = []
        for agency in agencies:
            rejection = self._check_eligibility(agency, criteria.exclude_target)
            if rejection is not None:
                outcome.rejected.append(rejection)
                logger.info(
                    f"Agency rejected: {agency.id} ({rejection.reason.value})",
                    extra={
                        "event": "matching.agency_rejected",
                        "agency_id": agency.id,
                        "reason": rejection.reason.value,
                    },
                )
                continue
            eligible.append(agency)

        outcome.eligible = len(eligible)

        wanted_regions = self._wanted_regions(criteria)
        wanted_type = normalize_tag(criteria.trip_type)

        scored = [self._score(agency, criteria, wanted_regions, wanted_type) for agency in eligible]
        # sorted() is stable, so rating order survives among equal scores
        scored = sorted(scored, key=lambda result: result.score, reverse=True)

        has_scored = any(result.score > 0 for result in scored)
        outcome.fallback = bool(scored) and not has_scored
        outcome.results = [r for r in scored if r.score > 0] if has_scored else scored

        self._log_summary(criteria, outcome)
        return outcome

    def _check_eligibility(
        self, agency: Agency, exclude_target: Optional[str]
    ) -> Optional[RejectedAgency]:
        if not agency.broadcast_targets:
            return RejectedAgency(agency.id, RejectionReason.MISSING_TARGET, "no broadcast targets")

        if exclude_target and exclude_target.strip() in agency.broadcast_targets:
            return RejectedAgency(
                agency.id,
                RejectionReason.SELF_DELIVERY,
                f"target {exclude_target} belongs to the requester",
            )

        if not agency.has_active_agents():
            return RejectedAgency(agency.id, RejectionReason.NO_ACTIVE_AGENTS, "no active agents")

        return None

    @staticmethod
    def _wanted_regions(criteria: MatchCriteria) -> dict:
        """Normalized region -> original spelling, destination first."""
        wanted = {}
        for value in [criteria.destination, *criteria.regions]:
            key = normalize_tag(value)
            if key and key not in wanted:
                wanted[key] = value.strip()
        return wanted

    def _score(
        self,
        agency: Agency,
        criteria: MatchCriteria,
        wanted_regions: dict,
        wanted_type: Optional[str],
    ) -> AgencyMatchResult:
        score = 0.0
        reasons = []

        agency_regions = {normalize_tag(region) for region in agency.regions}
        for key, original in wanted_regions.items():
            if key in agency_regions:
                score += self.config.region_weight
                reasons.append(f"region:{original}")
                break
        else:
            if wanted_regions:
                logger.debug(
                    f"Region mismatch for agency {agency.id}",
                    extra={"agency_id": agency.id, "regions": agency.regions},
                )

        if wanted_type:
            agency_specializations = {normalize_tag(s) for s in agency.specializations}
            if wanted_type in agency_specializations:
                score += self.config.specialization_weight
                reasons.append(f"specialization:{criteria.trip_type.strip()}")

        if agency.rating > 0:
            score += min(agency.rating / 5, 1.0)
            reasons.append(f"rating:{agency.rating:g}")

        return AgencyMatchResult(
            agency_id=agency.id,
            agency_name=agency.name,
            targets=list(agency.broadcast_targets),
            score=round(score, 6),
            reasons=reasons,
        )

    @staticmethod
    def _log_summary(criteria: MatchCriteria, outcome: MatchOutcome) -> None:
        logger.info(
            f"Matching completed: {len(outcome.results)} of {outcome.considered} agencies matched",
            extra={
                "event": "matching.completed",
                "destination": criteria.destination,
                "trip_type": criteria.trip_type,
                "agencies_considered": outcome.considered,
                "agencies_eligible": outcome.eligible,
                "agencies_matched": len(outcome.results),
                "agencies_rejected": len(outcome.rejected),
                "matched_ids": [r.agency_id for r in outcome.results],
                "fallback": outcome.fallback,
            },
        )
