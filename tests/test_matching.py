"""Unit tests for the agency matching engine.

Tests the AgencyMatcher for:
- Scoring (region, specialization, rating bonus)
- Eligibility filters and rejection reasons
- Broadening fallback when nothing scores
- Tag normalization
- Loading approved agencies from the database
"""

from rfq_dispatch.config.models import MatchingConfig
from rfq_dispatch.domain.models import AgencyStatus
from rfq_dispatch.matching import (
    AgencyMatcher,
    MatchCriteria,
    RejectionReason,
    normalize_tag,
)
from tests.helpers import make_agency, seed_agencies


def dubai_package():
    return MatchCriteria(destination="Dubai", trip_type="PACKAGE", regions=["Dubai"])


class TestNormalizeTag:
    def test_strips_and_casefolds(self):
        assert normalize_tag("  DuBai ") == "dubai"

    def test_blank_is_none(self):
        assert normalize_tag("   ") is None
        assert normalize_tag(None) is None


class TestScoring:
    """Tests for score computation and ordering."""

    def test_scoring_example_orders_by_score(self):
        """Test full match scores 6.0 and specialization-only match scores 2.4."""
        agency_a = make_agency("a", regions=["Dubai"], specializations=["PACKAGE"], rating=5.0)
        agency_b = make_agency("b", regions=["Egypt"], specializations=["PACKAGE"], rating=2.0)

        outcome = AgencyMatcher().evaluate(dubai_package(), [agency_a, agency_b])

        assert [(r.agency_id, r.score) for r in outcome.results] == [("a", 6.0), ("b", 2.4)]
        assert outcome.results[0].reasons == ["region:Dubai", "specialization:PACKAGE", "rating:5"]
        assert outcome.results[1].reasons == ["specialization:PACKAGE", "rating:2"]
        assert not outcome.fallback

    def test_unscored_agencies_dropped_when_others_score(self):
        scored = make_agency("scored", regions=["Dubai"])
        unscored = make_agency("unscored", regions=["Paris"])

        outcome = AgencyMatcher().evaluate(dubai_package(), [scored, unscored])

        assert [r.agency_id for r in outcome.results] == ["scored"]

    def test_rating_only_agency_counts_as_scored(self):
        rated = make_agency("rated", rating=1.0)
        unrated = make_agency("unrated")

        outcome = AgencyMatcher().evaluate(dubai_package(), [rated, unrated])

        assert [(r.agency_id, r.score) for r in outcome.results] == [("rated", 0.2)]

    def test_equal_scores_keep_input_order(self):
        """Test stable sort keeps the rating-desc/id-asc order of the catalog."""
        agencies = [make_agency(agency_id, regions=["Dubai"]) for agency_id in ("c", "a", "b")]

        outcome = AgencyMatcher().evaluate(dubai_package(), agencies)

        assert [r.agency_id for r in outcome.results] == ["c", "a", "b"]

    def test_configured_weights(self):
        config = MatchingConfig(region_weight=10.0, specialization_weight=1.0)
        agency = make_agency("a", regions=["Dubai"], specializations=["PACKAGE"])

        outcome = AgencyMatcher(config).evaluate(dubai_package(), [agency])

        assert outcome.results[0].score == 11.0

    def test_region_match_uses_extra_regions(self):
        criteria = MatchCriteria(destination="Dubai", regions=["UAE"])
        agency = make_agency("a", regions=["uae"])

        outcome = AgencyMatcher().evaluate(criteria, [agency])

        assert outcome.results[0].score == 3.0
        assert outcome.results[0].reasons == ["region:UAE"]

    def test_region_counted_once(self):
        criteria = MatchCriteria(destination="Dubai", regions=["Dubai", "UAE"])
        agency = make_agency("a", regions=["Dubai", "UAE"])

        outcome = AgencyMatcher().evaluate(criteria, [agency])

        assert outcome.results[0].score == 3.0


class TestNormalization:
    def test_case_and_whitespace_insensitive(self):
        criteria = MatchCriteria(destination="  dubai ", trip_type="package ")
        agency = make_agency("a", regions=["DUBAI"], specializations=[" Package"])

        outcome = AgencyMatcher().evaluate(criteria, [agency])

        assert outcome.results[0].score == 5.0


class TestEligibility:
    """Tests for the eligibility filters."""

    def test_self_delivery_excluded(self):
        """Test an agency broadcasting to the requester's own target is rejected."""
        own = make_agency("own", regions=["Dubai"], broadcast_targets=["traveler-chat"])
        other = make_agency("other", regions=["Dubai"])
        criteria = dubai_package()
        criteria.exclude_target = "traveler-chat"

        outcome = AgencyMatcher().evaluate(criteria, [own, other])

        assert [r.agency_id for r in outcome.results] == ["other"]
        assert outcome.rejected[0].agency_id == "own"
        assert outcome.rejected[0].reason == RejectionReason.SELF_DELIVERY

    def test_missing_target_rejected(self):
        agency = make_agency("a", regions=["Dubai"], broadcast_targets=[])

        outcome = AgencyMatcher().evaluate(dubai_package(), [agency])

        assert outcome.results == []
        assert outcome.rejected[0].reason == RejectionReason.MISSING_TARGET

    def test_no_active_agents_rejected(self):
        agency = make_agency("a", regions=["Dubai"], agent_targets=[], inactive_agent_targets=["x"])

        outcome = AgencyMatcher().evaluate(dubai_package(), [agency])

        assert outcome.results == []
        assert outcome.rejected[0].reason == RejectionReason.NO_ACTIVE_AGENTS

    def test_empty_catalog(self):
        outcome = AgencyMatcher().evaluate(dubai_package(), [])

        assert outcome.results == []
        assert outcome.considered == 0


class TestFallback:
    def test_whole_eligible_set_returned_when_nothing_scores(self):
        agencies = [make_agency("a", regions=["Paris"]), make_agency("b", regions=["Rome"])]

        outcome = AgencyMatcher().evaluate(dubai_package(), agencies)

        assert [r.agency_id for r in outcome.results] == ["a", "b"]
        assert all(r.score == 0 for r in outcome.results)
        assert outcome.fallback

    def test_fallback_excludes_ineligible(self):
        agencies = [make_agency("a"), make_agency("b", broadcast_targets=[])]

        outcome = AgencyMatcher().evaluate(MatchCriteria(), agencies)

        assert [r.agency_id for r in outcome.results] == ["a"]
        assert outcome.eligible == 1


class TestMatchFromDatabase:
    """Tests for match() reading the approved catalog."""

    def test_only_approved_agencies_considered(self, database):
        seed_agencies(
            make_agency("approved", regions=["Dubai"], rating=3.0),
            make_agency("suspended", regions=["Dubai"], rating=5.0, status=AgencyStatus.SUSPENDED),
            make_agency("pending", regions=["Dubai"], status=AgencyStatus.PENDING),
        )

        results = AgencyMatcher().match(dubai_package())

        assert [r.agency_id for r in results] == ["approved"]
        assert results[0].targets == ["approved-channel"]
        assert results[0].primary_target == "approved-channel"

    def test_min_rating_filter(self, database):
        seed_agencies(
            make_agency("low", regions=["Dubai"], rating=1.0),
            make_agency("high", regions=["Dubai"], rating=4.0),
        )

        results = AgencyMatcher(MatchingConfig(min_rating=3.0)).match(dubai_package())

        assert [r.agency_id for r in results] == ["high"]

    def test_deterministic_for_same_catalog(self, database):
        seed_agencies(
            make_agency("b", regions=["Dubai"], rating=4.0),
            make_agency("a", regions=["Dubai"], rating=4.0),
            make_agency("c", specializations=["PACKAGE"], rating=5.0),
        )
        matcher = AgencyMatcher()

        first = [r.agency_id for r in matcher.match(dubai_package())]
        second = [r.agency_id for r in matcher.match(dubai_package())]

        assert first == second == ["a", "b", "c"]
