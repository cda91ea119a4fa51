"""Match ranking across a bounded candidate set.

The service holds only read-only configuration, so one instance is shared by
every concurrent request.
"""

from datetime import datetime, timezone

from rentmatch.common.config import EngineSettings
from rentmatch.common.errors import BadRequest, NotFound
from rentmatch.common.logging import logger
from rentmatch.common.metrics import match_candidates_scored_total, match_latency_seconds, match_requests_total
from rentmatch.repository.port import RepositoryPort
from rentmatch.repository.records import Profile
from rentmatch.services.matching.schemas import MatchFactors, MatchResult
from rentmatch.services.matching.scoring import ClientIntent, MatchWeights, ScoreBreakdown, score_breakdown

BUSINESS = "business"
CLIENT = "client"
SUBJECT_TYPES = (BUSINESS, CLIENT)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def rank_key(result: MatchResult) -> tuple:
    """Score desc, then most recent activity, then id for determinism."""

    last_active = result.profile.last_active_at or _EPOCH
    return (-result.score, -last_active.timestamp(), result.profile.id)


class MatchingService:
    """Ranks businesses for a client and clients for a business."""

    def __init__(self, repository: RepositoryPort, settings: EngineSettings) -> None:
        self.repository = repository
        self.weights = MatchWeights.from_settings(settings)
        self.max_distance_km = settings.max_distance_km
        self.candidate_page_size = settings.candidate_page_size
        self.max_matches = settings.max_matches
        self.timeout = settings.repository_timeout_seconds
        self.service_name = settings.service_name

    def find_matches(self, subject_type: str | None, subject_id: str | None) -> list[MatchResult]:
        """Entry point used by the HTTP layer; validates the subject first."""

        if not subject_type or subject_type not in SUBJECT_TYPES:
            raise BadRequest('type must be either "business" or "client"')
        if not subject_id or not subject_id.strip():
            raise BadRequest("subject_id is required")

        match_requests_total.labels(service=self.service_name, subject_type=subject_type).inc()
        with match_latency_seconds.labels(service=self.service_name, subject_type=subject_type).time():
            if subject_type == CLIENT:
                return self.find_business_matches(subject_id.strip())
            return self.find_client_matches(subject_id.strip())

    def find_business_matches(self, client_id: str) -> list[MatchResult]:
        client = self._subject(client_id, CLIENT)
        intent = ClientIntent.from_profile(client)
        candidates = self.repository.query_profiles(BUSINESS, limit=self.candidate_page_size, timeout=self.timeout)
        results = [
            self._result(business, score_breakdown(intent, business, self.weights, self.max_distance_km))
            for business in candidates
        ]
        return self._rank(results, client_id, len(candidates))

    def find_client_matches(self, business_id: str) -> list[MatchResult]:
        business = self._subject(business_id, BUSINESS)
        candidates = self.repository.query_profiles(CLIENT, limit=self.candidate_page_size, timeout=self.timeout)
        results = [
            self._result(
                client,
                score_breakdown(ClientIntent.from_profile(client), business, self.weights, self.max_distance_km),
            )
            for client in candidates
        ]
        return self._rank(results, business_id, len(candidates))

    def _subject(self, profile_id: str, role: str) -> Profile:
        profile = self.repository.get_profile(profile_id, timeout=self.timeout)
        if profile.role != role or not profile.active:
            raise NotFound(f"{role} profile {profile_id} not found")
        return profile

    @staticmethod
    def _result(profile: Profile, breakdown: ScoreBreakdown) -> MatchResult:
        return MatchResult(
            profile=profile,
            score=breakdown.score,
            factors=MatchFactors(
                category=breakdown.category,
                location=breakdown.location,
                price=breakdown.price,
            ),
        )

    def _rank(self, results: list[MatchResult], subject_id: str, scored: int) -> list[MatchResult]:
        match_candidates_scored_total.labels(service=self.service_name).inc(scored)
        ranked = sorted((r for r in results if r.score > 0), key=rank_key)[: self.max_matches]
        logger.info("matches ranked subject_id=%s candidates=%s returned=%s", subject_id, scored, len(ranked))
        return ranked
