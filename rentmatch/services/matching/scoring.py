"""Pure compatibility scoring between a client intent and a business profile.

Every factor lands in [0, 1]. A factor whose inputs are missing on either side
scores the neutral 0.5 so partially filled profiles still rank.
"""

import math
from dataclasses import dataclass

from rentmatch.common.config import WEIGHT_TOLERANCE, EngineSettings
from rentmatch.repository.records import Profile

NEUTRAL = 0.5
EVERYTHING = "everything"
EARTH_RADIUS_KM = 6371.0088


@dataclass(frozen=True)
class MatchWeights:
    category: float
    location: float
    price: float

    def __post_init__(self) -> None:
        if min(self.category, self.location, self.price) < 0:
            raise ValueError("match weights must be non-negative")
        total = self.category + self.location + self.price
        if abs(total - 1.0) > WEIGHT_TOLERANCE:
            raise ValueError(f"match weights must sum to 1 (got {total:.6f})")

    @classmethod
    def from_settings(cls, settings: EngineSettings) -> "MatchWeights":
        return cls(
            category=settings.category_weight,
            location=settings.location_weight,
            price=settings.price_weight,
        )


@dataclass(frozen=True)
class ClientIntent:
    """What a client wants to rent: interests, budget window and where."""

    categories: frozenset[str] = frozenset()
    budget_min_cents: int | None = None
    budget_max_cents: int | None = None
    location: str | None = None
    latitude: float | None = None
    longitude: float | None = None

    @classmethod
    def from_profile(cls, profile: Profile) -> "ClientIntent":
        return cls(
            categories=profile.categories,
            budget_min_cents=profile.price_min_cents,
            budget_max_cents=profile.price_max_cents,
            location=profile.location,
            latitude=profile.latitude,
            longitude=profile.longitude,
        )


@dataclass(frozen=True)
class ScoreBreakdown:
    score: float
    category: float
    location: float
    price: float


def _normalize(values) -> set[str]:
    return {value.strip().casefold() for value in values if value and value.strip()}


def category_score(wanted: frozenset[str], offered: frozenset[str]) -> float:
    """Jaccard similarity over category ids."""

    wanted_set = _normalize(wanted)
    offered_set = _normalize(offered)
    if not wanted_set or not offered_set:
        return NEUTRAL
    if EVERYTHING in wanted_set:
        return 1.0
    return len(wanted_set & offered_set) / len(wanted_set | offered_set)


def _haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


def _location_parts(location: str | None) -> list[str]:
    if not location:
        return []
    return [part.strip().casefold() for part in location.split(",") if part.strip()]


def location_score(
    intent: ClientIntent, candidate: Profile, max_distance_km: float
) -> float:
    """Coordinates when both sides have them, otherwise place-name overlap.

    Place names are comma separated, most specific first
    (`"Sea Point, Cape Town, Western Cape"`).
    """

    if None not in (intent.latitude, intent.longitude, candidate.latitude, candidate.longitude):
        km = _haversine_km(intent.latitude, intent.longitude, candidate.latitude, candidate.longitude)
        return max(0.0, 1.0 - km / max_distance_km)

    ours = _location_parts(intent.location)
    theirs = _location_parts(candidate.location)
    if not ours or not theirs:
        return NEUTRAL
    if ours == theirs:
        return 1.0
    if ours[0] == theirs[0]:
        return 0.8
    if set(ours) & set(theirs):
        return 0.3
    return 0.0


def _window(low: int | None, high: int | None) -> tuple[int, int] | None:
    if low is None and high is None:
        return None
    if low is None:
        low = high
    if high is None:
        high = low
    return (min(low, high), max(low, high))


def price_score(intent: ClientIntent, candidate: Profile) -> float:
    """Overlap of the client budget and the business pricing window.

    No overlap scores zero rather than excluding the candidate.
    """

    budget = _window(intent.budget_min_cents, intent.budget_max_cents)
    pricing = _window(candidate.price_min_cents, candidate.price_max_cents)
    if budget is None or pricing is None:
        return NEUTRAL
    low = max(budget[0], pricing[0])
    high = min(budget[1], pricing[1])
    if low > high:
        return 0.0
    shorter = min(budget[1] - budget[0], pricing[1] - pricing[0])
    if shorter == 0:
        return 1.0
    return (high - low) / shorter


def score_breakdown(
    intent: ClientIntent,
    candidate: Profile,
    weights: MatchWeights,
    max_distance_km: float = 100.0,
) -> ScoreBreakdown:
    category = category_score(intent.categories, candidate.categories)
    location = location_score(intent, candidate, max_distance_km)
    price = price_score(intent, candidate)
    total = weights.category * category + weights.location * location + weights.price * price
    return ScoreBreakdown(
        score=round(min(1.0, max(0.0, total)), 4),
        category=round(category, 4),
        location=round(location, 4),
        price=round(price, 4),
    )


def score(
    intent: ClientIntent,
    candidate: Profile,
    weights: MatchWeights,
    max_distance_km: float = 100.0,
) -> float:
    return score_breakdown(intent, candidate, weights, max_distance_km).score
