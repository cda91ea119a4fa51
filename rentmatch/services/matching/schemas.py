"""API schemas for match ranking."""

from pydantic import BaseModel

from rentmatch.repository.records import Profile


class MatchFactors(BaseModel):
    category: float
    location: float
    price: float


class MatchResult(BaseModel):
    """One ranked counterparty."""

    profile: Profile
    score: float
    factors: MatchFactors


class MatchListResponse(BaseModel):
    subject_type: str
    subject_id: str
    matches: list[MatchResult]
    count: int
