# SPDX-License-Identifier: Apache-2.0

"""
Match scoring for recipients and volunteers.

Pure and deterministic: the same candidates always produce the same ranking.
Ties are broken by actor id so ordering never depends on input order.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, Iterable, List, Optional, Tuple

from models.audit_details import GeoPoint
from models.entities import Actor
from models.enums import ActorRole, TrustBadge, Weekday


BADGE_SCORES = {
    TrustBadge.PLATINUM: 25,
    TrustBadge.GOLD: 20,
    TrustBadge.SILVER: 15,
    TrustBadge.BRONZE: 10,
    TrustBadge.NONE: 0,
}

DEFAULT_TOP_K = 10

HIGH_RESPONSE_RATE = 0.8
HIGH_RESPONSE_BONUS = 20
EXPERIENCED_RECIPIENT_COUNT = 10
EXPERIENCED_RECIPIENT_BONUS = 15

HIGHLY_EXPERIENCED_VOLUNTEER_COUNT = 20
HIGHLY_EXPERIENCED_BONUS = 20
EXPERIENCED_VOLUNTEER_COUNT = 10
EXPERIENCED_BONUS = 15
VEHICLE_BONUS = 15

WEEKDAYS = list(Weekday)

DistanceFn = Callable[[GeoPoint, GeoPoint], float]


@dataclass
class ScoredCandidate:
    """A ranked candidate with the reasons behind its score."""
    actor: Actor
    score: int
    reasons: List[str] = field(default_factory=list)
    distance_km: Optional[float] = None

    def to_dict(self) -> dict:
        result = {
            "actorId": self.actor.id,
            "name": self.actor.name,
            "organization": self.actor.organization,
            "trustBadge": self.actor.trust_badge.value,
            "completedCount": self.actor.completed_count,
            "score": self.score,
            "reasons": list(self.reasons),
        }
        if self.distance_km is not None:
            result["distanceKm"] = self.distance_km
        return result


def _badge_component(actor: Actor) -> Tuple[int, List[str]]:
    score = BADGE_SCORES.get(actor.trust_badge, 0)
    reasons = []
    if actor.trust_badge != TrustBadge.NONE:
        reasons.append(f"{actor.trust_badge.value} trust badge")
    return score, reasons


def is_eligible(actor: Actor, role: ActorRole) -> bool:
    return actor.role == role and actor.is_active and actor.is_verified


def score_recipient(actor: Actor) -> Tuple[int, List[str]]:
    """
    Score a recipient organization.

    badge + 20 for a response rate above 0.8 + 15 for more than ten
    completed deliveries.
    """
    score, reasons = _badge_component(actor)
    if actor.response_rate is not None and actor.response_rate > HIGH_RESPONSE_RATE:
        score += HIGH_RESPONSE_BONUS
        reasons.append("High response rate")
    if actor.completed_count > EXPERIENCED_RECIPIENT_COUNT:
        score += EXPERIENCED_RECIPIENT_BONUS
        reasons.append("Experienced recipient")
    return score, reasons


def score_volunteer(actor: Actor) -> Tuple[int, List[str]]:
    """Score a volunteer: badge + experience + vehicle."""
    score, reasons = _badge_component(actor)
    if actor.completed_count > HIGHLY_EXPERIENCED_VOLUNTEER_COUNT:
        score += HIGHLY_EXPERIENCED_BONUS
        reasons.append("Highly experienced")
    elif actor.completed_count > EXPERIENCED_VOLUNTEER_COUNT:
        score += EXPERIENCED_BONUS
        reasons.append("Experienced")
    if actor.volunteer_info is not None and actor.volunteer_info.has_vehicle:
        score += VEHICLE_BONUS
        reasons.append("Has vehicle")
    return score, reasons


def weekday_for(day) -> Weekday:
    """Weekday of a date or datetime."""
    if isinstance(day, datetime):
        day = day.date()
    if not isinstance(day, date):
        raise TypeError(f"Expected date, got {type(day).__name__}")
    return WEEKDAYS[day.weekday()]


def is_available_on(actor: Actor, weekday: Weekday) -> bool:
    """
    Whether a volunteer declared availability for ``weekday``.

    Volunteers without a declared schedule, or without an entry for the
    day, count as available.
    """
    info = actor.volunteer_info
    if info is None or not info.availability:
        return True
    entry = info.availability.get(weekday)
    if entry is None:
        return True
    return entry.available


def _rank(scored: List[ScoredCandidate], top_k: Optional[int]) -> List[ScoredCandidate]:
    ordered = sorted(scored, key=lambda candidate: (-candidate.score, candidate.actor.id))
    if top_k is not None:
        ordered = ordered[:top_k]
    return ordered


def _distance(distance_fn: Optional[DistanceFn], origin: Optional[GeoPoint], actor: Actor) -> Optional[float]:
    if distance_fn is None or origin is None or actor.location is None:
        return None
    return distance_fn(origin, actor.location)


def rank_recipients(
    candidates: Iterable[Actor],
    top_k: Optional[int] = DEFAULT_TOP_K,
    distance_fn: Optional[DistanceFn] = None,
    origin: Optional[GeoPoint] = None,
) -> List[ScoredCandidate]:
    """
    Rank eligible recipient organizations for a donation.

    Args:
        candidates: Actors to consider; ineligible ones are skipped
        top_k: Maximum number of results (None for all)
        distance_fn: Optional distance function, reported only
        origin: Donation pickup location for distance reporting

    Returns:
        Candidates sorted by score descending, then id ascending
    """
    scored = []
    for actor in candidates:
        if not is_eligible(actor, ActorRole.RECIPIENT_ORG):
            continue
        score, reasons = score_recipient(actor)
        scored.append(ScoredCandidate(actor, score, reasons, _distance(distance_fn, origin, actor)))
    return _rank(scored, top_k)


def rank_volunteers(
    candidates: Iterable[Actor],
    day,
    top_k: Optional[int] = None,
    distance_fn: Optional[DistanceFn] = None,
    origin: Optional[GeoPoint] = None,
) -> List[ScoredCandidate]:
    """Rank eligible volunteers available on the weekday of ``day``."""
    weekday = weekday_for(day)
    scored = []
    for actor in candidates:
        if not is_eligible(actor, ActorRole.VOLUNTEER) or not is_available_on(actor, weekday):
            continue
        score, reasons = score_volunteer(actor)
        scored.append(ScoredCandidate(actor, score, reasons, _distance(distance_fn, origin, actor)))
    return _rank(scored, top_k)
