"""
Best-match ordering of mechanics for a booking.

Rating dominates: each rating point is worth 10,000, so a 5.0 mechanic beats
a 4.9 one unless the 4.9 has clearly more reviews. Review count adds a
logarithmic experience bonus, live availability adds 2,000, an offline
mechanic loses 100,000 (always last), and a specialty that overlaps one of
the requested services adds 500.
"""
import math
import re
from dataclasses import dataclass
from typing import Any, List, Sequence

from users.models import Mechanic

RATING_WEIGHT = 10000
EXPERIENCE_WEIGHT = 1000
AVAILABLE_BONUS = 2000
OFFLINE_PENALTY = 100000
SPECIALTY_BONUS = 500

_SERVICE_SUFFIXES = re.compile(r" replacement| repair| change| inspection")

Availability = Mechanic.AvailabilityChoices


@dataclass(frozen=True)
class RankedMechanic:
    mechanic: Any
    score: float
    match_reason: str = ""


def normalize_service_keyword(name: str) -> str:
    return _SERVICE_SUFFIXES.sub("", name.lower()).strip()


def _matched_specialties(specialties, keywords):
    lowered = [s.lower() for s in (specialties or [])]
    return [s for s in lowered if any(s in k or k in s for k in keywords)]


def score_mechanic(mechanic, keywords: Sequence[str]):
    """Return (score, match_reason) for one mechanic against normalized keywords."""
    review_count = mechanic.review_count or 0

    score = mechanic.rating * RATING_WEIGHT
    score += math.log(review_count + 1) * EXPERIENCE_WEIGHT

    if mechanic.availability == Availability.AVAILABLE_NOW:
        score += AVAILABLE_BONUS
    elif mechanic.availability == Availability.OFFLINE:
        score -= OFFLINE_PENALTY

    match_reason = ""
    matched = _matched_specialties(mechanic.specialties, keywords)
    if matched:
        score += SPECIALTY_BONUS
        match_reason = f"{matched[0][:1].upper()}{matched[0][1:]} Expert"

    if not match_reason:
        if mechanic.rating >= 4.9 and review_count > 10:
            match_reason = "Top Rated Pro"
        elif review_count > 50:
            match_reason = "Most Experienced"
        elif mechanic.availability == Availability.AVAILABLE_NOW:
            match_reason = "Fastest Arrival"

    return score, match_reason


def rank_mechanics(mechanics, service_names: Sequence[str]) -> List[RankedMechanic]:
    """
    Order mechanics best first for the given service names.

    The sort is stable, so equal scores keep their input order. The input
    mechanics are not modified; each result wraps one of them.
    """
    keywords = [normalize_service_keyword(name) for name in service_names]
    ranked = [RankedMechanic(m, *score_mechanic(m, keywords)) for m in mechanics]
    return sorted(ranked, key=lambda r: r.score, reverse=True)
