"""
WAXFEED — TasteID tiers.

Progress levels derived purely from a user's rating count.  More ratings
make a more reliable profile, so each tier caps the confidence that can
be shown for it.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TasteTier:
    id: str
    name: str
    min_ratings: int
    max_confidence: int
    description: str


TASTEID_TIERS: tuple[TasteTier, ...] = (
    TasteTier("locked", "LOCKED", 0, 0, "Rate 20 albums to unlock your TasteID"),
    TasteTier("emerging", "EMERGING", 20, 65, "Your taste profile is taking shape"),
    TasteTier("developing", "DEVELOPING", 50, 75, "Your musical DNA is becoming clearer"),
    TasteTier("established", "ESTABLISHED", 100, 85, "A well-defined taste profile"),
    TasteTier("expert", "EXPERT", 200, 92, "Deep musical understanding"),
    TasteTier("master", "MASTER", 500, 98, "Elite-level taste authority"),
)


def current_tier(rating_count: int) -> TasteTier:
    """Highest tier whose minimum the rating count meets."""
    for tier in reversed(TASTEID_TIERS):
        if rating_count >= tier.min_ratings:
            return tier
    return TASTEID_TIERS[0]


def next_tier(rating_count: int) -> TasteTier | None:
    index = TASTEID_TIERS.index(current_tier(rating_count))
    if index < len(TASTEID_TIERS) - 1:
        return TASTEID_TIERS[index + 1]
    return None


def progress_to_next_tier(rating_count: int) -> dict:
    """Progress (0-100) through the current tier towards the next one.

    Returns
    -------
    dict with keys: progress, ratings_to_next, current_tier, next_tier
    """
    current = current_tier(rating_count)
    upcoming = next_tier(rating_count)

    if upcoming is None:
        return {
            "progress": 100.0,
            "ratings_to_next": 0,
            "current_tier": current,
            "next_tier": None,
        }

    span = upcoming.min_ratings - current.min_ratings
    done = rating_count - current.min_ratings
    return {
        "progress": min(100.0, done / span * 100.0),
        "ratings_to_next": upcoming.min_ratings - rating_count,
        "current_tier": current,
        "next_tier": upcoming,
    }


def milestones(rating_count: int) -> list[dict]:
    """Quarter marks between the current tier and the next.  The last mark
    is labelled with the next tier's name."""
    current = current_tier(rating_count)
    upcoming = next_tier(rating_count)
    if upcoming is None:
        return []

    span = upcoming.min_ratings - current.min_ratings
    marks = []
    for quarter in range(1, 5):
        milestone = current.min_ratings + (span * quarter) // 4
        marks.append(
            {
                "milestone": milestone,
                "reached": rating_count >= milestone,
                "label": upcoming.name if quarter == 4 else f"{quarter * 25}%",
            }
        )
    return marks


def confidence_cap(rating_count: int) -> int:
    """Accuracy percentage a profile built from this many ratings may show."""
    return current_tier(rating_count).max_confidence


def motivational_message(rating_count: int) -> str:
    progress = progress_to_next_tier(rating_count)
    upcoming = progress["next_tier"]
    remaining = progress["ratings_to_next"]

    if upcoming is None:
        return "You've reached Master tier! Your taste profile is elite."
    if progress["progress"] < 25:
        return f"Rate {remaining} more albums to reach {upcoming.name} tier"
    if progress["progress"] < 50:
        return f"You're making progress! {remaining} more to {upcoming.name}"
    if progress["progress"] < 75:
        return f"Halfway to {upcoming.name}! Keep going!"
    return f"Almost there! Just {remaining} more to unlock {upcoming.name}!"
