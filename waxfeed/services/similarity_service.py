"""
WAXFEED — Taste similarity scoring between two TasteID profiles.

Two signals are combined:
  - Genre similarity:  cosine over the union of both genre vectors, in [0, 1]
  - Scalar distance:   weighted Euclidean distance over listening behaviour
                       (adventurousness, polarity, mean/10, min(stddev/5, 1)),
                       normalised to [0, 1]

Scores (all symmetric in A and B):
  twins      = w_g * cos + w_s * (1 - d)
  opposites  = w_g * cos + w_s * d

Default weights: genre=0.7, scalar=0.3.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import structlog

from waxfeed.config import get_settings

logger = structlog.get_logger("waxfeed.similarity_service")


def cosine_similarity(a: dict[str, float], b: dict[str, float]) -> float:
    """Cosine similarity of two sparse non-negative vectors, in [0, 1]."""
    keys = sorted(set(a) | set(b))
    if not keys:
        return 0.0
    va = np.array([float(a.get(k, 0.0)) for k in keys], dtype=float)
    vb = np.array([float(b.get(k, 0.0)) for k in keys], dtype=float)
    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0:
        return 0.0
    return float(min(max(float(va @ vb) / norm, 0.0), 1.0))


@dataclass
class ProfileFeatures:
    """The subset of a TasteProfile that matching reads."""

    genre_vector: dict[str, float]
    adventurousness: float
    polarity: float
    rating_mean: float
    rating_stddev: float
    artists: set[str] = field(default_factory=set)

    @classmethod
    def from_profile(cls, profile: Any) -> "ProfileFeatures":
        return cls(
            genre_vector=dict(profile.genre_vector or {}),
            adventurousness=float(profile.adventurousness),
            polarity=float(profile.polarity),
            rating_mean=float(profile.rating_mean),
            rating_stddev=float(profile.rating_stddev),
            artists={a["artist"] for a in (profile.artist_affinity or [])},
        )


class SimilarityService:
    """Score pairs of taste profiles and label the kind of match."""

    # ── Scalar axes and their weights (sum to 1) ────────────────────
    SCALAR_WEIGHTS: dict[str, float] = {
        "adventurousness": 0.35,
        "polarity": 0.25,
        "rating_mean": 0.25,
        "rating_spread": 0.15,
    }

    TWIN_THRESHOLD: float = 0.8
    COMPLEMENTARY_MAX_COSINE: float = 0.3
    COMPLEMENTARY_MAX_ARTIST_OVERLAP: float = 0.2
    OPPOSITE_MIN_DISTANCE: float = 0.5

    GUIDE_MIN_ADVENTUROUSNESS: float = 0.7
    EXPLORER_MAX_ADVENTUROUSNESS: float = 0.4

    SHARED_GENRES_SHOWN: int = 5

    def __init__(
        self,
        genre_weight: float | None = None,
        scalar_weight: float | None = None,
    ) -> None:
        settings = get_settings()
        self.w_genre: float = (
            genre_weight if genre_weight is not None else settings.MATCH_GENRE_WEIGHT
        )
        self.w_scalar: float = (
            scalar_weight if scalar_weight is not None else settings.MATCH_SCALAR_WEIGHT
        )

    # ── Components ──────────────────────────────────────────────────

    @staticmethod
    def genre_similarity(a: ProfileFeatures, b: ProfileFeatures) -> float:
        return cosine_similarity(a.genre_vector, b.genre_vector)

    @classmethod
    def _scalar_axes(cls, p: ProfileFeatures) -> np.ndarray:
        return np.array(
            [
                p.adventurousness,
                p.polarity,
                p.rating_mean / 10.0,
                min(p.rating_stddev / 5.0, 1.0),
            ],
            dtype=float,
        )

    @classmethod
    def scalar_distance(cls, a: ProfileFeatures, b: ProfileFeatures) -> float:
        """Weighted Euclidean distance, divided by its maximum so the
        result lies in [0, 1]."""
        weights = np.array(list(cls.SCALAR_WEIGHTS.values()), dtype=float)
        delta = np.clip(cls._scalar_axes(a), 0.0, 1.0) - np.clip(
            cls._scalar_axes(b), 0.0, 1.0
        )
        distance = math.sqrt(float((weights * delta**2).sum()))
        return min(distance / math.sqrt(float(weights.sum())), 1.0)

    @staticmethod
    def artist_overlap(a: ProfileFeatures, b: ProfileFeatures) -> float:
        """Jaccard overlap of the two artist-affinity sets."""
        union = a.artists | b.artists
        if not union:
            return 0.0
        return len(a.artists & b.artists) / len(union)

    @staticmethod
    def rating_alignment(a: ProfileFeatures, b: ProfileFeatures) -> float:
        """1 when both rate the same on average, falling to 0 at a
        five-point gap in mean score."""
        return max(0.0, 1.0 - abs(a.rating_mean - b.rating_mean) / 5.0)

    def shared_genres(self, a: ProfileFeatures, b: ProfileFeatures) -> list[str]:
        common = set(a.genre_vector) & set(b.genre_vector)
        ranked = sorted(
            common,
            key=lambda g: (-(a.genre_vector[g] + b.genre_vector[g]), g),
        )
        return ranked[: self.SHARED_GENRES_SHOWN]

    # ── Scores ──────────────────────────────────────────────────────

    def twins_score(self, cosine: float, distance: float) -> float:
        return self.w_genre * cosine + self.w_scalar * (1.0 - distance)

    def opposites_score(self, cosine: float, distance: float) -> float:
        return self.w_genre * cosine + self.w_scalar * distance

    @classmethod
    def is_guide_pair(cls, a: ProfileFeatures, b: ProfileFeatures) -> bool:
        """One side adventurous (>= 0.7), the other conservative (<= 0.4)."""
        hi, lo = cls.GUIDE_MIN_ADVENTUROUSNESS, cls.EXPLORER_MAX_ADVENTUROUSNESS
        return (a.adventurousness >= hi and b.adventurousness <= lo) or (
            b.adventurousness >= hi and a.adventurousness <= lo
        )

    def classify_match_type(
        self,
        twins: float,
        cosine: float,
        distance: float,
        artist_overlap: float,
        guide_pair: bool,
    ) -> str:
        if twins >= self.TWIN_THRESHOLD:
            return "taste_twin"
        if (
            cosine < self.COMPLEMENTARY_MAX_COSINE
            and artist_overlap < self.COMPLEMENTARY_MAX_ARTIST_OVERLAP
        ):
            return "complementary"
        if guide_pair:
            return "explorer_guide"
        if distance >= self.OPPOSITE_MIN_DISTANCE:
            return "opposite_attracts"
        return "genre_buddy"

    # ── Public API ──────────────────────────────────────────────────

    def compare(self, a: ProfileFeatures, b: ProfileFeatures) -> dict:
        """Score one pair of profiles.

        Returns
        -------
        dict with keys:
            genre_similarity, scalar_distance, artist_overlap,
            rating_alignment, twins, opposites, guide_pair, match_type,
            shared_genres, shared_artists
        """
        cosine = self.genre_similarity(a, b)
        distance = self.scalar_distance(a, b)
        overlap = self.artist_overlap(a, b)
        twins = self.twins_score(cosine, distance)
        guide_pair = self.is_guide_pair(a, b)

        logger.debug(
            "similarity.compare",
            genre_similarity=round(cosine, 4),
            scalar_distance=round(distance, 4),
        )

        return {
            "genre_similarity": cosine,
            "scalar_distance": distance,
            "artist_overlap": overlap,
            "rating_alignment": self.rating_alignment(a, b),
            "twins": twins,
            "opposites": self.opposites_score(cosine, distance),
            "guide_pair": guide_pair,
            "match_type": self.classify_match_type(
                twins, cosine, distance, overlap, guide_pair
            ),
            "shared_genres": self.shared_genres(a, b),
            "shared_artists": sorted(a.artists & b.artists),
        }
