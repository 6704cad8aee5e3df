"""
WAXFEED — TasteID fingerprint engine.

Pure computation: turns a user's ratings into a taste fingerprint.  There is
no I/O here; TasteService loads the ratings and persists the result.

Pipeline:
  1. Genre vector      score-weighted genre mix, normalised to sum 1
  2. Artist affinity   per-artist score totals, normalised by the maximum
  3. Decade histogram  share of rated albums per release decade
  4. Scalar metrics    adventurousness, polarity, rating shape, review depth
  5. Archetypes        nearest genre prototypes by cosine similarity, with
                       behavioural traits as fallback and secondary
  6. Listening signature  seven activation levels, normalised to sum 1
"""

from __future__ import annotations

import enum
import math
import re
import uuid
from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import numpy as np
import structlog

from waxfeed.config import get_settings
from waxfeed.services.similarity_service import cosine_similarity

logger = structlog.get_logger("waxfeed.taste_engine")


class Archetype(str, enum.Enum):
    HIP_HOP_HEAD = "hip-hop-head"
    JAZZ_EXPLORER = "jazz-explorer"
    ROCK_PURIST = "rock-purist"
    ELECTRONIC_PIONEER = "electronic-pioneer"
    SOUL_SEARCHER = "soul-searcher"
    METAL_MAVEN = "metal-maven"
    INDIE_DEVOTEE = "indie-devotee"
    POP_CONNOISSEUR = "pop-connoisseur"
    COUNTRY_SOUL = "country-soul"
    CLASSICAL_MIND = "classical-mind"
    # Behavioural: scored from how the user rates, not what they rate
    GENRE_FLUID = "genre-fluid"
    THE_CRITIC = "the-critic"
    THE_ENTHUSIAST = "the-enthusiast"
    ESSAY_WRITER = "essay-writer"
    DECADE_DIVER = "decade-diver"


BEHAVIOURAL_ARCHETYPES: tuple[Archetype, ...] = (
    Archetype.GENRE_FLUID,
    Archetype.THE_CRITIC,
    Archetype.THE_ENTHUSIAST,
    Archetype.ESSAY_WRITER,
    Archetype.DECADE_DIVER,
)

LISTENING_MODES: tuple[str, ...] = (
    "discovery",
    "comfort",
    "deep_dive",
    "reactive",
    "emotional",
    "social",
    "aesthetic",
)


@dataclass(frozen=True)
class ArchetypePrototype:
    genres: tuple[str, ...]
    anchor_adventurousness: float

    def vector(self) -> dict[str, float]:
        weight = 1.0 / len(self.genres)
        return {genre: weight for genre in self.genres}


ARCHETYPE_PROTOTYPES: dict[Archetype, ArchetypePrototype] = {
    Archetype.HIP_HOP_HEAD: ArchetypePrototype(
        ("hip-hop", "rap", "trap", "southern hip hop", "east coast hip hop",
         "west coast hip hop"),
        0.35,
    ),
    Archetype.JAZZ_EXPLORER: ArchetypePrototype(
        ("jazz", "jazz fusion", "bebop", "modal jazz", "free jazz",
         "contemporary jazz"),
        0.60,
    ),
    Archetype.ROCK_PURIST: ArchetypePrototype(
        ("rock", "classic rock", "hard rock", "alternative rock", "indie rock",
         "punk rock"),
        0.30,
    ),
    Archetype.ELECTRONIC_PIONEER: ArchetypePrototype(
        ("electronic", "house", "techno", "ambient", "edm", "drum and bass",
         "dubstep"),
        0.55,
    ),
    Archetype.SOUL_SEARCHER: ArchetypePrototype(
        ("soul", "r&b", "neo soul", "motown", "funk", "gospel"),
        0.40,
    ),
    Archetype.METAL_MAVEN: ArchetypePrototype(
        ("metal", "heavy metal", "death metal", "black metal", "thrash metal",
         "metalcore"),
        0.35,
    ),
    Archetype.INDIE_DEVOTEE: ArchetypePrototype(
        ("indie", "indie pop", "indie folk", "lo-fi", "bedroom pop", "art pop"),
        0.60,
    ),
    Archetype.POP_CONNOISSEUR: ArchetypePrototype(
        ("pop", "synth-pop", "dance pop", "electropop", "k-pop", "j-pop"),
        0.25,
    ),
    Archetype.COUNTRY_SOUL: ArchetypePrototype(
        ("country", "americana", "bluegrass", "folk", "country rock",
         "outlaw country"),
        0.35,
    ),
    Archetype.CLASSICAL_MIND: ArchetypePrototype(
        ("classical", "orchestral", "chamber music", "opera",
         "contemporary classical", "baroque"),
        0.50,
    ),
}


# ── Result types ────────────────────────────────────────────────────


@dataclass
class RatingEntry:
    """One rating joined with the album fields the engine reads."""

    genres: list[str]
    artist: str
    release_year: int | None
    score: float
    created_at: datetime
    text: str | None = None
    album_id: uuid.UUID | None = None
    album_total_reviews: int = 0


@dataclass
class InsufficientData:
    rating_count: int
    required: int
    status: str = "insufficient_data"


@dataclass
class TasteComputation:
    genre_vector: dict[str, float]
    artist_affinity: list[dict]
    decade_histogram: dict[str, float]
    adventurousness: float
    polarity: float
    rating_mean: float
    rating_median: float
    rating_stddev: float
    rating_skew: float
    rating_tendency: str
    review_depth: str
    primary_archetype: Archetype
    secondary_archetype: Archetype | None
    archetype_confidence: float
    confidence_level: str
    review_count: int
    top_genres: list[str]
    top_artists: list[str]
    listening_signature: dict[str, float]


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class TasteEngine:
    """Compute a TasteID fingerprint from a list of ``RatingEntry``.

    Profiles are always rebuilt from the full rating set; the engine never
    patches a previous result.
    """

    # ── Tunables ────────────────────────────────────────────────────
    RECENCY_HALF_LIFE_DAYS: float = 180.0
    TOP_ARTISTS_KEPT: int = 20
    TOP_GENRES: int = 5
    TOP_ARTIST_NAMES: int = 10

    ENTROPY_WEIGHT: float = 0.7
    RARITY_WEIGHT: float = 0.3
    RARITY_REVIEW_CEILING: int = 100

    POLARITY_LOW: float = 3.0     # score <= 3 is a strong dislike
    POLARITY_HIGH: float = 8.0    # score >= 8 is a strong like

    HARSH_MEAN: float = 5.5
    LENIENT_MEAN: float = 7.5

    RATER_MAX_WORDS: int = 20
    WRITER_MAX_WORDS: int = 100

    SECONDARY_MIN_SIMILARITY: float = 0.25
    FLUID_MAX_SIMILARITY: float = 0.2
    FLUID_MIN_ADVENTUROUSNESS: float = 0.75
    FLUID_CONFIDENCE: float = 0.5

    CRITIC_CONFIDENCE: float = 0.8
    ENTHUSIAST_CONFIDENCE: float = 0.8
    ESSAY_CONFIDENCE: float = 0.85
    ESSAY_MIN_CHARS: int = 150
    DECADE_MIN_SHARE: float = 0.6

    EMOTIONAL_TEXT = re.compile(r"[!?]{2,}|love|hate|amazing|terrible", re.IGNORECASE)
    EMOTIONAL_LOW: float = 2.0
    EMOTIONAL_HIGH: float = 8.0
    EMOTIONAL_MIN_CHARS: int = 100
    SOCIAL_WINDOW_DAYS: int = 30

    def __init__(
        self,
        min_ratings: int | None = None,
        complete_ratings: int | None = None,
    ) -> None:
        settings = get_settings()
        self.min_ratings: int = min_ratings or settings.TASTE_MIN_RATINGS
        self.complete_ratings: int = (
            complete_ratings or settings.TASTE_COMPLETE_RATINGS
        )

    # ── Public API ──────────────────────────────────────────────────

    def compute(
        self,
        entries: list[RatingEntry],
        now: datetime | None = None,
    ) -> TasteComputation | InsufficientData:
        """Build a fingerprint from the user's full rating set.

        Parameters
        ----------
        entries : list[RatingEntry]
            Every rating of the user.  Entries whose album was deleted
            (``album_id is None``) are skipped.
        now : datetime, optional
            Reference time for recency weighting.  Defaults to UTC now.

        Returns
        -------
        TasteComputation, or InsufficientData when fewer than
        ``min_ratings`` usable entries remain.
        """
        now = _as_utc(now or datetime.now(timezone.utc))

        usable: list[RatingEntry] = []
        for entry in entries:
            if entry.album_id is None:
                logger.debug("taste_engine.orphan_rating_skipped", artist=entry.artist)
                continue
            usable.append(entry)

        if len(usable) < self.min_ratings:
            return InsufficientData(rating_count=len(usable), required=self.min_ratings)

        genre_vector = self.genre_vector(usable)
        artist_affinity = self.artist_affinity(usable, now)
        decade_histogram = self.decade_histogram(usable)

        scores = np.array([float(e.score) for e in usable], dtype=float)
        mean = float(scores.mean())
        median = float(np.median(scores))
        stddev = float(scores.std())
        skew = (mean - median) / stddev if stddev > 0 else 0.0

        adventurousness = self.adventurousness(genre_vector, usable)
        tendency = self.rating_tendency(mean)
        depth = self.review_depth(usable)
        primary, secondary, confidence = self.classify_archetype(
            genre_vector,
            adventurousness,
            self.behavioural_scores(adventurousness, tendency, depth, usable),
        )

        top_genres = [
            genre
            for genre, _ in sorted(genre_vector.items(), key=lambda kv: (-kv[1], kv[0]))
        ][: self.TOP_GENRES]

        return TasteComputation(
            genre_vector=genre_vector,
            artist_affinity=artist_affinity,
            decade_histogram=decade_histogram,
            adventurousness=adventurousness,
            polarity=self.polarity(scores),
            rating_mean=mean,
            rating_median=median,
            rating_stddev=stddev,
            rating_skew=skew,
            rating_tendency=tendency,
            review_depth=depth,
            primary_archetype=primary,
            secondary_archetype=secondary,
            archetype_confidence=confidence,
            confidence_level=(
                "complete" if len(usable) >= self.complete_ratings else "provisional"
            ),
            review_count=len(usable),
            top_genres=top_genres,
            top_artists=[a["artist"] for a in artist_affinity[: self.TOP_ARTIST_NAMES]],
            listening_signature=self.listening_signature(usable, now),
        )

    # ── Components ──────────────────────────────────────────────────

    @staticmethod
    def _normalise_genres(genres: list[str]) -> list[str]:
        cleaned = []
        for genre in genres:
            tag = genre.strip().lower()
            if tag and tag not in cleaned:
                cleaned.append(tag)
        return cleaned

    def genre_vector(self, entries: list[RatingEntry]) -> dict[str, float]:
        """Spread each rating's score evenly over its genre tags and
        normalise the totals to sum 1.  When every tagged rating scored 0,
        each counts as weight 1."""
        tagged: list[tuple[float, list[str]]] = []
        for entry in entries:
            tags = self._normalise_genres(entry.genres)
            if tags:
                tagged.append((float(entry.score), tags))

        unit_weights = all(score == 0 for score, _ in tagged)
        totals: dict[str, float] = defaultdict(float)

        for score, tags in tagged:
            weight = 1.0 if unit_weights else score
            share = weight / len(tags)
            for tag in tags:
                totals[tag] += share

        grand_total = sum(totals.values())
        if grand_total <= 0:
            return {}
        return {genre: value / grand_total for genre, value in totals.items()}

    def artist_affinity(
        self, entries: list[RatingEntry], now: datetime
    ) -> list[dict]:
        totals: dict[str, float] = defaultdict(float)
        counts: Counter = Counter()
        latest: dict[str, datetime] = {}

        for entry in entries:
            artist = entry.artist
            totals[artist] += float(entry.score)
            counts[artist] += 1
            created = _as_utc(entry.created_at)
            if artist not in latest or created > latest[artist]:
                latest[artist] = created

        max_total = max(totals.values()) if totals else 0.0
        affinity: list[dict] = []
        for artist, total in totals.items():
            age_days = max((now - latest[artist]).total_seconds() / 86400.0, 0.0)
            affinity.append(
                {
                    "artist": artist,
                    "affinity": total / max_total if max_total > 0 else 0.0,
                    "avg_rating": total / counts[artist],
                    "review_count": counts[artist],
                    "recency": math.exp(-age_days / self.RECENCY_HALF_LIFE_DAYS),
                }
            )

        affinity.sort(key=lambda a: (-a["affinity"], -a["recency"], a["artist"]))
        return affinity[: self.TOP_ARTISTS_KEPT]

    @staticmethod
    def decade_histogram(entries: list[RatingEntry]) -> dict[str, float]:
        decades = Counter(
            f"{e.release_year // 10 * 10}s" for e in entries if e.release_year
        )
        total = sum(decades.values())
        if not total:
            return {}
        return {decade: count / total for decade, count in sorted(decades.items())}

    def adventurousness(
        self, genre_vector: dict[str, float], entries: list[RatingEntry]
    ) -> float:
        """0.7 x normalised genre entropy + 0.3 x mean album rarity."""
        weights = np.array([w for w in genre_vector.values() if w > 0], dtype=float)
        if len(weights) > 1:
            entropy = float(-(weights * np.log(weights)).sum())
            normalised_entropy = entropy / math.log(len(weights))
        else:
            normalised_entropy = 0.0

        rarity = np.array(
            [
                1.0 - min(e.album_total_reviews / self.RARITY_REVIEW_CEILING, 1.0)
                for e in entries
            ],
            dtype=float,
        )
        mean_rarity = float(rarity.mean()) if len(rarity) else 0.0

        score = self.ENTROPY_WEIGHT * normalised_entropy + self.RARITY_WEIGHT * mean_rarity
        return float(min(max(score, 0.0), 1.0))

    def polarity(self, scores: np.ndarray) -> float:
        if len(scores) == 0:
            return 0.0
        extremes = (scores <= self.POLARITY_LOW) | (scores >= self.POLARITY_HIGH)
        return float(extremes.mean())

    def rating_tendency(self, mean: float) -> str:
        if mean < self.HARSH_MEAN:
            return "harsh"
        if mean > self.LENIENT_MEAN:
            return "lenient"
        return "balanced"

    def review_depth(self, entries: list[RatingEntry]) -> str:
        words = [len(e.text.split()) if e.text else 0 for e in entries]
        mean_words = sum(words) / len(words) if words else 0.0
        if mean_words < self.RATER_MAX_WORDS:
            return "rater"
        if mean_words < self.WRITER_MAX_WORDS:
            return "writer"
        return "essayist"

    def behavioural_scores(
        self,
        adventurousness: float,
        tendency: str,
        depth: str,
        entries: list[RatingEntry],
    ) -> dict[Archetype, float]:
        """Score the behavioural archetypes the user qualifies for.

        Only traits that clear their threshold are returned, mapped to the
        confidence they carry when chosen.
        """
        scores: dict[Archetype, float] = {}
        if adventurousness > self.FLUID_MIN_ADVENTUROUSNESS:
            scores[Archetype.GENRE_FLUID] = adventurousness
        if tendency == "harsh":
            scores[Archetype.THE_CRITIC] = self.CRITIC_CONFIDENCE
        elif tendency == "lenient":
            scores[Archetype.THE_ENTHUSIAST] = self.ENTHUSIAST_CONFIDENCE

        lengths = [len(e.text) for e in entries if e.text]
        mean_chars = sum(lengths) / len(lengths) if lengths else 0.0
        if depth == "essayist" or mean_chars > self.ESSAY_MIN_CHARS:
            scores[Archetype.ESSAY_WRITER] = self.ESSAY_CONFIDENCE

        decades = Counter(e.release_year // 10 for e in entries if e.release_year)
        if decades and entries:
            share = decades.most_common(1)[0][1] / len(entries)
            if share > self.DECADE_MIN_SHARE:
                scores[Archetype.DECADE_DIVER] = share
        return scores

    def classify_archetype(
        self,
        genre_vector: dict[str, float],
        adventurousness: float,
        behaviour: dict[Archetype, float] | None = None,
    ) -> tuple[Archetype, Archetype | None, float]:
        """Rank genre archetypes by cosine similarity to their prototype.

        Ties on similarity go to the archetype whose anchor adventurousness
        is closest to the user's.  When no family fits well, or the user is
        highly adventurous, the strongest behavioural trait takes the
        primary slot (``GENRE_FLUID`` at 0.5 when there is none).

        Parameters
        ----------
        genre_vector : dict[str, float]
            The user's normalised genre mix.
        adventurousness : float
            Used for the anchor tie-break and the fluid cut-off.
        behaviour : dict[Archetype, float], optional
            Output of :meth:`behavioural_scores`.

        Returns
        -------
        (primary, secondary, confidence)
        """
        behaviour = behaviour or {}
        ranked: list[tuple[float, float, Archetype]] = []
        for archetype, prototype in ARCHETYPE_PROTOTYPES.items():
            similarity = cosine_similarity(genre_vector, prototype.vector())
            distance = abs(adventurousness - prototype.anchor_adventurousness)
            ranked.append((similarity, distance, archetype))
        ranked.sort(key=lambda r: (-round(r[0], 9), r[1]))

        best_similarity, _, best = ranked[0]
        runner_similarity, _, runner = ranked[1]

        # Strongest first; equal scores keep declaration order.
        traits = sorted(
            (a for a in BEHAVIOURAL_ARCHETYPES if a in behaviour),
            key=lambda a: -behaviour[a],
        )

        if (
            best_similarity < self.FLUID_MAX_SIMILARITY
            or adventurousness > self.FLUID_MIN_ADVENTUROUSNESS
        ):
            if traits:
                primary, confidence = traits[0], float(behaviour[traits[0]])
            else:
                primary, confidence = Archetype.GENRE_FLUID, self.FLUID_CONFIDENCE
            if best_similarity > 0:
                secondary = best
            else:
                secondary = traits[1] if len(traits) > 1 else None
            return primary, secondary, confidence

        if runner_similarity >= self.SECONDARY_MIN_SIMILARITY:
            secondary = runner
        else:
            secondary = traits[0] if traits else None
        return best, secondary, float(best_similarity)

    def listening_signature(
        self, entries: list[RatingEntry], now: datetime
    ) -> dict[str, float]:
        """Activation level of each listening mode, normalised to sum 1.

        discovery  breadth of artists and genres
        comfort    share of artists rated more than once
        deep_dive  consecutive ratings of the same artist
        reactive   albums released this year or last
        emotional  extreme scores and charged review text
        social     ratings in the last 30 days
        aesthetic  sheer genre count
        """
        n = len(entries)
        if n == 0:
            return {mode: 0.0 for mode in LISTENING_MODES}

        artists = Counter(e.artist for e in entries)
        genres = {tag for e in entries for tag in self._normalise_genres(e.genres)}

        repeat_ratio = sum(1 for c in artists.values() if c > 1) / len(artists)

        ordered = sorted(entries, key=lambda e: _as_utc(e.created_at))
        streaks = sum(
            0.1 for a, b in zip(ordered, ordered[1:]) if a.artist == b.artist
        )

        recent_releases = sum(
            1 for e in entries if e.release_year and e.release_year >= now.year - 1
        )
        extremes = sum(
            1
            for e in entries
            if e.score <= self.EMOTIONAL_LOW or e.score >= self.EMOTIONAL_HIGH
        )
        charged = sum(
            1
            for e in entries
            if e.text
            and len(e.text) > self.EMOTIONAL_MIN_CHARS
            and self.EMOTIONAL_TEXT.search(e.text)
        )
        window_start = now - timedelta(days=self.SOCIAL_WINDOW_DAYS)
        recent_ratings = sum(1 for e in entries if _as_utc(e.created_at) >= window_start)

        raw = {
            "discovery": min(len(artists) / n * 0.5 + len(genres) / (2 * n) * 0.5, 1.0),
            "comfort": min(repeat_ratio * 1.5 + 0.1, 1.0),
            "deep_dive": min(streaks / max(n / 10, 1.0), 1.0),
            "reactive": min(recent_releases / n * 2, 1.0),
            "emotional": min(extremes / n * 0.6 + charged / n * 0.4, 1.0),
            "social": min(recent_ratings / 10, 1.0) * 0.3,
            "aesthetic": min(len(genres) / 20, 1.0) * 0.3,
        }
        total = sum(raw.values())
        return {mode: raw[mode] / total for mode in LISTENING_MODES}
