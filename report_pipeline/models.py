from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from .utils import normalize_whitespace


class Error(Exception):
    """Base class for exceptions in this package."""


class ValidationError(Error, ValueError):
    """A domain value was constructed from malformed content."""


class InvalidTransitionError(Error):
    """A report was moved along a state track in a way the lifecycle forbids."""

    def __init__(self, report_id: str, message: str):
        self.report_id = report_id
        super().__init__(f"Report {report_id}: {message}")


class CompositionMismatchError(Error):
    def __init__(self, report_id: str, expected: int, received: int):
        self.report_id = report_id
        self.expected = expected
        self.received = received
        super().__init__(
            f"Report {report_id}: composition returned {received} frame(s) for {expected} angle(s)"
        )


class DeduplicationState(str, Enum):
    PENDING = "PENDING"
    UNIQUE = "UNIQUE"
    DUPLICATE = "DUPLICATE"


class ClassificationState(str, Enum):
    PENDING = "PENDING"
    CLASSIFIED = "CLASSIFIED"


class Tier(str, Enum):
    GENERAL = "GENERAL"
    NICHE = "NICHE"
    OFF_TOPIC = "OFF_TOPIC"


COMPOSABLE_TIERS = frozenset({Tier.GENERAL, Tier.NICHE})

DISCOURSES = ("MAINSTREAM", "ALTERNATIVE", "UNDERREPORTED", "DUBIOUS")
STANCES = ("supportive", "critical", "neutral", "mixed", "concerned", "optimistic", "skeptical")


def _require_text(value: str, label: str) -> str:
    cleaned = normalize_whitespace(value) if isinstance(value, str) else ""
    if not cleaned:
        raise ValidationError(f"{label} must be a non-empty string")
    return value.strip()


def _normalize_discourse(value: str | None) -> str | None:
    if value is None or value == "":
        return None
    upper = str(value).strip().upper()
    if upper not in DISCOURSES:
        raise ValidationError(f"Invalid discourse: {value!r}")
    return upper


def _normalize_stance(value: str | None) -> str | None:
    if value is None or value == "":
        return None
    lower = str(value).strip().lower()
    if lower not in STANCES:
        raise ValidationError(f"Invalid stance: {value!r}")
    return lower


@dataclass(frozen=True)
class Locale:
    language: str
    country: str

    def __post_init__(self) -> None:
        language = (self.language or "").strip().lower()
        country = (self.country or "").strip().upper()
        if not re.fullmatch(r"[a-z]{2}", language):
            raise ValidationError(f"Invalid language code: {self.language!r}")
        if not re.fullmatch(r"[A-Z]{2}", country):
            raise ValidationError(f"Invalid country code: {self.country!r}")
        object.__setattr__(self, "language", language)
        object.__setattr__(self, "country", country)

    def __str__(self) -> str:
        return f"{self.language}-{self.country}"


@dataclass(frozen=True)
class SourceItem:
    id: str
    headline: str
    published_at: datetime | None = None
    url: str = ""
    domain: str = ""


@dataclass
class RawCandidate:
    """A bundle of source items that may describe one news event."""

    items: list[SourceItem]
    published_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.published_at is None:
            stamps = [item.published_at for item in self.items if item.published_at is not None]
            self.published_at = max(stamps) if stamps else None

    @property
    def source_ids(self) -> list[str]:
        seen: dict[str, None] = {}
        for item in self.items:
            if item.id:
                seen.setdefault(item.id, None)
        return list(seen)

    @property
    def evidence_weight(self) -> int:
        return len(self.source_ids)


@dataclass(frozen=True)
class ReportAngle:
    text: str
    discourse: str | None = None
    stance: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "text", _require_text(self.text, "Angle text"))
        object.__setattr__(self, "discourse", _normalize_discourse(self.discourse))
        object.__setattr__(self, "stance", _normalize_stance(self.stance))


@dataclass(frozen=True)
class ReportTraits:
    smart: bool = False
    uplifting: bool = False


@dataclass(frozen=True)
class Report:
    id: str
    locale: Locale
    source_references: tuple[str, ...]
    dateline: datetime
    core: str
    background: str
    categories: tuple[str, ...]
    angles: tuple[ReportAngle, ...]
    created_at: datetime
    updated_at: datetime
    deduplication_state: DeduplicationState = DeduplicationState.PENDING
    duplicate_of: str | None = None
    classification_state: ClassificationState = ClassificationState.PENDING
    tier: Tier | None = None
    traits: ReportTraits | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "core", _require_text(self.core, "Report core"))
        object.__setattr__(self, "background", (self.background or "").strip())
        categories = tuple(c.strip().upper() for c in self.categories if c and c.strip())
        if not categories:
            raise ValidationError(f"Report {self.id} needs at least one category")
        object.__setattr__(self, "categories", categories)
        sources = tuple(dict.fromkeys(self.source_references))
        if not sources:
            raise ValidationError(f"Report {self.id} needs at least one source reference")
        object.__setattr__(self, "source_references", sources)
        object.__setattr__(self, "angles", tuple(self.angles))

        if (self.deduplication_state is DeduplicationState.DUPLICATE) != (self.duplicate_of is not None):
            raise ValidationError(f"Report {self.id}: duplicate_of must be set exactly when DUPLICATE")
        if self.classification_state is ClassificationState.PENDING:
            if self.tier is not None or self.traits is not None:
                raise ValidationError(f"Report {self.id}: tier and traits stay unset while PENDING")
        elif self.tier is None or self.traits is None:
            raise ValidationError(f"Report {self.id}: a CLASSIFIED report needs tier and traits")

    @property
    def primary_category(self) -> str:
        return self.categories[0]

    @property
    def evidence_weight(self) -> int:
        return len(self.source_references)


@dataclass(frozen=True)
class ArticleFrame:
    headline: str
    body: str
    discourse: str | None = None
    stance: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "headline", _require_text(self.headline, "Frame headline"))
        object.__setattr__(self, "body", _require_text(self.body, "Frame body"))


@dataclass(frozen=True)
class Authenticity:
    is_falsified: bool = False
    falsification_reason: str | None = None

    def __post_init__(self) -> None:
        reason = (self.falsification_reason or "").strip() or None
        if self.is_falsified and reason is None:
            raise ValidationError("Falsified articles must include a falsification reason")
        object.__setattr__(self, "falsification_reason", reason)

    def __str__(self) -> str:
        if self.is_falsified:
            return f"Falsified article (Reason: {self.falsification_reason})"
        return "Authentic article"


@dataclass(frozen=True)
class Article:
    id: str
    report_id: str
    locale: Locale
    headline: str
    body: str
    category: str
    published_at: datetime
    created_at: datetime
    frames: tuple[ArticleFrame, ...] = ()
    authenticity: Authenticity = field(default_factory=Authenticity)

    def __post_init__(self) -> None:
        object.__setattr__(self, "headline", _require_text(self.headline, "Article headline"))
        object.__setattr__(self, "body", _require_text(self.body, "Article body"))
        object.__setattr__(self, "frames", tuple(self.frames))


# Decision service results. ``None`` from a service means "no signal", never an error.


@dataclass(frozen=True)
class IngestionDecision:
    core: str
    background: str
    categories: list[str]
    angles: list[ReportAngle] = field(default_factory=list)


@dataclass(frozen=True)
class DeduplicationDecision:
    duplicate_of: str | None = None


@dataclass(frozen=True)
class ClassificationDecision:
    tier: Tier
    traits: ReportTraits = field(default_factory=ReportTraits)
    reason: str = ""


@dataclass(frozen=True)
class FrameDraft:
    headline: str
    body: str


@dataclass(frozen=True)
class CompositionDecision:
    headline: str
    body: str
    frames: list[FrameDraft] = field(default_factory=list)
