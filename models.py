import datetime as dt
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

TRACKED_FIELDS = ("endDate", "title", "description")
UNANNOUNCED = "Unannounced"

# wire name -> attribute name
_TRACKED_ATTRS = {"endDate": "end_date", "title": "title", "description": "description"}


class SortBy(Enum):
    ALPHABETICAL = "ALPHABETICAL"
    CHRONOLOGICAL = "CHRONOLOGICAL"


class Category(Enum):
    CORE_TECH = 1
    GAMEPLAY = 2
    CHARACTERS = 3
    LOCATIONS = 4
    AI = 5
    SHIPS_AND_VEHICLES = 6
    WEAPONS_AND_ITEMS = 7


class Project(Enum):
    SQ42 = "el2codyca4mnx"
    SC = "ekm24a6ywr3o3"


class DeliverableFilter(Enum):
    FUTURE = "future"
    PAST = "past"
    ENDING_SOONEST = "ending-soonest"


class Outcome(Enum):
    CHANGED = "changed"
    NO_CHANGE = "no-change"
    INSUFFICIENT_HISTORY = "insufficient-history"


def to_day(value: Any) -> Optional[str]:
    """Normalize an upstream date (ISO string, ISO datetime or epoch ms) to YYYY-MM-DD."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"not a date: {value!r}")
    if isinstance(value, (int, float)):
        return dt.datetime.fromtimestamp(value / 1000, tz=dt.timezone.utc).date().isoformat()
    text = str(value).strip()
    if text.isdigit():
        return to_day(int(text))
    try:
        return dt.date.fromisoformat(text[:10]).isoformat()
    except ValueError:
        raise ValueError(f"not a date: {value!r}") from None


@dataclass
class Card:
    id: Optional[int]
    title: str = ""
    category: Optional[int] = None
    release_id: Optional[int] = None
    release_title: str = ""

    @classmethod
    def from_api(cls, record: Dict[str, Any]) -> "Card":
        release = record.get("release") or {}
        return cls(
            id=record.get("id"),
            title=record.get("title") or "",
            category=record.get("category"),
            release_id=release.get("id"),
            release_title=release.get("title") or "",
        )


@dataclass
class Deliverable:
    id: str
    title: str
    description: str = ""
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    slug: str = ""
    update_date: Optional[str] = None
    number_of_disciplines: int = 0
    number_of_teams: int = 0
    card: Optional[Card] = None
    projects: List[str] = field(default_factory=list)

    @classmethod
    def from_api(cls, record: Dict[str, Any]) -> "Deliverable":
        card = record.get("card")
        return cls(
            id=record.get("uuid") or record.get("id") or "",
            title=record.get("title") or "",
            description=record.get("description") or "",
            start_date=to_day(record.get("startDate")),
            end_date=to_day(record.get("endDate")),
            slug=record.get("slug") or "",
            update_date=to_day(record.get("updateDate")),
            number_of_disciplines=record.get("numberOfDisciplines") or 0,
            number_of_teams=record.get("numberOfTeams") or 0,
            card=Card.from_api(card) if card else None,
            projects=[p.get("title", "") for p in record.get("projects") or []],
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Deliverable":
        data = dict(data)
        card = data.pop("card", None)
        return cls(card=Card(**card) if card else None, **data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def tracked(self, name: str) -> Any:
        return getattr(self, _TRACKED_ATTRS[name])

    def tracked_values(self) -> Tuple[Any, ...]:
        return tuple(self.tracked(name) for name in TRACKED_FIELDS)


@dataclass(frozen=True)
class Snapshot:
    day: dt.date
    deliverables: Tuple[Deliverable, ...]

    def __len__(self) -> int:
        return len(self.deliverables)


@dataclass(frozen=True)
class FieldDiff:
    field: str
    old_value: Any
    new_value: Any


@dataclass
class UpdatedDeliverable:
    old: Deliverable
    new: Deliverable
    field_diffs: List[FieldDiff]


@dataclass
class AmbiguousMatch:
    """Items sharing a title that could not be paired one-to-one."""

    title: str
    older: List[Deliverable]
    newer: List[Deliverable]


@dataclass
class ChangeSet:
    older_day: Optional[dt.date] = None
    newer_day: Optional[dt.date] = None
    removed: List[Deliverable] = field(default_factory=list)
    added: List[Deliverable] = field(default_factory=list)
    updated: List[UpdatedDeliverable] = field(default_factory=list)
    unchanged_count: int = 0
    ambiguous: List[AmbiguousMatch] = field(default_factory=list)
    listed: int = 0

    @property
    def ambiguous_count(self) -> int:
        return sum(len(a.older) for a in self.ambiguous)

    @property
    def has_changes(self) -> bool:
        return bool(self.removed or self.added or self.updated)
