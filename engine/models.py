"""
Data model shared by the interaction engine and its host.

Persisted events belong to the external store; the engine only refers to
them by identity. Rendered events are what the host draws: their start
and end are timezone-aware UTC datetimes. All-day items use midnight UTC
of the first and of the last (inclusive) day.
"""

from dataclasses import dataclass, field
from datetime import datetime, date
from enum import Enum
from typing import Any, Generic, Optional, TypeVar, Union

from icalendar import Alarm

from .event_wrapper import CalEvent


T = TypeVar("T")


@dataclass
class CalendarSource:
    """
    Metadata about a calendar that events can live in.

    Identity is the calendar ID only; display attributes may change.
    """
    id: str
    name: str
    color: str = "#4285f4"  # Default Google blue
    display: bool = True  # Whether the calendar is shown in the view
    disabled: bool = False  # All members lost access (e.g. address disabled)
    read_only: bool = False

    @property
    def is_probably_active(self) -> bool:
        """Whether events in this calendar can be moved and edited."""
        return not self.disabled and not self.read_only

    def __hash__(self):
        return hash(self.id)

    def __eq__(self, other):
        if isinstance(other, CalendarSource):
            return self.id == other.id
        return False


@dataclass(frozen=True)
class Member:
    """Membership of an address in a calendar."""
    id: str
    email: str


@dataclass(frozen=True)
class Address:
    id: str
    email: str


@dataclass(frozen=True)
class CalendarSettings:
    default_event_duration: int = 60  # minutes
    default_part_day_notifications: tuple[int, ...] = ()  # minutes before start
    default_full_day_notifications: tuple[int, ...] = ()


@dataclass(frozen=True)
class CalendarBootstrap:
    """Members and settings of one calendar, as read from the bootstrap bundle."""
    members: tuple[Member, ...] = ()
    settings: CalendarSettings = field(default_factory=CalendarSettings)


@dataclass(frozen=True)
class Event:
    """Identity of a persisted event. Content is owned by the event store."""
    calendar_id: str
    id: str
    author: str = ""  # Email of the address that created the event


@dataclass
class DecryptedEvent:
    """
    Readable content of a persisted event.

    component is the shared series component; personal maps member IDs to
    that member's own VALARM components.
    """
    component: CalEvent
    personal: dict[str, list[Alarm]] = field(default_factory=dict)

    def alarms_for(self, member_id: str) -> list[Alarm]:
        return list(self.personal.get(member_id, []))


@dataclass(frozen=True)
class Occurrence:
    """One instance of a recurring series. occurrence_number starts at 1."""
    occurrence_number: int
    local_start: Union[datetime, date]
    is_single_occurrence: bool = False


class GridType(Enum):
    """Which part of the view a gesture happened in."""
    TIME_GRID = "time_grid"
    DAY_GRID = "day_grid"  # All-day row and month cells


@dataclass(frozen=True)
class RenderedEvent:
    """A persisted event (or one occurrence of it) as placed in the view."""
    id: str
    start: datetime
    end: datetime
    calendar: CalendarSource
    event: Optional[Event] = None
    is_all_day: bool = False
    title: str = ""
    is_recurring: bool = False
    occurrence: Optional[Occurrence] = None

    @property
    def color(self) -> str:
        return self.calendar.color


@dataclass(frozen=True)
class TargetSelection:
    """The rendered item the user focused. Independent of any draft."""
    id: str
    index: int = 0
    type: GridType = GridType.TIME_GRID


@dataclass(frozen=True)
class OverflowSelection:
    """The "+N more" cell the user opened."""
    index: int
    row: int
    events: tuple[Any, ...]
    date: date


# ==================== Tagged read results ====================
# Reads of bootstrap bundles and decrypted content are either still in
# flight, done, or failed. Callers branch on the type explicitly.

@dataclass(frozen=True)
class Pending:
    pass


@dataclass(frozen=True)
class Ready(Generic[T]):
    value: T


@dataclass(frozen=True)
class Failed:
    error: Exception


ReadResult = Union[Pending, Ready[T], Failed]
