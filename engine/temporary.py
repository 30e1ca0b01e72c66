"""
The temporary event: the render projection of the draft.

The host draws the temporary event like any other event; its ID is always
TEMPORARY_ID. It is derived from the draft only and never persisted.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional, Sequence, Union

from .draft import DraftEvent, has_unsaved_changes
from .models import OverflowSelection, RenderedEvent, TargetSelection
from .timezone_utils import local_naive_to_utc, utc_midnight


TEMPORARY_ID = "tmp"


@dataclass(frozen=True)
class TemporaryEvent:
    start: datetime  # aware UTC
    end: datetime
    is_all_day: bool
    color: str
    calendar_id: str
    title: str = ""
    target: Optional[RenderedEvent] = None  # Persisted item being edited, if any
    id: str = field(default=TEMPORARY_ID, init=False)


def project_temporary(
    draft: DraftEvent,
    tzid: Optional[str] = None,
    target: Optional[RenderedEvent] = None,
) -> TemporaryEvent:
    """
    Project a draft into its renderable form.

    All-day drafts are placed at midnight UTC of their first and last day,
    timed drafts are converted from wall-clock time in tzid (the draft's
    own zone when omitted). The result never ends before it starts.
    """
    if draft.is_all_day:
        first, last = draft.day_bounds
        start = utc_midnight(first)
        end = utc_midnight(max(first, last))
    else:
        zone = tzid or draft.tzid
        start = local_naive_to_utc(draft.start, zone)
        end = max(start, local_naive_to_utc(draft.end, zone))

    return TemporaryEvent(
        start=start,
        end=end,
        is_all_day=draft.is_all_day,
        color=draft.calendar.color,
        calendar_id=draft.calendar.id,
        title=draft.title,
        target=target,
    )


@dataclass(frozen=True)
class TemporaryState:
    """The draft slot: the draft, its snapshot from session start, and its projection."""
    draft: DraftEvent
    snapshot: DraftEvent
    event: TemporaryEvent

    @classmethod
    def begin(cls, draft: DraftEvent, target: Optional[RenderedEvent] = None) -> 'TemporaryState':
        return cls(draft=draft, snapshot=draft, event=project_temporary(draft, target=target))

    @property
    def target(self) -> Optional[RenderedEvent]:
        return self.event.target

    @property
    def is_edit(self) -> bool:
        return self.event.target is not None

    @property
    def is_create(self) -> bool:
        return self.event.target is None

    @property
    def is_blocking(self) -> bool:
        return has_unsaved_changes(self.draft, self.snapshot, self.is_edit)

    def with_draft(self, draft: DraftEvent) -> 'TemporaryState':
        return replace(self, draft=draft, event=project_temporary(draft, target=self.event.target))


@dataclass(frozen=True)
class InteractiveData:
    """
    Everything the view shows on top of the persisted events.

    temporary is the single draft slot; target is the selected rendered
    item (possibly the temporary event); overflow is the opened
    "+N more" cell.
    """
    temporary: Optional[TemporaryState] = None
    target: Optional[TargetSelection] = None
    overflow: Optional[OverflowSelection] = None

    @property
    def is_blocking(self) -> bool:
        return self.temporary is not None and self.temporary.is_blocking

    @property
    def is_empty(self) -> bool:
        return self.temporary is None and self.target is None and self.overflow is None


Renderable = Union[RenderedEvent, TemporaryEvent]


def _sort_key(event: Renderable):
    return (event.start, -(event.end - event.start).total_seconds(), event.id)


def sort_events(events: Sequence[Renderable]) -> list[Renderable]:
    """Order by start, longer items first on ties, then by ID."""
    return sorted(events, key=_sort_key)


def sort_with_temporary(
    events: Sequence[RenderedEvent],
    temporary: Optional[TemporaryEvent],
) -> list[Renderable]:
    """
    The render list: persisted events plus the temporary event, if any.

    The persisted item under edit is replaced by the temporary event.
    """
    if temporary is None:
        return sort_events(events)
    hidden_id = temporary.target.id if temporary.target is not None else None
    kept = [event for event in events if event.id != hidden_id and event.id != TEMPORARY_ID]
    return sort_events(kept + [temporary])
