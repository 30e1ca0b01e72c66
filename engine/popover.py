"""
Which floating panel is visible, derived from the interactive data.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence

from .models import DecryptedEvent, Failed, OverflowSelection, Pending, ReadResult, RenderedEvent
from .temporary import InteractiveData, Renderable, TEMPORARY_ID


class PopoverKind(Enum):
    NONE = "none"
    CREATE = "create"  # Attached to the temporary event
    EDIT = "edit"  # Attached to a persisted event
    OVERFLOW = "overflow"


@dataclass(frozen=True)
class PopoverState:
    kind: PopoverKind = PopoverKind.NONE
    anchor: Optional[Renderable] = None  # The rendered item the popover points at
    overflow: Optional[OverflowSelection] = None
    content: Optional[DecryptedEvent] = None
    pending: bool = False  # Anchored, but nothing to render until content is read
    error: Optional[Exception] = None
    is_create_event: bool = False

    @property
    def is_visible(self) -> bool:
        return self.kind is not PopoverKind.NONE and not self.pending


NO_POPOVER = PopoverState()


def derive_popover(
    interaction: Optional[InteractiveData],
    events_with_temporary: Sequence[Renderable],
    read_event: Callable[[str, str], ReadResult],
) -> PopoverState:
    """
    Derive the visible popover. A selected item wins over an open overflow cell.

    A selection whose item is no longer rendered shows nothing.
    """
    if interaction is None:
        return NO_POPOVER

    if interaction.target is not None:
        anchor = next((e for e in events_with_temporary if e.id == interaction.target.id), None)
        if anchor is None:
            return NO_POPOVER

        if anchor.id == TEMPORARY_ID:
            temporary = interaction.temporary
            return PopoverState(
                kind=PopoverKind.CREATE,
                anchor=anchor,
                is_create_event=temporary is not None and temporary.is_create,
            )

        if not isinstance(anchor, RenderedEvent) or anchor.event is None:
            return NO_POPOVER
        result = read_event(anchor.calendar.id, anchor.event.id)
        if isinstance(result, Pending):
            return PopoverState(kind=PopoverKind.EDIT, anchor=anchor, pending=True)
        if isinstance(result, Failed):
            return PopoverState(kind=PopoverKind.EDIT, anchor=anchor, error=result.error)
        return PopoverState(kind=PopoverKind.EDIT, anchor=anchor, content=result.value)

    if interaction.overflow is not None:
        return PopoverState(kind=PopoverKind.OVERFLOW, overflow=interaction.overflow)

    return NO_POPOVER
