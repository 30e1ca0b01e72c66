"""
Gesture interpretation: pointer actions in, interaction changes out.

The host reports every pointer action of a gesture, tagged with a family
(which part of the view it started on) and a phase. The first action
(DOWN) goes to begin(), which either rejects the gesture or returns the
initial GestureState. Every later action goes to advance(), which returns
the next state (None once the gesture is released) and the effects the
session should apply. Neither function mutates anything; the host keeps
the current state.

Start and end values in payloads are resolved by the host view and are
naive wall-clock datetimes in the view timezone.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime, date, timedelta
from enum import Enum
from typing import Any, Optional, Union

from .debug import debug_print
from .draft import DraftEvent, update_draft
from .errors import ValidationError
from .models import GridType, OverflowSelection, RenderedEvent, TargetSelection
from .temporary import (
    InteractiveData, TemporaryEvent, TemporaryState, TEMPORARY_ID,
)
from .timezone_utils import with_time_of_day


class GestureFamily(Enum):
    EVENT = "event"  # Pressed on a rendered event
    CREATE = "create"  # Pressed on an empty slot or cell
    OVERFLOW = "overflow"  # Pressed on a "+N more" cell


class GesturePhase(Enum):
    DOWN = "down"
    UP = "up"  # Released without moving
    MOVE = "move"
    MOVE_UP = "move_up"  # Released after moving


class SessionKind(Enum):
    EDIT = "edit"
    CREATE = "create"
    OVERFLOW = "overflow"


@dataclass(frozen=True)
class GesturePayload:
    target: Optional[Union[RenderedEvent, TemporaryEvent]] = None
    index: int = 0
    grid: GridType = GridType.TIME_GRID
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    # Overflow cells only
    row: int = 0
    events: tuple[Any, ...] = ()
    date: Optional[date] = None


@dataclass(frozen=True)
class PointerAction:
    family: GestureFamily
    phase: GesturePhase
    payload: GesturePayload = field(default_factory=GesturePayload)


@dataclass(frozen=True)
class SetInteraction:
    """Replace the session's interactive data."""
    data: InteractiveData


@dataclass(frozen=True)
class Notify:
    """Tell the user something went wrong."""
    kind: str
    text: str


Effect = Union[SetInteraction, Notify]


class DraftProvider(ABC):
    """Builds drafts for gestures from the session's current data."""

    @abstractmethod
    def has_default_bootstrap(self) -> bool:
        """Whether the default calendar's members and settings are loaded."""
        pass

    @abstractmethod
    def create_model(self, is_all_day: bool) -> DraftEvent:
        """
        A fresh draft from defaults.

        Raises:
            ValidationError: no calendar, member or address is available.
        """
        pass

    @abstractmethod
    def edit_model(self, target: RenderedEvent) -> Optional[DraftEvent]:
        """A draft read from a persisted event; None unless its content is ready."""
        pass


@dataclass(frozen=True)
class GestureState:
    kind: SessionKind
    origin: InteractiveData  # Interaction before the gesture, restored on cancel
    grid: GridType = GridType.TIME_GRID
    captured_target: Optional[Union[RenderedEvent, TemporaryEvent]] = None
    captured_start: Optional[datetime] = None  # Draft start before the gesture
    captured_end: Optional[datetime] = None
    temporary: Optional[TemporaryState] = None
    allowed_to_move: bool = True
    duration: timedelta = timedelta(0)
    from_all_day: bool = False
    overflow: Optional[OverflowSelection] = None
    provider: Optional[DraftProvider] = field(default=None, compare=False, repr=False)


Transition = tuple[Optional[GestureState], list[Effect]]


# ==================== Gesture start ====================

def begin(action: PointerAction, interaction: InteractiveData, provider: DraftProvider) -> Transition:
    """
    Start a gesture from its DOWN action.

    Returns (None, effects) when the gesture is rejected or handled
    entirely on press.
    """
    if action.phase is not GesturePhase.DOWN:
        return None, []

    if action.family is GestureFamily.EVENT:
        return _begin_event(action.payload, interaction, provider)
    if action.family is GestureFamily.CREATE:
        return _begin_create(action.payload, interaction, provider)
    return _begin_overflow(action.payload, interaction)


def _begin_event(payload: GesturePayload, interaction: InteractiveData, provider: DraftProvider) -> Transition:
    target = payload.target
    if target is None:
        return None, []

    is_temporary = target.id == TEMPORARY_ID and interaction.temporary is not None
    if interaction.temporary is not None and not is_temporary and interaction.is_blocking:
        debug_print("GESTURE", f"Rejected press on {target.id}: draft has unsaved changes")
        return None, []

    if is_temporary:
        temporary = interaction.temporary
        return GestureState(
            kind=SessionKind.EDIT,
            origin=interaction,
            grid=payload.grid,
            captured_target=target,
            captured_start=temporary.draft.start,
            captured_end=temporary.draft.end,
            temporary=temporary,
            provider=provider,
        ), []

    allowed = isinstance(target, RenderedEvent) and target.calendar.is_probably_active
    return GestureState(
        kind=SessionKind.EDIT,
        origin=interaction,
        grid=payload.grid,
        captured_target=target,
        allowed_to_move=allowed,
        provider=provider,
    ), []


def _begin_create(payload: GesturePayload, interaction: InteractiveData, provider: DraftProvider) -> Transition:
    if not provider.has_default_bootstrap():
        debug_print("GESTURE", "Rejected create: default calendar not loaded")
        return None, []

    # A click on empty space dismisses whatever is open instead
    if not interaction.is_empty and not interaction.is_blocking:
        return None, [SetInteraction(InteractiveData())]

    from_all_day = payload.grid is GridType.DAY_GRID
    if interaction.temporary is not None:
        temporary = interaction.temporary
    else:
        try:
            temporary = TemporaryState.begin(provider.create_model(from_all_day))
        except ValidationError as e:
            debug_print("GESTURE", f"Rejected create: {e}")
            return None, [Notify("error", str(e))]

    draft = temporary.draft
    return GestureState(
        kind=SessionKind.CREATE,
        origin=interaction,
        grid=payload.grid,
        captured_start=draft.start,
        captured_end=draft.end,
        temporary=temporary,
        duration=draft.end - draft.start,
        from_all_day=from_all_day,
        provider=provider,
    ), []


def _begin_overflow(payload: GesturePayload, interaction: InteractiveData) -> Transition:
    if interaction.is_blocking:
        debug_print("GESTURE", "Rejected overflow: draft has unsaved changes")
        return None, []
    selection = OverflowSelection(
        index=payload.index,
        row=payload.row,
        events=tuple(payload.events),
        date=payload.date,
    )
    return GestureState(kind=SessionKind.OVERFLOW, origin=interaction, overflow=selection), []


# ==================== Gesture continuation ====================

def advance(state: GestureState, action: PointerAction) -> Transition:
    """Feed one later action of the gesture to its state."""
    if action.phase is GesturePhase.DOWN:
        return state, []
    if state.kind is SessionKind.EDIT:
        return _advance_event(state, action.phase, action.payload)
    if state.kind is SessionKind.CREATE:
        return _advance_create(state, action.phase, action.payload)
    return _advance_overflow(state, action.phase)


def cancel(state: GestureState) -> list[Effect]:
    """Abort an interrupted gesture, restoring the interaction it started from."""
    return [SetInteraction(state.origin)]


def _released(phase: GesturePhase) -> bool:
    return phase in (GesturePhase.UP, GesturePhase.MOVE_UP)


def _select_target(state: GestureState, payload: GesturePayload) -> Transition:
    target = state.captured_target
    keep = state.origin.temporary if target.id == TEMPORARY_ID else None
    selection = TargetSelection(id=target.id, index=payload.index, type=state.grid)
    return None, [SetInteraction(InteractiveData(temporary=keep, target=selection))]


def _publish(state: GestureState, temporary: TemporaryState, phase: GesturePhase, payload: GesturePayload) -> Transition:
    if _released(phase):
        selection = TargetSelection(id=TEMPORARY_ID, index=payload.index, type=state.grid)
        return None, [SetInteraction(InteractiveData(temporary=temporary, target=selection))]
    return replace(state, temporary=temporary), [SetInteraction(InteractiveData(temporary=temporary))]


def _normalized(is_all_day: bool, initial: Optional[datetime], value: datetime) -> datetime:
    # All-day drafts keep the time of day they had before the gesture
    if is_all_day and initial is not None:
        return with_time_of_day(value, initial)
    return value


def _advance_event(state: GestureState, phase: GesturePhase, payload: GesturePayload) -> Transition:
    if phase is GesturePhase.UP:
        return _select_target(state, payload)

    if not state.allowed_to_move:
        if phase is GesturePhase.MOVE_UP:
            return _select_target(state, payload)
        return state, []

    if state.temporary is None:
        model = state.provider.edit_model(state.captured_target) if state.provider else None
        if model is None:
            debug_print("GESTURE", f"Cannot move {state.captured_target.id}: content not readable")
            state = replace(state, allowed_to_move=False)
            if phase is GesturePhase.MOVE_UP:
                return _select_target(state, payload)
            return state, []
        state = replace(
            state,
            temporary=TemporaryState.begin(model, target=state.captured_target),
            captured_start=model.start,
            captured_end=model.end,
        )

    if payload.start is None:
        return state, []

    draft = state.temporary.draft
    patch = {'start': _normalized(draft.is_all_day, state.captured_start, payload.start)}
    if payload.end is not None:
        patch['end'] = _normalized(draft.is_all_day, state.captured_end, payload.end)

    return _publish(state, state.temporary.with_draft(update_draft(draft, patch)), phase, payload)


def _advance_create(state: GestureState, phase: GesturePhase, payload: GesturePayload) -> Transition:
    if payload.start is None:
        return (None, []) if _released(phase) else (state, [])

    start = payload.start
    if phase is GesturePhase.UP:
        end = start if state.from_all_day else start + state.duration
    elif state.from_all_day:
        end = payload.end or start  # Span extends to the hovered cell
    elif payload.end is not None and payload.end > start:
        end = payload.end
    else:
        end = start + state.duration

    draft = update_draft(state.temporary.draft, {
        'is_all_day': state.from_all_day,
        'start': _normalized(state.from_all_day, state.captured_start, start),
        'end': _normalized(state.from_all_day, state.captured_end, end),
    })
    return _publish(state, state.temporary.with_draft(draft), phase, payload)


def _advance_overflow(state: GestureState, phase: GesturePhase) -> Transition:
    if phase is GesturePhase.UP:
        return None, [SetInteraction(InteractiveData(overflow=state.overflow))]
    if phase is GesturePhase.MOVE_UP:
        return None, []
    return state, []
