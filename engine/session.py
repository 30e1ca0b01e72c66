"""
Interactive session: the orchestrator of one calendar view.

The session owns the single draft slot (InteractiveData), feeds pointer
actions through the gesture state machine, and runs the async save and
delete flows against the external store. The host pushes view state in
(set_view, set_calendars, set_events) and is notified through callbacks.

Async flows suspend on confirmations and store calls. Results are applied
only if the interaction they started from is still the current one; a
newer gesture or edit always wins.
"""

from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime, date, timedelta
from typing import Any, Callable, Optional, Sequence
import asyncio
import inspect

import pytz

from .config import Config
from .confirmation import ConfirmationBroker, ConfirmationKind, ConfirmationRequest
from .debug import debug_print, set_debug_enabled
from .draft import (
    DraftContext, DraftEvent, create_draft, draft_to_component, get_member_and_address,
    read_draft, update_draft,
)
from .errors import (
    FatalSequenceError, MissingKeyError, ReadError, StoreError, UserCancelled, ValidationError,
)
from .event_wrapper import CalEvent
from .gestures import (
    DraftProvider, Effect, GestureState, Notify, PointerAction, SetInteraction,
    advance, begin, cancel,
)
from .guard import BlockingGuard
from .models import (
    Address, CalendarSource, Event, Failed, GridType, Pending, Ready, RenderedEvent, TargetSelection,
)
from .popover import PopoverState, derive_popover
from .recurrence import IcalRecurrenceMath, RecurrenceMath
from .recurrence_edit import (
    RecurringEditPolicy, RecurringType, apply_delete, apply_scoped_edit, plan_recurring_change,
)
from .store import BootstrapReader, EventStore, KeyResolver, save_event_with_keys
from .temporary import (
    InteractiveData, Renderable, TemporaryEvent, TemporaryState, TEMPORARY_ID, sort_with_temporary,
)
from .timezone_utils import set_timezone


_RECOVERABLE_ERRORS = (MissingKeyError, StoreError, ValidationError, ReadError)


def _snap(value: Optional[datetime], minutes: int) -> Optional[datetime]:
    if value is None:
        return None
    midnight = value.replace(hour=0, minute=0, second=0, microsecond=0)
    elapsed = (value - midnight).total_seconds() / 60
    return midnight + timedelta(minutes=round(elapsed / minutes) * minutes)


def _as_recurring_type(choice: Any) -> RecurringType:
    if isinstance(choice, RecurringType):
        return choice
    return RecurringType(choice)


class InteractiveSession(DraftProvider):
    """
    Owns the interaction state of one calendar view.

    All methods are called from the host's event loop thread.
    """

    def __init__(
        self,
        config: Optional[Config],
        store: EventStore,
        keys: KeyResolver,
        reader: BootstrapReader,
        recurrence_math: Optional[RecurrenceMath] = None,
    ):
        self.config = config or Config()
        self.store = store
        self.keys = keys
        self.reader = reader
        self.math = recurrence_math or IcalRecurrenceMath()

        set_timezone(self.config.general.timezone)
        if self.config.general.debug:
            set_debug_enabled(True)

        self.broker = ConfirmationBroker()
        self.guard = BlockingGuard(
            self.broker, self.config.labels, self.config.interaction.guarded_routes
        )

        # View state pushed in by the host
        self.tzid: str = self.config.general.timezone
        self.view_date: date = date.today()
        self.date_range: tuple[date, date] = (self.view_date, self.view_date)
        self.is_narrow = False
        self._now: Optional[datetime] = None
        self._calendars: dict[str, CalendarSource] = {}
        self._default_calendar_id: Optional[str] = None
        self.addresses: list[Address] = []
        self._events: list[RenderedEvent] = []

        # The draft slot and the gesture in progress
        self._interaction = InteractiveData()
        self._gesture: Optional[GestureState] = None
        self.modal_open = False
        self.fatal: Optional[FatalSequenceError] = None
        self._event_locks: dict[tuple[str, str], tuple[asyncio.Lock, int]] = {}

        self._on_change_callback: Optional[Callable[[], None]] = None
        self._on_interaction_callback: Optional[Callable[[bool], None]] = None
        self._on_change_date_callback: Optional[Callable[[date], None]] = None
        self._on_notify_callback: Optional[Callable[[str, str], None]] = None
        self._on_refresh_callback: Optional[Callable[[], Any]] = None

    # ==================== Callbacks ====================

    def set_on_change_callback(self, callback: Callable[[], None]) -> None:
        """Set callback invoked whenever the interactive data changes."""
        self._on_change_callback = callback

    def set_on_interaction_callback(self, callback: Callable[[bool], None]) -> None:
        """Set callback invoked when a temporary event appears (True) or disappears (False)."""
        self._on_interaction_callback = callback

    def set_on_change_date_callback(self, callback: Callable[[date], None]) -> None:
        """Set callback asking the host to navigate to a date."""
        self._on_change_date_callback = callback

    def set_on_notify_callback(self, callback: Callable[[str, str], None]) -> None:
        """Set callback for user notifications, called with (kind, text)."""
        self._on_notify_callback = callback

    def set_on_refresh_callback(self, callback: Callable[[], Any]) -> None:
        """Set callback run after a store change; may return an awaitable."""
        self._on_refresh_callback = callback

    def set_on_confirmation_callback(self, callback: Callable[[ConfirmationRequest], None]) -> None:
        """Set callback invoked when the host must present a confirmation."""
        self.broker.set_on_request_callback(callback)

    def resolve_confirmation(self, token: int, outcome: Any) -> bool:
        return self.broker.resolve_confirmation(token, outcome)

    def _notify(self, kind: str, text: str) -> None:
        debug_print("SESSION", f"{kind}: {text}")
        if self._on_notify_callback:
            self._on_notify_callback(kind, text)

    async def _refresh(self) -> None:
        if self._on_refresh_callback:
            result = self._on_refresh_callback()
            if inspect.isawaitable(result):
                await result

    # ==================== View state ====================

    def set_view(
        self,
        view_date: date,
        date_range: Optional[tuple[date, date]] = None,
        tzid: Optional[str] = None,
        is_narrow: bool = False,
        now: Optional[datetime] = None,
    ) -> None:
        self.view_date = view_date
        self.date_range = date_range or (view_date, view_date)
        if tzid:
            self.tzid = tzid
        self.is_narrow = is_narrow
        self._now = now

    def set_calendars(
        self,
        calendars: Sequence[CalendarSource],
        default_calendar_id: Optional[str] = None,
        addresses: Sequence[Address] = (),
    ) -> None:
        self._calendars = {calendar.id: calendar for calendar in calendars}
        self._default_calendar_id = default_calendar_id
        self.addresses = list(addresses)

    def set_events(self, events: Sequence[RenderedEvent]) -> None:
        """Replace the persisted events currently in view."""
        self._events = list(events)
        self._notify_change()

    @property
    def now(self) -> datetime:
        return self._now or datetime.now(pytz.UTC)

    @property
    def active_calendars(self) -> list[CalendarSource]:
        return [calendar for calendar in self._calendars.values() if calendar.is_probably_active]

    @property
    def default_calendar(self) -> Optional[CalendarSource]:
        calendar = self._calendars.get(self._default_calendar_id) if self._default_calendar_id else None
        if calendar is not None and calendar.is_probably_active:
            return calendar
        active = self.active_calendars
        return active[0] if active else None

    # ==================== Interactive data ====================

    @property
    def interaction(self) -> InteractiveData:
        return self._interaction

    @property
    def draft(self) -> Optional[DraftEvent]:
        temporary = self._interaction.temporary
        return temporary.draft if temporary else None

    @property
    def temporary_event(self) -> Optional[TemporaryEvent]:
        temporary = self._interaction.temporary
        return temporary.event if temporary else None

    @property
    def is_blocking(self) -> bool:
        return self._interaction.is_blocking

    @property
    def is_creating_event(self) -> bool:
        temporary = self._interaction.temporary
        return temporary is not None and temporary.is_create

    @property
    def is_editing_event(self) -> bool:
        temporary = self._interaction.temporary
        return temporary is not None and temporary.is_edit

    @property
    def is_scroll_disabled(self) -> bool:
        """A selection is open without a temporary event."""
        return not self._interaction.is_empty and self._interaction.temporary is None

    def _notify_change(self) -> None:
        if self._on_change_callback:
            self._on_change_callback()

    def _set_interaction(self, data: InteractiveData) -> None:
        had_temporary = self._interaction.temporary is not None
        self._interaction = data
        has_temporary = data.temporary is not None
        if had_temporary != has_temporary and self._on_interaction_callback:
            self._on_interaction_callback(has_temporary)
        self._notify_change()

    def _apply(self, effects: list[Effect]) -> None:
        for effect in effects:
            if isinstance(effect, SetInteraction):
                self._set_interaction(effect.data)
            elif isinstance(effect, Notify):
                self._notify(effect.kind, effect.text)

    def render_events(self) -> list[Renderable]:
        """Persisted events plus the temporary event, in render order."""
        return sort_with_temporary(self._events, self.temporary_event)

    def popover(self) -> PopoverState:
        return derive_popover(self._interaction, self.render_events(), self.reader.read_event)

    def _selected_event(self) -> Optional[Renderable]:
        target = self._interaction.target
        if target is None:
            return None
        return next((event for event in self.render_events() if event.id == target.id), None)

    # ==================== Draft building ====================

    def _draft_context(self) -> DraftContext:
        default = self.default_calendar
        bootstrap = self.reader.read_calendar_bootstrap(default.id) if default else Pending()
        return DraftContext(
            tzid=self.tzid,
            view_date=self.view_date,
            now=self.now,
            default_calendar=default,
            default_bootstrap=bootstrap,
            active_calendars=self.active_calendars,
            addresses=self.addresses,
            reader=self.reader,
            default_duration_minutes=self.config.interaction.default_duration_minutes,
        )

    def has_default_bootstrap(self) -> bool:
        default = self.default_calendar
        return default is not None and isinstance(self.reader.read_calendar_bootstrap(default.id), Ready)

    def create_model(self, is_all_day: bool) -> DraftEvent:
        context = self._draft_context()
        if not isinstance(context.default_bootstrap, Ready):
            raise ValidationError("Default calendar is not available")
        return create_draft(context, context.default_bootstrap.value, is_all_day)

    def edit_model(self, target: RenderedEvent) -> Optional[DraftEvent]:
        try:
            result = read_draft(self._draft_context(), target)
        except ValidationError as e:
            self._notify("error", str(e))
            return None
        if isinstance(result, Failed):
            debug_print("SESSION", f"Cannot read {target.id}: {result.error}")
        return result.value if isinstance(result, Ready) else None

    # ==================== Gestures ====================

    def pointer_down(self, action: PointerAction) -> Optional[GestureState]:
        """
        Start a gesture. Returns its state, or None when it was rejected.

        A gesture still in progress is cancelled first.
        """
        if self.fatal is not None:
            return None
        if self._gesture is not None:
            self.cancel_gesture()

        state, effects = begin(action, self._interaction, self)
        self._gesture = state
        self._apply(effects)
        return state

    def pointer_input(self, action: PointerAction) -> Optional[GestureState]:
        """Feed a later action of the current gesture. Returns None once released."""
        if self._gesture is None:
            return None
        state, effects = advance(self._gesture, self._snapped(action))
        self._gesture = state
        self._apply(effects)
        return state

    def cancel_gesture(self) -> None:
        """Abort the current gesture (pointer capture lost, Escape)."""
        if self._gesture is None:
            return
        effects = cancel(self._gesture)
        self._gesture = None
        self._apply(effects)

    def _snapped(self, action: PointerAction) -> PointerAction:
        minutes = self.config.interaction.drag_snap_minutes
        payload = action.payload
        if minutes <= 1 or payload.grid is not GridType.TIME_GRID:
            return action
        snapped = replace(payload, start=_snap(payload.start, minutes), end=_snap(payload.end, minutes))
        return replace(action, payload=snapped)

    def click_event(self, event_id: str, index: int = 0, grid: GridType = GridType.TIME_GRID) -> None:
        """Select an event from an overflow list, keeping the rest of the interaction."""
        selection = TargetSelection(id=event_id, index=index, type=grid)
        self._set_interaction(replace(self._interaction, target=selection))

    # ==================== Draft editing ====================

    def set_draft_model(self, patch: dict) -> Optional[DraftEvent]:
        """
        Apply a field patch from the popover or editor to the draft.

        Asks the host to navigate when the new start leaves the visible range.
        A move to a calendar whose members are not loaded yet is refused and
        returns None, leaving the draft as it was.
        """
        temporary = self._interaction.temporary
        if temporary is None:
            return None

        bootstrap = None
        calendar = patch.get('calendar')
        if calendar is not None and calendar.id != temporary.draft.calendar.id:
            result = self.reader.read_calendar_bootstrap(calendar.id)
            if not isinstance(result, Ready):
                reason = "could not be read" if isinstance(result, Failed) else "is still loading"
                self._notify("error", f"Calendar {calendar.name} {reason}")
                return None
            bootstrap = result.value

        draft = update_draft(temporary.draft, patch, bootstrap=bootstrap, addresses=self.addresses)

        start_day = draft.start.date()
        if self.is_narrow:
            in_range = start_day == self.view_date
        else:
            in_range = self.date_range[0] <= start_day <= self.date_range[1]
        if not in_range and self._on_change_date_callback:
            self._on_change_date_callback(start_day)

        self._set_interaction(replace(self._interaction, temporary=temporary.with_draft(draft)))
        return draft

    def edit_in_modal(self) -> None:
        """Switch the draft to the full editor, closing the popover only."""
        self.modal_open = True
        self._set_interaction(InteractiveData(temporary=self._interaction.temporary))

    def edit_target(self) -> bool:
        """Start editing the selected persisted event in the full editor."""
        target = self._selected_event()
        if not isinstance(target, RenderedEvent) or target.event is None:
            return False
        model = self.edit_model(target)
        if model is None:
            return False
        self._set_interaction(InteractiveData(temporary=TemporaryState.begin(model, target=target)))
        self.modal_open = True
        return True

    def start_new_event_creation(self) -> Optional[int]:
        """
        Open the full editor on a fresh draft (toolbar button, shortcut).

        An unsaved draft is only replaced after confirmation; returns the
        confirmation token in that case.
        """
        if self.fatal is not None:
            return None

        def start():
            try:
                draft = self.create_model(False)
            except ValidationError as e:
                self._notify("error", str(e))
                return
            self._set_interaction(InteractiveData(temporary=TemporaryState.begin(draft)))
            self.modal_open = True

        return self.guard.request_discard(self._interaction, True, start)

    # ==================== Closing ====================

    def _discard_if_current(self, interaction: InteractiveData) -> Callable[[], None]:
        def discard():
            if self._interaction.temporary is not interaction.temporary:
                debug_print("SESSION", "Discard skipped: draft changed while confirming")
                return
            self.modal_open = False
            self._set_interaction(InteractiveData())
        return discard

    def close_active_interaction(self) -> Optional[int]:
        """Close the popover and draft, asking first if that loses changes."""
        return self.guard.request_discard(
            self._interaction, True, self._discard_if_current(self._interaction)
        )

    def close_popover(self, safe: bool = False) -> Optional[int]:
        if safe:
            self._discard_if_current(self._interaction)()
            return None
        return self.close_active_interaction()

    def close_modal(self, safe: bool = False) -> Optional[int]:
        return self.close_popover(safe)

    def handle_outside_click(self, node_chain: Sequence[str]) -> Optional[int]:
        return self.guard.handle_outside_click(
            self._interaction, node_chain, self._discard_if_current(self._interaction)
        )

    def before_unload(self) -> Optional[str]:
        """Message for the application-exit prompt; None when exiting is safe."""
        return self.guard.unload_message(self._interaction)

    def on_route_change(self, path: str) -> bool:
        """Whether in-app navigation to path may proceed now."""
        return self.guard.allow_route_change(
            self._interaction, path, self._discard_if_current(self._interaction)
        )

    # ==================== Async flows ====================

    @asynccontextmanager
    async def _lock_for(self, event: Optional[Event]):
        """Serialise flows on one event. The lock is dropped once no flow holds or awaits it."""
        if event is None:
            yield
            return
        key = (event.calendar_id, event.id)
        lock, users = self._event_locks.get(key, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._event_locks[key] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._event_locks[key]
            if users == 1:
                del self._event_locks[key]
            else:
                self._event_locks[key] = (lock, users - 1)

    def _enter_fatal(self, error: FatalSequenceError) -> None:
        self.fatal = error
        self.broker.cancel_all()
        self._notify("fatal", f"{error} - please reload")

    def _calendar_for(self, calendar: CalendarSource) -> CalendarSource:
        return self._calendars.get(calendar.id, calendar)

    def _close_if_current(self, interaction: InteractiveData, action: str) -> None:
        if self._interaction is interaction:
            self.modal_open = False
            self._set_interaction(InteractiveData())
        else:
            debug_print("SESSION", f"Stale {action} result ignored: interaction changed meanwhile")

    async def save(self) -> Optional[Event]:
        """
        Save the draft. Returns the stored event, or None when nothing was saved.

        Key and store failures are notified and keep the draft for a retry.
        """
        if self.fatal is not None:
            self._notify("fatal", str(self.fatal))
            return None

        interaction = self._interaction
        temporary = interaction.temporary
        if temporary is None:
            return None
        target = temporary.target
        event = target.event if target is not None else None

        try:
            async with self._lock_for(event):
                saved = await self._save_draft(temporary.draft, target)
        except UserCancelled:
            debug_print("SESSION", "Save cancelled")
            return None
        except _RECOVERABLE_ERRORS as e:
            self._notify("error", str(e))
            return None
        except FatalSequenceError as e:
            self._enter_fatal(e)
            return None

        if saved is not None:
            self._close_if_current(interaction, "save")
        return saved

    async def _save_draft(self, draft: DraftEvent, target: Optional[RenderedEvent]) -> Optional[Event]:
        event = target.event if target is not None else None
        if target is None or event is None or not target.is_recurring:
            return await self._save_component(event, draft_to_component(draft), draft)

        labels = self.config.labels
        if self.config.interaction.recurring_edit_policy is RecurringEditPolicy.CONFIRM or target.occurrence is None:
            await self.broker.confirm(
                ConfirmationKind.EDIT_RECURRING, labels.edit_recurring_title, labels.edit_recurring_message
            )
            return await self._save_component(event, draft_to_component(draft), draft)

        occurrence = target.occurrence
        plan = plan_recurring_change(occurrence, self.reader.read_event(target.calendar.id, event.id), self.math)
        if plan is None:
            debug_print("SESSION", f"Save of {target.id} skipped: series still loading")
            return None

        kind = _as_recurring_type(await self.broker.confirm(
            ConfirmationKind.EDIT_RECURRING,
            labels.edit_recurring_title,
            labels.edit_recurring_message,
            options=plan.options,
        ))
        if kind not in plan.options:
            if plan.degraded:
                raise ReadError(f"Series {event.id} could not be read, only the whole series can be changed")
            raise ValidationError(f"Cannot apply this change to {kind.value} occurrences")
        if kind is RecurringType.ALL:
            return await self._save_component(event, draft_to_component(draft), draft)

        edit = apply_scoped_edit(plan.content, kind, occurrence, draft, self.math)
        member_id, address_id = self._acting_member(target.calendar, event, draft)
        await save_event_with_keys(
            self.store, self.keys, event, edit.series, self._calendar_for(target.calendar), member_id, address_id
        )
        try:
            created = await save_event_with_keys(
                self.store, self.keys, None, edit.created, self._calendar_for(draft.calendar),
                draft.member_id, draft.address_id,
            )
        except (MissingKeyError, StoreError) as e:
            raise FatalSequenceError(
                f"Series updated but the new event could not be created: {e}",
                committed_steps=("update series",),
            ) from e
        await self._refresh()
        return created

    def _acting_member(self, calendar: CalendarSource, event: Event, draft: DraftEvent) -> tuple[str, str]:
        if draft.calendar.id == calendar.id:
            return draft.member_id, draft.address_id
        result = self.reader.read_calendar_bootstrap(calendar.id)
        if not isinstance(result, Ready):
            raise ValidationError(f"Calendar {calendar.name} is not available")
        member, address = get_member_and_address(self.addresses, result.value.members, event.author)
        return member.id, address.id

    async def _save_component(self, event: Optional[Event], component: CalEvent, draft: DraftEvent) -> Event:
        saved = await save_event_with_keys(
            self.store, self.keys, event, component, self._calendar_for(draft.calendar),
            draft.member_id, draft.address_id,
        )
        await self._refresh()
        return saved

    def _delete_target(self) -> Optional[RenderedEvent]:
        temporary = self._interaction.temporary
        if temporary is not None and temporary.target is not None:
            return temporary.target
        selected = self._selected_event()
        if isinstance(selected, RenderedEvent) and selected.id != TEMPORARY_ID:
            return selected
        return None

    async def delete(self) -> bool:
        """
        Delete the selected (or edited) persisted event. Returns whether anything was deleted.

        Recurring events ask which occurrences to delete.
        """
        if self.fatal is not None:
            self._notify("fatal", str(self.fatal))
            return False

        target = self._delete_target()
        if target is None or target.event is None:
            return False
        interaction = self._interaction

        try:
            async with self._lock_for(target.event):
                deleted = await self._delete_event(target)
        except UserCancelled:
            debug_print("SESSION", "Delete cancelled")
            return False
        except _RECOVERABLE_ERRORS as e:
            self._notify("error", str(e))
            return False
        except FatalSequenceError as e:
            self._enter_fatal(e)
            return False

        if deleted:
            self._close_if_current(interaction, "delete")
        return deleted

    async def _delete_all(self, event: Event) -> None:
        await self.store.delete(event.calendar_id, event.id)
        debug_print("SESSION", f"Deleted {event.id} from {event.calendar_id}")
        await self._refresh()

    async def _delete_event(self, target: RenderedEvent) -> bool:
        event = target.event
        occurrence = target.occurrence
        labels = self.config.labels

        if not (target.is_recurring and occurrence is not None and not occurrence.is_single_occurrence):
            await self.broker.confirm(ConfirmationKind.DELETE, labels.delete_title, labels.delete_message)
            await self._delete_all(event)
            return True

        if target.calendar.disabled:
            await self.broker.confirm(ConfirmationKind.DELETE, labels.delete_all_title, labels.delete_all_message)
            await self._delete_all(event)
            return True

        bootstrap = self.reader.read_calendar_bootstrap(target.calendar.id)
        content = self.reader.read_event(target.calendar.id, event.id)
        if isinstance(content, Failed):
            # The series can still be removed as a whole
            await self.broker.confirm(ConfirmationKind.DELETE, labels.delete_all_title, labels.delete_all_message)
            await self._delete_all(event)
            return True
        if isinstance(bootstrap, Pending) or isinstance(content, Pending):
            debug_print("SESSION", f"Delete of {target.id} skipped: series still loading")
            return False
        if isinstance(bootstrap, Failed):
            raise ValidationError(f"Calendar {target.calendar.name} could not be read: {bootstrap.error}")

        member, address = get_member_and_address(self.addresses, bootstrap.value.members, event.author)
        plan = plan_recurring_change(occurrence, content, self.math)

        kind = _as_recurring_type(await self.broker.confirm(
            ConfirmationKind.DELETE_RECURRING,
            labels.delete_recurring_title,
            labels.delete_recurring_message,
            options=plan.options,
        ))
        if kind not in plan.options:
            raise ValidationError(f"Cannot delete {kind.value} occurrences of this event")

        if kind is RecurringType.ALL:
            await self._delete_all(event)
            return True

        updated = apply_delete(plan.content, kind, occurrence, member.id)
        await save_event_with_keys(
            self.store, self.keys, event, updated, self._calendar_for(target.calendar), member.id, address.id
        )
        await self._refresh()
        return True
