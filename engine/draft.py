"""
The draft event: the single in-progress create or edit.

A DraftEvent is immutable; every change goes through update_draft(), which
returns a new draft with its dependent fields re-derived. Start and end are
naive wall-clock datetimes in the draft's tzid. All-day drafts keep the
time of day of their start and end so that toggling all-day off restores
it; their effective span is clamped to whole days.
"""

from dataclasses import dataclass, field, fields, replace
from datetime import datetime, date, timedelta
from typing import Any, Mapping, Optional, Sequence, Union
import uuid

from icalendar import Event as ICalEvent, Alarm
import pytz

from .errors import ValidationError
from .event_wrapper import CalEvent
from .models import (
    Address, CalendarBootstrap, CalendarSource, DecryptedEvent, Failed, Member,
    Pending, ReadResult, Ready, RenderedEvent,
)
from .store import BootstrapReader
from .timezone_utils import (
    get_timezone, next_full_hour, utc_to_local_naive, value_to_local_naive,
)


DEFAULT_DURATION = timedelta(hours=1)


@dataclass(frozen=True)
class RecurrenceRule:
    """Editable form of an RRULE. The stored rule lives in the icalendar component."""
    frequency: str  # DAILY, WEEKLY, MONTHLY, YEARLY
    interval: int = 1
    count: Optional[int] = None
    until: Optional[Union[datetime, date]] = None
    by_day: tuple[str, ...] = ()

    @classmethod
    def from_vrecur(cls, rrule) -> Optional['RecurrenceRule']:
        """Build from an icalendar vRecur (whose values are lists)."""
        if rrule is None:
            return None

        def first(key: str):
            value = rrule.get(key)
            if isinstance(value, list):
                return value[0] if value else None
            return value

        by_day = rrule.get('BYDAY', [])
        if not isinstance(by_day, list):
            by_day = [by_day]
        frequency = first('FREQ')
        if not frequency:
            return None
        return cls(
            frequency=str(frequency).upper(),
            interval=int(first('INTERVAL') or 1),
            count=int(first('COUNT')) if first('COUNT') else None,
            until=first('UNTIL'),
            by_day=tuple(str(day) for day in by_day),
        )

    def to_ical_dict(self) -> dict:
        rule: dict[str, Any] = {'freq': self.frequency}
        if self.interval > 1:
            rule['interval'] = self.interval
        if self.count:
            rule['count'] = self.count
        elif self.until:
            rule['until'] = self.until
        if self.by_day:
            rule['byday'] = list(self.by_day)
        return rule


@dataclass(frozen=True)
class DraftEvent:
    """Working copy of an event being created or edited."""
    calendar: CalendarSource
    member_id: str
    address_id: str
    start: datetime
    end: datetime
    tzid: str = "UTC"
    is_all_day: bool = False
    title: str = ""
    description: str = ""
    location: str = ""
    recurrence: Optional[RecurrenceRule] = None
    notifications: tuple[int, ...] = ()  # minutes before start

    # Where an edit draft came from; not user-editable
    uid: Optional[str] = None
    origin_start: Optional[datetime] = None  # occurrence start when read
    series_start: Optional[datetime] = None  # series DTSTART when read

    @property
    def day_bounds(self) -> tuple[date, date]:
        """First and last (inclusive) day of an all-day draft."""
        return self.start.date(), self.end.date()

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


_FIELD_NAMES = frozenset(f.name for f in fields(DraftEvent))


@dataclass
class DraftContext:
    """Everything needed to build a draft, captured from the session."""
    tzid: str
    view_date: date
    now: datetime
    default_calendar: Optional[CalendarSource] = None
    default_bootstrap: ReadResult = field(default_factory=Pending)
    active_calendars: Sequence[CalendarSource] = ()
    addresses: Sequence[Address] = ()
    reader: Optional[BootstrapReader] = None
    default_duration_minutes: int = 60  # When the calendar settings give none


def initial_date(context: DraftContext) -> datetime:
    """The viewed day at the current local time of day."""
    now_local = utc_to_local_naive(context.now, context.tzid)
    return datetime.combine(context.view_date, now_local.time().replace(second=0, microsecond=0))


def get_member_and_address(
    addresses: Sequence[Address],
    members: Sequence[Member],
    author: str = "",
) -> tuple[Member, Address]:
    """
    Pick the calendar member (and its address) acting on an event.

    Prefers the member matching the event author, then the first member
    that has one of the user's addresses.

    Raises:
        ValidationError: no member has a usable address.
    """
    by_email = {address.email.lower(): address for address in addresses}

    if author:
        for member in members:
            address = by_email.get(member.email.lower())
            if member.email.lower() == author.lower() and address:
                return member, address

    for member in members:
        address = by_email.get(member.email.lower())
        if address:
            return member, address

    raise ValidationError("No valid address found for this calendar")


def create_draft(
    context: DraftContext,
    bootstrap: CalendarBootstrap,
    is_all_day: bool = False,
) -> DraftEvent:
    """
    Build a fresh draft from empty-state defaults.

    Starts at the next full hour of the viewed day and lasts the calendar's
    default event duration.

    Raises:
        ValidationError: no calendar, member or address is available.
    """
    calendar = context.default_calendar
    if calendar is None and context.active_calendars:
        calendar = context.active_calendars[0]
    if calendar is None:
        raise ValidationError("No calendar available")

    member, address = get_member_and_address(context.addresses, bootstrap.members)

    settings = bootstrap.settings
    start = next_full_hour(initial_date(context))
    duration = timedelta(minutes=settings.default_event_duration or context.default_duration_minutes)
    notifications = settings.default_full_day_notifications if is_all_day else settings.default_part_day_notifications

    return DraftEvent(
        calendar=calendar,
        member_id=member.id,
        address_id=address.id,
        start=start,
        end=start + duration,
        tzid=context.tzid,
        is_all_day=is_all_day,
        notifications=tuple(notifications),
    )


def read_draft(context: DraftContext, target: RenderedEvent) -> ReadResult:
    """
    Build a draft from an existing event (or one occurrence of a series).

    Returns Pending while the calendar bootstrap or the decrypted content
    is not available yet and Failed when either read failed; a partial
    draft is never returned.

    Raises:
        ValidationError: no member of the calendar has a usable address.
    """
    if target.event is None or context.reader is None:
        return Failed(ValidationError("Target is not a persisted event"))

    bootstrap_result = context.reader.read_calendar_bootstrap(target.calendar.id)
    if not isinstance(bootstrap_result, Ready):
        return bootstrap_result

    member, address = get_member_and_address(
        context.addresses, bootstrap_result.value.members, target.event.author
    )

    content_result = context.reader.read_event(target.calendar.id, target.event.id)
    if not isinstance(content_result, Ready):
        return content_result

    return Ready(_draft_from_content(context, target, content_result.value, member, address))


def _alarm_minutes(alarm: Alarm) -> Optional[int]:
    trigger = alarm.get('TRIGGER')
    if trigger is None or not isinstance(trigger.dt, timedelta):
        return None
    return int(-trigger.dt.total_seconds() // 60)


def _draft_from_content(
    context: DraftContext,
    target: RenderedEvent,
    content: DecryptedEvent,
    member: Member,
    address: Address,
) -> DraftEvent:
    component = content.component
    fallback_time = initial_date(context).time()

    series_start = value_to_local_naive(component.dtstart, context.tzid, fallback_time)
    if target.occurrence is not None:
        start = value_to_local_naive(target.occurrence.local_start, context.tzid, fallback_time)
    else:
        start = series_start

    if component.all_day:
        # DTEND of an all-day event is exclusive
        span_days = max(component.duration.days - 1, 0)
        end = start + timedelta(days=span_days)
    else:
        end = start + component.duration

    notifications = tuple(
        minutes for minutes in map(_alarm_minutes, content.alarms_for(member.id))
        if minutes is not None
    )

    return DraftEvent(
        calendar=target.calendar,
        member_id=member.id,
        address_id=address.id,
        start=start,
        end=end,
        tzid=context.tzid,
        is_all_day=component.all_day,
        title=component.summary,
        description=component.description,
        location=component.location,
        recurrence=RecurrenceRule.from_vrecur(component.rrule),
        notifications=notifications,
        uid=component.uid or None,
        origin_start=start,
        series_start=series_start if component.is_recurring else None,
    )


def update_draft(
    draft: DraftEvent,
    patch: Mapping[str, Any],
    *,
    bootstrap: Optional[CalendarBootstrap] = None,
    addresses: Sequence[Address] = (),
) -> DraftEvent:
    """
    Merge a patch into a draft and re-derive dependent fields.

    - Changing only the start keeps the duration.
    - Turning all-day off on a zero-length span restores a default duration.
    - Changing the calendar re-picks member and address when the new
      calendar's bootstrap is supplied.
    - The end never precedes the start.

    Raises:
        TypeError: the patch names a field DraftEvent does not have.
    """
    unknown = set(patch) - _FIELD_NAMES
    if unknown:
        raise TypeError(f"Unknown draft fields: {', '.join(sorted(unknown))}")
    if not patch:
        return draft

    updated = replace(draft, **patch)

    if 'start' in patch and 'end' not in patch:
        updated = replace(updated, end=updated.start + draft.duration)

    if draft.is_all_day and not updated.is_all_day and updated.end <= updated.start:
        updated = replace(updated, end=updated.start + DEFAULT_DURATION)

    if 'calendar' in patch and patch['calendar'].id != draft.calendar.id and bootstrap is not None:
        member, address = get_member_and_address(addresses, bootstrap.members)
        updated = replace(updated, member_id=member.id, address_id=address.id)

    return _clamp_span(updated)


def _clamp_span(draft: DraftEvent) -> DraftEvent:
    start, end = draft.start, draft.end
    if draft.is_all_day and end.date() < start.date():
        end = datetime.combine(start.date(), end.time())
    if end < start:
        end = start
    if end is draft.end:
        return draft
    return replace(draft, end=end)


def _comparable(draft: DraftEvent) -> tuple:
    if draft.is_all_day:
        span: tuple = draft.day_bounds
    else:
        span = (draft.start, draft.end)
    return (
        draft.calendar.id, draft.member_id, draft.address_id, draft.is_all_day, span,
        draft.title, draft.description, draft.location, draft.recurrence, draft.notifications,
    )


def has_unsaved_changes(
    draft: Optional[DraftEvent],
    snapshot: Optional[DraftEvent],
    is_edit: bool,
) -> bool:
    """
    Whether discarding the draft would lose user data.

    Edits compare against the snapshot taken when the session started.
    For creates the times picked by gestures do not count; any typed text,
    recurrence, notification or calendar change does.
    """
    if draft is None:
        return False
    if snapshot is None:
        return True

    if is_edit:
        return _comparable(draft) != _comparable(snapshot)

    if draft.title.strip() or draft.description.strip() or draft.location.strip():
        return True
    return (
        draft.recurrence != snapshot.recurrence
        or draft.notifications != snapshot.notifications
        or draft.calendar.id != snapshot.calendar.id
    )


def draft_to_component(
    draft: DraftEvent,
    *,
    uid: Optional[str] = None,
    single: bool = False,
) -> CalEvent:
    """
    Build the VEVENT to save for a draft.

    Whole-series saves of a draft read from one occurrence shift the series
    start by the distance the occurrence was moved. single drops the
    recurrence and uses the draft's own times. Exclusions of the original
    series are never carried over.
    """
    event = ICalEvent()
    event.add('uid', uid or draft.uid or str(uuid.uuid4()))
    event.add('dtstamp', datetime.now(pytz.UTC))
    event.add('summary', draft.title)
    if draft.description:
        event.add('description', draft.description)
    if draft.location:
        event.add('location', draft.location)

    start, end = draft.start, draft.end
    recurring = draft.recurrence is not None and not single
    if recurring and draft.series_start is not None and draft.origin_start is not None:
        start = draft.series_start + (draft.start - draft.origin_start)
        end = start + draft.duration

    if draft.is_all_day:
        event.add('dtstart', start.date())
        event.add('dtend', end.date() + timedelta(days=1))
    else:
        zone = get_timezone(draft.tzid)
        event.add('dtstart', zone.localize(start))
        event.add('dtend', zone.localize(end))

    if recurring:
        event.add('rrule', draft.recurrence.to_ical_dict())

    for minutes in draft.notifications:
        alarm = Alarm()
        alarm.add('action', 'DISPLAY')
        alarm.add('description', draft.title or 'Reminder')
        alarm.add('trigger', timedelta(minutes=-minutes))
        event.add_component(alarm)

    return CalEvent(event=event)
