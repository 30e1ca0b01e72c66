"""Pytest fixtures for calendar-interaction tests."""

from datetime import datetime, date, timedelta
from typing import Optional
import asyncio

import pytest
import pytz
from icalendar import Alarm, Calendar as ICalCalendar, Event as ICalEvent

from engine.config import Config
from engine.draft import DraftContext, DraftEvent
from engine.errors import MissingKeyError
from engine.event_wrapper import CalEvent
from engine.gestures import DraftProvider
from engine.models import (
    Address, CalendarBootstrap, CalendarSettings, CalendarSource, DecryptedEvent, Event,
    Member, Occurrence, Pending, Ready, RenderedEvent,
)
from engine.recurrence import IcalRecurrenceMath
from engine.session import InteractiveSession
from engine.store import BootstrapReader, EventStore, KeyResolver


UTC = pytz.UTC
VIEW_DATE = date(2024, 3, 4)  # A Monday
NOW = datetime(2024, 3, 4, 9, 30, tzinfo=UTC)
EMAIL = "alice@example.com"


# ==================== Fake collaborators ====================

class FakeReader(BootstrapReader):
    """In-memory decrypted-data cache. Unknown keys read as Pending."""

    def __init__(self):
        self.bootstraps = {}
        self.events = {}

    def read_calendar_bootstrap(self, calendar_id):
        return self.bootstraps.get(calendar_id, Pending())

    def read_event(self, calendar_id, event_id):
        return self.events.get((calendar_id, event_id), Pending())


class FakeKeys(KeyResolver):
    def __init__(self):
        self.missing: set[str] = set()
        self.calendar_lookups: list[str] = []

    async def address_keys_for(self, address_id):
        if address_id in self.missing:
            raise MissingKeyError("Address key not decrypted", owner_id=address_id)
        return [f"address-key:{address_id}"]

    async def calendar_keys_for(self, calendar_id):
        self.calendar_lookups.append(calendar_id)
        if calendar_id in self.missing:
            return []
        return [f"calendar-key:{calendar_id}"]


class FakeStore(EventStore):
    def __init__(self):
        self.saved: list[tuple[Optional[Event], CalEvent, object]] = []
        self.deleted: list[tuple[str, str]] = []
        self.display_changes: list[tuple[str, bool]] = []
        self.save_error: Optional[Exception] = None
        self.display_error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None

    async def save(self, event, content, target):
        if self.gate is not None:
            await self.gate.wait()
        if self.save_error:
            raise self.save_error
        self.saved.append((event, content, target))
        return event or Event(calendar_id=target.calendar_id, id=content.uid, author=EMAIL)

    async def delete(self, calendar_id, event_id):
        self.deleted.append((calendar_id, event_id))

    async def set_calendar_display(self, calendar_id, display):
        if self.display_error:
            raise self.display_error
        self.display_changes.append((calendar_id, display))


class StaticProvider(DraftProvider):
    """DraftProvider returning prepared drafts."""

    def __init__(self, create: Optional[DraftEvent] = None, edit: Optional[DraftEvent] = None, loaded: bool = True):
        self.create = create
        self.edit = edit
        self.loaded = loaded
        self.edit_reads = 0

    def has_default_bootstrap(self):
        return self.loaded

    def create_model(self, is_all_day):
        return self.create

    def edit_model(self, target):
        self.edit_reads += 1
        return self.edit


# ==================== Factories ====================

def make_series(
    count: int = 5,
    start: datetime = datetime(2024, 3, 4, 10, 0, tzinfo=UTC),
    uid: str = "series-1",
    exdates: tuple = (),
    summary: str = "Standup",
) -> CalEvent:
    """A weekly series of count occurrences lasting one hour each."""
    event = ICalEvent()
    event.add('uid', uid)
    event.add('summary', summary)
    event.add('dtstart', start)
    event.add('dtend', start + (timedelta(hours=1) if isinstance(start, datetime) else timedelta(days=1)))
    event.add('rrule', {'freq': 'WEEKLY', 'count': count})
    if exdates:
        event.add('exdate', list(exdates))
    return CalEvent(event=event)


def make_single(
    start=datetime(2024, 3, 5, 10, 0, tzinfo=UTC),
    end=None,
    uid: str = "single-1",
    summary: str = "Dentist",
) -> CalEvent:
    event = ICalEvent()
    event.add('uid', uid)
    event.add('summary', summary)
    event.add('dtstart', start)
    if end is None:
        end = start + (timedelta(days=1) if not isinstance(start, datetime) else timedelta(hours=1))
    event.add('dtend', end)
    return CalEvent(event=event)


def make_alarm(minutes: int) -> Alarm:
    alarm = Alarm()
    alarm.add('action', 'DISPLAY')
    alarm.add('trigger', timedelta(minutes=-minutes))
    return alarm


def render(component: CalEvent, calendar: CalendarSource, occurrence: Optional[Occurrence] = None) -> RenderedEvent:
    """Place a stored component (or one of its occurrences) in the view."""
    start = occurrence.local_start if occurrence else component.dtstart
    if component.all_day:
        last = start + component.duration - timedelta(days=1)
        start_utc = UTC.localize(datetime.combine(start, datetime.min.time()))
        end_utc = UTC.localize(datetime.combine(last, datetime.min.time()))
    else:
        start_utc = start.astimezone(UTC)
        end_utc = start_utc + component.duration
    event_id = component.uid
    return RenderedEvent(
        id=f"{event_id}#{occurrence.occurrence_number}" if occurrence else event_id,
        start=start_utc,
        end=end_utc,
        calendar=calendar,
        event=Event(calendar_id=calendar.id, id=event_id, author=EMAIL),
        is_all_day=component.all_day,
        title=component.summary,
        is_recurring=component.is_recurring,
        occurrence=occurrence,
    )


def occurrence_of(component: CalEvent, number: int) -> Occurrence:
    return IcalRecurrenceMath().occurrences(component, number)[number - 1]


def component_from_ical(ical_text: str) -> Optional[CalEvent]:
    """Wrap the first VEVENT of a VCALENDAR text, if any."""
    for component in ICalCalendar.from_ical(ical_text).walk('VEVENT'):
        return CalEvent(event=component)
    return None


def make_draft(calendar: CalendarSource, **overrides) -> DraftEvent:
    values = dict(
        calendar=calendar,
        member_id="member-1",
        address_id="address-1",
        start=datetime(2024, 3, 4, 10, 0),
        end=datetime(2024, 3, 4, 11, 0),
        tzid="UTC",
    )
    values.update(overrides)
    return DraftEvent(**values)


# ==================== Fixtures ====================

@pytest.fixture
def calendar() -> CalendarSource:
    return CalendarSource(id="cal-1", name="Personal", color="#aa3300")


@pytest.fixture
def member() -> Member:
    return Member(id="member-1", email=EMAIL)


@pytest.fixture
def address() -> Address:
    return Address(id="address-1", email=EMAIL)


@pytest.fixture
def bootstrap(member: Member) -> CalendarBootstrap:
    return CalendarBootstrap(
        members=(member,),
        settings=CalendarSettings(
            default_event_duration=60,
            default_part_day_notifications=(15,),
            default_full_day_notifications=(1440,),
        ),
    )


@pytest.fixture
def reader(calendar: CalendarSource, bootstrap: CalendarBootstrap) -> FakeReader:
    reader = FakeReader()
    reader.bootstraps[calendar.id] = Ready(bootstrap)
    return reader


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def keys() -> FakeKeys:
    return FakeKeys()


@pytest.fixture
def draft_context(calendar, address, reader, bootstrap) -> DraftContext:
    return DraftContext(
        tzid="UTC",
        view_date=VIEW_DATE,
        now=NOW,
        default_calendar=calendar,
        default_bootstrap=Ready(bootstrap),
        active_calendars=[calendar],
        addresses=[address],
        reader=reader,
    )


@pytest.fixture
def session(calendar, address, reader, store, keys) -> InteractiveSession:
    session = InteractiveSession(Config(), store, keys, reader)
    session.set_view(VIEW_DATE, (VIEW_DATE, VIEW_DATE + timedelta(days=6)), tzid="UTC", now=NOW)
    session.set_calendars([calendar], calendar.id, [address])
    return session


@pytest.fixture
def series() -> CalEvent:
    return make_series()


def store_content(reader: FakeReader, calendar: CalendarSource, component: CalEvent, alarms=()) -> None:
    reader.events[(calendar.id, component.uid)] = Ready(
        DecryptedEvent(component=component, personal={"member-1": list(alarms)})
    )
