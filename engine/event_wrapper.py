"""
Lightweight wrapper around icalendar.Event for series components.

The wrapper delegates to the underlying icalendar.Event rather than
duplicating its data, and adds the accessors the recurrence surgery needs
(RRULE, EXDATE and VALARM handling, deep copies).
"""

from dataclasses import dataclass
from datetime import datetime, date, time, timedelta
from typing import Optional, Union
from icalendar import Event as ICalEvent, Calendar as ICalCalendar, Alarm
import pytz


DateOrDateTime = Union[datetime, date]


def instant_key(value: DateOrDateTime) -> datetime:
    """
    Naive sort key for DATE and DATE-TIME values.

    Aware values are compared in UTC, DATE values at midnight.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(pytz.UTC).replace(tzinfo=None)
        return value
    return datetime.combine(value, time.min)


@dataclass
class CalEvent:
    """
    Wrapper around the VEVENT component of a (possibly recurring) event.

    Does NOT duplicate Event facilities - delegates to self.event.
    """
    event: ICalEvent

    # ==================== Convenience Properties ====================

    @property
    def uid(self) -> str:
        uid = self.event.get('UID')
        return str(uid) if uid else ''

    @property
    def summary(self) -> str:
        summary = self.event.get('SUMMARY')
        return str(summary) if summary else ''

    @property
    def description(self) -> str:
        desc = self.event.get('DESCRIPTION')
        return str(desc) if desc else ''

    @property
    def location(self) -> str:
        loc = self.event.get('LOCATION')
        return str(loc) if loc else ''

    @property
    def dtstart(self) -> Optional[DateOrDateTime]:
        """Raw DTSTART value: a date for all-day events, else a datetime."""
        dt = self.event.get('DTSTART')
        return dt.dt if dt is not None else None

    @property
    def dtend(self) -> Optional[DateOrDateTime]:
        """
        Raw DTEND value.

        Falls back to DURATION, then to the RFC 5545 defaults (one day for
        all-day events, zero length otherwise).
        """
        dt = self.event.get('DTEND')
        if dt is not None:
            return dt.dt
        start = self.dtstart
        if start is None:
            return None
        duration = self.event.get('DURATION')
        if duration is not None:
            return start + duration.dt
        if self.all_day:
            return start + timedelta(days=1)
        return start

    @property
    def duration(self) -> timedelta:
        start, end = self.dtstart, self.dtend
        if start is None or end is None:
            return timedelta(0)
        return end - start

    @property
    def all_day(self) -> bool:
        """All-day events have date values, not datetime."""
        start = self.dtstart
        return isinstance(start, date) and not isinstance(start, datetime)

    @property
    def tzid(self) -> Optional[str]:
        """IANA name of the DTSTART timezone, None for floating or all-day values."""
        start = self.dtstart
        if not isinstance(start, datetime) or start.tzinfo is None:
            return None
        zone = getattr(start.tzinfo, 'zone', None) or getattr(start.tzinfo, 'key', None)
        return zone or str(start.tzinfo)

    @property
    def is_recurring(self) -> bool:
        return self.event.get('RRULE') is not None

    @property
    def rrule(self):
        """The RRULE as an icalendar vRecur, if present."""
        return self.event.get('RRULE')

    def set_rrule(self, rule: Optional[dict]) -> None:
        """Replace the RRULE; None removes it."""
        if 'RRULE' in self.event:
            del self.event['RRULE']
        if rule:
            self.event.add('rrule', rule)

    # ==================== Exclusions ====================

    @property
    def exdates(self) -> list[DateOrDateTime]:
        """All EXDATE values, flattened across repeated properties."""
        prop = self.event.get('EXDATE')
        if prop is None:
            return []
        props = prop if isinstance(prop, list) else [prop]
        values = []
        for exdate in props:
            values.extend(item.dt for item in exdate.dts)
        return values

    def set_exdates(self, values: list[DateOrDateTime]) -> None:
        """Replace all EXDATE values, kept in chronological order."""
        if 'EXDATE' in self.event:
            del self.event['EXDATE']
        if values:
            self.event.add('exdate', sorted(values, key=instant_key))

    # ==================== Alarms ====================

    @property
    def alarms(self) -> list[Alarm]:
        return [c for c in self.event.subcomponents if c.name == 'VALARM']

    def set_alarms(self, alarms: list[Alarm]) -> None:
        others = [c for c in self.event.subcomponents if c.name != 'VALARM']
        self.event.subcomponents = others + list(alarms)

    # ==================== Serialisation ====================

    def copy(self) -> 'CalEvent':
        """Deep copy through an iCalendar round trip."""
        return CalEvent(event=ICalEvent.from_ical(self.event.to_ical()))

    def to_vcalendar(self) -> ICalCalendar:
        """A minimal VCALENDAR containing just this event."""
        vcal = ICalCalendar()
        vcal.add('prodid', '-//Calendar Interaction//EN')
        vcal.add('version', '2.0')
        vcal.add_component(self.event)
        return vcal

    def to_ical(self) -> str:
        return self.to_vcalendar().to_ical().decode('utf-8')

    def __repr__(self):
        return f"CalEvent(uid={self.uid!r}, summary={self.summary!r}, dtstart={self.dtstart})"

