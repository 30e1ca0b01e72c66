"""
Occurrence enumeration for recurring series.

The engine only consumes RecurrenceMath; the default implementation
expands series with the recurring_ical_events library.
"""

from abc import ABC, abstractmethod

from recurring_ical_events import of as recurring_events_of

from .debug import debug_print
from .event_wrapper import CalEvent
from .models import Occurrence


class RecurrenceMath(ABC):
    """Deterministic enumeration of the occurrences of a series component."""

    @abstractmethod
    def occurrences(self, component: CalEvent, max_count: int) -> list[Occurrence]:
        """
        Get the first max_count occurrences of a series, in start order.

        Excluded instances are skipped; numbering starts at 1 and counts
        emitted occurrences only.
        """
        pass


class IcalRecurrenceMath(RecurrenceMath):
    """RecurrenceMath backed by recurring_ical_events."""

    def occurrences(self, component: CalEvent, max_count: int) -> list[Occurrence]:
        if max_count <= 0:
            return []

        if not component.is_recurring:
            start = component.dtstart
            if start is None:
                return []
            return [Occurrence(1, start, True)]

        # Probe one more than asked so a lone occurrence can be recognised
        probe = max(max_count, 2)
        starts = []
        for instance in recurring_events_of(component.to_vcalendar()).all():
            dtstart = instance.get('DTSTART')
            if dtstart is None:
                continue
            starts.append(dtstart.dt)
            if len(starts) >= probe:
                break

        is_single = len(starts) == 1
        debug_print("RECURRENCE", f"{component.uid}: {len(starts)} occurrence(s) within probe of {probe}")
        return [
            Occurrence(number, start, is_single)
            for number, start in enumerate(starts[:max_count], start=1)
        ]
