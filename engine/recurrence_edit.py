"""
Recurrence surgery: applying a delete or an edit to part of a series.

A change to one occurrence of a recurring series can apply to that
occurrence only (SINGLE), to it and every later one (FUTURE), or to the
whole series (ALL). Components are never modified in place; every
operation works on a copy.
"""

from dataclasses import dataclass, replace
from datetime import datetime, date, timedelta
from enum import Enum
from typing import Optional, Sequence, Union
import uuid

from icalendar import Alarm
import pytz

from .debug import debug_print
from .draft import DraftEvent, draft_to_component
from .event_wrapper import CalEvent, instant_key
from .models import DecryptedEvent, Failed, Occurrence, Pending, ReadResult
from .recurrence import IcalRecurrenceMath, RecurrenceMath


class RecurringType(Enum):
    SINGLE = "single"
    FUTURE = "future"
    ALL = "all"


class RecurringEditPolicy(Enum):
    """How an edit of one occurrence is applied to its series."""
    CONFIRM = "confirm"  # One yes/no, then the whole series is rewritten
    SCOPED = "scoped"  # SINGLE / FUTURE / ALL, like deletes


# ==================== Surgery ====================

def _as_start_value(component: CalEvent, value: Union[datetime, date]) -> Union[datetime, date]:
    """Express an occurrence start in the value type of the series DTSTART."""
    start = component.dtstart
    if isinstance(start, datetime) and isinstance(value, datetime):
        if start.tzinfo is not None and value.tzinfo is not None:
            return value.astimezone(start.tzinfo)
    return value


def delete_single_occurrence(component: CalEvent, local_start: Union[datetime, date]) -> CalEvent:
    """Exclude one occurrence from a series; all others are unchanged."""
    updated = component.copy()
    value = _as_start_value(updated, local_start)
    exdates = updated.exdates
    if all(instant_key(existing) != instant_key(value) for existing in exdates):
        exdates.append(value)
    updated.set_exdates(exdates)
    return updated


def _until_before(local_start: Union[datetime, date]) -> Union[datetime, date]:
    if not isinstance(local_start, datetime):
        return local_start - timedelta(days=1)
    until = local_start - timedelta(seconds=1)
    if until.tzinfo is not None:
        # UNTIL must be UTC when DTSTART has a timezone
        until = until.astimezone(pytz.UTC)
    return until


def delete_future_occurrences(component: CalEvent, local_start: Union[datetime, date]) -> CalEvent:
    """
    Truncate a series so that it ends just before local_start.

    COUNT is replaced by UNTIL. Exclusions at or after local_start are
    dropped, since truncation supersedes them.
    """
    updated = component.copy()
    rule = updated.rrule
    if rule is None:
        return updated

    value = _as_start_value(updated, local_start)
    new_rule = {key.lower(): rule[key] for key in rule if key not in ('UNTIL', 'COUNT')}
    new_rule['until'] = _until_before(value)
    updated.set_rrule(new_rule)

    cutoff = instant_key(value)
    updated.set_exdates([exdate for exdate in updated.exdates if instant_key(exdate) < cutoff])
    return updated


def _with_alarms(component: CalEvent, alarms: Sequence[Alarm]) -> CalEvent:
    component.set_alarms(list(alarms))
    return component


# ==================== Deletes ====================

@dataclass(frozen=True)
class DeletePlan:
    """The choices offered when deleting (or editing) one occurrence of a series."""
    options: tuple[RecurringType, ...]
    content: Optional[DecryptedEvent] = None
    degraded: bool = False  # Source unreadable: whole-series delete only

    @property
    def has_future(self) -> bool:
        return RecurringType.FUTURE in self.options


def plan_recurring_change(
    occurrence: Occurrence,
    read_result: ReadResult,
    math: RecurrenceMath,
) -> Optional[DeletePlan]:
    """
    Work out which scopes apply to a change of one occurrence.

    FUTURE is offered only when a trial truncation still leaves at least
    one occurrence and the target is not the first one, in which case it
    would be the same as ALL.

    Returns None while the series content is still being read.
    """
    if isinstance(read_result, Pending):
        return None
    if isinstance(read_result, Failed):
        debug_print("RECURRENCE", f"Series unreadable ({read_result.error}); offering whole-series only")
        return DeletePlan(options=(RecurringType.ALL,), degraded=True)

    content = read_result.value
    trial = delete_future_occurrences(content.component, occurrence.local_start)
    future_allowed = len(math.occurrences(trial, 2)) >= 1

    if future_allowed and occurrence.occurrence_number > 1:
        options = (RecurringType.SINGLE, RecurringType.FUTURE, RecurringType.ALL)
    else:
        options = (RecurringType.SINGLE, RecurringType.ALL)
    return DeletePlan(options=options, content=content)


def apply_delete(
    content: DecryptedEvent,
    kind: RecurringType,
    occurrence: Occurrence,
    member_id: str,
) -> Optional[CalEvent]:
    """
    The rewritten series for a SINGLE or FUTURE delete.

    The acting member's personal alarms are re-attached. Returns None for
    ALL: the whole event is deleted instead.
    """
    if kind is RecurringType.ALL:
        return None
    if kind is RecurringType.SINGLE:
        updated = delete_single_occurrence(content.component, occurrence.local_start)
    else:
        updated = delete_future_occurrences(content.component, occurrence.local_start)
    debug_print("RECURRENCE", f"{kind.value} delete of {content.component.uid} at #{occurrence.occurrence_number}")
    return _with_alarms(updated, content.alarms_for(member_id))


# ==================== Scoped edits ====================

def _covered_instances(series: CalEvent, limit: int, math: RecurrenceMath) -> int:
    """Count the rule instances of a truncated series, EXDATEs included, up to limit."""
    bare = series.copy()
    bare.set_exdates([])
    return len(math.occurrences(bare, limit))


@dataclass(frozen=True)
class ScopedEdit:
    """Store writes for an edit: rewrite the existing series, then maybe create a new event."""
    series: CalEvent
    created: Optional[CalEvent] = None


def apply_scoped_edit(
    content: DecryptedEvent,
    kind: RecurringType,
    occurrence: Occurrence,
    draft: DraftEvent,
    math: Optional[RecurrenceMath] = None,
) -> ScopedEdit:
    """
    Split an edit of one occurrence into store writes.

    SINGLE excludes the occurrence from the series and creates a standalone
    event from the draft. FUTURE truncates the series before the occurrence
    and starts a new series from the draft, with any COUNT reduced by the
    rule instances the old one still covers, excluded ones included.
    ALL rewrites the whole series.
    """
    alarms = content.alarms_for(draft.member_id)

    if kind is RecurringType.ALL:
        return ScopedEdit(series=draft_to_component(draft))

    if kind is RecurringType.SINGLE:
        series = delete_single_occurrence(content.component, occurrence.local_start)
        created = draft_to_component(draft, uid=str(uuid.uuid4()), single=True)
        return ScopedEdit(series=_with_alarms(series, alarms), created=created)

    series = delete_future_occurrences(content.component, occurrence.local_start)
    rule = draft.recurrence
    if rule is not None and rule.count:
        kept = _covered_instances(series, rule.count, math or IcalRecurrenceMath())
        rule = replace(rule, count=max(rule.count - kept, 1))
    tail = replace(draft, recurrence=rule, origin_start=None, series_start=None)
    created = draft_to_component(tail, uid=str(uuid.uuid4()))
    return ScopedEdit(series=_with_alarms(series, alarms), created=created)
