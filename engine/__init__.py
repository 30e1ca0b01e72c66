"""
Calendar Interaction Engine

This module turns pointer gestures in a calendar grid into edits of a
single draft event, and applies deletes and edits to recurring series:
- Configuration parsing (config.py)
- Data model and tagged read results (models.py)
- Series component wrapper (event_wrapper.py) - CalEvent wraps icalendar.Event
- Occurrence enumeration (recurrence.py) - backed by recurring_ical_events
- Draft model and temporary projection (draft.py, temporary.py)
- Gesture state machine (gestures.py)
- Recurrence surgery (recurrence_edit.py)
- Confirmations and the blocking guard (confirmation.py, guard.py)
- Popover derivation (popover.py)
- External collaborators and save pipeline (store.py)
- Session orchestrator (session.py)
"""

from .config import Config
from .errors import (
    InteractionError, ValidationError, MissingKeyError, ReadError, StoreError,
    NetworkError, DecryptError, PermissionDeniedError, UserCancelled, FatalSequenceError,
)
from .models import (
    CalendarSource, Event, Occurrence, RenderedEvent, TargetSelection, GridType,
    Pending, Ready, Failed,
)
from .event_wrapper import CalEvent
from .recurrence import RecurrenceMath, IcalRecurrenceMath
from .draft import DraftEvent, RecurrenceRule
from .temporary import TemporaryEvent, TEMPORARY_ID
from .gestures import GestureFamily, GesturePhase, GesturePayload, PointerAction
from .recurrence_edit import RecurringType, RecurringEditPolicy
from .confirmation import ConfirmationKind, ConfirmationRequest
from .store import EventStore, KeyResolver, BootstrapReader
from .session import InteractiveSession

__all__ = [
    'Config',
    # Errors
    'InteractionError',
    'ValidationError',
    'MissingKeyError',
    'ReadError',
    'StoreError',
    'NetworkError',
    'DecryptError',
    'PermissionDeniedError',
    'UserCancelled',
    'FatalSequenceError',
    # Model
    'CalendarSource',
    'Event',
    'Occurrence',
    'RenderedEvent',
    'TargetSelection',
    'GridType',
    'Pending',
    'Ready',
    'Failed',
    'CalEvent',
    'RecurrenceMath',
    'IcalRecurrenceMath',
    'DraftEvent',
    'RecurrenceRule',
    'TemporaryEvent',
    'TEMPORARY_ID',
    # Interaction
    'GestureFamily',
    'GesturePhase',
    'GesturePayload',
    'PointerAction',
    'RecurringType',
    'RecurringEditPolicy',
    'ConfirmationKind',
    'ConfirmationRequest',
    'EventStore',
    'KeyResolver',
    'BootstrapReader',
    'InteractiveSession',
]
