"""
External collaborators of the interaction engine and the save pipeline.

Persistence, key management and decryption live outside the engine. The
session talks to them only through the abstract classes below; the host
supplies concrete implementations.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional
import asyncio

from .debug import debug_print
from .errors import MissingKeyError, FatalSequenceError, StoreError
from .event_wrapper import CalEvent
from .models import CalendarBootstrap, CalendarSource, DecryptedEvent, Event, ReadResult


class EventStore(ABC):
    """
    Persistent store of calendar events.

    Failures are raised as StoreError subclasses (NetworkError,
    DecryptError, PermissionDeniedError) so callers can tell them apart.
    """

    @abstractmethod
    async def save(self, event: Optional[Event], content: CalEvent, target: 'SaveTarget') -> Event:
        """Create (event is None) or update an event; returns the stored identity."""
        pass

    @abstractmethod
    async def delete(self, calendar_id: str, event_id: str) -> None:
        pass

    @abstractmethod
    async def set_calendar_display(self, calendar_id: str, display: bool) -> None:
        """Show or hide a calendar in the view."""
        pass


class KeyResolver(ABC):
    """
    Access to decrypted keys.

    Implementations raise MissingKeyError (or return an empty collection)
    when a key is missing or not decrypted yet.
    """

    @abstractmethod
    async def address_keys_for(self, address_id: str) -> Any:
        pass

    @abstractmethod
    async def calendar_keys_for(self, calendar_id: str) -> Any:
        pass


class BootstrapReader(ABC):
    """
    Synchronous reads from the decrypted-data cache.

    Both reads return Pending while the data is still being fetched,
    Ready(value) once available and Failed(error) when it cannot be read.
    """

    @abstractmethod
    def read_calendar_bootstrap(self, calendar_id: str) -> ReadResult:
        """Members and settings of a calendar, as Ready(CalendarBootstrap)."""
        pass

    @abstractmethod
    def read_event(self, calendar_id: str, event_id: str) -> ReadResult:
        """Decrypted content of an event, as Ready(DecryptedEvent)."""
        pass


@dataclass
class SaveTarget:
    """Where and as whom an event is saved, with the keys resolved for it."""
    calendar_id: str
    member_id: str
    address_id: str
    address_keys: Any = None
    calendar_keys: Any = None
    old_calendar_keys: Any = None


async def _require_keys(coro, description: str, owner_id: str) -> Any:
    keys = await coro
    if keys is None or (hasattr(keys, '__len__') and len(keys) == 0):
        raise MissingKeyError(f"No decrypted {description} keys", owner_id=owner_id)
    return keys


async def resolve_save_target(
    keys: KeyResolver,
    event: Optional[Event],
    calendar_id: str,
    member_id: str,
    address_id: str,
) -> SaveTarget:
    """
    Resolve every key a save needs, concurrently.

    When an existing event moves to another calendar, the old calendar's
    keys are needed as well.

    Raises:
        MissingKeyError: any key is missing or not decrypted.
    """
    old_calendar_id = event.calendar_id if event is not None and event.calendar_id != calendar_id else None

    lookups = [
        _require_keys(keys.address_keys_for(address_id), "address", address_id),
        _require_keys(keys.calendar_keys_for(calendar_id), "calendar", calendar_id),
    ]
    if old_calendar_id:
        lookups.append(_require_keys(keys.calendar_keys_for(old_calendar_id), "calendar", old_calendar_id))

    results = await asyncio.gather(*lookups)
    address_keys, calendar_keys = results[0], results[1]
    old_calendar_keys = results[2] if old_calendar_id else calendar_keys

    return SaveTarget(
        calendar_id=calendar_id,
        member_id=member_id,
        address_id=address_id,
        address_keys=address_keys,
        calendar_keys=calendar_keys,
        old_calendar_keys=old_calendar_keys,
    )


async def save_event_with_keys(
    store: EventStore,
    keys: KeyResolver,
    event: Optional[Event],
    content: CalEvent,
    calendar: CalendarSource,
    member_id: str,
    address_id: str,
) -> Event:
    """
    Save an event, then make its calendar visible if it was hidden.

    The two store calls are committed independently. A failure in the
    second leaves the first in place and is raised as FatalSequenceError.

    Raises:
        MissingKeyError: a key could not be resolved; nothing was saved.
        StoreError: the save itself failed; nothing was committed.
        FatalSequenceError: the event was saved but showing its calendar failed.
    """
    target = await resolve_save_target(keys, event, calendar.id, member_id, address_id)

    saved = await store.save(event, content, target)
    debug_print("STORE", f"Saved {content.uid} to calendar {calendar.id}")

    if not calendar.display:
        try:
            await store.set_calendar_display(calendar.id, True)
        except StoreError as e:
            raise FatalSequenceError(
                f"Event saved but calendar {calendar.id} could not be shown: {e}",
                committed_steps=("save",),
            ) from e
        calendar.display = True

    return saved
