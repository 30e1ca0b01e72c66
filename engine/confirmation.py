"""
Confirmation requests between the engine and the host.

The engine asks for a confirmation with request_confirmation(), which
returns a token; the host presents the question and answers with
resolve_confirmation(token, outcome). For async flows, confirm() wraps the
same exchange in an awaitable that raises UserCancelled when declined.
"""

from dataclasses import dataclass
from enum import Enum
from itertools import count
from typing import Any, Callable, Optional
import asyncio

from .debug import debug_print
from .errors import UserCancelled


class ConfirmationKind(Enum):
    CLOSE = "close"  # Discard the draft
    DELETE = "delete"
    DELETE_RECURRING = "delete_recurring"  # Pick SINGLE / FUTURE / ALL
    EDIT_RECURRING = "edit_recurring"


@dataclass(frozen=True)
class ConfirmationRequest:
    token: int
    kind: ConfirmationKind
    title: str = ""
    message: str = ""
    options: tuple[Any, ...] = ()  # Choices the host offers, e.g. RecurringType values


class ConfirmationBroker:
    """
    Tracks outstanding confirmation requests.

    An outcome of False or None declines the request; any other value
    accepts it and is passed on (for instance the chosen RecurringType).
    """

    def __init__(self):
        self._tokens = count(1)
        self._pending: dict[int, tuple[ConfirmationRequest, Callable[[Any], None]]] = {}
        self._on_request: Optional[Callable[[ConfirmationRequest], None]] = None

    def set_on_request_callback(self, callback: Callable[[ConfirmationRequest], None]):
        """Set callback invoked whenever the host must present a confirmation."""
        self._on_request = callback

    def request_confirmation(
        self,
        kind: ConfirmationKind,
        on_resolved: Callable[[Any], None],
        title: str = "",
        message: str = "",
        options: tuple[Any, ...] = (),
    ) -> int:
        token = next(self._tokens)
        request = ConfirmationRequest(token, kind, title, message, tuple(options))
        self._pending[token] = (request, on_resolved)
        debug_print("CONFIRM", f"Requested #{token} ({kind.value})")
        if self._on_request:
            self._on_request(request)
        return token

    def resolve_confirmation(self, token: int, outcome: Any) -> bool:
        """
        Answer a request. Returns False for unknown or already resolved tokens.
        """
        entry = self._pending.pop(token, None)
        if entry is None:
            return False
        request, on_resolved = entry
        debug_print("CONFIRM", f"Resolved #{token} ({request.kind.value}): {outcome!r}")
        on_resolved(outcome)
        return True

    def pending(self) -> list[ConfirmationRequest]:
        return [request for request, _ in self._pending.values()]

    def cancel_all(self) -> None:
        """Decline every outstanding request."""
        for token in list(self._pending):
            self.resolve_confirmation(token, None)

    async def confirm(
        self,
        kind: ConfirmationKind,
        title: str = "",
        message: str = "",
        options: tuple[Any, ...] = (),
    ) -> Any:
        """
        Suspend until the host answers.

        Raises:
            UserCancelled: the request was declined.
        """
        future = asyncio.get_running_loop().create_future()

        def resolved(outcome: Any):
            if not future.done():
                future.set_result(outcome)

        self.request_confirmation(kind, resolved, title, message, options)
        outcome = await future
        if outcome is False or outcome is None:
            raise UserCancelled(f"{kind.value} declined")
        return outcome
