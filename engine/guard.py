"""
Blocking guard: no silent loss of an unsaved draft.

While the draft has unsaved changes, every transition that would discard
it (closing, navigating away, clicking outside, starting something else)
is routed through a CLOSE confirmation. Accepting runs the transition;
declining leaves the draft exactly as it was.
"""

from typing import Callable, Optional, Sequence

from .config import LabelsConfig
from .confirmation import ConfirmationBroker, ConfirmationKind
from .temporary import InteractiveData


# Clicks landing on (or inside) one of these never close anything implicitly
INTERACTIVE_CONTROLS = frozenset({"BUTTON", "A", "SELECT", "INPUT"})


class BlockingGuard:

    def __init__(
        self,
        broker: ConfirmationBroker,
        labels: Optional[LabelsConfig] = None,
        guarded_routes: Sequence[str] = ("settings",),
    ):
        self.broker = broker
        self.labels = labels or LabelsConfig()
        self.guarded_routes = tuple(guarded_routes)

    def is_blocking(self, interaction: Optional[InteractiveData]) -> bool:
        return interaction is not None and interaction.is_blocking

    def unload_message(self, interaction: Optional[InteractiveData]) -> Optional[str]:
        """Message for the host's before-unload prompt; None when leaving is safe."""
        return self.labels.unload_message if self.is_blocking(interaction) else None

    def request_discard(
        self,
        interaction: Optional[InteractiveData],
        ask: bool,
        on_accept: Callable[[], None],
    ) -> Optional[int]:
        """
        Discard the draft if that loses nothing, otherwise ask first.

        With ask=False a blocking draft is simply kept. Returns the
        confirmation token when a confirmation was requested.
        """
        if not self.is_blocking(interaction):
            on_accept()
            return None
        if not ask:
            return None

        def resolved(outcome):
            if outcome:
                on_accept()

        return self.broker.request_confirmation(
            ConfirmationKind.CLOSE,
            resolved,
            title=self.labels.close_title,
            message=self.labels.close_message,
        )

    def allow_route_change(
        self,
        interaction: Optional[InteractiveData],
        path: str,
        on_accept: Callable[[], None],
    ) -> bool:
        """
        Whether in-app navigation to path may proceed right away.

        Navigation into a guarded area while blocking is held back and a
        discard confirmation is requested instead.
        """
        if self.is_blocking(interaction) and any(route in path for route in self.guarded_routes):
            self.request_discard(interaction, True, on_accept)
            return False
        return True

    def handle_outside_click(
        self,
        interaction: Optional[InteractiveData],
        node_chain: Sequence[str],
        on_accept: Callable[[], None],
    ) -> Optional[int]:
        """
        React to a click captured on the interactive surface.

        node_chain names the clicked element and its ancestors up to the
        surface, innermost first.
        """
        if any(node.upper() in INTERACTIVE_CONTROLS for node in node_chain):
            return None
        if interaction is None or interaction.is_empty:
            return None
        return self.request_discard(interaction, True, on_accept)

