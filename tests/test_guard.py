"""Tests for the confirmation broker and the blocking guard."""

import asyncio

import pytest

from engine.confirmation import ConfirmationBroker, ConfirmationKind
from engine.draft import update_draft
from engine.errors import UserCancelled
from engine.guard import BlockingGuard
from engine.models import TargetSelection
from engine.temporary import InteractiveData, TemporaryState, TEMPORARY_ID

from conftest import make_draft


def fresh_interaction(calendar) -> InteractiveData:
    return InteractiveData(
        temporary=TemporaryState.begin(make_draft(calendar)), target=TargetSelection(TEMPORARY_ID)
    )


def blocking_interaction(calendar) -> InteractiveData:
    state = TemporaryState.begin(make_draft(calendar))
    state = state.with_draft(update_draft(state.draft, {'title': 'Unsaved'}))
    return InteractiveData(temporary=state, target=TargetSelection(TEMPORARY_ID))


@pytest.fixture
def broker() -> ConfirmationBroker:
    return ConfirmationBroker()


@pytest.fixture
def guard(broker) -> BlockingGuard:
    return BlockingGuard(broker)


class TestConfirmationBroker:
    """Tests for token bookkeeping."""

    def test_tokens_resolve_once(self, broker) -> None:
        """Test that a token can only be answered once."""
        outcomes = []
        token = broker.request_confirmation(ConfirmationKind.DELETE, outcomes.append)
        assert [r.token for r in broker.pending()] == [token]
        assert broker.resolve_confirmation(token, True) is True
        assert broker.resolve_confirmation(token, True) is False
        assert outcomes == [True]
        assert broker.pending() == []

    def test_cancel_all_declines(self, broker) -> None:
        """Test that cancel_all answers every request with None."""
        outcomes = []
        broker.request_confirmation(ConfirmationKind.CLOSE, outcomes.append)
        broker.request_confirmation(ConfirmationKind.DELETE, outcomes.append)
        broker.cancel_all()
        assert outcomes == [None, None]

    def test_confirm_returns_choice(self, broker) -> None:
        """Test that an accepted confirm() returns the chosen outcome."""
        broker.set_on_request_callback(lambda request: broker.resolve_confirmation(request.token, "single"))
        result = asyncio.run(broker.confirm(ConfirmationKind.DELETE_RECURRING, options=("single", "all")))
        assert result == "single"

    def test_confirm_raises_when_declined(self, broker) -> None:
        """Test that a declined confirm() raises UserCancelled."""
        broker.set_on_request_callback(lambda request: broker.resolve_confirmation(request.token, False))
        with pytest.raises(UserCancelled):
            asyncio.run(broker.confirm(ConfirmationKind.DELETE))


class TestRequestDiscard:
    """Tests for discarding the draft."""

    def test_nothing_to_lose_discards_immediately(self, guard, broker, calendar) -> None:
        """Test that a fresh draft is discarded without asking."""
        discarded = []
        token = guard.request_discard(fresh_interaction(calendar), True, lambda: discarded.append(True))
        assert token is None
        assert discarded == [True]
        assert broker.pending() == []

    def test_blocking_asks_first(self, guard, broker, calendar) -> None:
        """Test that an unsaved draft needs a CLOSE confirmation."""
        discarded = []
        token = guard.request_discard(blocking_interaction(calendar), True, lambda: discarded.append(True))
        assert [r.kind for r in broker.pending()] == [ConfirmationKind.CLOSE]
        assert discarded == []

        broker.resolve_confirmation(token, True)
        assert discarded == [True]

    def test_declining_keeps_draft(self, guard, broker, calendar) -> None:
        """Test that declining the confirmation runs nothing."""
        discarded = []
        token = guard.request_discard(blocking_interaction(calendar), True, lambda: discarded.append(True))
        broker.resolve_confirmation(token, False)
        assert discarded == []

    def test_blocking_without_ask_keeps_draft(self, guard, broker, calendar) -> None:
        """Test that a silent discard never drops unsaved changes."""
        discarded = []
        assert guard.request_discard(blocking_interaction(calendar), False, lambda: discarded.append(True)) is None
        assert discarded == []
        assert broker.pending() == []


class TestOutsideClick:
    """Tests for clicks outside the popover."""

    def test_click_on_control_does_nothing(self, guard, broker, calendar) -> None:
        """Test that clicks on interactive controls never close."""
        discarded = []
        token = guard.handle_outside_click(
            fresh_interaction(calendar), ["SPAN", "button", "DIV"], lambda: discarded.append(True)
        )
        assert token is None
        assert discarded == []

    def test_non_blocking_closes_without_prompt(self, guard, broker, calendar) -> None:
        """Test that a plain click closes a fresh draft."""
        discarded = []
        guard.handle_outside_click(fresh_interaction(calendar), ["DIV"], lambda: discarded.append(True))
        assert discarded == [True]
        assert broker.pending() == []

    def test_blocking_prompts(self, guard, broker, calendar) -> None:
        """Test that a click outside an unsaved draft asks first."""
        token = guard.handle_outside_click(blocking_interaction(calendar), ["DIV"], lambda: None)
        assert token is not None
        assert broker.pending()[0].kind is ConfirmationKind.CLOSE

    def test_empty_interaction_is_ignored(self, guard) -> None:
        """Test that nothing happens without an open interaction."""
        discarded = []
        assert guard.handle_outside_click(InteractiveData(), ["DIV"], lambda: discarded.append(True)) is None
        assert discarded == []


class TestNavigation:
    """Tests for leaving the view."""

    def test_unload_message_only_when_blocking(self, guard, calendar) -> None:
        """Test the before-unload prompt text."""
        assert guard.unload_message(fresh_interaction(calendar)) is None
        assert guard.unload_message(blocking_interaction(calendar)) == "By leaving now, you will lose your event."

    def test_guarded_route_is_held_back(self, guard, broker, calendar) -> None:
        """Test that navigating to settings with an unsaved draft asks first."""
        navigated = []
        allowed = guard.allow_route_change(
            blocking_interaction(calendar), "/settings/calendars", lambda: navigated.append(True)
        )
        assert allowed is False
        broker.resolve_confirmation(broker.pending()[0].token, True)
        assert navigated == [True]

    def test_other_routes_pass(self, guard, calendar) -> None:
        """Test that unguarded routes are never held back."""
        assert guard.allow_route_change(blocking_interaction(calendar), "/week/2024/3/4", lambda: None) is True
