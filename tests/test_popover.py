"""Tests for popover derivation."""

from datetime import date

from engine.models import DecryptedEvent, Failed, OverflowSelection, Pending, Ready, TargetSelection
from engine.popover import NO_POPOVER, PopoverKind, derive_popover
from engine.temporary import InteractiveData, TemporaryState, TEMPORARY_ID, project_temporary

from conftest import make_draft, make_single, render


class TestDerivePopover:
    """Tests for which floating panel is visible."""

    def test_no_interaction(self) -> None:
        """Test that nothing is shown without an interaction."""
        assert derive_popover(None, [], lambda c, e: None) is NO_POPOVER
        assert derive_popover(InteractiveData(), [], lambda c, e: None) is NO_POPOVER

    def test_temporary_gets_create_popover(self, calendar) -> None:
        """Test that the temporary event anchors a create popover."""
        state = TemporaryState.begin(make_draft(calendar))
        interaction = InteractiveData(temporary=state, target=TargetSelection(TEMPORARY_ID))
        popover = derive_popover(interaction, [state.event], lambda c, e: None)
        assert popover.kind is PopoverKind.CREATE
        assert popover.anchor is state.event
        assert popover.is_create_event
        assert popover.is_visible

    def test_persisted_event_waits_for_content(self, calendar) -> None:
        """Test that an unread event is anchored but not rendered."""
        event = render(make_single(), calendar)
        interaction = InteractiveData(target=TargetSelection(event.id))
        popover = derive_popover(interaction, [event], lambda c, e: Pending())
        assert popover.kind is PopoverKind.EDIT
        assert popover.pending
        assert not popover.is_visible

    def test_persisted_event_with_content(self, calendar) -> None:
        """Test that a read event is shown with its content."""
        component = make_single()
        event = render(component, calendar)
        content = DecryptedEvent(component)
        interaction = InteractiveData(target=TargetSelection(event.id))
        popover = derive_popover(interaction, [event], lambda c, e: Ready(content))
        assert popover.kind is PopoverKind.EDIT
        assert popover.content is content

    def test_read_error_is_shown(self, calendar) -> None:
        """Test that a failed read surfaces the error."""
        event = render(make_single(), calendar)
        error = RuntimeError("decrypt")
        popover = derive_popover(
            InteractiveData(target=TargetSelection(event.id)), [event], lambda c, e: Failed(error)
        )
        assert popover.error is error

    def test_target_wins_over_overflow(self, calendar) -> None:
        """Test that a selection inside an open overflow cell shows the event."""
        event = render(make_single(), calendar)
        overflow = OverflowSelection(index=1, row=0, events=(event,), date=date(2024, 3, 5))
        interaction = InteractiveData(target=TargetSelection(event.id), overflow=overflow)
        popover = derive_popover(interaction, [event], lambda c, e: Ready(DecryptedEvent(make_single())))
        assert popover.kind is PopoverKind.EDIT

        popover = derive_popover(InteractiveData(overflow=overflow), [event], lambda c, e: None)
        assert popover.kind is PopoverKind.OVERFLOW
        assert popover.overflow is overflow

    def test_vanished_target_shows_nothing(self, calendar) -> None:
        """Test that a selection no longer in view closes the popover."""
        interaction = InteractiveData(target=TargetSelection("gone"))
        assert derive_popover(interaction, [], lambda c, e: None) is NO_POPOVER

    def test_edited_event_anchors_on_temporary(self, calendar) -> None:
        """Test that editing an event shows the popover on the temporary, not on the original."""
        event = render(make_single(), calendar)
        state = TemporaryState.begin(make_draft(calendar), target=event)
        temporary = project_temporary(state.draft, target=event)
        interaction = InteractiveData(temporary=state, target=TargetSelection(TEMPORARY_ID))
        popover = derive_popover(interaction, [temporary], lambda c, e: None)
        assert popover.kind is PopoverKind.CREATE
        assert not popover.is_create_event
