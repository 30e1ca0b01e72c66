"""Tests for the temporary event projection and render ordering."""

from dataclasses import replace
from datetime import datetime, timedelta

import pytz

from engine.draft import update_draft
from engine.temporary import (
    InteractiveData, TemporaryState, TEMPORARY_ID, project_temporary, sort_events, sort_with_temporary,
)

from conftest import make_draft, make_single, render


UTC = pytz.UTC


class TestProjectTemporary:
    """Tests for projecting drafts."""

    def test_id_is_always_tmp(self, calendar) -> None:
        """Test the fixed ID of the temporary event."""
        assert project_temporary(make_draft(calendar)).id == TEMPORARY_ID

    def test_timed_draft_in_zone(self, calendar) -> None:
        """Test that wall-clock times are converted to UTC."""
        draft = make_draft(calendar, tzid="Europe/Berlin")
        temporary = project_temporary(draft)
        assert temporary.start == datetime(2024, 3, 4, 9, 0, tzinfo=UTC)
        assert temporary.end == datetime(2024, 3, 4, 10, 0, tzinfo=UTC)
        assert temporary.color == calendar.color
        assert temporary.calendar_id == calendar.id

    def test_all_day_draft_uses_midnight_utc(self, calendar) -> None:
        """Test that all-day drafts span midnight of their first and last day."""
        draft = make_draft(calendar, is_all_day=True, end=datetime(2024, 3, 6, 11, 0))
        temporary = project_temporary(draft, "Europe/Berlin")
        assert temporary.start == datetime(2024, 3, 4, tzinfo=UTC)
        assert temporary.end == datetime(2024, 3, 6, tzinfo=UTC)

    def test_idempotent(self, calendar) -> None:
        """Test that re-projecting with an empty patch gives the same event."""
        draft = make_draft(calendar, title="Lunch")
        assert project_temporary(update_draft(draft, {})) == project_temporary(draft)

    def test_start_not_after_end(self, calendar) -> None:
        """Test that the projection never ends before it starts."""
        draft = make_draft(calendar)
        broken = replace(draft, end=draft.start - timedelta(hours=2))
        temporary = project_temporary(broken)
        assert temporary.start <= temporary.end


class TestTemporaryState:
    """Tests for the draft slot."""

    def test_fresh_create_is_not_blocking(self, calendar) -> None:
        """Test that an untouched new draft has nothing to lose."""
        state = TemporaryState.begin(make_draft(calendar))
        assert state.is_create
        assert not state.is_blocking
        assert not InteractiveData(temporary=state).is_blocking

    def test_edit_keeps_target(self, calendar) -> None:
        """Test that edits of the draft keep the edited item."""
        target = render(make_single(), calendar)
        state = TemporaryState.begin(make_draft(calendar), target=target)
        changed = state.with_draft(update_draft(state.draft, {'title': 'Moved'}))
        assert changed.target is target
        assert changed.snapshot is state.snapshot
        assert changed.is_blocking


class TestSortWithTemporary:
    """Tests for the render list."""

    def test_sorted_by_start_then_longest_first(self, calendar) -> None:
        """Test the render order of overlapping events."""
        short = render(make_single(uid="short"), calendar)
        long = render(make_single(uid="long", end=datetime(2024, 3, 5, 14, 0, tzinfo=UTC)), calendar)
        early = render(make_single(uid="early", start=datetime(2024, 3, 5, 8, 0, tzinfo=UTC)), calendar)
        assert [e.id for e in sort_events([short, long, early])] == ["early", "long", "short"]

    def test_temporary_replaces_edited_event(self, calendar) -> None:
        """Test that the persisted copy of the edited event is hidden."""
        edited = render(make_single(uid="edited"), calendar)
        other = render(make_single(uid="other", start=datetime(2024, 3, 6, 10, 0, tzinfo=UTC)), calendar)
        temporary = project_temporary(make_draft(calendar), target=edited)
        ids = [e.id for e in sort_with_temporary([edited, other], temporary)]
        assert ids == [TEMPORARY_ID, "other"]

    def test_no_temporary(self, calendar) -> None:
        """Test that without a draft only persisted events are listed."""
        event = render(make_single(), calendar)
        assert sort_with_temporary([event], None) == [event]
