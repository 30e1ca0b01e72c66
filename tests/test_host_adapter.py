"""Tests for the Qt glue. Skipped when PySide6 is not installed."""

from datetime import datetime
import os

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
pytest.importorskip("PySide6")

from PySide6.QtCore import QEvent
from PySide6.QtWidgets import QApplication, QComboBox, QLabel, QPushButton, QWidget

from engine.confirmation import ConfirmationKind, ConfirmationRequest
from engine.gestures import GestureFamily, GesturePayload, GesturePhase, PointerAction
from engine.recurrence_edit import RecurringType
from gui.host_adapter import OutsideClickFilter, button_outcomes, confirm_close, widget_chain


@pytest.fixture(scope="module")
def qapp():
    return QApplication.instance() or QApplication([])


@pytest.fixture
def view(qapp):
    container = QWidget()
    toolbar = QWidget(container)
    button = QPushButton("Today", toolbar)
    label = QLabel("Monday", container)
    yield container, button, label
    container.deleteLater()


def open_draft(session) -> None:
    session.pointer_down(PointerAction(GestureFamily.CREATE, GesturePhase.DOWN, GesturePayload()))
    session.pointer_input(PointerAction(GestureFamily.CREATE, GesturePhase.UP, GesturePayload(
        start=datetime(2024, 3, 5, 14, 0),
    )))


class TestWidgetChain:
    """Tests for mapping widgets to node names."""

    def test_chain_stops_at_container(self, view) -> None:
        """Test the chain from a button up to the view."""
        container, button, _ = view
        assert widget_chain(button, container) == ["BUTTON", "QWIDGET", "QWIDGET"]

    def test_select_control(self, view) -> None:
        """Test that combo boxes count as select controls."""
        container, _, _ = view
        combo = QComboBox(container)
        assert widget_chain(combo, container)[0] == "SELECT"


class TestOutsideClickFilter:
    """Tests for click reporting."""

    def test_click_on_label_closes(self, session, view) -> None:
        """Test that a click on plain content closes the interaction."""
        container, _, label = view
        open_draft(session)
        OutsideClickFilter(session, container).report_click(label)
        assert session.draft is None

    def test_click_on_button_keeps_draft(self, session, view) -> None:
        """Test that a click on a control keeps the interaction."""
        container, button, _ = view
        open_draft(session)
        OutsideClickFilter(session, container).report_click(button)
        assert session.draft is not None

    def test_click_outside_view_is_ignored(self, session, view) -> None:
        """Test that widgets outside the view are not reported."""
        container, _, _ = view
        stranger = QWidget()
        open_draft(session)
        assert OutsideClickFilter(session, container).report_click(stranger) is None
        assert session.draft is not None
        stranger.deleteLater()


class TestConfirmationButtons:
    """Tests for the dialog buttons offered per request."""

    def test_recurring_options(self) -> None:
        """Test that scope options become one button each."""
        request = ConfirmationRequest(
            1, ConfirmationKind.DELETE_RECURRING, options=(RecurringType.SINGLE, RecurringType.ALL)
        )
        assert button_outcomes(request) == [
            ("This event", RecurringType.SINGLE), ("All events", RecurringType.ALL),
        ]

    def test_close_request(self) -> None:
        """Test the single accepting button of a close request."""
        assert button_outcomes(ConfirmationRequest(2, ConfirmationKind.CLOSE)) == [("Discard", True)]

    def test_confirm_close_without_draft(self, qapp, session) -> None:
        """Test that the window closes without asking when nothing is unsaved."""
        assert confirm_close(session) is True


class TestFilterInstallation:
    """Tests for the application-wide filter."""

    def test_filter_never_consumes_events(self, session, view) -> None:
        """Test that the installed filter lets every event through."""
        container, _, label = view
        click_filter = OutsideClickFilter(session, container)
        click_filter.install()
        try:
            assert click_filter.eventFilter(label, QEvent(QEvent.Type.Show)) is False
        finally:
            click_filter.remove()
