"""
Qt glue between a calendar view and an InteractiveSession.

Provides the capture-phase outside-click filter, QMessageBox presentation
of confirmation requests and the close-window guard.
"""

from typing import Optional

from PySide6.QtWidgets import (
    QAbstractButton, QAbstractSpinBox, QApplication, QComboBox, QLabel, QLineEdit,
    QMessageBox, QTextEdit, QWidget,
)
from PySide6.QtCore import QEvent, QObject, QTimer

from engine.confirmation import ConfirmationKind, ConfirmationRequest
from engine.recurrence_edit import RecurringType
from engine.session import InteractiveSession


# Qt widget classes standing in for the interactive element names the guard knows
CONTROL_NODE_NAMES = (
    (QAbstractButton, "BUTTON"),
    (QComboBox, "SELECT"),
    (QLineEdit, "INPUT"),
    (QAbstractSpinBox, "INPUT"),
    (QTextEdit, "INPUT"),
)

OPTION_LABELS = {
    RecurringType.SINGLE: "This event",
    RecurringType.FUTURE: "This and future events",
    RecurringType.ALL: "All events",
}


def node_name(widget: QWidget) -> str:
    for cls, name in CONTROL_NODE_NAMES:
        if isinstance(widget, cls):
            return name
    if isinstance(widget, QLabel) and widget.openExternalLinks():
        return "A"
    return type(widget).__name__.upper()


def widget_chain(widget: QWidget, container: QWidget) -> list[str]:
    """Node names from widget up to container (inclusive), innermost first."""
    chain = []
    current: Optional[QWidget] = widget
    while current is not None:
        chain.append(node_name(current))
        if current is container:
            break
        current = current.parentWidget()
    return chain


class OutsideClickFilter(QObject):
    """
    Application-wide event filter reporting clicks inside the calendar view.

    Installed on the QApplication so it sees releases before the target
    widget handles them. Events are never consumed.
    """

    def __init__(self, session: InteractiveSession, container: QWidget, parent: Optional[QObject] = None):
        super().__init__(parent)
        self.session = session
        self.container = container

    def install(self) -> None:
        QApplication.instance().installEventFilter(self)

    def remove(self) -> None:
        QApplication.instance().removeEventFilter(self)

    def eventFilter(self, obj, event) -> bool:
        if event.type() == QEvent.Type.MouseButtonRelease and isinstance(obj, QWidget):
            # Releases propagate to parents; only report the innermost widget
            if QApplication.widgetAt(event.globalPosition().toPoint()) is obj:
                self.report_click(obj)
        return False

    def report_click(self, widget: QWidget) -> Optional[int]:
        if widget is not self.container and not self.container.isAncestorOf(widget):
            return None
        return self.session.handle_outside_click(widget_chain(widget, self.container))


def button_outcomes(request: ConfirmationRequest) -> list[tuple[str, object]]:
    """The accepting buttons for a request, as (label, outcome) pairs."""
    if request.options:
        return [(OPTION_LABELS.get(option, str(option)), option) for option in request.options]
    if request.kind is ConfirmationKind.CLOSE:
        return [("Discard", True)]
    if request.kind in (ConfirmationKind.DELETE, ConfirmationKind.DELETE_RECURRING):
        return [("Delete", True)]
    return [("Update", True)]


class MessageBoxConfirmationPresenter:
    """Presents confirmation requests as QMessageBox dialogs."""

    def __init__(self, session: InteractiveSession, parent: Optional[QWidget] = None):
        self.session = session
        self.parent = parent
        session.set_on_confirmation_callback(self.on_request)

    def on_request(self, request: ConfirmationRequest) -> None:
        # Requests can arrive from inside event handlers; present after they return
        QTimer.singleShot(0, lambda: self.present(request))

    def present(self, request: ConfirmationRequest) -> None:
        box = QMessageBox(self.parent)
        box.setIcon(QMessageBox.Question)
        box.setWindowTitle(request.title)
        box.setText(request.message)

        buttons = {}
        for label, outcome in button_outcomes(request):
            buttons[box.addButton(label, QMessageBox.AcceptRole)] = outcome
        cancel = box.addButton(QMessageBox.Cancel)
        box.setDefaultButton(cancel)

        box.exec()
        self.session.resolve_confirmation(request.token, buttons.get(box.clickedButton()))


def confirm_close(session: InteractiveSession, parent: Optional[QWidget] = None) -> bool:
    """Whether the window may close; asks when the draft has unsaved changes."""
    message = session.before_unload()
    if message is None:
        return True
    result = QMessageBox.question(
        parent,
        session.config.labels.close_title,
        message,
        QMessageBox.Yes | QMessageBox.Cancel,
        QMessageBox.Cancel
    )
    return result == QMessageBox.Yes
