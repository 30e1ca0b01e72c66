"""
Calendar Interaction GUI Module

PySide6 glue connecting a calendar view to the interaction engine.
"""

from .host_adapter import (
    OutsideClickFilter, MessageBoxConfirmationPresenter, confirm_close, widget_chain,
)

__all__ = ['OutsideClickFilter', 'MessageBoxConfirmationPresenter', 'confirm_close', 'widget_chain']
