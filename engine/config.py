"""
Configuration management for the interaction engine.

Loads settings from a TOML file.
"""

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import os

from .recurrence_edit import RecurringEditPolicy


@dataclass
class GeneralConfig:
    timezone: str = "UTC"
    debug: bool = False


@dataclass
class InteractionConfig:
    default_duration_minutes: int = 60
    drag_snap_minutes: int = 15
    recurring_edit_policy: RecurringEditPolicy = RecurringEditPolicy.CONFIRM
    guarded_routes: list[str] = field(default_factory=lambda: ["settings"])


@dataclass
class LabelsConfig:
    close_title: str = "Unsaved changes"
    close_message: str = "You will lose all unsaved changes. Do you want to discard them?"
    delete_title: str = "Delete event"
    delete_message: str = "Would you like to delete this event?"
    delete_all_title: str = "Delete events"
    delete_all_message: str = "Would you like to delete all the events in the series?"
    delete_recurring_title: str = "Delete recurring event"
    delete_recurring_message: str = "Which events would you like to delete?"
    edit_recurring_title: str = "Update recurring event"
    edit_recurring_message: str = "Would you like to update all the events in the series?"
    unload_message: str = "By leaving now, you will lose your event."


@dataclass
class Config:
    """Main configuration container."""
    general: GeneralConfig = field(default_factory=GeneralConfig)
    interaction: InteractionConfig = field(default_factory=InteractionConfig)
    labels: LabelsConfig = field(default_factory=LabelsConfig)

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> 'Config':
        """
        Load configuration from TOML file.

        Args:
            config_path: Path to config file. If None, uses default location.

        Returns:
            Config object with loaded settings.

        Raises:
            FileNotFoundError: config file does not exist.
            ValueError: recurring_edit_policy is not a known policy.
        """
        if config_path is None:
            config_path = cls.get_default_config_path()

        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path, 'rb') as f:
            data = tomllib.load(f)

        config = cls()

        if 'General' in data:
            general = data['General']
            config.general = GeneralConfig(
                timezone=general.get('timezone', 'UTC'),
                debug=bool(general.get('debug', False)),
            )

        if 'Interaction' in data:
            interaction = data['Interaction']
            defaults = InteractionConfig()
            config.interaction = InteractionConfig(
                default_duration_minutes=int(interaction.get('default_duration_minutes', defaults.default_duration_minutes)),
                drag_snap_minutes=int(interaction.get('drag_snap_minutes', defaults.drag_snap_minutes)),
                recurring_edit_policy=RecurringEditPolicy(interaction.get('recurring_edit_policy', 'confirm')),
                guarded_routes=list(interaction.get('guarded_routes', defaults.guarded_routes)),
            )

        if 'Labels' in data:
            labels = data['Labels']
            # Unknown keys are ignored; missing ones keep their defaults
            known = {name: value for name, value in labels.items() if name in LabelsConfig.__dataclass_fields__}
            config.labels = LabelsConfig(**known)

        return config

    @classmethod
    def get_default_config_path(cls) -> Path:
        """Get the default configuration file path."""
        xdg_config = os.environ.get('XDG_CONFIG_HOME', os.path.expanduser('~/.config'))
        return Path(xdg_config) / 'calendar-interaction' / 'calendar-interaction.toml'
