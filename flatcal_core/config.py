"""
Configuration parser for flatcal.

Handles TOML file parsing and resolution of the table file locations.
"""

import tomllib
import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional

from .errors import ConfigError


# Default file names of the reference layout
DEFAULT_EVENT_FILE = "event.csv"
DEFAULT_RECURRENT_FILE = "recurrent.csv"
DEFAULT_ADDITIONAL_FILE = "additional.csv"
DEFAULT_REMINDER_FILE = "reminder.csv"


@dataclass
class StoreConfig:
    """Locations of the table files backing one event store."""
    event_file: Path
    recurrent_file: Path
    additional_file: Path
    reminder_file: Path

    @classmethod
    def in_directory(
        cls,
        data_dir: Path,
        event_file: str = DEFAULT_EVENT_FILE,
        recurrent_file: str = DEFAULT_RECURRENT_FILE,
        additional_file: str = DEFAULT_ADDITIONAL_FILE,
        reminder_file: str = DEFAULT_REMINDER_FILE,
    ) -> 'StoreConfig':
        """
        Build a layout with every table inside data_dir.

        Absolute file names are kept as given.
        """
        data_dir = Path(os.path.expanduser(str(data_dir)))
        return cls(
            event_file=data_dir / os.path.expanduser(event_file),
            recurrent_file=data_dir / os.path.expanduser(recurrent_file),
            additional_file=data_dir / os.path.expanduser(additional_file),
            reminder_file=data_dir / os.path.expanduser(reminder_file),
        )

    @property
    def data_dir(self) -> Path:
        """Directory holding the core table."""
        return self.event_file.parent


@dataclass
class BackupConfig:
    """Where backup archives go when no explicit path is given."""
    directory: Path


@dataclass
class Config:
    """Main configuration container for flatcal."""

    store: StoreConfig
    backup: BackupConfig
    timezone: str = "Europe/Amsterdam"
    debug: bool = False
    source_path: Optional[Path] = field(default=None, repr=False)

    @classmethod
    def get_default_config_path(cls) -> Path:
        """Get the default configuration file path."""
        xdg_config = os.environ.get('XDG_CONFIG_HOME', os.path.expanduser('~/.config'))
        return Path(xdg_config) / 'flatcal' / 'flatcal.toml'

    @classmethod
    def get_default_data_dir(cls) -> Path:
        """Get the default directory for the table files."""
        xdg_data = os.environ.get('XDG_DATA_HOME', os.path.expanduser('~/.local/share'))
        return Path(xdg_data) / 'flatcal'

    @classmethod
    def defaults(cls, data_dir: Optional[Path] = None) -> 'Config':
        """Configuration used when no file exists."""
        if data_dir is None:
            data_dir = cls.get_default_data_dir()
        data_dir = Path(data_dir)
        return cls(
            store=StoreConfig.in_directory(data_dir),
            backup=BackupConfig(directory=data_dir / 'backups'),
        )

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> 'Config':
        """Load configuration from TOML file."""
        if config_path is None:
            config_path = cls.get_default_config_path()
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        try:
            with open(config_path, 'rb') as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e

        return cls.from_dict(data, source_path=config_path)

    @classmethod
    def from_dict(cls, data: dict, source_path: Optional[Path] = None) -> 'Config':
        """Build a Config from already parsed TOML data."""
        # Parse General section
        general = _section(data, 'General')
        timezone = general.get('timezone', 'Europe/Amsterdam')
        debug = general.get('debug', False)
        if not isinstance(timezone, str):
            raise ConfigError("General.timezone must be a string")
        if not isinstance(debug, bool):
            raise ConfigError("General.debug must be true or false")

        # Parse Storage section
        storage = _section(data, 'Storage')
        data_dir = Path(os.path.expanduser(
            storage.get('data_dir', str(cls.get_default_data_dir()))
        ))
        store = StoreConfig.in_directory(
            data_dir,
            event_file=_string(storage, 'event_file', DEFAULT_EVENT_FILE),
            recurrent_file=_string(storage, 'recurrent_file', DEFAULT_RECURRENT_FILE),
            additional_file=_string(storage, 'additional_file', DEFAULT_ADDITIONAL_FILE),
            reminder_file=_string(storage, 'reminder_file', DEFAULT_REMINDER_FILE),
        )

        # Parse Backup section
        backup_data = _section(data, 'Backup')
        backup_dir = backup_data.get('directory')
        if backup_dir is None:
            backup_path = data_dir / 'backups'
        else:
            backup_path = data_dir / os.path.expanduser(_string(backup_data, 'directory', ''))

        return cls(
            store=store,
            backup=BackupConfig(directory=backup_path),
            timezone=timezone,
            debug=debug,
            source_path=source_path,
        )


def _section(data: dict, name: str) -> dict:
    value = data.get(name, {})
    if not isinstance(value, dict):
        raise ConfigError(f"[{name}] must be a table")
    return value


def _string(section: dict, key: str, default: str) -> str:
    value = section.get(key, default)
    if not isinstance(value, str) or not value:
        raise ConfigError(f"{key} must be a non-empty string")
    return value
