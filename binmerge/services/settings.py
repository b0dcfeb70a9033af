"""
Persisted settings for binmerge front ends.

Stored as JSON; every key is optional and falls back to its default.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Callable, Optional

from binmerge.core.schema import DEFAULT_MAX_NESTING_DEPTH, SchemaRegistry


@dataclass
class SchemaSettings:
    """Where layouts come from and how deep they may nest."""
    schema_paths: list[str] = field(default_factory=list)
    max_nesting_depth: int = DEFAULT_MAX_NESTING_DEPTH


@dataclass
class MergeSettings:
    """How merge results are written."""
    create_backup: bool = True
    backup_extension: str = ".orig"
    atomic_write: bool = True


@dataclass
class LoggingSettings:
    """Logging configuration."""
    level: str = "INFO"
    log_file: str = ""


@dataclass
class ApplicationSettings:
    """All settings groups, as persisted."""
    schema: SchemaSettings = field(default_factory=SchemaSettings)
    merge: MergeSettings = field(default_factory=MergeSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    def build_registry(self) -> SchemaRegistry:
        """Registry holding every configured schema."""
        registry = SchemaRegistry(max_depth=self.schema.max_nesting_depth)
        registry.load_paths(self.schema.schema_paths)
        return registry


class SettingsManager:
    """Loads, saves and broadcasts ApplicationSettings."""

    def __init__(self, settings_path: Optional[Path] = None):
        self.settings_path = settings_path or self._get_default_path()
        self._settings: Optional[ApplicationSettings] = None
        self._observers: list[Callable[[ApplicationSettings], None]] = []

    @staticmethod
    def _get_default_path() -> Path:
        """Per-user config location: %APPDATA% on Windows, XDG elsewhere."""
        if os.name == 'nt':
            app_data = os.environ.get('APPDATA', os.path.expanduser('~'))
            return Path(app_data) / 'binmerge' / 'settings.json'
        else:
            config_home = os.environ.get('XDG_CONFIG_HOME',
                                         os.path.expanduser('~/.config'))
            return Path(config_home) / 'binmerge' / 'settings.json'

    @property
    def settings(self) -> ApplicationSettings:
        """Settings in effect, read from disk on first access."""
        if self._settings is None:
            self._settings = self.load()
        return self._settings

    def load(self) -> ApplicationSettings:
        """Load settings from disk, falling back to defaults."""
        if not self.settings_path.exists():
            return ApplicationSettings()

        try:
            with open(self.settings_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logging.warning(f"SettingsManager - Could not read {self.settings_path}, using defaults: {e}")
            return ApplicationSettings()

        if not isinstance(data, dict):
            logging.warning(f"SettingsManager - {self.settings_path} is not a JSON object, using defaults")
            return ApplicationSettings()

        return self._from_dict(data)

    def save(self, settings: Optional[ApplicationSettings] = None) -> bool:
        """Write settings and notify observers; False if nothing was written."""
        settings = settings or self._settings
        if settings is None:
            return False

        try:
            self.settings_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.settings_path, 'w', encoding='utf-8') as f:
                json.dump(self._to_dict(settings), f, indent=2)
        except OSError as e:
            logging.error(f"SettingsManager - Failed to save {self.settings_path}: {e}")
            return False

        self._settings = settings
        self._notify_observers()
        return True

    def reset(self) -> ApplicationSettings:
        """Replace the stored settings with defaults."""
        self._settings = ApplicationSettings()
        self.save()
        return self._settings

    def add_observer(self, callback: Callable[[ApplicationSettings], None]) -> None:
        """Call `callback` with the new settings after every save."""
        self._observers.append(callback)

    def remove_observer(self, callback: Callable[[ApplicationSettings], None]) -> None:
        if callback in self._observers:
            self._observers.remove(callback)

    def _notify_observers(self) -> None:
        for callback in self._observers:
            callback(self._settings)

    def _to_dict(self, settings: ApplicationSettings) -> dict:
        return asdict(settings)

    def _from_dict(self, data: dict) -> ApplicationSettings:
        """Missing keys take their dataclass defaults."""
        schema_data = data.get('schema', {})
        merge_data = data.get('merge', {})
        logging_data = data.get('logging', {})

        schema = SchemaSettings(
            schema_paths=list(schema_data.get('schema_paths', [])),
            max_nesting_depth=int(schema_data.get('max_nesting_depth', DEFAULT_MAX_NESTING_DEPTH)),
        )

        merge = MergeSettings(
            create_backup=merge_data.get('create_backup', True),
            backup_extension=merge_data.get('backup_extension', '.orig'),
            atomic_write=merge_data.get('atomic_write', True),
        )

        log = LoggingSettings(
            level=logging_data.get('level', 'INFO'),
            log_file=logging_data.get('log_file', ''),
        )

        return ApplicationSettings(schema=schema, merge=merge, logging=log)

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get a setting by dotted path, e.g. 'merge.create_backup'."""
        obj: Any = self.settings
        for part in key_path.split('.'):
            if not hasattr(obj, part):
                return default
            obj = getattr(obj, part)
        return obj
