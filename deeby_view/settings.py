import logging
import os
from typing import Any, Optional

import yaml
from appdirs import user_config_dir
from attrs import define, field
from pyrsistent import freeze, pmap, thaw
from pyrsistent.typing import PMap

from deeby_view.constants import (
    DEFAULT_COLUMN_WIDTH,
    DEFAULT_PAGE_SIZE,
    MAX_CHAIN_DEPTH,
    MIN_COLUMN_WIDTH,
    SUFFIX_THRESHOLD,
)

logger = logging.getLogger(__name__)

APP_NAME = "deeby-view"

DEFAULTS = freeze(
    {
        "view": {
            "page_size": DEFAULT_PAGE_SIZE,
            "column": {
                "default_width": DEFAULT_COLUMN_WIDTH,
                "min_width": MIN_COLUMN_WIDTH,
            },
        },
        "format": {
            "suffix_threshold": SUFFIX_THRESHOLD,
        },
        "lookup": {
            "max_depth": MAX_CHAIN_DEPTH,
        },
    }
)


def _get_path(data: Any, key: str, default: Any = None) -> Any:
    parts = key.split(".")
    current: Any = data
    for part in parts[:-1]:
        if not hasattr(current, "get"):
            return default
        current = current.get(part)
        if current is None:
            return default
    if not hasattr(current, "get"):
        return default
    return current.get(parts[-1], default)


@define
class EngineSettings:
    """Defaults of the view engine, stored in a YAML file.

    Settings are addressed with dot-separated paths (`view.page_size`).
    A setting missing from the file has the value from `DEFAULTS`.

    Attributes:
        settings: The settings read from the file or changed since.
        path: The file; defaults to `settings.yaml` in the user's
            configuration directory.
    """

    settings: PMap[str, Any] = field(default=pmap())
    path: Optional[str] = field(default=None)

    def __attrs_post_init__(self):
        self.load_settings()

    def __getitem__(self, key: str) -> Any:
        return self.get_setting(key)

    def __setitem__(self, key: str, value: Any):
        self.set_setting(key, value)

    def settings_file(self) -> str:
        """Get the path to the settings file."""
        if self.path:
            return self.path
        config_dir = user_config_dir(APP_NAME)
        if not os.path.exists(config_dir):
            os.makedirs(config_dir)
        return os.path.join(config_dir, "settings.yaml")

    def load_settings(self) -> None:
        """Load the settings from the settings file, if it exists."""
        settings_file = self.settings_file()
        if not os.path.exists(settings_file):
            logger.debug("settings file %s does not exist", settings_file)
            return
        with open(settings_file, "r") as f:
            tmp = yaml.safe_load(f)
        if tmp is None:
            logger.warning("settings file %s is empty", settings_file)
            return
        if not isinstance(tmp, dict):
            logger.warning(
                "settings file %s does not hold a mapping", settings_file
            )
            return
        self.settings = freeze(tmp)
        logger.debug("settings loaded from %s", settings_file)

    def save_settings(self) -> None:
        """Write the settings to the settings file."""
        settings_file = self.settings_file()
        tmp_settings = f"{settings_file}.tmp"
        with open(tmp_settings, "w") as f:
            yaml.safe_dump(thaw(self.settings), f)
        os.replace(tmp_settings, settings_file)
        logger.debug("settings saved to %s", settings_file)

    def get_setting(self, key: str, default: Any = None) -> Any:
        """Get a setting.

        Args:
            key: The key of the setting as a dot-separated path.
            default: Returned when neither the file nor `DEFAULTS` have
                the setting.
        """
        value = _get_path(self.settings, key)
        if value is None:
            value = _get_path(DEFAULTS, key, default)
        return value

    def set_setting(self, key: str, value: Any) -> bool:
        """Set a setting.

        The change is kept in memory; call `save_settings()` to persist it.

        Args:
            key: The key of the setting as a dot-separated path.
            value: The new value.

        Returns:
            True if the value changed.
        """
        parts = key.split(".")

        parents = []
        current = self.settings
        for part in parts[:-1]:
            parents.append((part, current))
            current = current.get(part, freeze({}))

        if thaw(current.get(parts[-1], None)) == thaw(value):
            return False

        new_current = current.set(parts[-1], freeze(value))
        for part, parent in reversed(parents):
            new_current = parent.set(part, new_current)
        self.settings = new_current
        return True

    @property
    def page_size(self) -> int:
        return int(self.get_setting("view.page_size"))

    @property
    def default_column_width(self) -> float:
        return float(self.get_setting("view.column.default_width"))

    @property
    def min_column_width(self) -> float:
        return float(self.get_setting("view.column.min_width"))

    @property
    def suffix_threshold(self) -> float:
        return float(self.get_setting("format.suffix_threshold"))

    @property
    def max_chain_depth(self) -> int:
        return min(MAX_CHAIN_DEPTH, int(self.get_setting("lookup.max_depth")))

