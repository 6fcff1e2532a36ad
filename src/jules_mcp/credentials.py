"""
File-based API key storage.

Stores the Jules API key in ~/.jules/config.json with secure file
permissions.
"""

import json
import logging
import os
import stat
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

DEFAULT_JULES_DIR = Path.home() / ".jules"
CONFIG_FILE = "config.json"


class ConfigFileStore:
    """
    Key file storage.

    Reads and writes ~/.jules/config.json. The file is created with owner
    read/write permissions only.
    """

    def __init__(self, config_dir: Optional[Path] = None):
        """
        Initialize the store.

        Args:
            config_dir: Directory for the config file (default: ~/.jules)
        """
        self.config_dir = config_dir or DEFAULT_JULES_DIR
        self.config_file = self.config_dir / CONFIG_FILE

    def _ensure_config_dir(self) -> None:
        if not self.config_dir.exists():
            self.config_dir.mkdir(parents=True, mode=0o700)
            logger.debug(f"Created config directory: {self.config_dir}")

    def _secure_file_permissions(self) -> None:
        if self.config_file.exists():
            os.chmod(self.config_file, stat.S_IRUSR | stat.S_IWUSR)

    def load(self) -> dict[str, Any]:
        """Load the config file, or an empty dict if missing or unreadable."""
        if not self.config_file.exists():
            return {}

        try:
            with open(self.config_file) as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Failed to load config file: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def save(self, config: dict[str, Any]) -> None:
        self._ensure_config_dir()

        with open(self.config_file, "w") as f:
            json.dump(config, f, indent=2)

        self._secure_file_permissions()

    def get_api_key(self) -> Optional[str]:
        return self.load().get("apiKey") or None

    def set_api_key(self, api_key: str) -> None:
        """
        Store the API key, keeping any other fields in the file.

        Args:
            api_key: Jules API key
        """
        config = self.load()
        config["apiKey"] = api_key
        self.save(config)
        logger.info(f"Stored API key in {self.config_file}")
