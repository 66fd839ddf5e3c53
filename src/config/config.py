"""
Profile configuration for the kill feed tools.

A profile is a JSON file in profiles/. Settings are layered, later layers
overriding earlier ones key by key:

1. profiles/default.json (the shipped engine, CSV, upload and feed defaults)
2. profiles/<profile>.json, when a profile other than 'default' is selected
3. secrets/<profile>_secrets.json (the upload token; never committed)

Usage:
    from config import config
    engine_config = config.engine_config()

    from config import Config
    live = Config(profile='live')
    url = live.get('upload.url')
"""

import logging
from typing import Dict, Any, List, Optional
from pathlib import Path

from sc_killfeed.base import JSONTool, lookup
from sc_killfeed.engine.config import EngineConfig

logger = logging.getLogger(__name__)


def merge_settings(target: Dict[str, Any], overlay: Dict[str, Any]) -> List[str]:
    """
    Merge an overlay into target in place, section by section.

    Returns:
        Dot paths of the leaf values the overlay set
    """
    changed = []
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            changed.extend(f"{key}.{path}" for path in merge_settings(target[key], value))
        else:
            target[key] = value
            changed.append(key)
    return changed


def build_engine_config(data: Dict[str, Any], player: Optional[str] = None) -> EngineConfig:
    """
    Validated EngineConfig for a configuration dictionary's 'engine' section.

    Args:
        data: Full configuration dictionary
        player: Local player handle overriding engine.player_name

    Raises:
        ConfigurationError: If a value in the engine section is invalid
    """
    section = dict(lookup(data, 'engine', {}) or {})
    if player:
        logger.info(f"Local player set to '{player}' (profile has '{section.get('player_name') or 'none'}')")
        section['player_name'] = player
    return EngineConfig.from_dict(section)


class Config(JSONTool):
    """
    Layered profile reader.

    Attributes:
        config_dir (str): Directory containing profile JSON files
        secrets_dir (str): Directory containing secrets JSON files
        profile (str): Selected profile name
        data (dict): Merged configuration
        sources (list): Files merged into data, in order
    """

    DEFAULT_CONFIG_DIR = str(Path(__file__).parent / 'profiles')
    DEFAULT_SECRETS_DIR = str(Path(__file__).parent / 'secrets')
    DEFAULT_PROFILE = "default"

    def __init__(self, config_dir: str = None, secrets_dir: str = None, profile: str = None):
        super().__init__()

        self.config_dir = Path(config_dir or self.DEFAULT_CONFIG_DIR)
        self.secrets_dir = Path(secrets_dir or self.DEFAULT_SECRETS_DIR)
        self.profile = profile or self.DEFAULT_PROFILE
        self.data: Dict[str, Any] = {}
        self.sources: List[str] = []

        self.config_dir.mkdir(parents=True, exist_ok=True)
        self._load()

    def run(self) -> Dict[str, Any]:
        return self.data

    def _load(self):
        self.data = {}
        self.sources = []

        default_path = self.config_dir / f"{self.DEFAULT_PROFILE}.json"
        if not default_path.exists():
            self.write_json({}, str(default_path))
            logger.info(f"Created empty default profile at '{default_path}'")
        self._merge_file(default_path)

        if self.profile != self.DEFAULT_PROFILE:
            profile_path = self.config_dir / f"{self.profile}.json"
            if profile_path.exists():
                self._merge_file(profile_path)
            else:
                logger.warning(f"Profile '{self.profile}' not found, using the default profile only")

        secrets_path = self.secrets_dir / f"{self.profile}_secrets.json"
        if secrets_path.exists():
            keys = self._merge_file(secrets_path)
            # Values are secret, only their keys are logged
            logger.info(f"Loaded secrets for profile '{self.profile}': {', '.join(keys)}")
        else:
            logger.debug(f"No secrets file for profile '{self.profile}'")

        logger.info(f"Loaded configuration profile '{self.profile}' from {len(self.sources)} file(s)")

    def _merge_file(self, path: Path) -> List[str]:
        try:
            layer = self.read_json(str(path))
        except (OSError, ValueError) as e:
            logger.error(f"Error loading configuration file '{path}': {e}")
            return []
        if not isinstance(layer, dict):
            logger.error(f"Ignoring configuration file '{path}': top level is not an object")
            return []
        self.sources.append(str(path))
        return merge_settings(self.data, layer)

    def get(self, path: str = None, default: Any = None) -> Any:
        """
        Get a configuration value by dot path.

        Examples:
            >>> config.get('engine.dedup_window_ms', 5000)
            5000
            >>> config.get('upload.missing', 'fallback')
            'fallback'
        """
        return lookup(self.data, path, default)

    def engine_config(self, player: Optional[str] = None) -> EngineConfig:
        """Validated engine settings of this profile, optionally for another local player."""
        return build_engine_config(self.data, player)


# Default-profile instance: from config import config
config = Config()
