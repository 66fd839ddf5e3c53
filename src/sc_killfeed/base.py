"""
Base classes for the kill feed tools and file-backed sinks.

KillFeedTool carries a profile's configuration dictionary and the command
line conventions shared by every tool. FileBasedTool adds the two places
every tool works with: the directory Star Citizen writes Game.log to, and
the directory kill logs and reports are written to.
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, Optional, List
from datetime import datetime
import csv
import json
import logging
import os

logger = logging.getLogger(__name__)

GAME_LOG_NAME = "Game.log"

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def lookup(data: Any, path: Optional[str], default: Any = None) -> Any:
    """
    Walk a nested dictionary with a dot path such as 'engine.zones.history_size'.

    An empty or None path returns the data itself.
    """
    if not path:
        return data
    current = data
    for key in path.split('.'):
        if not isinstance(current, dict) or key not in current:
            return default
        current = current[key]
    return current


def configure_logging(level_name: str = "INFO"):
    """
    Send all log output to one root handler at the given level.

    Handlers from an earlier call are removed so repeated runs in one
    process do not print every line twice.
    """
    level = getattr(logging, str(level_name).upper(), logging.INFO)
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    logging.getLogger().setLevel(level)
    logger.debug(f"Logging initialized with level: {logging.getLevelName(level)}")


class KillFeedTool(ABC):
    """Base class for everything driven by a configuration profile."""

    def __init__(self, config: Optional[Dict[str, Any]] = None) -> None:
        """
        Initialize the tool.

        Args:
            config: Profile configuration dictionary (see config.Config)
        """
        self.config = config or {}

    @staticmethod
    def add_standard_arguments(parser):
        """
        Add the arguments every kill feed command line tool accepts.

        Args:
            parser: The ArgumentParser instance to add arguments to
        """
        parser.add_argument("--profile", default=None,
                            help="Configuration profile to use (default: use default profile)")
        parser.add_argument("--player", default=None,
                            help="Local player handle (overrides engine.player_name)")
        parser.add_argument("--console", action="store_true",
                            help="Log every kill event in the feed after the run")

    @staticmethod
    def load_config(profile: Optional[str] = None) -> Dict[str, Any]:
        """
        Load a profile and set up logging from its general.log_level.

        Args:
            profile: Name of the profile to load. If None, uses the default profile.

        Returns:
            The merged configuration dictionary.
        """
        from config.config import Config

        config_obj = Config(profile=profile)
        configure_logging(config_obj.get('general.log_level', 'INFO'))
        logger.debug(f"Using configuration profile '{config_obj.profile}'")
        return config_obj.data

    def get_config(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value.

        Args:
            key: The configuration key in dot notation (e.g. 'upload.url').
            default: Default value if the key is not found.

        Returns:
            The configuration value, or the default if not found.
        """
        return lookup(self.config, key, default)

    @abstractmethod
    def run(self) -> Any:
        """Run the tool. Must be implemented by subclasses."""
        pass


class FileBasedTool(KillFeedTool):
    """Base class for tools that read Game.log or write kill logs and reports."""

    def __init__(self, config: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(config)
        self.log_dir = None
        self.output_dir = None

    def initialize_directories(self):
        """
        Resolve general.log_path and general.output_path.

        The output directory is created; the game log directory belongs to
        the game client and is only reported.
        """
        self.log_dir = self.resolve_path(self.get_config('general.log_path', 'logs'))
        self.output_dir = self.resolve_path(self.get_config('general.output_path', 'output'))
        os.makedirs(self.output_dir, exist_ok=True)

        if not os.path.isdir(self.log_dir):
            logger.warning(f"Game log directory does not exist: {self.log_dir}")
        logger.info(f"Game log directory: {self.log_dir}")
        logger.info(f"Output directory: {self.output_dir}")

    @staticmethod
    def resolve_path(path: str) -> str:
        """Expand ~ and environment variables and make the path absolute."""
        return os.path.abspath(os.path.expanduser(os.path.expandvars(path)))

    def game_log_path(self, log_file: Optional[str] = None) -> str:
        """
        Game.log to read.

        Args:
            log_file: Explicit path; when empty, Game.log inside general.log_path

        Returns:
            Absolute path to the log file
        """
        if log_file:
            return self.resolve_path(log_file)
        return os.path.join(self.log_dir or self.resolve_path('logs'), GAME_LOG_NAME)

    def output_file(self, name: str) -> str:
        """Absolute path for an output file; relative names land in the output directory."""
        expanded = os.path.expanduser(os.path.expandvars(name))
        if os.path.isabs(expanded):
            return expanded
        return os.path.join(self.output_dir or os.getcwd(), expanded)

    @staticmethod
    def timestamped_name(base_name: str, extension: str, moment: Optional[datetime] = None) -> str:
        """e.g. kill_report_20250101_120000.xlsx"""
        moment = moment or datetime.now()
        return f"{base_name}_{moment.strftime('%Y%m%d_%H%M%S')}.{extension}"

    def append_csv_row(self, row: Dict[str, Any], output_path: str, headers: List[str]) -> bool:
        """
        Append a single row to a CSV file, writing the header first if the file is new.

        Args:
            row: Mapping of header name to value
            output_path: Path to the CSV file
            headers: Column order

        Returns:
            True if the file was created by this call
        """
        resolved_path = self.output_file(output_path)
        os.makedirs(os.path.dirname(resolved_path), exist_ok=True)

        created = not os.path.exists(resolved_path)
        with open(resolved_path, "a", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=headers, extrasaction='ignore')
            if created:
                writer.writeheader()
            writer.writerow(row)

        if created:
            logger.info(f"Created CSV log file: {resolved_path}")
        return created

    def read_csv(self, csv_file: str, required_columns: Optional[List[str]] = None) -> List[Dict[str, str]]:
        """
        Read every row of a CSV log.

        Raises:
            FileNotFoundError: If the CSV file doesn't exist
            KeyError: If required columns are missing from the header
        """
        resolved_path = self.resolve_path(csv_file)
        if not os.path.exists(resolved_path):
            raise FileNotFoundError(f"CSV file not found: {resolved_path}")

        with open(resolved_path, 'r', newline='', encoding='utf-8') as f:
            reader = csv.DictReader(f)
            missing = [column for column in (required_columns or []) if column not in (reader.fieldnames or [])]
            if missing:
                raise KeyError(f"{resolved_path} is missing columns {missing}; found {reader.fieldnames}")
            return list(reader)


class JSONTool(FileBasedTool):
    """Base class for tools that keep their state in JSON files."""

    def read_json(self, file_path: str) -> Any:
        """
        Read a JSON file.

        Raises:
            json.JSONDecodeError: If the file contains invalid JSON.
            FileNotFoundError: If the file doesn't exist.
        """
        resolved_path = self.resolve_path(file_path)
        logger.debug(f"Reading JSON file: {resolved_path}")
        with open(resolved_path, 'r', encoding='utf-8') as f:
            return json.load(f)

    def write_json(self, data: Any, file_path: str, indent: int = 2) -> str:
        """
        Write data to a JSON file, creating its directory.

        Returns:
            The absolute path to the written file.
        """
        resolved_path = self.output_file(file_path)
        os.makedirs(os.path.dirname(resolved_path), exist_ok=True)
        with open(resolved_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=indent)
        logger.debug(f"Wrote JSON file: {resolved_path}")
        return resolved_path
