"""
Configuration Management
Resolves transfer options from .env files, environment variables, JSON/YAML files and CLI overrides
"""
import os
import json
import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Dict, Any, Optional

import yaml
from dotenv import load_dotenv

from ..errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_BULK_SIZE = 2000
MAX_CURSOR_BATCH_SIZE = 6400
DEFAULT_INSERT_CONCURRENCY = 4
DEFAULT_CONTINUE_INSERT_CONCURRENCY = 1
DEFAULT_COLLECTION_CONCURRENCY = 4

ENV_FILES = ['.env_local', '.env', 'config.env']

@dataclass(frozen=True)
class TransferOptions:
    """Immutable per-run configuration"""
    source_uri: str
    destination_uri: str
    database: str
    collection: Optional[str] = None
    rename_db: Optional[str] = None
    rename_collection: Optional[str] = None
    bulk_size: int = DEFAULT_BULK_SIZE
    continue_from_marker: bool = False
    single_item_mode: bool = False
    insert_concurrency: int = DEFAULT_INSERT_CONCURRENCY
    collection_concurrency: int = DEFAULT_COLLECTION_CONCURRENCY
    validate: bool = False
    verbose: bool = False
    copy_indexes: bool = False
    show_progress_bar: bool = False
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @property
    def cursor_batch_size(self) -> Optional[int]:
        """Server-side cursor batch size; None lets the driver decide"""
        if self.single_item_mode:
            return None
        return min(self.bulk_size, MAX_CURSOR_BATCH_SIZE)

    @property
    def ordered_inserts(self) -> bool:
        # continue mode relies on destination max _id being a clean boundary
        return self.continue_from_marker

    @property
    def effective_insert_concurrency(self) -> int:
        """Insert calls allowed in flight; continue mode writes one batch at a time"""
        if self.continue_from_marker:
            return DEFAULT_CONTINUE_INSERT_CONCURRENCY
        return self.insert_concurrency

    @property
    def destination_database(self) -> str:
        return self.rename_db or self.database


class ConfigManager:
    """
    Configuration manager with support for:
    - .env files
    - Environment variables
    - Configuration files (JSON/YAML)
    - Command line overrides
    - Validation
    """

    # environment variable -> option name
    ENV_VARIABLES = {
        "STREAM_SOURCE": "source_uri",
        "STREAM_DEST": "destination_uri",
        "MONGODB_DB": "database",
        "MONGODB_COLLECTION": "collection",
        "STREAM_BULK": "bulk_size",
        "STREAM_RENAME_DB": "rename_db",
        "STREAM_RENAME_COLLECTION": "rename_collection",
        "STREAM_THREADS": "collection_concurrency",
        "STREAM_INSERT_CONCURRENCY": "insert_concurrency",
        "STREAM_CONTINUE": "continue_from_marker",
        "STREAM_NOBULK": "single_item_mode",
        "STREAM_VALIDATE": "validate",
        "STREAM_VERBOSE": "verbose",
        "STREAM_COPY_INDEXES": "copy_indexes",
        "STREAM_PROGRESS_BAR": "show_progress_bar",
        "STREAM_LOG_LEVEL": "log_level",
        "STREAM_LOG_FILE": "log_file",
    }

    INT_OPTIONS = ("bulk_size", "insert_concurrency", "collection_concurrency")
    BOOL_OPTIONS = ("continue_from_marker", "single_item_mode", "validate", "verbose",
                    "copy_indexes", "show_progress_bar")

    def __init__(self, env_files=None, load_env_files: bool = True):
        self.env_files = list(env_files) if env_files is not None else list(ENV_FILES)
        self.options: Optional[TransferOptions] = None
        if load_env_files:
            self._load_environment_files()

    def _load_environment_files(self):
        """Load the first .env style file that exists"""
        for env_file in self.env_files:
            if Path(env_file).exists():
                load_dotenv(env_file)
                logger.info(f"Loaded environment variables from {env_file}")
                break

    def load_config(self, config_file: Optional[str] = None,
                    overrides: Optional[Dict[str, Any]] = None,
                    environ: Optional[Dict[str, str]] = None) -> TransferOptions:
        """Merge environment, config file and overrides (in increasing precedence)"""
        config_data: Dict[str, Any] = {}
        config_data.update(self._load_from_environment(os.environ if environ is None else environ))

        if config_file:
            config_data.update(self._load_config_file(config_file))

        if overrides:
            config_data.update({k: v for k, v in overrides.items() if v is not None})

        self.options = self._create_options(config_data)
        logger.debug(f"Configuration resolved: {self.describe(self.options)}")
        return self.options

    def _load_from_environment(self, environ) -> Dict[str, Any]:
        config = {}
        for variable, option in self.ENV_VARIABLES.items():
            value = environ.get(variable)
            if value is not None and value != "":
                config[option] = value
        return config

    def _load_config_file(self, config_file: str) -> Dict[str, Any]:
        """Load options from a JSON or YAML file"""
        file_path = Path(config_file)

        if not file_path.exists():
            raise ConfigError(f"Configuration file not found: {config_file}")

        with open(file_path, 'r') as f:
            try:
                if file_path.suffix.lower() == '.json':
                    data = json.load(f)
                elif file_path.suffix.lower() in ['.yml', '.yaml']:
                    data = yaml.safe_load(f)
                else:
                    raise ConfigError(f"Unsupported configuration file format: {file_path.suffix}")
            except (json.JSONDecodeError, yaml.YAMLError) as e:
                raise ConfigError(f"Could not parse {config_file}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"{config_file} must contain a mapping of options")

        known = {f.name for f in fields(TransferOptions)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown options in {config_file}: {', '.join(unknown)}")

        logger.info(f"Loaded configuration file {config_file}")
        return data

    def _create_options(self, data: Dict[str, Any]) -> TransferOptions:
        """Type-convert, resolve defaults and validate"""
        errors = []

        values: Dict[str, Any] = {}
        for name in self.INT_OPTIONS:
            if name in data:
                try:
                    values[name] = self._parse_int(name, data[name])
                except ConfigError as e:
                    errors.append(str(e))
        for name in self.BOOL_OPTIONS:
            values[name] = self._parse_bool(data.get(name, False))

        for name in ("source_uri", "destination_uri", "database"):
            if not data.get(name):
                errors.append(f"{name} is required")

        if values["single_item_mode"] and "bulk_size" in data:
            errors.append("single item mode (nobulk) cannot be combined with a bulk size")

        if errors:
            raise ConfigError(f"Configuration validation failed: {'; '.join(errors)}")

        continue_mode = values["continue_from_marker"]
        insert_concurrency = values.get("insert_concurrency")
        if insert_concurrency is None:
            insert_concurrency = DEFAULT_CONTINUE_INSERT_CONCURRENCY if continue_mode else DEFAULT_INSERT_CONCURRENCY
        elif continue_mode and insert_concurrency > DEFAULT_CONTINUE_INSERT_CONCURRENCY:
            logger.warning(f"Insert concurrency {insert_concurrency} is not allowed with --continue, using 1")
            insert_concurrency = DEFAULT_CONTINUE_INSERT_CONCURRENCY

        bulk_size = values.get("bulk_size", DEFAULT_BULK_SIZE)

        collection_concurrency = values.get("collection_concurrency", DEFAULT_COLLECTION_CONCURRENCY)
        if data.get("rename_collection"):
            collection_concurrency = 1

        return TransferOptions(
            source_uri=data["source_uri"],
            destination_uri=data["destination_uri"],
            database=data["database"],
            collection=data.get("collection") or None,
            rename_db=data.get("rename_db") or None,
            rename_collection=data.get("rename_collection") or None,
            bulk_size=bulk_size,
            continue_from_marker=continue_mode,
            single_item_mode=values["single_item_mode"],
            insert_concurrency=insert_concurrency,
            collection_concurrency=collection_concurrency,
            validate=values["validate"],
            verbose=values["verbose"],
            copy_indexes=values["copy_indexes"],
            show_progress_bar=values["show_progress_bar"],
            log_level=str(data.get("log_level", "DEBUG" if values["verbose"] else "INFO")).upper(),
            log_file=data.get("log_file") or None,
        )

    @staticmethod
    def _parse_int(name: str, value: Any) -> int:
        if isinstance(value, bool):
            raise ConfigError(f"{name} must be an integer, got {value!r}")
        try:
            parsed = int(value)
        except (TypeError, ValueError):
            raise ConfigError(f"{name} must be an integer, got {value!r}")
        if parsed < 1:
            raise ConfigError(f"{name} must be >= 1, got {parsed}")
        return parsed

    @staticmethod
    def _parse_bool(value: Any) -> bool:
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in ("1", "true", "yes", "on")

    @staticmethod
    def describe(options: TransferOptions) -> Dict[str, Any]:
        """Options as a dict with credentials masked, for logging"""
        described = {f.name: getattr(options, f.name) for f in fields(options)}
        for key in ("source_uri", "destination_uri"):
            described[key] = _mask_uri(described[key])
        return described

    def get_options(self) -> TransferOptions:
        if self.options is None:
            raise RuntimeError("Configuration not loaded. Call load_config() first.")
        return self.options


def _mask_uri(uri: str) -> str:
    """Hide the password part of a mongodb:// URI"""
    if "@" not in uri or "://" not in uri:
        return uri
    scheme, rest = uri.split("://", 1)
    credentials, host = rest.rsplit("@", 1)
    user = credentials.split(":", 1)[0]
    return f"{scheme}://{user}:***@{host}"
