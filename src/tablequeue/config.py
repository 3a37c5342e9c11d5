"""
YAML configuration for queue stores, queues and logging.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .errors import ConfigurationError
from .queue.admin import QueueAdmin
from .queue.schema import TableNames
from .queue.work_queue import UNLIMITED_RETRIES, WorkQueue
from .serialization import PayloadCodec, get_codec
from .store import SQLAlchemyStore
from .verbosity import QueueVerbosity

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = 'TABLEQUEUE_CONFIG_PATH'
DATABASE_URL_ENV = 'TABLEQUEUE_DATABASE_URL'
DEFAULT_CONFIG_PATH = './config.yaml'

DEFAULT_CONFIG: Dict[str, Any] = {
    'database': {
        'url': 'sqlite:///tablequeue.db',
        'pool_size': 5,
    },
    'tables': {
        'queues': 'queues',
        'queue_elements': 'queue_elements',
    },
    'queue': {
        'max_requeue_count': UNLIMITED_RETRIES,
        'cleanup_timeout': None,
        'serializer': 'pickle',
        'verbose': 0,
    },
    'logging': {
        'level': 'INFO',
        'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        'file': None,
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into a copy of base."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class Config:
    """Queue configuration loaded from a YAML file."""

    def __init__(self, config_path: Optional[str] = None):
        """
        Load configuration.

        Args:
            config_path: YAML file. Defaults to $TABLEQUEUE_CONFIG_PATH, then
                ./config.yaml. A missing default file means built-in defaults;
                a missing explicit file is an error.

        Raises:
            ConfigurationError: If the file is missing or not a YAML mapping
        """
        explicit = config_path is not None or CONFIG_PATH_ENV in os.environ
        self.config_path = config_path or os.environ.get(CONFIG_PATH_ENV, DEFAULT_CONFIG_PATH)

        loaded: Dict[str, Any] = {}
        path = Path(self.config_path)
        if path.exists():
            try:
                with open(path, 'r') as f:
                    loaded = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
            if not isinstance(loaded, dict):
                raise ConfigurationError("Configuration must be a YAML object/dictionary")
            logger.debug(f"Loaded queue configuration from {path}")
        elif explicit:
            raise ConfigurationError(f"Configuration file not found: {path}")

        self.config = _merge(DEFAULT_CONFIG, loaded)

        if os.environ.get(DATABASE_URL_ENV):
            self.config['database']['url'] = os.environ[DATABASE_URL_ENV]

        self._store: Optional[SQLAlchemyStore] = None

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> 'Config':
        """Build a configuration from a dictionary instead of a file."""
        config = cls.__new__(cls)
        config.config_path = None
        config.config = _merge(DEFAULT_CONFIG, values or {})
        config._store = None
        return config

    def _section(self, name: str) -> Dict[str, Any]:
        section = self.config.get(name) or {}
        if not isinstance(section, dict):
            raise ConfigurationError(f"'{name}' section must be an object")
        return section

    def get_database_url(self) -> str:
        url = self._section('database').get('url')
        if not url:
            raise ConfigurationError("Database url is required")
        return url

    def get_store(self) -> SQLAlchemyStore:
        """Return the backing store, created on first use."""
        if self._store is None:
            database = self._section('database')
            self._store = SQLAlchemyStore(
                self.get_database_url(),
                connection_pool_size=database.get('pool_size'),
            )
        return self._store

    def get_table_names(self) -> TableNames:
        tables = self._section('tables')
        return TableNames(queues=tables.get('queues'), queue_elements=tables.get('queue_elements'))

    def get_codec(self) -> PayloadCodec:
        return get_codec(self._section('queue').get('serializer'))

    def get_verbosity(self) -> QueueVerbosity:
        return QueueVerbosity(self._section('queue').get('verbose', 0))

    def get_queue_options(self) -> Dict[str, Any]:
        """WorkQueue keyword arguments derived from the 'queue' section."""
        queue = self._section('queue')
        max_requeue_count = queue.get('max_requeue_count')
        return {
            'cleanup_timeout': queue.get('cleanup_timeout'),
            'max_requeue_count': UNLIMITED_RETRIES if max_requeue_count is None else max_requeue_count,
            'table_names': self.get_table_names(),
            'codec': self.get_codec(),
            'verbosity': self.get_verbosity(),
        }

    def get_admin(self) -> QueueAdmin:
        return QueueAdmin(self.get_store(), self.get_table_names(), self.get_verbosity())

    def get_queue(self, name: str, **overrides: Any) -> WorkQueue:
        """
        Build a WorkQueue for an existing queue.

        Args:
            name: Queue name
            **overrides: WorkQueue arguments taking precedence over the file
        """
        options = self.get_queue_options()
        options.update(overrides)
        return WorkQueue(name, self.get_store(), **options)

    def configure_logging(self, level: Optional[str] = None) -> None:
        """Configure stdlib logging from the 'logging' section."""
        section = self._section('logging')
        level_name = str(level or section.get('level') or 'INFO').upper()
        log_level = getattr(logging, level_name, None)
        if not isinstance(log_level, int):
            raise ConfigurationError(f"Unknown log level: {level_name}")

        kwargs = {
            'level': log_level,
            'format': section.get('format') or DEFAULT_CONFIG['logging']['format'],
        }
        if section.get('file'):
            kwargs['filename'] = section['file']
            kwargs['filemode'] = 'a'
        logging.basicConfig(**kwargs)

    def close(self) -> None:
        if self._store is not None:
            self._store.dispose()
            self._store = None
