"""Named Redmine source configurations."""
import json
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

from processor.models import SourceConfig
from scraper.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = 'REDMINE_CONFIGS'
CONFIG_FIELDS = ('server_url', 'username', 'password')


class SourceConfigStore:
    """
    Named source configurations, stored as JSON.

    The JSON document maps a configuration name to its settings:

        {"work": {"server_url": "...", "username": "...", "password": "..."}}
    """

    def __init__(self, configs: Optional[Dict[str, SourceConfig]] = None):
        self._configs: Dict[str, SourceConfig] = dict(configs or {})

    @classmethod
    def from_json(cls, text: str) -> 'SourceConfigStore':
        """
        Load configurations from a JSON document.

        Raises:
            ConfigError: If the document is invalid or a record lacks a field
        """
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid source configuration JSON: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError("Source configuration JSON must be an object")

        configs = {}
        for name, record in data.items():
            if not isinstance(record, dict):
                raise ConfigError(f"Configuration '{name}' must be an object")
            missing = [key for key in CONFIG_FIELDS if not record.get(key)]
            if missing:
                raise ConfigError(
                    f"Configuration '{name}' is missing: {', '.join(missing)}"
                )
            configs[name] = SourceConfig(
                server_url=record['server_url'],
                username=record['username'],
                password=record['password']
            )

        logger.info(f"Loaded {len(configs)} source configurations")
        return cls(configs)

    @classmethod
    def from_file(cls, path: str) -> 'SourceConfigStore':
        try:
            text = Path(path).read_text(encoding='utf-8')
        except OSError as e:
            raise ConfigError(f"Can't read source configuration {path}: {e}") from e
        return cls.from_json(text)

    @classmethod
    def from_env(cls, var_name: str = CONFIG_ENV_VAR) -> 'SourceConfigStore':
        """Load configurations from a JSON environment variable (empty if unset)."""
        return cls.from_json(os.environ.get(var_name) or '{}')

    def get(self, name: str) -> SourceConfig:
        try:
            return self._configs[name]
        except KeyError:
            raise ConfigError(f"Unknown source configuration '{name}'") from None

    def names(self) -> List[str]:
        return sorted(self._configs)

    def add(self, name: str, config: SourceConfig) -> None:
        self._configs[name] = config

    def remove(self, name: str) -> None:
        self._configs.pop(name, None)

    def to_json(self) -> str:
        return json.dumps(
            {
                name: {key: getattr(config, key) for key in CONFIG_FIELDS}
                for name, config in sorted(self._configs.items())
            },
            indent=2,
            ensure_ascii=False
        )
