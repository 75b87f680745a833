"""
Config Loader - Assemble Settings from a YAML file, the environment and
keyword overrides.

Later layers win: defaults < YAML file < environment < overrides.
Environment variables use the ``RESILIENT_AGENT__`` prefix and ``__`` as
the nesting delimiter, and may be seeded from a ``.env`` file.
"""

import os
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union

import yaml
from dotenv import load_dotenv

from resilient_agent.config.settings import Settings
from resilient_agent.exceptions import ConfigurationError

PathLike = Union[str, Path]

# Points at a YAML file when no explicit path is given
CONFIG_PATH_ENV = "RESILIENT_AGENT_CONFIG"

SEARCH_PATHS = (
    Path("resilient-agent.yaml"),
    Path("resilient-agent.yml"),
    Path("config/resilient-agent.yaml"),
    Path.home() / ".config" / "resilient-agent" / "config.yaml",
)

DOTENV_PATHS = (Path(".env"), Path(".env.local"))


class ConfigLoader:
    """
    Builds a Settings instance for one process.

    pydantic-settings ranks init kwargs above environment variables, so
    the YAML document would shadow the environment if passed alone. The
    variables that are actually set are merged back over the file, then
    explicit overrides go on top.
    """

    def __init__(
        self,
        config_path: Optional[PathLike] = None,
        search_paths: Iterable[Path] = SEARCH_PATHS,
    ):
        explicit = config_path or os.environ.get(CONFIG_PATH_ENV)
        self.config_path = Path(explicit) if explicit else None
        self.search_paths = tuple(search_paths)
        self.source: Optional[Path] = None

    def locate(self) -> Optional[Path]:
        """Path of the YAML file to read, or None to run on defaults."""
        if self.config_path is not None:
            if not self.config_path.is_file():
                raise ConfigurationError(
                    "Config file not found",
                    details={"path": str(self.config_path)},
                )
            return self.config_path
        return next((p for p in self.search_paths if p.is_file()), None)

    @staticmethod
    def read_document(path: Path) -> Dict[str, Any]:
        """Parse ``path`` and insist on a mapping at the top level."""
        try:
            document = yaml.safe_load(path.read_text())
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot read {path}: {e}", details={"path": str(path)}) from e
        if document is None:
            return {}
        if not isinstance(document, dict):
            raise ConfigurationError(
                f"Top level of {path} must be a mapping, got {type(document).__name__}",
                details={"path": str(path)},
            )
        return document

    @staticmethod
    def seed_environment(env_file: Optional[PathLike]) -> None:
        """Load a .env file without clobbering variables already set."""
        if env_file:
            load_dotenv(env_file)
            return
        found = next((p for p in DOTENV_PATHS if p.is_file()), None)
        if found:
            load_dotenv(found)

    def _environment_layer(self) -> Dict[str, Any]:
        # Settings() with no kwargs reads only defaults and the environment
        env_settings = Settings()
        return env_settings.model_dump(exclude_unset=True)

    def load(
        self,
        env_file: Optional[PathLike] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> Settings:
        self.seed_environment(env_file)

        self.source = self.locate()
        document = self.read_document(self.source) if self.source else {}

        settings = Settings(**document)
        if document:
            environment = self._environment_layer()
            if environment:
                settings = settings.merge_with(environment)
        if overrides:
            settings = settings.merge_with(overrides)
        return settings


def load_config(
    config_path: Optional[PathLike] = None,
    env_file: Optional[PathLike] = None,
    **overrides: Any,
) -> Settings:
    """
    Load settings in one call.

    Example:
        >>> settings = load_config()
        >>> settings = load_config(config_path="agent.yaml")
        >>> settings = load_config(memory={"index": "brute_force"})
    """
    return ConfigLoader(config_path).load(env_file=env_file, overrides=overrides or None)
