"""Layered configuration loading.

A provisioning run is configured from up to four layers, merged in order
so that later layers win:

1. ``<config_dir>/defaults/<config_file>``
2. ``<config_dir>/environments/<environment>.yaml``; when the file has a
   section named after the config file (``provisioning:``) only that
   section is used
3. Environment variables: ``<PREFIX><FIELD>`` for a whole field (JSON for
   nested sections) or ``<PREFIX><SECTION>__<FIELD>`` for one nested value
4. Explicit overrides (command line flags)

``${VAR}`` references in string values are then replaced from the process
environment, which keeps secrets such as the admin password out of the
YAML files.

Classes:
    ConfigLoader: Load and merge configuration layers into a Pydantic model
"""

import json
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar, Union

import yaml
from pydantic import BaseModel, ValidationError

from db_provisioner.utils.logging import StructuredLogger, get_logger

T = TypeVar("T", bound=BaseModel)

ENVIRONMENTS = ("dev", "test", "prod")
NESTED_SEPARATOR = "__"

_VARIABLE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")

Layer = Tuple[str, Dict[str, Any]]


class ConfigLoader:
    """Load and merge configuration layers.

    Attributes:
        config_dir: Directory containing ``defaults/`` and ``environments/``
        environment: Current environment (dev, test, prod)

    Example:
        >>> loader = ConfigLoader(config_dir="config", environment="prod")
        >>> config = loader.load(
        ...     ProvisioningConfig,
        ...     config_file="provisioning.yaml",
        ...     overrides={"database": "OrdersDb"},
        ...     env_prefix="DB_PROVISION_",
        ... )
    """

    def __init__(
        self, config_dir: Union[str, Path] = "config", environment: str = "dev"
    ) -> None:
        """Initialize the configuration loader.

        Args:
            config_dir: Directory containing configuration files
            environment: Current environment (dev, test, prod)

        Raises:
            ValueError: If environment is invalid
        """
        if environment not in ENVIRONMENTS:
            raise ValueError(
                f"Invalid environment: {environment}. "
                f"Must be one of: {', '.join(ENVIRONMENTS)}"
            )

        self.config_dir = Path(config_dir)
        self.environment = environment
        self._logger: StructuredLogger = get_logger(__name__)

    def load(
        self,
        model_class: Type[T],
        config_file: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
        use_env_vars: bool = True,
        env_prefix: str = "",
    ) -> T:
        """Merge every layer and validate the result.

        Args:
            model_class: Pydantic model class to instantiate
            config_file: Config file name under ``defaults/``; also names the
                section read from the environment file
            overrides: Values that win over every other layer
            use_env_vars: Whether to read environment variables
            env_prefix: Prefix for environment variables (e.g. "DB_PROVISION_")

        Returns:
            Validated model instance

        Raises:
            ValidationError: If the merged configuration is invalid
            yaml.YAMLError: If a configuration file cannot be parsed
            ValueError: If a configuration file is not a mapping
        """
        layers: List[Layer] = []
        if config_file:
            layers.extend(self._file_layers(config_file))
        if use_env_vars:
            layers.append(("environment variables", self._env_layer(model_class, env_prefix)))
        if overrides:
            layers.append(("overrides", dict(overrides)))

        merged: Dict[str, Any] = {}
        for source, values in layers:
            if not values:
                continue
            self._logger.debug(
                "Applying configuration layer",
                extra={"source": source, "keys": sorted(values)},
            )
            merged = _deep_merge(merged, values)

        merged = self._substitute(merged)

        try:
            return model_class(**merged)
        except ValidationError as e:
            self._logger.error(
                "Configuration validation failed",
                extra={"model": model_class.__name__, "errors": e.error_count()},
            )
            raise

    # ------------------------------------------------------------------
    # Layers
    # ------------------------------------------------------------------
    def _file_layers(self, config_file: str) -> List[Layer]:
        layers: List[Layer] = []

        defaults_path = self.config_dir / "defaults" / config_file
        if defaults_path.exists():
            layers.append((str(defaults_path), self._load_yaml(defaults_path)))

        env_path = self.config_dir / "environments" / f"{self.environment}.yaml"
        if env_path.exists():
            env_config = self._load_yaml(env_path)
            section = Path(config_file).stem
            if isinstance(env_config.get(section), dict):
                env_config = env_config[section]
            layers.append((str(env_path), env_config))

        return layers

    def _load_yaml(self, file_path: Path) -> Dict[str, Any]:
        """Load a YAML mapping; an empty file is an empty mapping.

        Raises:
            yaml.YAMLError: If YAML is invalid
            ValueError: If the document is not a mapping
        """
        try:
            with open(file_path, "r", encoding="utf-8") as f:
                document = yaml.safe_load(f)
        except yaml.YAMLError as e:
            self._logger.error(
                "Failed to parse configuration file",
                extra={"path": str(file_path), "error": str(e)},
            )
            raise

        if document is None:
            return {}
        if not isinstance(document, dict):
            raise ValueError(
                f"{file_path}: expected a mapping, got {type(document).__name__}"
            )
        return document

    def _env_layer(self, model_class: Type[T], prefix: str) -> Dict[str, Any]:
        """Collect ``<prefix><FIELD>`` and ``<prefix><SECTION>__<FIELD>`` variables."""
        values: Dict[str, Any] = {}
        fields = set(model_class.model_fields)

        for name, raw in os.environ.items():
            if prefix and not name.startswith(prefix):
                continue
            path = name[len(prefix):].lower().split(NESTED_SEPARATOR)
            if path[0] not in fields or not all(path):
                continue
            target = values
            for part in path[:-1]:
                existing = target.get(part)
                if not isinstance(existing, dict):
                    existing = target[part] = {}
                target = existing
            leaf = path[-1]
            parsed = _parse_env_value(raw)
            if isinstance(target.get(leaf), dict) and isinstance(parsed, dict):
                target[leaf] = _deep_merge(parsed, target[leaf])
            else:
                target[leaf] = parsed

        return values

    def _substitute(self, value: Any) -> Any:
        """Replace ``${VAR}`` references; unknown variables are left as written."""
        if isinstance(value, dict):
            return {key: self._substitute(item) for key, item in value.items()}
        if isinstance(value, list):
            return [self._substitute(item) for item in value]
        if not isinstance(value, str) or "${" not in value:
            return value

        def replace(match: "re.Match[str]") -> str:
            name = match.group(1)
            found = os.environ.get(name)
            if found is None:
                self._logger.warning(
                    "Environment variable not set; keeping reference",
                    extra={"variable": name},
                )
                return match.group(0)
            return found

        return _VARIABLE.sub(replace, value)


def _parse_env_value(value: str) -> Any:
    # Only JSON objects and arrays are decoded; scalars stay strings so a
    # numeric database name or password is not coerced to int.
    stripped = value.strip()
    if stripped[:1] in ("{", "["):
        try:
            return json.loads(stripped)
        except json.JSONDecodeError:
            pass
    return value


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        if isinstance(result.get(key), dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result
