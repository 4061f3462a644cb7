"""
Configuration management for code generation.

Handles loading and merging the configuration document (bundled defaults,
an optional YAML/JSON file, then explicit overrides), providing defaults
and validation for generator settings.
"""

import copy
import json
from dataclasses import dataclass, field, fields, asdict
from enum import Enum
from pathlib import Path
from typing import Dict, Any, List, Mapping, Optional, Union

import yaml

from .errors import ConfigError
from .naming import is_valid_package

DEFAULTS_FILE = Path(__file__).resolve().parent.parent / "resources" / "defaults.yaml"


class Feature(Enum):
    """Optional generation features toggled per table."""

    AUDITING = "auditing"
    SOFT_DELETE = "soft_delete"
    CACHING = "caching"

    @classmethod
    def parse(cls, value: Union[str, "Feature"]) -> "Feature":
        """Accept 'soft_delete', 'soft-delete', 'softDelete' or 'SOFT_DELETE'."""
        if isinstance(value, Feature):
            return value
        normalized = str(value).strip().replace("-", "_")
        if normalized and not normalized.isupper() and not normalized.islower():
            normalized = "".join(
                f"_{c.lower()}" if c.isupper() else c for c in normalized
            )
        normalized = normalized.lower().strip("_")
        for feature in cls:
            if feature.value == normalized:
                return feature
        valid = ", ".join(f.value for f in cls)
        raise ValueError(f"Unknown feature '{value}' (expected one of: {valid})")


# Columns a feature adds to every table it is enabled on: (name, type, params, nullable)
AUDIT_COLUMNS = (
    ("created_at", "TIMESTAMP", {}, False),
    ("updated_at", "TIMESTAMP", {}, False),
    ("created_by", "VARCHAR", {"length": 100}, True),
    ("updated_by", "VARCHAR", {"length": 100}, True),
)
SOFT_DELETE_COLUMNS = (
    ("deleted", "BOOLEAN", {}, False),
    ("deleted_at", "TIMESTAMP", {}, True),
)
FEATURE_COLUMNS = {
    Feature.AUDITING: AUDIT_COLUMNS,
    Feature.SOFT_DELETE: SOFT_DELETE_COLUMNS,
}


@dataclass(frozen=True)
class FeatureFlags:
    """Enabled state of every optional feature for one table."""

    auditing: bool = False
    soft_delete: bool = False
    caching: bool = False

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]],
                     base: Optional["FeatureFlags"] = None) -> "FeatureFlags":
        """Layer a {feature: bool} mapping over base (or all-off) flags."""
        flags = base or cls()
        if not data:
            return flags
        if not isinstance(data, Mapping):
            raise ValueError("features must be a mapping of feature name to boolean")
        overrides = {}
        for key, value in data.items():
            feature = Feature.parse(key)
            if not isinstance(value, bool):
                raise ValueError(f"Feature '{key}' must be true or false, got {value!r}")
            overrides[feature] = value
        return flags.merged(overrides)

    def enabled(self, feature: Feature) -> bool:
        return getattr(self, feature.value)

    def merged(self, overrides: Optional[Mapping[Feature, bool]]) -> "FeatureFlags":
        """Return new flags with the given features forced on or off."""
        if not overrides:
            return self
        values = self.as_dict()
        for feature, value in overrides.items():
            values[Feature.parse(feature).value] = bool(value)
        return FeatureFlags(**values)

    def enabled_features(self) -> List[Feature]:
        return [feature for feature in Feature if self.enabled(feature)]

    def reserved_columns(self) -> Dict[str, Feature]:
        """Column names added by the enabled features, mapped to the feature."""
        return {
            column[0]: feature
            for feature in self.enabled_features()
            for column in FEATURE_COLUMNS.get(feature, ())
        }

    def as_dict(self) -> Dict[str, bool]:
        return {feature.value: self.enabled(feature) for feature in Feature}


@dataclass
class NamingConfig:
    """Naming conventions applied to generated classes and endpoints."""

    singularize_class_names: bool = True
    strip_table_prefixes: List[str] = field(default_factory=list)
    api_prefix: str = "/api/v1"
    entity_suffix: str = ""


@dataclass
class GeneratorConfig:
    """Complete configuration for one generation run."""

    # Output settings
    base_package: str = "com.example.app"
    source_root: str = "src/main/java"
    resource_root: str = "src/main/resources"
    template_dir: Optional[str] = None

    # Target database
    dialect: str = "postgresql"

    # Execution
    max_workers: Optional[int] = None
    fail_fast: bool = False

    naming: NamingConfig = field(default_factory=NamingConfig)
    features: FeatureFlags = field(default_factory=FeatureFlags)

    # Type system and dialect overrides (raw sections, built by the registry)
    type_mappings: Dict[str, Any] = field(default_factory=dict)
    sql: Dict[str, Any] = field(default_factory=dict)
    dialects: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    # Dependency manifest entries
    dependencies: List[Dict[str, Any]] = field(default_factory=list)

    # Custom settings
    custom: Dict[str, Any] = field(default_factory=dict)


class ConfigManager:
    """Manages configuration loading and merging."""

    def __init__(self, defaults_file: Optional[Path] = None):
        """Initialize configuration manager with the bundled defaults."""
        self.defaults_file = Path(defaults_file) if defaults_file else DEFAULTS_FILE
        self._defaults: Dict[str, Any] = self._load_config_file(self.defaults_file)

    @property
    def defaults(self) -> Dict[str, Any]:
        return copy.deepcopy(self._defaults)

    def get_config(self, custom_config: Optional[Dict[str, Any]] = None,
                   config_file: Optional[Union[str, Path]] = None) -> GeneratorConfig:
        """
        Get complete configuration.

        Args:
            custom_config: Custom configuration overrides
            config_file: Path to YAML or JSON configuration file

        Returns:
            Defaults, then file, then overrides, merged
        """
        merged = self.defaults

        if config_file:
            merged = merge_config(merged, self._load_config_file(config_file))

        if custom_config:
            merged = merge_config(merged, custom_config)

        return self._dict_to_config(merged)

    def _load_config_file(self, config_path: Union[str, Path]) -> Dict[str, Any]:
        """Load configuration from a YAML or JSON file."""
        path = Path(config_path)

        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        suffix = path.suffix.lower()
        if suffix not in (".json", ".yaml", ".yml"):
            raise ConfigError(f"Configuration file must be YAML or JSON: {path}")

        try:
            with open(path, 'r', encoding='utf-8') as f:
                if suffix == ".json":
                    config = json.load(f)
                else:
                    config = yaml.safe_load(f) or {}
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in configuration file {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in configuration file {path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Failed to read configuration file {path}: {e}") from e

        if not isinstance(config, dict):
            raise ConfigError(f"Configuration file must contain a mapping: {path}")

        return config

    def _dict_to_config(self, config_dict: Dict[str, Any]) -> GeneratorConfig:
        """Convert dictionary to GeneratorConfig instance."""
        known_fields = {f.name for f in fields(GeneratorConfig)}

        config_args = {}
        custom_args = {}

        for key, value in config_dict.items():
            if key in known_fields:
                config_args[key] = value
            else:
                custom_args[key] = value

        try:
            naming = config_args.get("naming") or {}
            if isinstance(naming, dict):
                config_args["naming"] = NamingConfig(**naming)

            features = config_args.get("features")
            if not isinstance(features, FeatureFlags):
                config_args["features"] = FeatureFlags.from_mapping(features)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

        if custom_args:
            existing_custom = dict(config_args.get('custom') or {})
            existing_custom.update(custom_args)
            config_args['custom'] = existing_custom

        return GeneratorConfig(**config_args)

    def save_config(self, config: GeneratorConfig, output_path: Union[str, Path]):
        """Save configuration to a YAML (or .json) file."""
        path = Path(output_path)

        config_dict = asdict(config)
        config_dict["features"] = config.features.as_dict()
        custom = config_dict.pop("custom", {})
        config_dict.update(custom)

        try:
            with open(path, 'w', encoding='utf-8') as f:
                if path.suffix.lower() == ".json":
                    json.dump(config_dict, f, indent=2, ensure_ascii=False)
                else:
                    yaml.safe_dump(config_dict, f, sort_keys=False)
        except OSError as e:
            raise ConfigError(f"Failed to save configuration to {path}: {e}") from e

    def validate_config(self, config: GeneratorConfig) -> List[str]:
        """
        Validate configuration.

        Returns:
            List of validation warnings
        """
        warnings = []

        if not is_valid_package(config.base_package):
            warnings.append(f"Invalid Java package name: {config.base_package}")

        if config.dialect and config.dialect.lower() not in {
            name.lower() for name in config.dialects
        } and not any(
            config.dialect.lower() in [a.lower() for a in d.get("aliases", [])]
            for d in config.dialects.values()
        ):
            warnings.append(f"Dialect '{config.dialect}' is not configured")

        if config.max_workers is not None and config.max_workers < 1:
            warnings.append(f"max_workers must be at least 1, got {config.max_workers}")

        if not config.naming.api_prefix.startswith("/"):
            warnings.append(f"api_prefix should start with '/': {config.naming.api_prefix}")

        for index, dep in enumerate(config.dependencies):
            if not dep.get("group_id") or not dep.get("artifact_id"):
                warnings.append(f"Dependency #{index + 1} lacks group_id/artifact_id")

        return warnings


def merge_config(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Deep-merge override into a copy of base.

    Mappings merge recursively and lists are replaced. Inside any
    ``type_mappings`` section entries replace each other whole, so an
    override never inherits parameters from the entry it replaces.
    """
    result = copy.deepcopy(base)
    for key, value in override.items():
        current = result.get(key)
        if key == "type_mappings" and isinstance(current, dict) and isinstance(value, Mapping):
            merged = dict(current)
            merged.update({str(k).upper(): copy.deepcopy(v) for k, v in value.items()})
            result[key] = merged
        elif isinstance(current, dict) and isinstance(value, Mapping):
            result[key] = merge_config(current, value)
        else:
            result[key] = copy.deepcopy(value)
    return result


# Global configuration manager instance
_config_manager = None


def get_config_manager() -> ConfigManager:
    """Get the global configuration manager instance."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager


def load_config(custom_config: Optional[Dict[str, Any]] = None,
                config_file: Optional[Union[str, Path]] = None) -> GeneratorConfig:
    """
    Convenience function to load configuration.

    Args:
        custom_config: Custom configuration overrides
        config_file: Path to YAML or JSON configuration file

    Returns:
        Merged configuration
    """
    manager = get_config_manager()
    return manager.get_config(custom_config, config_file)
