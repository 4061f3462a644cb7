"""
Dialect registry for managing database-specific type overrides.

A dialect is a named override set layered over the universal mapping table.
Dialects come from the ``dialects`` section of the configuration and can be
addressed by their primary name or any alias.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .core.config import GeneratorConfig, load_config
from .core.errors import RegistryError
from .core.types import TypeMapper, TypeMappingEntry, build_mapping_table
from .logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Dialect:
    """A named set of type mapping overrides for one database engine."""

    name: str
    type_mappings: Mapping[str, TypeMappingEntry] = field(default_factory=dict, hash=False)
    aliases: Tuple[str, ...] = ()
    sql: Mapping[str, Any] = field(default_factory=dict, hash=False)
    dependencies: Tuple[Mapping[str, Any], ...] = ()
    description: str = ""

    @classmethod
    def from_config(cls, name: str, data: Mapping[str, Any]) -> "Dialect":
        """Build a dialect from its configuration section."""
        data = data or {}
        if not isinstance(data, Mapping):
            raise RegistryError(f"Dialect '{name}' must be configured as a mapping")
        return cls(
            name=name.lower(),
            type_mappings=build_mapping_table(data.get("type_mappings") or {}, name.lower()),
            aliases=tuple(a.lower() for a in data.get("aliases") or ()),
            sql=dict(data.get("sql") or {}),
            dependencies=tuple(data.get("dependencies") or ()),
            description=data.get("description", ""),
        )


class DialectRegistry:
    """Registry for managing available dialects."""

    def __init__(self):
        """Initialize empty registry."""
        self._dialects: Dict[str, Dialect] = {}
        self._aliases: Dict[str, str] = {}

    def register(self, dialect: Dialect, replace: bool = False):
        """
        Register a dialect and its aliases.

        Args:
            dialect: Dialect to register
            replace: If True, replace existing registration. If False, skip if exists.

        Raises:
            RegistryError: If an alias conflicts with another dialect
        """
        if not isinstance(dialect, Dialect):
            raise RegistryError("Only Dialect instances can be registered")

        dialect_key = dialect.name.lower()

        if dialect_key in self._dialects and not replace:
            logger.debug("Dialect %s already registered, skipping", dialect_key)
            return

        if dialect_key in self._aliases and self._aliases[dialect_key] != dialect_key:
            raise RegistryError(
                f"Dialect name '{dialect.name}' is already an alias of "
                f"'{self._aliases[dialect_key]}'"
            )

        for alias in dialect.aliases:
            alias_key = alias.lower()
            if alias_key == dialect_key:
                continue
            if alias_key in self._dialects:
                raise RegistryError(
                    f"Alias '{alias}' conflicts with existing dialect"
                )
            if alias_key in self._aliases and self._aliases[alias_key] != dialect_key:
                raise RegistryError(
                    f"Alias '{alias}' already points to '{self._aliases[alias_key]}'"
                )

        if replace:
            self.unregister(dialect_key)

        self._dialects[dialect_key] = dialect
        for alias in dialect.aliases:
            if alias.lower() != dialect_key:
                self._aliases[alias.lower()] = dialect_key

    def unregister(self, name: str):
        """Unregister a dialect and its aliases."""
        dialect_key = name.lower()
        self._dialects.pop(dialect_key, None)

        aliases_to_remove = [
            alias for alias, target in self._aliases.items() if target == dialect_key
        ]
        for alias in aliases_to_remove:
            del self._aliases[alias]

    def resolve_name(self, name: str) -> str:
        """Map a dialect name or alias to its primary name."""
        key = name.lower()
        if key in self._dialects:
            return key
        if key in self._aliases:
            return self._aliases[key]
        raise RegistryError(
            f"No dialect registered as '{name}'. "
            f"Available: {', '.join(self.list_dialects())}"
        )

    def get(self, name: str) -> Dialect:
        """Get a dialect by name or alias."""
        return self._dialects[self.resolve_name(name)]

    def list_dialects(self) -> List[str]:
        """Get list of registered primary dialect names."""
        return sorted(self._dialects)

    def get_aliases_for_dialect(self, name: str) -> List[str]:
        dialect_key = name.lower()
        return sorted(alias for alias, target in self._aliases.items() if target == dialect_key)

    def is_supported(self, name: str) -> bool:
        key = name.lower()
        return key in self._dialects or key in self._aliases

    def get_dialect_info(self, name: str) -> Dict[str, Any]:
        """Summary of a dialect for display."""
        dialect = self.get(name)
        return {
            "name": dialect.name,
            "description": dialect.description,
            "aliases": self.get_aliases_for_dialect(dialect.name),
            "overrides": sorted(dialect.type_mappings),
            "dependencies": [
                f"{d.get('group_id')}:{d.get('artifact_id')}" for d in dialect.dependencies
            ],
        }

    @classmethod
    def from_config(cls, config: GeneratorConfig) -> "DialectRegistry":
        """Build a registry holding every dialect in the configuration."""
        registry = cls()
        for name, data in sorted(config.dialects.items()):
            registry.register(Dialect.from_config(name, data))
        return registry


def create_type_mapper(
    config: GeneratorConfig,
    dialect: Optional[str] = None,
    registry: Optional[DialectRegistry] = None,
) -> TypeMapper:
    """
    Build the layered type mapper for a configuration.

    Args:
        config: Loaded configuration
        dialect: Dialect name or alias; defaults to config.dialect, and an
            empty value means the universal table only
        registry: Registry to look the dialect up in

    Returns:
        TypeMapper with the dialect table (if any) ahead of the universal one
    """
    universal = build_mapping_table(config.type_mappings, "universal")
    dialect_name = dialect if dialect is not None else config.dialect
    if not dialect_name:
        return TypeMapper(universal)

    registry = registry or DialectRegistry.from_config(config)
    selected = registry.get(dialect_name)
    return TypeMapper(
        universal,
        overrides=[(selected.name, selected.type_mappings)],
        dialect=selected.name,
    )


# Global registry instance built from the bundled defaults
_global_registry: Optional[DialectRegistry] = None


def get_registry() -> DialectRegistry:
    """Get the global dialect registry, initializing if needed."""
    global _global_registry
    if _global_registry is None:
        _global_registry = DialectRegistry.from_config(load_config())
    return _global_registry


def get_dialect(name: str) -> Dialect:
    """Get a bundled dialect by name or alias."""
    return get_registry().get(name)


def list_supported_dialects() -> List[str]:
    """List all bundled dialects."""
    return get_registry().list_dialects()


def is_dialect_supported(name: str) -> bool:
    return get_registry().is_supported(name)
