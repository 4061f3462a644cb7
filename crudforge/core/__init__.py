"""
Core code generation components.

Provides the type mapping table, schema model, template renderer and
generation driver shared by every entry point.
"""

from .errors import (
    CrudforgeError,
    ConfigError,
    RegistryError,
    SchemaLoadError,
    TemplateError,
    UnknownTypeError,
    InvalidParameterError,
    SchemaValidationError,
    UnresolvedReferenceError,
    UnsupportedSchemaError,
    UnresolvedVariableError,
    OutputCollisionError,
)
from .types import SqlType, TypeMapper, TypeMappingEntry, TypeParams, parse_type_spec
from .schema import (
    FieldDescriptor,
    ForeignKeyRef,
    SchemaLoadResult,
    TableDescriptor,
    check_feature_columns,
    load_schema,
    load_table,
)
from .naming import NameSanitizer, NamingCase
from .config import Feature, FeatureFlags, GeneratorConfig, ConfigManager, load_config
from .templates import TemplateCategory, TemplateDescriptor, TemplateEngine, TemplateScope
from .generator import (
    Artifact,
    GenerationContext,
    GenerationDriver,
    GenerationFailure,
    GenerationOptions,
    GenerationResult,
    GenerationStatus,
)

__all__ = [
    # Errors
    "CrudforgeError",
    "ConfigError",
    "RegistryError",
    "SchemaLoadError",
    "TemplateError",
    "UnknownTypeError",
    "InvalidParameterError",
    "SchemaValidationError",
    "UnresolvedReferenceError",
    "UnsupportedSchemaError",
    "UnresolvedVariableError",
    "OutputCollisionError",
    # Type mapping
    "SqlType",
    "TypeMapper",
    "TypeMappingEntry",
    "TypeParams",
    "parse_type_spec",
    # Schema model
    "FieldDescriptor",
    "ForeignKeyRef",
    "SchemaLoadResult",
    "TableDescriptor",
    "check_feature_columns",
    "load_schema",
    "load_table",
    # Naming utilities
    "NameSanitizer",
    "NamingCase",
    # Configuration system
    "Feature",
    "FeatureFlags",
    "GeneratorConfig",
    "ConfigManager",
    "load_config",
    # Template system
    "TemplateCategory",
    "TemplateDescriptor",
    "TemplateEngine",
    "TemplateScope",
    # Driver
    "Artifact",
    "GenerationContext",
    "GenerationDriver",
    "GenerationFailure",
    "GenerationOptions",
    "GenerationResult",
    "GenerationStatus",
]
