"""
crudforge: Spring Boot / JPA CRUD code generation from table schemas.

Reads a declarative schema, maps column types through a layered type table
and renders entities, repositories, services, controllers, DTOs and Flyway
migrations from Jinja2 templates.
"""

from typing import Any, Dict, Optional, Union

from .registry import DialectRegistry, create_type_mapper, get_registry
from .core.config import GeneratorConfig, load_config
from .core.generator import (
    Artifact,
    GenerationDriver,
    GenerationOptions,
    GenerationResult,
    GenerationStatus,
)
from .core.schema import load_schema
from .core.templates import TemplateEngine
from .logging_config import get_logger, setup_logging

__version__ = "0.1.0"

logger = get_logger(__name__)


def generate_from_schema(
    raw_schema: Any,
    config: Optional[Union[GeneratorConfig, Dict[str, Any]]] = None,
    options: Optional[GenerationOptions] = None,
    engine: Optional[TemplateEngine] = None,
) -> GenerationResult:
    """
    Load a schema document and generate code for every table in it.

    Args:
        raw_schema: Parsed schema ({tables: [...]}, a list, or one table)
        config: GeneratorConfig, or a dict of overrides for the defaults
        options: Run options
        engine: Template engine to render with

    Returns:
        GenerationResult with load failures merged in
    """
    if not isinstance(config, GeneratorConfig):
        config = load_config(config)
    options = options or GenerationOptions()

    registry = DialectRegistry.from_config(config)
    dialect_name = options.dialect if options.dialect is not None else config.dialect
    dialect = registry.get(dialect_name) if dialect_name else None
    type_mapper = create_type_mapper(config, dialect_name or "", registry)

    loaded = load_schema(raw_schema, type_mapper, config.features)
    fail_fast = config.fail_fast if options.fail_fast is None else options.fail_fast

    driver = GenerationDriver(config, type_mapper, engine=engine, dialect=dialect)
    if fail_fast and loaded.errors:
        result = GenerationResult()
        result.metadata["skipped"] = len(loaded.tables)
    else:
        result = driver.generate(loaded.tables, options=options)
    result.add_errors(loaded.errors)
    result.metadata["failure_count"] = len(result.failures)
    result.metadata["status"] = result.status.value
    return result


__all__ = [
    "Artifact",
    "DialectRegistry",
    "GenerationDriver",
    "GenerationOptions",
    "GenerationResult",
    "GenerationStatus",
    "GeneratorConfig",
    "TemplateEngine",
    "create_type_mapper",
    "generate_from_schema",
    "get_logger",
    "get_registry",
    "load_config",
    "setup_logging",
    "__version__",
]
