"""
Template engine wrapper for code generation.

Provides Jinja2 rendering with the naming filters used by the Spring Boot
templates, a YAML manifest describing each template, and strict variable
handling: a variable the context lacks is an error, never an empty string.
"""

from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from pathlib import Path
from string import Formatter
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import yaml
from jinja2 import (
    Environment,
    FileSystemLoader,
    DictLoader,
    StrictUndefined,
    Template,
    TemplateSyntaxError,
    meta,
    nodes,
)

from .config import Feature
from .errors import TemplateError, UnresolvedVariableError
from .naming import (
    pluralize,
    singularize,
    to_camel_case,
    to_kebab_case,
    to_pascal_case,
    to_snake_case,
)

BUNDLED_TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"
MANIFEST_NAME = "manifest.yaml"


class TemplateCategory(Enum):
    """Kind of artifact a template produces."""

    ENTITY = "entity"
    REPOSITORY = "repository"
    SERVICE = "service"
    CONTROLLER = "controller"
    DTO = "dto"
    MIGRATION = "migration"
    CONFIG = "config"
    BUILD = "build"

    @classmethod
    def parse(cls, value: Union[str, "TemplateCategory"]) -> "TemplateCategory":
        if isinstance(value, TemplateCategory):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid = ", ".join(c.value for c in cls)
            raise ValueError(f"Unknown template category '{value}' (expected one of: {valid})")


class TemplateScope(Enum):
    """Whether a template renders once per table or once per run."""

    TABLE = "table"
    PROJECT = "project"


@dataclass(frozen=True)
class TemplateDescriptor:
    """A named template with its declared variable contract."""

    id: str
    category: TemplateCategory
    source: str
    path: str
    variables: Tuple[str, ...] = ()
    scope: TemplateScope = TemplateScope.TABLE
    requires: Optional[Feature] = None
    file: Optional[str] = None
    description: str = ""

    @classmethod
    def from_manifest(cls, entry: Mapping[str, Any], source: str) -> "TemplateDescriptor":
        template_id = entry.get("id")
        if not template_id:
            raise TemplateError("Manifest entry without an id")
        if not entry.get("path"):
            raise TemplateError("Manifest entry has no output path", template=template_id)
        try:
            category = TemplateCategory.parse(entry.get("category", ""))
            scope = TemplateScope(entry.get("scope", TemplateScope.TABLE.value))
            requires = Feature.parse(entry["requires"]) if entry.get("requires") else None
        except ValueError as e:
            raise TemplateError(str(e), template=template_id) from e
        return cls(
            id=template_id,
            category=category,
            source=source,
            path=entry["path"],
            variables=tuple(entry.get("variables") or ()),
            scope=scope,
            requires=requires,
            file=entry.get("file"),
            description=entry.get("description", ""),
        )


class _ReportingUndefined(StrictUndefined):
    """StrictUndefined that raises UnresolvedVariableError with the missing name."""

    __slots__ = ()

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._undefined_exception = partial(UnresolvedVariableError, self._undefined_name)


class TemplateEngine:
    """Wrapper for Jinja2 template engine with code generation utilities."""

    def __init__(self, template_dir: Optional[Union[str, Path]] = None):
        """
        Initialize template engine.

        Args:
            template_dir: Directory containing the manifest and template
                files; defaults to the bundled Spring Boot templates
        """
        self.template_dir = Path(template_dir) if template_dir else BUNDLED_TEMPLATE_DIR
        self._env: Optional[Environment] = None
        # template id -> (source, compiled template, referenced root names)
        self._compiled: Dict[str, Tuple[str, Template, Tuple[str, ...]]] = {}
        self._setup_environment()

    def _setup_environment(self):
        """Setup Jinja2 environment with code generation utilities."""
        if self.template_dir.exists():
            loader = FileSystemLoader(str(self.template_dir))
        else:
            loader = DictLoader({})

        self._env = Environment(
            loader=loader,
            autoescape=False,
            undefined=_ReportingUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )

        # Custom filters for code generation
        self._env.filters["snake_case"] = to_snake_case
        self._env.filters["camel_case"] = to_camel_case
        self._env.filters["pascal_case"] = to_pascal_case
        self._env.filters["kebab_case"] = to_kebab_case
        self._env.filters["upper_snake"] = lambda value: to_snake_case(value).upper()
        self._env.filters["plural"] = pluralize
        self._env.filters["singular"] = singularize
        self._env.filters["lower_first"] = lambda value: str(value)[:1].lower() + str(value)[1:]
        self._env.filters["sql_string"] = lambda value: "'" + str(value).replace("'", "''") + "'"
        self._env.filters["java_string"] = (
            lambda value: '"' + str(value).replace("\\", "\\\\").replace('"', '\\"') + '"'
        )

    def load_manifest(self, manifest_path: Optional[Union[str, Path]] = None) -> Tuple[TemplateDescriptor, ...]:
        """
        Load template descriptors from a manifest and compile them.

        Args:
            manifest_path: Manifest file; defaults to manifest.yaml in the
                template directory

        Returns:
            Descriptors in manifest order
        """
        path = Path(manifest_path) if manifest_path else self.template_dir / MANIFEST_NAME
        if not path.exists():
            raise TemplateError(f"Template manifest not found: {path}")

        try:
            with open(path, "r", encoding="utf-8") as f:
                manifest = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise TemplateError(f"Invalid template manifest {path}: {e}") from e

        entries = manifest.get("templates") if isinstance(manifest, dict) else None
        if not isinstance(entries, list):
            raise TemplateError(f"Template manifest {path} must contain a 'templates' list")

        descriptors = []
        seen = set()
        for entry in entries:
            if not isinstance(entry, dict):
                raise TemplateError(f"Template manifest {path} has a non-mapping entry")
            template_file = entry.get("file")
            if not template_file:
                raise TemplateError("Manifest entry has no template file", template=entry.get("id"))
            source_path = path.parent / template_file
            try:
                source = source_path.read_text(encoding="utf-8")
            except OSError as e:
                raise TemplateError(
                    f"Cannot read template file {source_path}: {e}", template=entry.get("id")
                ) from e

            descriptor = TemplateDescriptor.from_manifest(entry, source)
            if descriptor.id in seen:
                raise TemplateError("Template id declared more than once", template=descriptor.id)
            seen.add(descriptor.id)
            self.add_template(descriptor)
            descriptors.append(descriptor)

        return tuple(descriptors)

    def add_template(self, descriptor: TemplateDescriptor) -> Tuple[Template, Tuple[str, ...]]:
        """Compile a descriptor's source and remember which names it references."""
        try:
            ast = self._env.parse(descriptor.source)
            compiled = self._env.from_string(descriptor.source)
        except TemplateSyntaxError as e:
            raise TemplateError(
                f"Syntax error on line {e.lineno}: {e.message}", template=descriptor.id
            ) from e
        referenced = referenced_variables(ast)
        self._compiled[descriptor.id] = (descriptor.source, compiled, referenced)
        return compiled, referenced

    def _get_compiled(self, descriptor: TemplateDescriptor) -> Tuple[Template, Tuple[str, ...]]:
        cached = self._compiled.get(descriptor.id)
        if cached is None or cached[0] != descriptor.source:
            return self.add_template(descriptor)
        return cached[1], cached[2]

    def render(self, template: TemplateDescriptor, context: Mapping[str, Any]) -> str:
        """
        Render a template descriptor with the given context.

        Args:
            template: Descriptor to render
            context: Variables to pass to template

        Returns:
            Rendered template content

        Raises:
            UnresolvedVariableError: First referenced or declared variable
                missing from the context
        """
        compiled, referenced = self._get_compiled(template)

        values = dict(context)
        for name in referenced + template.variables:
            if name not in values:
                raise UnresolvedVariableError(name, template=template.id)

        try:
            return compiled.render(**values)
        except UnresolvedVariableError as e:
            raise e.with_context(template=template.id)
        except TemplateSyntaxError as e:
            raise TemplateError(str(e), template=template.id) from e

    def render_string(self, template_string: str, context: Mapping[str, Any]) -> str:
        """
        Render a template string with the given context.

        Args:
            template_string: Template content as string
            context: Variables to pass to template

        Returns:
            Rendered content
        """
        try:
            ast = self._env.parse(template_string)
            template = self._env.from_string(template_string)
        except TemplateSyntaxError as e:
            raise TemplateError(f"Syntax error on line {e.lineno}: {e.message}") from e

        values = dict(context)
        for name in referenced_variables(ast):
            if name not in values:
                raise UnresolvedVariableError(name)
        return template.render(**values)

    def template_exists(self, template_id: str) -> bool:
        """Check if a template has been loaded."""
        return template_id in self._compiled


def referenced_variables(ast: nodes.Template) -> Tuple[str, ...]:
    """
    Root names a template reads from its context, in order of first use.

    Loop variables and names assigned with ``{% set %}`` are excluded.
    """
    undeclared = meta.find_undeclared_variables(ast)
    ordered: List[str] = []
    for node in ast.find_all(nodes.Name):
        if node.ctx == "load" and node.name in undeclared and node.name not in ordered:
            ordered.append(node.name)
    return tuple(ordered)


def format_path(pattern: str, values: Mapping[str, Any]) -> str:
    """
    Expand an output path pattern such as ``{package_path}/entity/{class_name}.java``.

    Raises:
        UnresolvedVariableError: The pattern uses a name values lacks
    """
    for _, name, _, _ in Formatter().parse(pattern):
        if name and name not in values:
            raise UnresolvedVariableError(name, "in output path")
    path = pattern.format_map(dict(values))
    return "/".join(part for part in path.replace("\\", "/").split("/") if part)


def list_categories(templates: Iterable[TemplateDescriptor]) -> List[TemplateCategory]:
    """Categories used by the given templates, in enum order."""
    used = {t.category for t in templates}
    return [c for c in TemplateCategory if c in used]
