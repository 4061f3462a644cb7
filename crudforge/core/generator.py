"""
Generation driver.

Selects the templates that apply to each table, builds a fresh
GenerationContext per (table, template) pair, derives output paths,
renders on a thread pool and collects artifacts and failures together.
"""

import os
import re
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .config import AUDIT_COLUMNS, SOFT_DELETE_COLUMNS, Feature, FeatureFlags, GeneratorConfig
from .errors import (
    ConfigError,
    CrudforgeError,
    OutputCollisionError,
    TemplateError,
)
from .naming import (
    NamingCase,
    create_java_sanitizer,
    is_valid_package,
    package_to_path,
    pluralize,
    singularize,
    to_camel_case,
    to_kebab_case,
    to_pascal_case,
)
from .schema import (
    FieldDescriptor,
    TableDescriptor,
    check_feature_columns,
    find_unresolved_references,
)
from .templates import (
    TemplateCategory,
    TemplateDescriptor,
    TemplateEngine,
    TemplateScope,
    format_path,
)
from .types import TypeMapper
from ..logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_SQL = {
    "identity_clause": "GENERATED BY DEFAULT AS IDENTITY",
    "false_literal": "FALSE",
    "true_literal": "TRUE",
}


class GenerationStatus(Enum):
    """Overall outcome of a run."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass(frozen=True)
class Artifact:
    """One generated output file."""

    path: str
    content: str
    template_id: str
    table: Optional[str] = None


@dataclass(frozen=True)
class GenerationFailure:
    """A failed (table, template) unit with the error that stopped it."""

    error: CrudforgeError
    table: Optional[str] = None
    template: Optional[str] = None

    @property
    def kind(self) -> str:
        return self.error.kind

    @property
    def message(self) -> str:
        return self.error.message

    def __str__(self) -> str:
        return str(self.error)


@dataclass
class GenerationResult:
    """Container for generated artifacts, failures and metadata."""

    artifacts: List[Artifact] = field(default_factory=list)
    failures: List[GenerationFailure] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def status(self) -> GenerationStatus:
        if not self.failures:
            return GenerationStatus.SUCCESS
        if not self.artifacts:
            return GenerationStatus.FAILED
        return GenerationStatus.PARTIAL

    @property
    def success(self) -> bool:
        return self.status == GenerationStatus.SUCCESS

    def add_errors(self, errors: Iterable[CrudforgeError], template: Optional[str] = None):
        """Record errors raised outside the render loop (e.g. while loading)."""
        for error in errors:
            self.failures.append(
                GenerationFailure(error=error, table=error.table, template=template or error.template)
            )
        self._sort()

    def as_dict(self) -> Dict[str, str]:
        """Map of output path to content."""
        return {artifact.path: artifact.content for artifact in self.artifacts}

    def artifacts_for(self, table: str) -> List[Artifact]:
        return [a for a in self.artifacts if a.table == table]

    def failed_tables(self) -> Set[str]:
        return {f.table for f in self.failures if f.table}

    def _sort(self):
        self.artifacts.sort(key=lambda a: a.path)
        self.failures.sort(key=lambda f: (f.table or "", f.template or "", f.message))


@dataclass
class GenerationOptions:
    """Per-run options layered over the configuration."""

    package: Optional[str] = None
    dialect: Optional[str] = None
    categories: Optional[Set[TemplateCategory]] = None
    feature_overrides: Dict[Feature, bool] = field(default_factory=dict)
    fail_fast: Optional[bool] = None
    max_workers: Optional[int] = None
    allow_external_references: bool = False

    def category_enabled(self, category: TemplateCategory) -> bool:
        return self.categories is None or category in self.categories


@dataclass
class GenerationContext:
    """Variables for one rendering pass of one template."""

    template_id: str
    table_name: Optional[str]
    variables: Dict[str, Any]

    def as_dict(self) -> Dict[str, Any]:
        return dict(self.variables)


@dataclass(frozen=True)
class _TableNames:
    class_name: str
    variable_name: str
    plural_name: str
    plural_variable: str
    kebab_name: str
    api_path: str


@dataclass
class _Task:
    template: TemplateDescriptor
    table: Optional[TableDescriptor]
    path: str = ""

    @property
    def label(self) -> str:
        return f"{self.table.name if self.table else '<project>'}:{self.template.id}"


class GenerationDriver:
    """Orchestrates rendering of every applicable template for a set of tables."""

    def __init__(
        self,
        config: GeneratorConfig,
        type_mapper: TypeMapper,
        engine: Optional[TemplateEngine] = None,
        templates: Optional[Sequence[TemplateDescriptor]] = None,
        dialect=None,
    ):
        """
        Initialize the driver.

        Args:
            config: Loaded configuration
            type_mapper: Read-only mapper for the run
            engine: Template engine; defaults to one over config.template_dir
            templates: Template set; defaults to the engine's manifest
            dialect: Active registry Dialect, for SQL fragments and dependencies
        """
        self.config = config
        self.type_mapper = type_mapper
        self.engine = engine or TemplateEngine(config.template_dir)
        self.templates: Tuple[TemplateDescriptor, ...] = (
            tuple(templates) if templates is not None else self.engine.load_manifest()
        )
        self.dialect = dialect
        self.sql = {**DEFAULT_SQL, **(config.sql or {}), **(dict(dialect.sql) if dialect else {})}

    def generate(
        self,
        tables: Sequence[TableDescriptor],
        templates: Optional[Sequence[TemplateDescriptor]] = None,
        options: Optional[GenerationOptions] = None,
    ) -> GenerationResult:
        """
        Generate artifacts for all tables.

        Args:
            tables: Validated table descriptors
            templates: Template set (defaults to the driver's)
            options: Run options

        Returns:
            GenerationResult holding artifacts and failures together
        """
        options = options or GenerationOptions()
        templates = tuple(templates) if templates is not None else self.templates
        package = options.package or self.config.base_package
        if not is_valid_package(package):
            raise ConfigError(f"Invalid Java package name: {package}")

        fail_fast = self.config.fail_fast if options.fail_fast is None else options.fail_fast
        result = GenerationResult()
        result.metadata.update(
            {
                "package": package,
                "dialect": self.type_mapper.dialect,
                "table_count": len(tables),
                "template_count": len(templates),
            }
        )
        logger.info(
            "Generating %d table(s) with %d template(s) into %s",
            len(tables), len(templates), package,
        )

        valid_tables = self._check_references(tables, options, result)
        valid_tables = self._check_feature_columns(valid_tables, options, result)
        if fail_fast and result.failures:
            result.metadata["skipped"] = len(valid_tables)
            return self._finish(result)

        batch = _Batch(self, valid_tables, package, options)
        tasks = self._plan_tasks(valid_tables, templates, options, batch)
        tasks = self._assign_paths(tasks, batch, result)
        if fail_fast and result.failures:
            result.metadata["skipped"] = len(tasks)
            return self._finish(result)

        skipped = self._run(tasks, batch, fail_fast, options, result)
        result.metadata["skipped"] = skipped
        return self._finish(result)

    def _finish(self, result: GenerationResult) -> GenerationResult:
        result._sort()
        result.metadata["artifact_count"] = len(result.artifacts)
        result.metadata["failure_count"] = len(result.failures)
        result.metadata["status"] = result.status.value
        for failure in result.failures:
            logger.warning("Generation failure: %s", failure)
        logger.info(
            "Generation %s: %d artifact(s), %d failure(s)",
            result.status.value, len(result.artifacts), len(result.failures),
        )
        return result

    def _check_references(
        self,
        tables: Sequence[TableDescriptor],
        options: GenerationOptions,
        result: GenerationResult,
    ) -> List[TableDescriptor]:
        """Drop tables whose foreign keys point outside the batch."""
        unresolved = find_unresolved_references(list(tables))
        valid = []
        for table in tables:
            missing = unresolved.get(table.name, [])
            if missing and not options.allow_external_references:
                for error in missing:
                    result.failures.append(GenerationFailure(error=error, table=table.name))
                continue
            for error in missing:
                result.warnings.append(
                    f"{table.name}.{error.field} references '{error.target_table}' outside "
                    f"this batch; generated as a plain column"
                )
            valid.append(table)
        return valid

    def _check_feature_columns(
        self,
        tables: Sequence[TableDescriptor],
        options: GenerationOptions,
        result: GenerationResult,
    ) -> List[TableDescriptor]:
        """Drop tables declaring a column that a run-level feature override adds."""
        valid = []
        for table in tables:
            try:
                check_feature_columns(table, table.features.merged(options.feature_overrides))
            except CrudforgeError as e:
                result.failures.append(GenerationFailure(error=e, table=table.name))
                continue
            valid.append(table)
        return valid

    def _plan_tasks(
        self,
        tables: Sequence[TableDescriptor],
        templates: Sequence[TemplateDescriptor],
        options: GenerationOptions,
        batch: "_Batch",
    ) -> List[_Task]:
        """Select the applicable templates for each table and the project."""
        tasks = []
        for table in tables:
            features = batch.features[_key(table)]
            for template in templates:
                if template.scope != TemplateScope.TABLE:
                    continue
                if not options.category_enabled(template.category):
                    continue
                if template.requires and not features.enabled(template.requires):
                    continue
                tasks.append(_Task(template=template, table=table))

        if tables:
            for template in templates:
                if template.scope != TemplateScope.PROJECT:
                    continue
                if not options.category_enabled(template.category):
                    continue
                if template.requires and not batch.any_feature(template.requires):
                    continue
                tasks.append(_Task(template=template, table=None))
        return tasks

    def _assign_paths(
        self, tasks: List[_Task], batch: "_Batch", result: GenerationResult
    ) -> List[_Task]:
        """Derive each task's output path and fail every task sharing a path."""
        by_path: Dict[str, List[_Task]] = {}
        for task in tasks:
            try:
                task.path = format_path(task.template.path, batch.path_values(task.table))
            except CrudforgeError as e:
                table_name = task.table.name if task.table else None
                result.failures.append(
                    GenerationFailure(
                        error=e.with_context(table=table_name, template=task.template.id),
                        table=table_name,
                        template=task.template.id,
                    )
                )
                continue
            by_path.setdefault(task.path, []).append(task)

        ready = []
        for path, owners in by_path.items():
            if len(owners) == 1:
                ready.append(owners[0])
                continue
            labels = sorted(owner.label for owner in owners)
            for owner in owners:
                table_name = owner.table.name if owner.table else None
                result.failures.append(
                    GenerationFailure(
                        error=OutputCollisionError(
                            path, labels, table=table_name, template=owner.template.id
                        ),
                        table=table_name,
                        template=owner.template.id,
                    )
                )
        return ready

    def _run(
        self,
        tasks: List[_Task],
        batch: "_Batch",
        fail_fast: bool,
        options: GenerationOptions,
        result: GenerationResult,
    ) -> int:
        """Render tasks, inline or on a thread pool. Returns the skipped count."""
        workers = options.max_workers or self.config.max_workers or min(8, os.cpu_count() or 1)

        if workers <= 1 or len(tasks) <= 1:
            for index, task in enumerate(tasks):
                outcome = self._render_task(task, batch)
                self._collect(outcome, result)
                if fail_fast and isinstance(outcome, GenerationFailure):
                    return len(tasks) - index - 1
            return 0

        skipped = 0
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(self._render_task, task, batch) for task in tasks]
            for future in as_completed(futures):
                if future.cancelled():
                    skipped += 1
                    continue
                outcome = future.result()
                self._collect(outcome, result)
                if fail_fast and isinstance(outcome, GenerationFailure):
                    for pending in futures:
                        pending.cancel()
        return skipped

    @staticmethod
    def _collect(outcome, result: GenerationResult):
        if isinstance(outcome, Artifact):
            result.artifacts.append(outcome)
        else:
            result.failures.append(outcome)

    def _render_task(self, task: _Task, batch: "_Batch"):
        """Render one task; never raises for generation errors."""
        table_name = task.table.name if task.table else None
        template_id = task.template.id
        try:
            context = self.build_context(task.template, task.table, batch)
            content = self.engine.render(task.template, context.as_dict())
        except CrudforgeError as e:
            return GenerationFailure(
                error=e.with_context(table=table_name, template=template_id),
                table=table_name,
                template=template_id,
            )
        except Exception as e:
            logger.debug("Unexpected error rendering %s", task.label, exc_info=True)
            return GenerationFailure(
                error=TemplateError(
                    f"Rendering failed: {type(e).__name__}: {e}",
                    table=table_name,
                    template=template_id,
                ),
                table=table_name,
                template=template_id,
            )

        logger.debug("Rendered %s -> %s", task.label, task.path)
        return Artifact(
            path=task.path,
            content=format_code(content),
            template_id=template_id,
            table=table_name,
        )

    def build_context(
        self,
        template: TemplateDescriptor,
        table: Optional[TableDescriptor],
        batch: "_Batch",
    ) -> GenerationContext:
        """Build a fresh context for one (table, template) pair."""
        if table is None:
            variables = batch.project_variables()
        else:
            variables = batch.table_variables(table)
        variables["template_id"] = template.id
        return GenerationContext(
            template_id=template.id,
            table_name=table.name if table else None,
            variables=variables,
        )


class _Batch:
    """Read-only facts about the whole batch: names, versions, features."""

    def __init__(
        self,
        driver: GenerationDriver,
        tables: Sequence[TableDescriptor],
        package: str,
        options: GenerationOptions,
    ):
        self.driver = driver
        self.config = driver.config
        self.mapper = driver.type_mapper
        self.package = package
        self.tables = list(tables)
        # Every lookup below is keyed by _key(table)
        self.by_name = {_key(t): t for t in self.tables}
        self.features: Dict[str, FeatureFlags] = {
            _key(t): t.features.merged(options.feature_overrides) for t in self.tables
        }
        self.names: Dict[str, _TableNames] = {
            _key(t): self._names_for(t) for t in self.tables
        }
        self.versions: Dict[str, int] = {
            name.lower(): index + 1 for index, name in enumerate(migration_order(self.tables))
        }

    def any_feature(self, feature: Feature) -> bool:
        return any(flags.enabled(feature) for flags in self.features.values())

    def _names_for(self, table: TableDescriptor) -> _TableNames:
        naming = self.config.naming
        base = table.name
        for prefix in naming.strip_table_prefixes:
            if prefix and base.lower().startswith(prefix.lower()) and len(base) > len(prefix):
                base = base[len(prefix):]
                break

        singular = singularize(base) if naming.singularize_class_names else base
        sanitizer = create_java_sanitizer()
        if table.class_name:
            class_name = table.class_name
        else:
            class_name = sanitizer.sanitize_name(
                to_pascal_case(singular) + naming.entity_suffix,
                NamingCase.PASCAL_CASE,
                suffix_on_conflict="Entity",
            )
        variable_name = sanitizer.sanitize_name(
            class_name[:1].lower() + class_name[1:], NamingCase.CAMEL_CASE
        )
        plural = pluralize(singularize(base))
        return _TableNames(
            class_name=class_name,
            variable_name=variable_name,
            plural_name=pluralize(class_name),
            plural_variable=to_camel_case(plural),
            kebab_name=to_kebab_case(plural),
            api_path=f"{naming.api_prefix.rstrip('/')}/{to_kebab_case(plural)}",
        )

    def path_values(self, table: Optional[TableDescriptor]) -> Dict[str, Any]:
        values = {
            "source_root": self.config.source_root,
            "resource_root": self.config.resource_root,
            "package_path": package_to_path(self.package),
        }
        if table is not None:
            names = self.names[_key(table)]
            values.update(
                {
                    "table_name": table.name,
                    "class_name": names.class_name,
                    "variable_name": names.variable_name,
                    "kebab_name": names.kebab_name,
                    "migration_version": self.versions[_key(table)],
                }
            )
        return values

    def _common_variables(self) -> Dict[str, Any]:
        return {
            "package": self.package,
            "package_path": package_to_path(self.package),
            "dialect": self.mapper.dialect or "universal",
            "sql": dict(self.driver.sql),
        }

    def _extra_columns(self, spec) -> List[Dict[str, Any]]:
        columns = []
        for name, sql_type, params, nullable in spec:
            entry = self.mapper.resolve(sql_type, params)
            columns.append(
                {
                    "column_name": name,
                    "name": to_camel_case(name),
                    "java_type": entry.java_type,
                    "column_type": entry.column_type,
                    "nullable": nullable,
                }
            )
        return columns

    def table_variables(self, table: TableDescriptor) -> Dict[str, Any]:
        """Per-table variables with every field projected through the type mapper."""
        names = self.names[_key(table)]
        features = self.features[_key(table)]
        sanitizer = create_java_sanitizer()

        entries = {f.name: self.mapper.resolve(f.sql_type, f.params) for f in table.fields}
        java_names = {
            f.name: sanitizer.sanitize_name(f.name, NamingCase.CAMEL_CASE) for f in table.fields
        }

        fields = []
        for f in table.fields:
            relation = self._relation_for(table, f, java_names[f.name], sanitizer)
            fields.append(self._project_field(f, entries[f.name], java_names[f.name], relation))

        primary_key = next(item for item in fields if item["primary_key"])
        if primary_key["auto_increment"]:
            primary_key["generation"] = "identity"
        elif primary_key["java_type"] == "UUID":
            primary_key["generation"] = "uuid"

        request_fields = [
            item for item in fields
            if not (item["primary_key"] and primary_key["generation"])
        ]
        relations = [item for item in fields if item["relation"]]

        request_columns = {item["column_name"] for item in request_fields}
        entity_imports = self.mapper.get_all_imports(
            [entries[f.name] for f, item in zip(table.fields, fields) if not item["relation"]]
        )
        request_imports = set()
        response_imports = set()
        for f in table.fields:
            plain = _plain_imports(entries[f.name])
            response_imports.update(plain)
            if f.name in request_columns:
                request_imports.update(plain)
        if features.auditing:
            response_imports.add("java.time.LocalDateTime")
        if features.soft_delete:
            entity_imports.add("java.time.LocalDateTime")

        key_imports = _plain_imports(entries[primary_key["column_name"]])
        unique_fields = [item for item in fields if item["unique"]]
        repository_imports = set(key_imports)
        for item in unique_fields:
            if not item["relation"]:
                repository_imports.update(_plain_imports(entries[item["column_name"]]))
        related_classes = sorted(
            {item["relation"]["target_class"] for item in relations} - {names.class_name}
        )

        variables = self._common_variables()
        variables.update(
            {
                "table_name": table.name,
                "table_comment": table.comment,
                "class_name": names.class_name,
                "variable_name": names.variable_name,
                "plural_name": names.plural_name,
                "plural_variable": names.plural_variable,
                "api_path": names.api_path,
                "cache_name": names.plural_variable,
                "fields": fields,
                "request_fields": request_fields,
                "relations": relations,
                "primary_key": primary_key,
                "unique_fields": unique_fields,
                "related_classes": related_classes,
                "key_imports": sorted(key_imports),
                "repository_imports": sorted(repository_imports),
                "imports": sorted(entity_imports),
                "entity_imports": sorted(entity_imports),
                "request_imports": sorted(request_imports),
                "response_imports": sorted(response_imports),
                "has_validations": any(item["validations"] for item in request_fields),
                "features": features.as_dict(),
                "audit_columns": self._extra_columns(AUDIT_COLUMNS) if features.auditing else [],
                "soft_delete_columns": (
                    self._extra_columns(SOFT_DELETE_COLUMNS) if features.soft_delete else []
                ),
                "migration_version": self.versions[_key(table)],
            }
        )
        return variables

    def _relation_for(
        self, table: TableDescriptor, f: FieldDescriptor, java_name: str, sanitizer
    ) -> Optional[Dict[str, Any]]:
        if f.references is None:
            return None
        target = self.by_name.get(f.references.table.lower())
        if target is None:
            return None
        target_names = self.names[_key(target)]
        if f.name.lower().endswith("_id") and len(f.name) > 3:
            property_name = sanitizer.sanitize_name(f.name[:-3], NamingCase.CAMEL_CASE)
        else:
            property_name = java_name
        return {
            "target_table": target.name,
            "target_class": target_names.class_name,
            "target_column": f.references.column,
            "target_getter": "get" + to_pascal_case(f.references.column),
            "property_name": property_name,
            "property_capitalized": property_name[:1].upper() + property_name[1:],
            "self_reference": target.name == table.name,
        }

    @staticmethod
    def _project_field(f: FieldDescriptor, entry, java_name: str, relation) -> Dict[str, Any]:
        validations = []
        if not f.nullable and not f.primary_key:
            validations.append("@NotBlank" if entry.java_type == "String" else "@NotNull")
        validations.extend(entry.validations)

        return {
            "name": java_name,
            "capitalized": java_name[:1].upper() + java_name[1:],
            "column_name": f.name,
            "sql_type": f.sql_type,
            "java_type": entry.java_type,
            "column_type": entry.column_type,
            "column_definition": entry.column_definition,
            "jdbc_type_code": entry.jdbc_type_code,
            "length": entry.defaults.get("length") if f.length is None else f.length,
            "precision": f.precision,
            "scale": f.scale,
            "primary_key": f.primary_key,
            "unique": f.unique,
            "nullable": f.nullable,
            "auto_increment": f.auto_increment,
            "default": f.default,
            "quote_default": _quote_default(f, entry),
            "comment": f.comment,
            "validations": validations,
            "references": (
                {"table": f.references.table, "column": f.references.column}
                if f.references else None
            ),
            "relation": relation,
            "generation": None,
        }

    def project_variables(self) -> Dict[str, Any]:
        """Variables for templates rendered once per run."""
        features = {
            feature.value: self.any_feature(feature) for feature in Feature
        }
        tables = []
        for table in self.tables:
            names = self.names[_key(table)]
            tables.append(
                {
                    "table_name": table.name,
                    "class_name": names.class_name,
                    "variable_name": names.variable_name,
                    "cache_name": names.plural_variable,
                    "features": self.features[_key(table)].as_dict(),
                }
            )

        variables = self._common_variables()
        variables.update(
            {
                "tables": tables,
                "features": features,
                "cache_names": [t["cache_name"] for t in tables if t["features"]["caching"]],
                "dependencies": self._dependencies(features),
            }
        )
        return variables

    def _dependencies(self, features: Mapping[str, bool]) -> List[Dict[str, Any]]:
        """Dependency manifest entries for the enabled features and dialect."""
        entries = list(self.config.dependencies)
        if self.driver.dialect is not None:
            entries.extend(self.driver.dialect.dependencies)

        selected = []
        seen = set()
        for entry in entries:
            feature = entry.get("feature")
            if feature and not features.get(Feature.parse(feature).value):
                continue
            key = (entry.get("group_id"), entry.get("artifact_id"))
            if key in seen:
                continue
            seen.add(key)
            selected.append(
                {
                    "group_id": entry.get("group_id"),
                    "artifact_id": entry.get("artifact_id"),
                    "version": entry.get("version"),
                    "scope": entry.get("scope"),
                }
            )
        return selected


def _key(table: TableDescriptor) -> str:
    return table.name.lower()


# Java types whose column defaults are SQL string literals
_QUOTED_DEFAULT_JAVA_TYPES = {
    "String", "UUID", "LocalDateTime", "OffsetDateTime", "LocalDate", "LocalTime",
}
# Defaults passed through as SQL: keywords, function calls and quoted literals
_SQL_DEFAULT_EXPRESSION_RE = re.compile(
    r"^(?:CURRENT_(?:TIMESTAMP|DATE|TIME)|LOCAL(?:TIMESTAMP|TIME)|NULL"
    r"|[A-Za-z_][A-Za-z0-9_.]*\(.*\)|'.*')$",
    re.IGNORECASE | re.DOTALL,
)


def _quote_default(f: FieldDescriptor, entry) -> bool:
    """Whether a field's default must be rendered as a quoted SQL literal."""
    if f.default is None or f.default_expression:
        return False
    if entry.java_type not in _QUOTED_DEFAULT_JAVA_TYPES:
        return False
    return not _SQL_DEFAULT_EXPRESSION_RE.match(f.default.strip())


def _plain_imports(entry) -> Set[str]:
    # Hibernate type annotations only appear on the entity
    return {i for i in entry.imports if not i.startswith("org.hibernate")}


def migration_order(tables: Sequence[TableDescriptor]) -> List[str]:
    """
    Order tables so referenced tables are created before referencing ones.

    Input order is kept wherever dependencies allow. A reference cycle is
    broken where the walk re-enters it, so the cycle's members come out
    in reverse order of first visit.
    """
    by_name = {t.name.lower(): t for t in tables}
    visited = set()
    visiting = set()
    ordered = []

    def visit(table: TableDescriptor):
        key = table.name.lower()
        if key in visited or key in visiting:
            return
        visiting.add(key)
        for f in table.foreign_keys:
            target = by_name.get(f.references.table.lower())
            if target is not None and target is not table:
                visit(target)
        visiting.remove(key)
        visited.add(key)
        ordered.append(table.name)

    for table in tables:
        visit(table)
    return ordered


def format_code(code: str) -> str:
    """
    Normalise generated text.

    Trailing whitespace is removed, runs of blank lines are capped at two,
    leading blank lines are dropped and the text ends with one newline.
    """
    formatted_lines = []
    blank_count = 0

    for line in code.split("\n"):
        stripped = line.rstrip()
        if not stripped:
            blank_count += 1
            if blank_count <= 2 and formatted_lines:
                formatted_lines.append("")
        else:
            blank_count = 0
            formatted_lines.append(stripped)

    while formatted_lines and not formatted_lines[-1]:
        formatted_lines.pop()

    return "\n".join(formatted_lines) + "\n" if formatted_lines else ""
