"""
Core schema representation for code generation.

Converts a declarative table description (parsed from YAML or JSON) into
immutable descriptors that the generation driver works with, validating
structure and column types on the way in.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple

from .config import FeatureFlags
from .errors import (
    CrudforgeError,
    InvalidParameterError,
    SchemaLoadError,
    SchemaValidationError,
    UnresolvedReferenceError,
    UnsupportedSchemaError,
)
from .naming import to_snake_case
from .types import TypeMapper, TypeMappingEntry, TypeParams, parse_type_spec
from ..logging_config import get_logger

logger = get_logger(__name__)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Accepted spellings for each field attribute
_FIELD_KEYS = {
    "name": "name",
    "type": "type",
    "length": "length",
    "precision": "precision",
    "scale": "scale",
    "primary_key": "primary_key",
    "primaryKey": "primary_key",
    "unique": "unique",
    "nullable": "nullable",
    "auto_increment": "auto_increment",
    "autoIncrement": "auto_increment",
    "references": "references",
    "foreign_key": "references",
    "foreignKey": "references",
    "default": "default",
    "default_expression": "default_expression",
    "defaultExpression": "default_expression",
    "comment": "comment",
    "description": "comment",
}

_TABLE_KEYS = {
    "name": "name",
    "table": "name",
    "fields": "fields",
    "columns": "fields",
    "features": "features",
    "comment": "comment",
    "description": "comment",
    "class_name": "class_name",
    "className": "class_name",
    "primary_key": "primary_key",
    "primaryKey": "primary_key",
}

# Java types that can back an identity column
_IDENTITY_JAVA_TYPES = {"Long", "Integer", "Short"}


@dataclass(frozen=True)
class ForeignKeyRef:
    """Reference from a column to another table's column."""

    table: str
    column: str = "id"

    @classmethod
    def parse(cls, value: Any) -> "ForeignKeyRef":
        """Accept 'roles', 'roles.id' or {table: roles, column: id}."""
        if isinstance(value, str):
            table, _, column = value.partition(".")
            if not table:
                raise ValueError("foreign key reference needs a table")
            return cls(table=table, column=column or "id")
        if isinstance(value, Mapping):
            table = value.get("table")
            if not table or not isinstance(table, str):
                raise ValueError("foreign key reference needs a table")
            unknown = set(value) - {"table", "column"}
            if unknown:
                raise ValueError(
                    f"unknown foreign key keys: {', '.join(sorted(map(str, unknown)))}"
                )
            return cls(table=table, column=value.get("column") or "id")
        raise ValueError(f"cannot parse foreign key reference {value!r}")


@dataclass(frozen=True)
class FieldDescriptor:
    """Represents a single column of a table."""

    name: str
    sql_type: str
    length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    primary_key: bool = False
    unique: bool = False
    nullable: bool = True
    auto_increment: bool = False
    references: Optional[ForeignKeyRef] = None
    default: Optional[str] = None
    default_expression: bool = False
    comment: Optional[str] = None

    @property
    def params(self) -> TypeParams:
        return TypeParams(self.length, self.precision, self.scale)

    @property
    def is_foreign_key(self) -> bool:
        return self.references is not None


@dataclass(frozen=True)
class TableDescriptor:
    """Represents one table and its ordered fields."""

    name: str
    fields: Tuple[FieldDescriptor, ...]
    features: FeatureFlags = field(default_factory=FeatureFlags)
    comment: Optional[str] = None
    class_name: Optional[str] = None

    @property
    def primary_key(self) -> FieldDescriptor:
        for f in self.fields:
            if f.primary_key:
                return f
        raise SchemaValidationError("Table has no primary key", table=self.name)

    def get_field(self, name: str) -> Optional[FieldDescriptor]:
        """Get field by name."""
        for f in self.fields:
            if f.name == name:
                return f
        return None

    @property
    def foreign_keys(self) -> List[FieldDescriptor]:
        return [f for f in self.fields if f.references is not None]

    @property
    def referenced_tables(self) -> Set[str]:
        return {f.references.table for f in self.foreign_keys}


@dataclass
class SchemaLoadResult:
    """Tables that loaded cleanly plus the errors of those that did not."""

    tables: List[TableDescriptor] = field(default_factory=list)
    errors: List[CrudforgeError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    def get_table(self, name: str) -> Optional[TableDescriptor]:
        for table in self.tables:
            if table.name == name:
                return table
        return None


def load_table(
    raw: Mapping[str, Any],
    type_mapper: TypeMapper,
    default_features: Optional[FeatureFlags] = None,
) -> TableDescriptor:
    """
    Convert one raw table description into a TableDescriptor.

    Args:
        raw: Parsed table mapping (name, fields, features, ...)
        type_mapper: Mapper every column type must resolve against
        default_features: Feature flags the table's own flags are layered over

    Returns:
        Validated, immutable table descriptor

    Raises:
        SchemaValidationError: Structural problems, with table and field name
        UnsupportedSchemaError: Composite primary keys
        UnknownTypeError: A column type has no mapping
        InvalidParameterError: A column type's parameters are missing or invalid
    """
    if not isinstance(raw, Mapping):
        raise SchemaValidationError("Table definition must be a mapping")

    table_name = raw.get("name", raw.get("table"))
    if not isinstance(table_name, str) or not table_name.strip():
        raise SchemaValidationError("Table name must be a non-empty string")
    table_name = table_name.strip()
    if not _IDENTIFIER_RE.match(table_name):
        raise SchemaValidationError(
            f"Table name '{table_name}' is not a valid identifier", table=table_name
        )

    data = _normalize_keys(raw, _TABLE_KEYS, table_name, None, "table")

    raw_fields = data.get("fields")
    if not isinstance(raw_fields, list) or not raw_fields:
        raise SchemaValidationError("Table must declare at least one field", table=table_name)

    declared_pk = _declared_primary_key(data.get("primary_key"), table_name)

    fields: List[FieldDescriptor] = []
    seen: Dict[str, str] = {}
    for index, raw_field in enumerate(raw_fields):
        try:
            descriptor = _load_field(raw_field, index, type_mapper, declared_pk)
        except CrudforgeError as e:
            raise e.with_context(table=table_name)

        key = to_snake_case(descriptor.name)
        if key in seen:
            detail = (
                f"Duplicate field name '{descriptor.name}'"
                if seen[key] == descriptor.name
                else f"Field '{descriptor.name}' collides with '{seen[key]}'"
            )
            raise SchemaValidationError(detail, table=table_name, field=descriptor.name)
        seen[key] = descriptor.name
        fields.append(descriptor)

    if declared_pk and declared_pk not in {f.name for f in fields}:
        raise SchemaValidationError(
            f"Primary key column '{declared_pk}' is not a field of the table",
            table=table_name,
        )

    primary_keys = [f.name for f in fields if f.primary_key]
    if len(primary_keys) > 1:
        raise UnsupportedSchemaError(
            f"Composite primary keys are not supported ({', '.join(primary_keys)}); "
            f"declare exactly one primary key field",
            table=table_name,
        )
    if not primary_keys:
        raise SchemaValidationError(
            "Table has no primary key; mark exactly one field as primary_key",
            table=table_name,
        )

    try:
        features = FeatureFlags.from_mapping(data.get("features"), base=default_features)
    except ValueError as e:
        raise SchemaValidationError(str(e), table=table_name) from e

    class_name = data.get("class_name")
    if class_name is not None and (
        not isinstance(class_name, str) or not _IDENTIFIER_RE.match(class_name)
    ):
        raise SchemaValidationError(
            f"class_name {class_name!r} is not a valid identifier", table=table_name
        )

    table = TableDescriptor(
        name=table_name,
        fields=tuple(fields),
        features=features,
        comment=data.get("comment"),
        class_name=class_name,
    )
    check_feature_columns(table, features)
    logger.debug(
        "Loaded table %s (%d fields, features=%s)",
        table_name, len(fields), [f.value for f in features.enabled_features()],
    )
    return table


def _declared_primary_key(value: Any, table_name: str) -> Optional[str]:
    """Handle a table-level primary_key declaration."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (list, tuple)):
        if len(value) > 1:
            raise UnsupportedSchemaError(
                f"Composite primary keys are not supported ({', '.join(map(str, value))})",
                table=table_name,
            )
        if len(value) == 1 and isinstance(value[0], str):
            return value[0]
    raise SchemaValidationError(
        f"primary_key must name one field, got {value!r}", table=table_name
    )


def _load_field(
    raw: Any,
    index: int,
    type_mapper: TypeMapper,
    declared_pk: Optional[str],
) -> FieldDescriptor:
    if not isinstance(raw, Mapping):
        raise SchemaValidationError(f"Field #{index + 1} must be a mapping")

    name = raw.get("name")
    if not isinstance(name, str) or not name.strip():
        raise SchemaValidationError(f"Field #{index + 1} has an empty name")
    name = name.strip()
    if not _IDENTIFIER_RE.match(name):
        raise SchemaValidationError(f"Field name '{name}' is not a valid identifier", field=name)

    data = _normalize_keys(raw, _FIELD_KEYS, None, name, "field")

    type_spec = data.get("type")
    if not isinstance(type_spec, str) or not type_spec.strip():
        raise SchemaValidationError("Field has no type", field=name)

    try:
        type_name, parsed = parse_type_spec(type_spec)
    except InvalidParameterError as e:
        raise e.with_context(field=name)

    params = {}
    for key in ("length", "precision", "scale"):
        explicit = data.get(key)
        inline = getattr(parsed, key)
        if explicit is not None and inline is not None and explicit != inline:
            raise SchemaValidationError(
                f"{key} given both inline ({inline}) and explicitly ({explicit})",
                field=name,
            )
        params[key] = explicit if explicit is not None else inline

    try:
        entry: TypeMappingEntry = type_mapper.resolve(type_name, params)
    except CrudforgeError as e:
        raise e.with_context(field=name)

    flags = {}
    for key in ("primary_key", "unique", "auto_increment", "nullable", "default_expression"):
        value = data.get(key)
        if value is not None and not isinstance(value, bool):
            raise SchemaValidationError(f"{key} must be true or false, got {value!r}", field=name)
        flags[key] = value

    primary_key = bool(flags["primary_key"]) or name == declared_pk
    if primary_key and flags["nullable"] is True:
        raise SchemaValidationError("Primary key field cannot be nullable", field=name)
    nullable = False if primary_key else (flags["nullable"] if flags["nullable"] is not None else True)

    auto_increment = bool(flags["auto_increment"])
    if auto_increment and entry.java_type not in _IDENTITY_JAVA_TYPES:
        raise SchemaValidationError(
            f"auto_increment requires an integer type, not {type_name}", field=name
        )

    references = None
    if data.get("references") is not None:
        try:
            references = ForeignKeyRef.parse(data["references"])
        except ValueError as e:
            raise SchemaValidationError(str(e), field=name) from e

    default = data.get("default")
    if default is not None and not isinstance(default, str):
        default = str(default).lower() if isinstance(default, bool) else str(default)

    return FieldDescriptor(
        name=name,
        sql_type=type_name,
        length=params["length"],
        precision=params["precision"],
        scale=params["scale"],
        primary_key=primary_key,
        unique=bool(flags["unique"]) and not primary_key,
        nullable=nullable,
        auto_increment=auto_increment,
        references=references,
        default=default,
        default_expression=bool(flags["default_expression"]),
        comment=data.get("comment"),
    )


def _normalize_keys(
    raw: Mapping[str, Any],
    aliases: Mapping[str, str],
    table: Optional[str],
    field_name: Optional[str],
    what: str,
) -> Dict[str, Any]:
    """Map accepted key spellings to canonical names, rejecting unknown keys."""
    data: Dict[str, Any] = {}
    unknown = []
    for key, value in raw.items():
        canonical = aliases.get(str(key))
        if canonical is None:
            unknown.append(str(key))
            continue
        if canonical in data:
            raise SchemaValidationError(
                f"{what} attribute '{canonical}' given more than once", table=table, field=field_name
            )
        data[canonical] = value
    if unknown:
        raise SchemaValidationError(
            f"Unknown {what} attribute(s): {', '.join(sorted(unknown))}",
            table=table,
            field=field_name,
        )
    return data


def _table_entries(raw_schema: Any) -> List[Any]:
    if isinstance(raw_schema, list):
        return raw_schema
    if isinstance(raw_schema, Mapping):
        if "tables" in raw_schema:
            tables = raw_schema["tables"]
            if not isinstance(tables, list):
                raise SchemaLoadError("'tables' must be a list of table definitions")
            return tables
        if "fields" in raw_schema or "columns" in raw_schema:
            return [raw_schema]
    raise SchemaLoadError(
        "Schema must be a table definition, a list of tables or a mapping with 'tables'"
    )


def load_schema(
    raw_schema: Any,
    type_mapper: TypeMapper,
    default_features: Optional[FeatureFlags] = None,
) -> SchemaLoadResult:
    """
    Load every table of a schema document.

    Each table is validated on its own: a broken table is reported in
    ``errors`` while its siblings still load.

    Args:
        raw_schema: Parsed document ({tables: [...]}, a list, or one table)
        type_mapper: Mapper column types must resolve against
        default_features: Feature defaults from configuration

    Returns:
        SchemaLoadResult with loaded tables and per-table errors
    """
    result = SchemaLoadResult()
    seen_tables: Set[str] = set()

    for index, raw_table in enumerate(_table_entries(raw_schema)):
        guess = None
        if isinstance(raw_table, Mapping):
            guess = raw_table.get("name", raw_table.get("table"))
        label = guess if isinstance(guess, str) and guess else f"#{index + 1}"

        try:
            table = load_table(raw_table, type_mapper, default_features)
        except CrudforgeError as e:
            logger.warning("Table %s rejected: %s", label, e)
            result.errors.append(e.with_context(table=label))
            continue

        if table.name.lower() in seen_tables:
            error = SchemaValidationError(
                f"Table '{table.name}' is declared more than once", table=table.name
            )
            logger.warning("Table %s rejected: %s", label, error)
            result.errors.append(error)
            continue

        seen_tables.add(table.name.lower())
        result.tables.append(table)

    logger.info(
        "Schema loaded: %d table(s), %d rejected", len(result.tables), len(result.errors)
    )
    return result


def find_unresolved_references(
    tables: List[TableDescriptor],
) -> Dict[str, List[UnresolvedReferenceError]]:
    """Foreign keys whose target table is not part of the batch, per table."""
    known = {t.name.lower() for t in tables}
    unresolved: Dict[str, List[UnresolvedReferenceError]] = {}
    for table in tables:
        for f in table.foreign_keys:
            if f.references.table.lower() not in known:
                unresolved.setdefault(table.name, []).append(
                    UnresolvedReferenceError(f.references.table, table=table.name, field=f.name)
                )
    return unresolved


def check_feature_columns(table: TableDescriptor, features: FeatureFlags):
    """
    Reject fields that clash with a column an enabled feature adds.

    Raises:
        SchemaValidationError: Naming the first clashing field
    """
    reserved = features.reserved_columns()
    for f in table.fields:
        feature = reserved.get(to_snake_case(f.name))
        if feature is not None:
            raise SchemaValidationError(
                f"Field '{f.name}' clashes with the column the {feature.value} "
                f"feature adds; rename the field or disable the feature",
                table=table.name,
                field=f.name,
            )
