"""
Column type system for code generation.

Maps abstract SQL column types (BIGINT, VARCHAR, DECIMAL, ...) to the Java
type, imports, validation annotations and DDL column type used by the
templates. Mapping tables are layered: a dialect table is consulted before
the universal table, and the first table that knows a type wins.
"""

import re
import string
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set, Tuple, Union
from enum import Enum

from .errors import ConfigError, InvalidParameterError, UnknownTypeError


class SqlType(Enum):
    """Abstract column types understood by the bundled configuration."""

    BIGINT = "BIGINT"
    INTEGER = "INTEGER"
    SMALLINT = "SMALLINT"
    VARCHAR = "VARCHAR"
    CHAR = "CHAR"
    TEXT = "TEXT"
    BOOLEAN = "BOOLEAN"
    TIMESTAMP = "TIMESTAMP"
    TIMESTAMPTZ = "TIMESTAMPTZ"
    DATE = "DATE"
    TIME = "TIME"
    DECIMAL = "DECIMAL"
    NUMERIC = "NUMERIC"
    DOUBLE = "DOUBLE"
    REAL = "REAL"
    UUID = "UUID"
    JSONB = "JSONB"
    BYTEA = "BYTEA"


TYPE_PARAMETERS = ("length", "precision", "scale")

_TYPE_SPEC_RE = re.compile(
    r"^\s*([A-Za-z_][A-Za-z0-9_ ]*?)\s*(?:\(\s*(\d+)\s*(?:,\s*(\d+)\s*)?\))?\s*$"
)


@dataclass(frozen=True)
class TypeParams:
    """Length/precision/scale attached to a column type."""

    length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None

    @classmethod
    def coerce(cls, params: Union["TypeParams", Mapping[str, Any], None]) -> "TypeParams":
        if params is None:
            return cls()
        if isinstance(params, TypeParams):
            return params
        return cls(**{key: params.get(key) for key in TYPE_PARAMETERS})

    def as_dict(self) -> Dict[str, int]:
        return {
            key: getattr(self, key)
            for key in TYPE_PARAMETERS
            if getattr(self, key) is not None
        }


@dataclass(frozen=True)
class TypeMappingEntry:
    """
    Immutable mapping of one abstract column type.

    Text attributes may contain ``{length}``, ``{precision}``, ``{scale}``
    and ``{integer_digits}`` placeholders; ``format`` fills them in.
    """

    sql_name: str
    java_type: str
    imports: Tuple[str, ...] = ()
    validations: Tuple[str, ...] = ()
    column_type: str = ""
    column_definition: Optional[str] = None
    jdbc_type_code: Optional[str] = None
    requires: Tuple[str, ...] = ()
    defaults: Dict[str, int] = field(default_factory=dict, hash=False)
    source: str = "universal"

    def __post_init__(self):
        if not self.column_type:
            object.__setattr__(self, "column_type", self.sql_name)

    @classmethod
    def from_dict(cls, sql_name: str, data: Union[str, Mapping[str, Any]],
                  source: str = "universal") -> "TypeMappingEntry":
        """Build an entry from a configuration mapping (or a bare Java type name)."""
        sql_name = sql_name.upper()
        if isinstance(data, str):
            data = {"java_type": data}
        if not isinstance(data, Mapping) or not data.get("java_type"):
            raise ConfigError(
                f"Type mapping for {sql_name} in '{source}' must define java_type"
            )

        unknown = set(data) - {
            "java_type", "import", "imports", "validation", "validations",
            "column_type", "column_definition", "jdbc_type_code", "requires",
            "defaults",
        }
        if unknown:
            raise ConfigError(
                f"Type mapping for {sql_name} in '{source}' has unknown keys: "
                f"{', '.join(sorted(unknown))}"
            )

        requires = tuple(data.get("requires") or ())
        defaults = dict(data.get("defaults") or {})
        for name in list(requires) + list(defaults):
            if name not in TYPE_PARAMETERS:
                raise ConfigError(
                    f"Type mapping for {sql_name} in '{source}' names unknown "
                    f"parameter '{name}'"
                )

        return cls(
            sql_name=sql_name,
            java_type=str(data["java_type"]),
            imports=_as_tuple(data.get("imports", data.get("import"))),
            validations=_as_tuple(data.get("validations", data.get("validation"))),
            column_type=str(data.get("column_type") or sql_name),
            column_definition=data.get("column_definition"),
            jdbc_type_code=data.get("jdbc_type_code"),
            requires=requires,
            defaults=defaults,
            source=source,
        )

    @property
    def accepted_parameters(self) -> Set[str]:
        """Parameters this type takes: required, defaulted or used in its text."""
        accepted = set(self.requires) | set(self.defaults)
        for text in self._texts():
            for _, name, _, _ in string.Formatter().parse(text):
                if name == "integer_digits":
                    accepted.update(("precision", "scale"))
                elif name:
                    accepted.add(name)
        return accepted

    def format(self, params: Union[TypeParams, Mapping[str, Any], None] = None) -> "TypeMappingEntry":
        """Return a copy with placeholders filled from params and defaults."""
        values = {**self.defaults, **TypeParams.coerce(params).as_dict()}
        if "precision" in values and "scale" in values:
            values["integer_digits"] = values["precision"] - values["scale"]

        def fill(text: Optional[str]) -> Optional[str]:
            if text is None:
                return None
            try:
                return text.format(**values)
            except KeyError as e:
                raise InvalidParameterError(
                    self.sql_name, f"missing parameter {e.args[0]}"
                ) from e

        return replace(
            self,
            java_type=fill(self.java_type),
            validations=tuple(fill(v) for v in self.validations),
            column_type=fill(self.column_type),
            column_definition=fill(self.column_definition),
        )

    def _texts(self) -> List[str]:
        texts = [self.java_type, self.column_type, *self.validations]
        if self.column_definition:
            texts.append(self.column_definition)
        return texts


def _as_tuple(value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(str(v) for v in value)


def build_mapping_table(raw: Mapping[str, Any], source: str = "universal") -> Dict[str, TypeMappingEntry]:
    """Convert a ``type_mappings`` configuration section into entries."""
    if not isinstance(raw, Mapping):
        raise ConfigError(f"type_mappings for '{source}' must be a mapping")
    return {
        str(name).upper(): TypeMappingEntry.from_dict(str(name), data, source)
        for name, data in raw.items()
    }


def parse_type_spec(spec: str) -> Tuple[str, TypeParams]:
    """
    Split a compact type declaration into name and parameters.

    ``VARCHAR(50)`` gives ``("VARCHAR", TypeParams(length=50))`` and
    ``DECIMAL(10, 2)`` gives ``("DECIMAL", TypeParams(precision=10, scale=2))``.
    A single parameter means length for everything except DECIMAL/NUMERIC.
    """
    match = _TYPE_SPEC_RE.match(str(spec))
    if not match:
        raise InvalidParameterError(str(spec), "cannot parse type declaration")

    name = re.sub(r"\s+", " ", match.group(1)).upper()
    first, second = match.group(2), match.group(3)

    if first is None:
        return name, TypeParams()
    if second is not None:
        return name, TypeParams(precision=int(first), scale=int(second))
    if name in ("DECIMAL", "NUMERIC"):
        return name, TypeParams(precision=int(first))
    return name, TypeParams(length=int(first))


class TypeMapper:
    """
    Resolves abstract column types against layered mapping tables.

    Tables are consulted in order; a dialect-specific table comes before the
    universal one. The mapper is read-only after construction and safe to
    share between rendering threads.
    """

    def __init__(
        self,
        universal: Mapping[str, TypeMappingEntry],
        overrides: Sequence[Tuple[str, Mapping[str, TypeMappingEntry]]] = (),
        dialect: Optional[str] = None,
    ):
        """
        Initialize with mapping tables.

        Args:
            universal: Fallback table used by every dialect
            overrides: (name, table) pairs in precedence order, checked first
            dialect: Name of the active dialect, for error messages
        """
        self.dialect = dialect
        self._tables: List[Tuple[str, Dict[str, TypeMappingEntry]]] = [
            (name, dict(table)) for name, table in overrides
        ]
        self._tables.append(("universal", dict(universal)))

    @property
    def table_names(self) -> List[str]:
        return [name for name, _ in self._tables]

    def lookup(self, type_name: str) -> TypeMappingEntry:
        """Return the unformatted entry for a type, honouring precedence."""
        key = str(type_name).strip().upper()
        for _, table in self._tables:
            if key in table:
                return table[key]
        raise UnknownTypeError(str(type_name), dialect=self.dialect)

    def is_supported(self, type_name: str) -> bool:
        key = str(type_name).strip().upper()
        return any(key in table for _, table in self._tables)

    def resolve(
        self,
        type_name: str,
        params: Union[TypeParams, Mapping[str, Any], None] = None,
    ) -> TypeMappingEntry:
        """
        Resolve an abstract type with its parameters.

        Args:
            type_name: Abstract type name such as ``VARCHAR``
            params: Optional length / precision / scale

        Returns:
            Entry with placeholders filled in

        Raises:
            UnknownTypeError: No table maps the type
            InvalidParameterError: Required parameters missing or invalid
        """
        entry = self.lookup(type_name)
        params = TypeParams.coerce(params)
        self._validate_params(entry, params)
        return entry.format(params)

    def _validate_params(self, entry: TypeMappingEntry, params: TypeParams):
        given = params.as_dict()

        for name, value in given.items():
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidParameterError(
                    entry.sql_name, f"{name} must be an integer, got {value!r}"
                )

        unexpected = sorted(set(given) - entry.accepted_parameters)
        if unexpected:
            raise InvalidParameterError(
                entry.sql_name, f"does not take {', '.join(unexpected)}"
            )

        missing = [
            name for name in entry.requires
            if name not in given and name not in entry.defaults
        ]
        if missing:
            raise InvalidParameterError(
                entry.sql_name, f"requires {', '.join(missing)}"
            )

        values = {**entry.defaults, **given}
        if values.get("length") is not None and values["length"] <= 0:
            raise InvalidParameterError(entry.sql_name, "length must be positive")
        if values.get("precision") is not None and values["precision"] <= 0:
            raise InvalidParameterError(entry.sql_name, "precision must be positive")
        if values.get("scale") is not None:
            if values["scale"] < 0:
                raise InvalidParameterError(entry.sql_name, "scale must not be negative")
            if values.get("precision") is not None and values["scale"] > values["precision"]:
                raise InvalidParameterError(
                    entry.sql_name,
                    f"scale {values['scale']} exceeds precision {values['precision']}",
                )

    def supported_types(self) -> List[str]:
        """All type names any table can resolve, sorted."""
        names = set()
        for _, table in self._tables:
            names.update(table)
        return sorted(names)

    def get_all_imports(self, entries: Sequence[TypeMappingEntry]) -> Set[str]:
        """Extract all unique imports needed for a list of entries."""
        imports = set()
        for entry in entries:
            imports.update(entry.imports)
        return imports
