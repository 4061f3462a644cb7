"""
Error taxonomy for code generation.

Every error raised while loading, resolving or rendering derives from
CrudforgeError and can carry the table, template and field it concerns,
so the driver can report a failure without losing where it happened.
"""

from typing import List, Optional


class CrudforgeError(Exception):
    """Base exception for all generation errors."""

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        template: Optional[str] = None,
        field: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.table = table
        self.template = template
        self.field = field

    def with_context(
        self,
        table: Optional[str] = None,
        template: Optional[str] = None,
        field: Optional[str] = None,
    ) -> "CrudforgeError":
        """Fill in missing context in place and return self for re-raising."""
        if table and not self.table:
            self.table = table
        if template and not self.template:
            self.template = template
        if field and not self.field:
            self.field = field
        return self

    @property
    def kind(self) -> str:
        return type(self).__name__

    def location(self) -> str:
        """Human readable 'table.field [template]' location, may be empty."""
        parts = []
        if self.table:
            parts.append(f"{self.table}.{self.field}" if self.field else self.table)
        elif self.field:
            parts.append(self.field)
        if self.template:
            parts.append(f"[{self.template}]")
        return " ".join(parts)

    def __str__(self) -> str:
        location = self.location()
        return f"{location}: {self.message}" if location else self.message


class ConfigError(CrudforgeError):
    """Exception raised for configuration-related errors."""


class RegistryError(CrudforgeError):
    """Exception raised for dialect registry errors."""


class SchemaLoadError(CrudforgeError):
    """Raised when a schema document cannot be read or parsed."""


class TemplateError(CrudforgeError):
    """Raised for template manifest or template syntax problems."""


class UnknownTypeError(CrudforgeError):
    """Raised when an abstract column type has no mapping entry."""

    def __init__(self, type_name: str, dialect: Optional[str] = None, **context):
        where = f" (dialect {dialect})" if dialect else ""
        super().__init__(f"Unknown column type '{type_name}'{where}", **context)
        self.type_name = type_name
        self.dialect = dialect


class InvalidParameterError(CrudforgeError):
    """Raised when a type's length/precision/scale are missing or invalid."""

    def __init__(self, type_name: str, reason: str, **context):
        super().__init__(f"Invalid parameters for {type_name}: {reason}", **context)
        self.type_name = type_name
        self.reason = reason


class SchemaValidationError(CrudforgeError):
    """Raised when a table description is structurally invalid."""

    def __init__(self, reason: str, table: Optional[str] = None,
                 field: Optional[str] = None):
        super().__init__(reason, table=table, field=field)
        self.reason = reason


class UnresolvedReferenceError(SchemaValidationError):
    """Raised when a foreign key points at a table outside the batch."""

    def __init__(self, target_table: str, table: Optional[str] = None,
                 field: Optional[str] = None):
        super().__init__(
            f"Foreign key references table '{target_table}' which is not part "
            f"of this generation batch",
            table=table,
            field=field,
        )
        self.target_table = target_table


class UnsupportedSchemaError(CrudforgeError):
    """Raised for valid but unsupported schemas, such as composite keys."""


class UnresolvedVariableError(CrudforgeError):
    """Raised when a template references a variable the context lacks."""

    def __init__(self, variable: Optional[str], detail: Optional[str] = None,
                 **context):
        name = variable or "<unknown>"
        message = f"Unresolved template variable '{name}'"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message, **context)
        self.variable = variable


class OutputCollisionError(CrudforgeError):
    """Raised when two templates would write the same output path."""

    def __init__(self, path: str, owners: List[str], **context):
        super().__init__(
            f"Output path '{path}' is produced by more than one template: "
            f"{', '.join(owners)}",
            **context,
        )
        self.path = path
        self.owners = owners
