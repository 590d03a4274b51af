"""
Table schema model and schema catalog.

A record type is synchronized against exactly one table. The catalog tells
the engine which table that is, which columns it has (and which record
attribute feeds each column), which columns form the key and which ones the
server generates. Schemas are registered explicitly; nothing is discovered by
inspecting record classes at runtime.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping

from utils.sql_safety import validate_identifier, validate_table_name

from .errors import SchemaNotFoundError


class ScalarType(str, Enum):
    """Storage-independent column type tags."""

    INT16 = "int16"
    INT32 = "int32"
    INT64 = "int64"
    DECIMAL = "decimal"
    TEXT = "text"
    DATETIME = "datetime"
    BOOLEAN = "boolean"
    GUID = "guid"
    # Known to catalogs but without a staging table mapping
    FLOAT = "float"
    BINARY = "binary"
    TIME = "time"

    @property
    def is_integer(self) -> bool:
        return self in (ScalarType.INT16, ScalarType.INT32, ScalarType.INT64)


class GenerationKind(str, Enum):
    """How a column gets its value."""

    NONE = "none"
    IDENTITY = "identity"
    COMPUTED = "computed"


@dataclass(frozen=True)
class ColumnDescriptor:
    """A single table column and the record attribute it maps to."""

    name: str
    scalar_type: ScalarType
    generation: GenerationKind = GenerationKind.NONE
    attribute: str | None = None
    nullable: bool = True
    precision: int | None = None
    scale: int | None = None

    def __post_init__(self):
        validate_identifier(self.name)
        if self.attribute is None:
            object.__setattr__(self, "attribute", self.name)

    @property
    def is_generated(self) -> bool:
        return self.generation != GenerationKind.NONE

    @property
    def is_identity(self) -> bool:
        return self.generation == GenerationKind.IDENTITY

    def get_value(self, record: Any) -> Any:
        return getattr(record, self.attribute)

    def set_value(self, record: Any, value: Any) -> None:
        setattr(record, self.attribute, value)


@dataclass(frozen=True)
class TableSchema:
    """
    Columns of one table, in table order, with the key subset.

    Use ``TableSchema.build`` rather than the constructor: it checks the
    names and freezes the column mapping.
    """

    name: str
    columns: Mapping[str, ColumnDescriptor]
    key_names: tuple[str, ...]

    @classmethod
    def build(
        cls,
        name: str,
        columns: Iterable[ColumnDescriptor],
        keys: Iterable[str],
    ) -> "TableSchema":
        """
        Args:
            name: Table name, optionally schema qualified ("dbo.Employees")
            columns: Column descriptors in table order
            keys: Primary key column names

        Raises:
            ValueError: On invalid names, duplicate columns or unknown keys
        """
        validate_table_name(name)

        ordered: dict[str, ColumnDescriptor] = {}
        for column in columns:
            if column.name in ordered:
                raise ValueError(f"Duplicate column {column.name!r} in {name}")
            ordered[column.name] = column

        key_names = tuple(keys)
        if not key_names:
            raise ValueError(f"Table {name} must declare at least one key column")

        unknown = [k for k in key_names if k not in ordered]
        if unknown:
            raise ValueError(f"Key columns not found in {name}: {', '.join(unknown)}")

        return cls(name=name, columns=MappingProxyType(ordered), key_names=key_names)

    def key_columns(self) -> dict[str, ColumnDescriptor]:
        return {name: self.columns[name] for name in self.key_names}

    def generated_columns(self) -> dict[str, bool]:
        """Generated column names mapped to True for identity-style columns."""
        return {
            name: column.is_identity
            for name, column in self.columns.items()
            if column.is_generated
        }

    def identity_columns(self) -> dict[str, ColumnDescriptor]:
        return {name: c for name, c in self.columns.items() if c.is_identity}

    def computed_columns(self) -> dict[str, ColumnDescriptor]:
        return {
            name: c
            for name, c in self.columns.items()
            if c.generation == GenerationKind.COMPUTED
        }

    def writable_column_names(self) -> list[str]:
        """Columns the caller supplies on write (not server generated)."""
        return [name for name, c in self.columns.items() if not c.is_generated]

    def updatable_column_names(self) -> list[str]:
        """Writable columns outside the key; a MERGE match can change only these."""
        return [name for name in self.writable_column_names() if name not in self.key_names]

    def column_for_attribute(self, attribute: str) -> ColumnDescriptor:
        for column in self.columns.values():
            if column.attribute == attribute:
                return column
        raise ValueError(f"No column of {self.name} maps to attribute {attribute!r}")


class SchemaCatalog(ABC):
    """
    Source of table metadata for record types.

    Implementations answer the four questions the engine asks; ``schema``
    combines them into a ``TableSchema`` and is what the pipeline calls,
    once per synchronization.
    """

    @abstractmethod
    def table_name(self, record_type: type) -> str:
        """Qualified table name for the record type."""

    @abstractmethod
    def columns(self, record_type: type) -> Mapping[str, ColumnDescriptor]:
        """Ordered column name -> descriptor."""

    @abstractmethod
    def key_columns(self, record_type: type) -> Mapping[str, ColumnDescriptor]:
        """Ordered key column name -> descriptor."""

    @abstractmethod
    def generated_columns(self, record_type: type) -> Mapping[str, bool]:
        """Generated column name -> True when identity-style."""

    def schema(self, record_type: type) -> TableSchema:
        columns = self.columns(record_type)
        generated = self.generated_columns(record_type)

        descriptors = []
        for name, column in columns.items():
            if name in generated:
                kind = GenerationKind.IDENTITY if generated[name] else GenerationKind.COMPUTED
                if column.generation != kind:
                    column = replace(column, generation=kind)
            descriptors.append(column)

        return TableSchema.build(
            self.table_name(record_type),
            descriptors,
            list(self.key_columns(record_type)),
        )


class RegisteredSchemaCatalog(SchemaCatalog):
    """
    Catalog backed by explicit registrations.

    Example:
        >>> catalog = RegisteredSchemaCatalog()
        >>> @catalog.mapped("dbo.Employees", [
        ...     ColumnDescriptor("Id", ScalarType.INT32, GenerationKind.IDENTITY, attribute="id"),
        ...     ColumnDescriptor("Name", ScalarType.TEXT, attribute="name"),
        ... ], keys=["Id"])
        ... @dataclass
        ... class Employee:
        ...     id: int = 0
        ...     name: str = ""
    """

    def __init__(self):
        self._schemas: dict[type, TableSchema] = {}

    def register(self, record_type: type, schema: TableSchema) -> None:
        self._schemas[record_type] = schema

    def mapped(
        self,
        table_name: str,
        columns: Iterable[ColumnDescriptor],
        keys: Iterable[str],
    ) -> Callable[[type], type]:
        """Class decorator form of ``register``."""
        schema = TableSchema.build(table_name, columns, keys)

        def decorator(record_type: type) -> type:
            self.register(record_type, schema)
            return record_type

        return decorator

    def __contains__(self, record_type: type) -> bool:
        return record_type in self._schemas

    def _lookup(self, record_type: type) -> TableSchema:
        try:
            return self._schemas[record_type]
        except KeyError:
            raise SchemaNotFoundError(record_type) from None

    def schema(self, record_type: type) -> TableSchema:
        return self._lookup(record_type)

    def table_name(self, record_type: type) -> str:
        return self._lookup(record_type).name

    def columns(self, record_type: type) -> Mapping[str, ColumnDescriptor]:
        return self._lookup(record_type).columns

    def key_columns(self, record_type: type) -> Mapping[str, ColumnDescriptor]:
        return self._lookup(record_type).key_columns()

    def generated_columns(self, record_type: type) -> Mapping[str, bool]:
        return self._lookup(record_type).generated_columns()
