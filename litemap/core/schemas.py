from typing import Any, Callable, List, NamedTuple, Optional, Tuple, Union
from enum import Enum

from pydantic import BaseModel, ConfigDict


# =========================
# Enums
# =========================
class ColumnType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    INTEGER = "integer"
    ARRAY = "simple-array"
    JSON = "simple-json"
    TEXT = "text"
    DATETIME = "datetime"
    DATE = "date"


class ColumnMode(str, Enum):
    REGULAR = "regular"
    CREATE_DATE = "create-date"
    UPDATE_DATE = "update-date"
    DELETE_DATE = "delete-date"
    VERSION = "version"


class RelationKind(str, Enum):
    ONE_TO_ONE = "one-to-one"
    ONE_TO_MANY = "one-to-many"
    MANY_TO_ONE = "many-to-one"
    MANY_TO_MANY = "many-to-many"

    @property
    def is_to_many(self) -> bool:
        return self in (RelationKind.ONE_TO_MANY, RelationKind.MANY_TO_MANY)


class CascadeOption(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    REMOVE = "remove"
    SOFT_REMOVE = "soft-remove"
    RECOVER = "recover"


class ListenerEvent(str, Enum):
    BEFORE_INSERT = "before-insert"
    AFTER_INSERT = "after-insert"
    BEFORE_UPDATE = "before-update"
    AFTER_UPDATE = "after-update"
    BEFORE_REMOVE = "before-remove"
    AFTER_REMOVE = "after-remove"
    AFTER_LOAD = "after-load"


class Operator(str, Enum):
    EQUAL = "EQUAL"
    NOT_EQUAL = "NOT_EQUAL"
    LESS_THAN = "LT"
    GREATER_THAN = "GT"
    LESS_THAN_OR_EQUAL = "LTE"
    GREATER_THAN_OR_EQUAL = "GTE"
    BETWEEN = "BETWEEN"
    LIKE = "LIKE"
    ILIKE = "ILIKE"
    IN = "IN"
    IS_NULL = "IS_NULL"
    RAW = "RAW"
    NOT = "NOT"


# =========================
# DESCRIPTORS
# =========================
class Descriptor(BaseModel):
    """Immutable metadata record. Updated copies replace records in the registry."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)


class TableDescriptor(Descriptor):
    entity_id: int
    target: Any
    name: str
    table_name: str
    accessor: Any


class ColumnDescriptor(Descriptor):
    entity_id: int
    property_name: str
    name: Optional[str] = None
    type: ColumnType = ColumnType.STRING
    primary: bool = False
    generated: bool = False
    nullable: bool = True
    transformer: Optional[Any] = None
    mode: ColumnMode = ColumnMode.REGULAR

    @property
    def column_name(self) -> str:
        return self.name or self.property_name


class RelationDescriptor(Descriptor):
    entity_id: int
    property_name: str
    kind: RelationKind
    type_function: Callable[[], Any]
    inverse_side: Optional[Union[str, Callable[[Any], Any]]] = None
    cascade: Union[bool, Tuple[CascadeOption, ...]] = False
    on_delete: Optional[str] = None
    nullable: bool = True
    join_column: bool = False
    join_column_name: Optional[str] = None
    join_table: bool = False
    join_table_name: Optional[str] = None

    def cascades(self, option: CascadeOption) -> bool:
        if self.cascade is True:
            return True
        if not self.cascade:
            return False
        return option in self.cascade


class JoinColumnDescriptor(Descriptor):
    entity_id: int
    property_name: str
    name: Optional[str] = None


class JoinTableDescriptor(Descriptor):
    entity_id: int
    property_name: str
    name: Optional[str] = None


class IndexDescriptor(Descriptor):
    entity_id: int
    columns: Tuple[str, ...]
    unique: bool = False
    name: Optional[str] = None


class ListenerDescriptor(Descriptor):
    entity_id: int
    method_name: str
    event: ListenerEvent


# =========================
# QUERIES
# =========================
class FindOperator(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    operator: Operator
    value: Any = None


class ExecResult(BaseModel):
    """Summary returned by the transport for statements that produce no rows."""

    insert_id: Optional[int] = None
    rows_affected: int = 0


class Statement(NamedTuple):
    sql: str
    params: List[Any]
