"""
METADATA REGISTRY

Holds every descriptor the mapping core works from. Entity classes get an
integer handle when their table is registered, and every lookup filters by that
handle, so two classes that share a table name never see each other's columns.

Registration happens in two phases:
    1. declare tables, columns, relations, join columns/tables, indices, listeners
    2. finalize() merges join columns/tables onto the matching relations

Example:
    registry = MetadataRegistry()
    (
        registry.entity(Post, "posts")
        .primary_generated_column("id")
        .column("title", nullable=False)
        .many_to_one("author", lambda: User, inverse_side="posts")
        .join_column("author", name="author_id")
    )
    registry.finalize()
"""

from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from litemap.core.errors import EntityNotRegistered, MetadataError
from litemap.core.schemas import (
    CascadeOption,
    ColumnDescriptor,
    ColumnMode,
    ColumnType,
    IndexDescriptor,
    JoinColumnDescriptor,
    JoinTableDescriptor,
    ListenerDescriptor,
    ListenerEvent,
    RelationDescriptor,
    RelationKind,
    TableDescriptor,
)


Target = Union[type, int]


# =========================
# Field access
# =========================
class FieldAccessor:
    """Reads, writes and instantiates entities of one registered class."""

    def __init__(self, target: type):
        self.target = target

    def create(self) -> Any:
        return self.target()

    def get(self, entity: Any, name: str) -> Any:
        return getattr(entity, name, None)

    def has(self, entity: Any, name: str) -> bool:
        """False for properties never assigned, e.g. columns left out of a select."""
        return hasattr(entity, name)

    def set(self, entity: Any, name: str, value: Any) -> None:
        setattr(entity, name, value)


# =========================
# Registry
# =========================
class MetadataRegistry:
    def __init__(self):
        self.tables: List[TableDescriptor] = []
        self.columns: List[ColumnDescriptor] = []
        self.relations: List[RelationDescriptor] = []
        self.indices: List[IndexDescriptor] = []
        self.listeners: List[ListenerDescriptor] = []
        self.join_columns: List[JoinColumnDescriptor] = []
        self.join_tables: List[JoinTableDescriptor] = []

        self._handles: Dict[type, int] = {}
        self._finalized = False

    @property
    def finalized(self) -> bool:
        return self._finalized

    # ----- registration -----

    def _check_open(self) -> None:
        if self._finalized:
            raise MetadataError("Registry is finalized; register entities before initialize()")

    def register_table(
        self,
        target: type,
        table_name: Optional[str] = None,
        accessor: Optional[FieldAccessor] = None,
    ) -> int:
        """Register an entity class and return its handle."""
        self._check_open()
        if target in self._handles:
            raise MetadataError(f"Entity {target.__name__} is already registered")

        entity_id = len(self.tables) + 1
        self._handles[target] = entity_id
        self.tables.append(
            TableDescriptor(
                entity_id=entity_id,
                target=target,
                name=target.__name__,
                table_name=table_name or target.__name__,
                accessor=accessor or FieldAccessor(target),
            )
        )
        return entity_id

    def register_column(self, column: ColumnDescriptor) -> None:
        self._check_open()
        if column.generated and not column.primary:
            raise MetadataError(
                f"Column {column.property_name} is generated but not primary; "
                f"SQLite only autoincrements the primary key"
            )
        if column.primary:
            current = next(
                (c for c in self.columns if c.entity_id == column.entity_id and c.primary),
                None,
            )
            if current is not None:
                raise MetadataError(
                    f"Primary column {current.property_name} already declared; "
                    f"cannot add {column.property_name}"
                )
        self.columns.append(column)

    def register_relation(self, relation: RelationDescriptor) -> None:
        self._check_open()
        self.relations.append(relation)

    def register_index(self, index: IndexDescriptor) -> None:
        self._check_open()
        self.indices.append(index)

    def register_listener(self, listener: ListenerDescriptor) -> None:
        self._check_open()
        self.listeners.append(listener)

    def register_join_column(self, join_column: JoinColumnDescriptor) -> None:
        self._check_open()
        self.join_columns.append(join_column)

    def register_join_table(self, join_table: JoinTableDescriptor) -> None:
        self._check_open()
        self.join_tables.append(join_table)

    def entity(self, target: type, table_name: Optional[str] = None, accessor=None):
        """Register `target` and return a builder for its columns and relations."""
        entity_id = self.register_table(target, table_name, accessor)
        return EntityBuilder(self, entity_id)

    # ----- finalization -----

    def finalize(self) -> None:
        """Merge join column and join table declarations onto their relations."""
        if self._finalized:
            return

        for index, relation in enumerate(self.relations):
            changes: Dict[str, Any] = {}

            join_table = next(
                (
                    jt
                    for jt in self.join_tables
                    if jt.entity_id == relation.entity_id
                    and jt.property_name == relation.property_name
                ),
                None,
            )
            if join_table is not None:
                changes["join_table"] = True
                if join_table.name:
                    changes["join_table_name"] = join_table.name

            join_column = next(
                (
                    jc
                    for jc in self.join_columns
                    if jc.entity_id == relation.entity_id
                    and jc.property_name == relation.property_name
                ),
                None,
            )
            if join_column is not None:
                changes["join_column"] = True
                if join_column.name:
                    changes["join_column_name"] = join_column.name

            if changes:
                self.relations[index] = relation.model_copy(update=changes)

        self._finalized = True

    # ----- lookups -----

    def handle_of(self, target: Target) -> Optional[int]:
        if isinstance(target, int):
            return target
        if isinstance(target, type):
            return self._handles.get(target)
        return None

    def find_table(self, target: Target) -> Optional[TableDescriptor]:
        entity_id = self.handle_of(target)
        if entity_id is None:
            return None
        return next((t for t in self.tables if t.entity_id == entity_id), None)

    def require_table(self, target: Target) -> TableDescriptor:
        table = self.find_table(target)
        if table is None:
            raise EntityNotRegistered(target)
        return table

    def find_columns(self, target: Target) -> List[ColumnDescriptor]:
        entity_id = self.handle_of(target)
        return [c for c in self.columns if c.entity_id == entity_id]

    def find_relations(self, target: Target) -> List[RelationDescriptor]:
        entity_id = self.handle_of(target)
        return [r for r in self.relations if r.entity_id == entity_id]

    def find_indices(self, target: Target) -> List[IndexDescriptor]:
        entity_id = self.handle_of(target)
        return [i for i in self.indices if i.entity_id == entity_id]

    def find_listeners(self, target: Target, event: ListenerEvent) -> List[ListenerDescriptor]:
        entity_id = self.handle_of(target)
        return [
            listener
            for listener in self.listeners
            if listener.entity_id == entity_id and listener.event == event
        ]

    def find_relation(self, target: Target, property_name: str) -> Optional[RelationDescriptor]:
        return next(
            (r for r in self.find_relations(target) if r.property_name == property_name),
            None,
        )

    def primary_column(self, target: Target) -> Optional[ColumnDescriptor]:
        """The declared primary column, else the first registered column."""
        columns = self.find_columns(target)
        if not columns:
            return None
        return next((c for c in columns if c.primary), columns[0])

    def column_by_property(self, target: Target, property_name: str) -> Optional[ColumnDescriptor]:
        return next(
            (c for c in self.find_columns(target) if c.property_name == property_name),
            None,
        )

    def delete_date_column(self, target: Target) -> Optional[ColumnDescriptor]:
        return next(
            (c for c in self.find_columns(target) if c.mode == ColumnMode.DELETE_DATE),
            None,
        )


# =========================
# Builder
# =========================
class EntityBuilder:
    """Fluent registration helper returned by MetadataRegistry.entity()."""

    def __init__(self, registry: MetadataRegistry, entity_id: int):
        self.registry = registry
        self.entity_id = entity_id

    def column(
        self,
        property_name: str,
        type: ColumnType = ColumnType.STRING,
        *,
        name: Optional[str] = None,
        primary: bool = False,
        generated: bool = False,
        nullable: bool = True,
        transformer: Any = None,
        mode: ColumnMode = ColumnMode.REGULAR,
    ) -> "EntityBuilder":
        self.registry.register_column(
            ColumnDescriptor(
                entity_id=self.entity_id,
                property_name=property_name,
                name=name,
                type=type,
                primary=primary,
                generated=generated,
                nullable=nullable,
                transformer=transformer,
                mode=mode,
            )
        )
        return self

    def primary_column(
        self, property_name: str, type: ColumnType = ColumnType.INTEGER, **options
    ) -> "EntityBuilder":
        return self.column(property_name, type, primary=True, nullable=False, **options)

    def primary_generated_column(self, property_name: str = "id", **options) -> "EntityBuilder":
        return self.column(
            property_name, ColumnType.INTEGER, primary=True, generated=True, **options
        )

    def create_date_column(self, property_name: str, type=ColumnType.DATETIME, **options):
        return self.column(property_name, type, mode=ColumnMode.CREATE_DATE, **options)

    def update_date_column(self, property_name: str, type=ColumnType.DATETIME, **options):
        return self.column(property_name, type, mode=ColumnMode.UPDATE_DATE, **options)

    def delete_date_column(self, property_name: str, type=ColumnType.DATETIME, **options):
        return self.column(property_name, type, mode=ColumnMode.DELETE_DATE, **options)

    def version_column(self, property_name: str = "version", **options) -> "EntityBuilder":
        return self.column(property_name, ColumnType.INTEGER, mode=ColumnMode.VERSION, **options)

    # ----- relations -----

    def _relation(
        self,
        kind: RelationKind,
        property_name: str,
        type_function: Callable[[], Any],
        inverse_side=None,
        cascade: Union[bool, Sequence[CascadeOption]] = False,
        on_delete: Optional[str] = None,
        nullable: bool = True,
    ) -> "EntityBuilder":
        if not isinstance(cascade, bool):
            cascade = tuple(CascadeOption(option) for option in cascade)
        self.registry.register_relation(
            RelationDescriptor(
                entity_id=self.entity_id,
                property_name=property_name,
                kind=kind,
                type_function=type_function,
                inverse_side=inverse_side,
                cascade=cascade,
                on_delete=on_delete,
                nullable=nullable,
            )
        )
        return self

    def one_to_one(self, property_name, type_function, inverse_side=None, **options):
        return self._relation(
            RelationKind.ONE_TO_ONE, property_name, type_function, inverse_side, **options
        )

    def many_to_one(self, property_name, type_function, inverse_side=None, **options):
        return self._relation(
            RelationKind.MANY_TO_ONE, property_name, type_function, inverse_side, **options
        )

    def one_to_many(self, property_name, type_function, inverse_side=None, **options):
        return self._relation(
            RelationKind.ONE_TO_MANY, property_name, type_function, inverse_side, **options
        )

    def many_to_many(self, property_name, type_function, inverse_side=None, **options):
        return self._relation(
            RelationKind.MANY_TO_MANY, property_name, type_function, inverse_side, **options
        )

    def join_column(self, property_name: str, name: Optional[str] = None) -> "EntityBuilder":
        self.registry.register_join_column(
            JoinColumnDescriptor(entity_id=self.entity_id, property_name=property_name, name=name)
        )
        return self

    def join_table(self, property_name: str, name: Optional[str] = None) -> "EntityBuilder":
        self.registry.register_join_table(
            JoinTableDescriptor(entity_id=self.entity_id, property_name=property_name, name=name)
        )
        return self

    # ----- indices and listeners -----

    def index(
        self, columns: Sequence[str], unique: bool = False, name: Optional[str] = None
    ) -> "EntityBuilder":
        self.registry.register_index(
            IndexDescriptor(
                entity_id=self.entity_id, columns=tuple(columns), unique=unique, name=name
            )
        )
        return self

    def listener(self, event: ListenerEvent, method_name: str) -> "EntityBuilder":
        self.registry.register_listener(
            ListenerDescriptor(entity_id=self.entity_id, method_name=method_name, event=event)
        )
        return self
