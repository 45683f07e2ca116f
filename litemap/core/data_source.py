"""
DATA SOURCE - Persistence orchestration

Ties the registry, resolver, SQL generator and materializer to one execution
transport. Every operation awaits its statements one after another, in the
order they are described below; nothing runs concurrently on the transport.

Save:
    1. cascade-save owning to-one relations (their PK becomes our FK)
    2. BeforeInsert / BeforeUpdate listeners
    3. stamp create/update dates and the version counter
    4. serialize columns, inject FK values
    5. INSERT (assign the new PK) or UPDATE by PK
    6. AfterInsert / AfterUpdate listeners
    7. cascade-save to-many and inverse to-one children, pointing them back at us
    8. many-to-many: cascade-save items, then link them in the junction table

Example:
    async with DataSource(registry, SqlAlchemyTransport(), synchronize=True) as ds:
        user = await ds.save(User(name="Ann", posts=[Post(title="Hi")]))
        users = await ds.find(User, relations=["posts"])
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Set, Tuple

from litemap.core.config import settings
from litemap.core.database import ExecutionTransport, SqlAlchemyTransport
from litemap.core.errors import MissingPrimaryKey, NestedTransactionError, RelationConfigurationError
from litemap.core.metadata import MetadataRegistry
from litemap.core.mapping.materialize import ResultMaterializer, invoke_listeners
from litemap.core.mapping.resolver import RelationResolver, owns_foreign_key
from litemap.core.mapping.sql import SqlGenerator
from litemap.core.mapping.transform import now_for, to_database, utc_now
from litemap.core.operators import in_
from litemap.core.schemas import (
    CascadeOption,
    ColumnMode,
    ListenerEvent,
    RelationKind,
    Statement,
    TableDescriptor,
)
from litemap.api.query_builder import QueryBuilder
from litemap.api.repository import Repository

logger = logging.getLogger(__name__)


class DataSource:
    def __init__(
        self,
        registry: MetadataRegistry,
        transport: Optional[ExecutionTransport] = None,
        synchronize: Optional[bool] = None,
    ):
        self.registry = registry
        self.transport = transport if transport is not None else SqlAlchemyTransport()
        self.synchronize_schema = settings.SYNCHRONIZE if synchronize is None else synchronize

        self.resolver = RelationResolver(registry)
        self.sql = SqlGenerator(registry, self.resolver)
        self.materializer = ResultMaterializer(registry, self.resolver)

        self.is_initialized = False
        self._in_transaction = False

    async def __aenter__(self) -> "DataSource":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # =========================
    # Setup
    # =========================
    async def initialize(self) -> None:
        """Finalize metadata, enable foreign keys and optionally create the schema."""
        self.registry.finalize()
        await self.query("PRAGMA foreign_keys = ON")
        if self.synchronize_schema:
            await self.synchronize()
        self.is_initialized = True

    async def synchronize(self) -> None:
        """Create tables, indices and owned junction tables in registration order."""
        for table in self.registry.tables:
            await self.query(self.sql.create_table(table))

            for index in self.registry.find_indices(table.entity_id):
                await self.query(self.sql.create_index(table, index))

            for relation in self.registry.find_relations(table.entity_id):
                if relation.kind != RelationKind.MANY_TO_MANY:
                    continue
                junction = self.resolver.junction_table(relation)
                if junction is not None and junction.owning:
                    await self.query(self.sql.create_junction_table(junction))

        logger.info("Schema synchronized for %d tables", len(self.registry.tables))

    async def close(self) -> None:
        await self.transport.close()
        self.is_initialized = False

    async def query(self, sql: str, params: Sequence[Any] = ()) -> Any:
        """Run a raw statement through the transport."""
        return await self.transport.execute(sql, list(params))

    async def _run(self, statement: Statement) -> Any:
        return await self.query(statement.sql, statement.params)

    def get_repository(self, target: type) -> Repository:
        self.registry.require_table(target)
        return Repository(self, target)

    def create_query_builder(self, target: type) -> QueryBuilder:
        self.registry.require_table(target)
        return QueryBuilder(self, target)

    # =========================
    # Transactions
    # =========================
    async def start_transaction(self) -> None:
        if self._in_transaction:
            raise NestedTransactionError("A transaction is already open on this data source")
        await self.query("BEGIN TRANSACTION")
        self._in_transaction = True
        logger.debug("Transaction started")

    async def commit_transaction(self) -> None:
        try:
            await self.query("COMMIT")
        finally:
            self._in_transaction = False
        logger.debug("Transaction committed")

    async def rollback_transaction(self) -> None:
        try:
            await self.query("ROLLBACK")
        finally:
            self._in_transaction = False
        logger.debug("Transaction rolled back")

    async def transaction(self, run: Callable[["DataSource"], Awaitable[Any]]) -> Any:
        """Run `run(self)` between BEGIN and COMMIT; ROLLBACK and re-raise on error."""
        await self.start_transaction()
        try:
            result = await run(self)
            await self.commit_transaction()
        except Exception:
            await self.rollback_transaction()
            raise
        return result

    # =========================
    # Helpers
    # =========================
    def _primary(self, table: TableDescriptor):
        return self.registry.primary_column(table.entity_id)

    def _criteria(self, table: TableDescriptor, criteria: Any) -> Optional[Mapping[str, Any]]:
        """Normalize a scalar, list, entity instance or mapping to a where mapping."""
        if criteria is None or isinstance(criteria, Mapping):
            return criteria

        primary = self._primary(table)
        key = primary.property_name if primary is not None else "id"

        if isinstance(criteria, table.target):
            value = table.accessor.get(criteria, key)
            return {key: value} if value is not None else None
        if isinstance(criteria, (list, tuple, set)):
            return {key: in_(list(criteria))}
        return {key: criteria}

    def _serialize(self, table: TableDescriptor, entity: Any, skip_none: bool) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        for column in self.registry.find_columns(table.entity_id):
            # Unloaded properties keep their stored value
            if not table.accessor.has(entity, column.property_name):
                continue
            value = table.accessor.get(entity, column.property_name)
            if value is None and skip_none:
                continue
            values[column.column_name] = to_database(column, value)
        return values

    def _stamp(self, table: TableDescriptor, entity: Any, is_update: bool) -> None:
        accessor = table.accessor
        now = utc_now()
        for column in self.registry.find_columns(table.entity_id):
            current = accessor.get(entity, column.property_name)
            if column.mode == ColumnMode.CREATE_DATE and not is_update and current is None:
                accessor.set(entity, column.property_name, now)
            elif column.mode == ColumnMode.UPDATE_DATE:
                accessor.set(entity, column.property_name, now)
            elif column.mode == ColumnMode.VERSION:
                if not is_update:
                    accessor.set(entity, column.property_name, 1)
                elif accessor.has(entity, column.property_name):
                    accessor.set(entity, column.property_name, (current or 0) + 1)

    def _primary_value(self, entity: Any) -> Any:
        table = self.registry.find_table(type(entity))
        if table is None:
            return None
        primary = self._primary(table)
        if primary is None:
            return None
        return table.accessor.get(entity, primary.property_name)

    def _foreign_key_values(self, table: TableDescriptor, entity: Any) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        for relation in self.registry.find_relations(table.entity_id):
            if not owns_foreign_key(relation):
                continue
            related = table.accessor.get(entity, relation.property_name)
            if related is not None:
                values[self.resolver.foreign_key(relation).column] = self._primary_value(related)
        return values

    # =========================
    # Save / remove
    # =========================
    async def save(self, entity: Any) -> Any:
        """Insert or update `entity`, cascading through its relations."""
        return await self._save(entity, set())

    async def _save(self, entity: Any, in_progress: Set[int]) -> Any:
        # Bidirectional cascades reach objects that are already being saved
        if id(entity) in in_progress:
            return entity
        in_progress.add(id(entity))

        table = self.registry.require_table(type(entity))
        accessor = table.accessor
        primary = self._primary(table)
        is_update = primary is not None and accessor.get(entity, primary.property_name) is not None
        operation = CascadeOption.UPDATE if is_update else CascadeOption.INSERT
        relations = self.registry.find_relations(table.entity_id)

        for relation in relations:
            if relation.cascades(operation) and owns_foreign_key(relation):
                related = accessor.get(entity, relation.property_name)
                if related is not None:
                    await self._save(related, in_progress)

        await invoke_listeners(
            self.registry,
            entity,
            ListenerEvent.BEFORE_UPDATE if is_update else ListenerEvent.BEFORE_INSERT,
        )

        self._stamp(table, entity, is_update)
        values = self._serialize(table, entity, skip_none=not is_update)
        values.update(self._foreign_key_values(table, entity))

        if is_update:
            key = accessor.get(entity, primary.property_name)
            values.pop(primary.column_name, None)
            if values:
                await self._run(self.sql.update(table, values, {primary.property_name: key}))
        else:
            result = await self._run(self.sql.insert(table, values))
            if primary is not None and result.insert_id is not None:
                accessor.set(entity, primary.property_name, result.insert_id)

        await invoke_listeners(
            self.registry,
            entity,
            ListenerEvent.AFTER_UPDATE if is_update else ListenerEvent.AFTER_INSERT,
        )

        for relation in relations:
            if not relation.cascades(operation):
                continue
            if relation.kind == RelationKind.ONE_TO_MANY:
                children = accessor.get(entity, relation.property_name) or []
            elif relation.kind == RelationKind.ONE_TO_ONE and not relation.join_column:
                child = accessor.get(entity, relation.property_name)
                children = [child] if child is not None else []
            else:
                continue
            if children:
                await self._save_children(table, entity, relation, children, in_progress)

        for relation in relations:
            if relation.kind == RelationKind.MANY_TO_MANY:
                await self._save_many_to_many(table, entity, relation, operation, in_progress)

        return entity

    async def _save_children(self, table, entity, relation, children, in_progress) -> None:
        inverse = self.resolver.inverse_property(relation)
        if inverse is None:
            raise RelationConfigurationError(
                f"{table.name}.{relation.property_name} cascades but its inverse property "
                f"is unknown; pass inverse_side or declare the owning relation"
            )

        for child in children:
            child_table = self.registry.require_table(type(child))
            child_table.accessor.set(child, inverse, entity)
            await self._save(child, in_progress)

    async def _save_many_to_many(self, table, entity, relation, operation, in_progress) -> None:
        items = table.accessor.get(entity, relation.property_name)
        if not items:
            return

        if relation.cascades(operation):
            for item in items:
                await self._save(item, in_progress)

        junction = self.resolver.junction_table(relation)
        owner_id = self._primary_value(entity)
        if junction is None or owner_id is None:
            return

        for item in items:
            related_id = self._primary_value(item)
            if related_id is None:
                continue
            statement = self.sql.insert_junction(junction, owner_id, related_id)
            try:
                await self._run(statement)
            except Exception as error:
                # Already linked (or otherwise rejected); keep saving the rest
                logger.debug(
                    "Junction insert into %s skipped for (%s, %s): %s",
                    junction.name, owner_id, related_id, error,
                )

    async def remove(self, entity: Any) -> Any:
        """Delete `entity` by primary key, running the remove listeners around it."""
        table = self.registry.require_table(type(entity))
        primary = self._primary(table)
        key = table.accessor.get(entity, primary.property_name) if primary is not None else None
        if key is None:
            raise MissingPrimaryKey(f"Cannot remove {table.name} without a primary key value")

        await invoke_listeners(self.registry, entity, ListenerEvent.BEFORE_REMOVE)
        await self.delete(table.target, {primary.property_name: key})
        await invoke_listeners(self.registry, entity, ListenerEvent.AFTER_REMOVE)
        return entity

    # =========================
    # Filter based writes
    # =========================
    async def delete(self, target: type, criteria: Any) -> int:
        """Hard delete, or soft delete when the entity has a delete-date column."""
        table = self.registry.require_table(target)
        where = self._criteria(table, criteria)

        deleted = self.registry.delete_date_column(table.entity_id)
        if deleted is not None:
            statement = self.sql.update(table, {deleted.column_name: now_for(deleted)}, where)
        else:
            statement = self.sql.delete(table, where)

        result = await self._run(statement)
        return result.rows_affected

    async def soft_remove(self, target: type, criteria: Any) -> int:
        table = self.registry.require_table(target)
        where = self._criteria(table, criteria)
        deleted = self.registry.delete_date_column(table.entity_id)
        statement = self.sql.soft_remove(table, where, now_for(deleted) if deleted else None)
        result = await self._run(statement)
        return result.rows_affected

    async def recover(self, target: type, criteria: Any) -> int:
        table = self.registry.require_table(target)
        statement = self.sql.recover(table, self._criteria(table, criteria))
        result = await self._run(statement)
        return result.rows_affected

    async def update(self, target: type, criteria: Any, partial: Mapping[str, Any]) -> int:
        """Apply `partial` (property -> value) to every row matching `criteria`."""
        table = self.registry.require_table(target)
        where = self._criteria(table, criteria)

        data = dict(partial)
        for column in self.registry.find_columns(table.entity_id):
            if column.mode == ColumnMode.UPDATE_DATE:
                data[column.property_name] = utc_now()

        values: Dict[str, Any] = {}
        for key, value in data.items():
            column = self.registry.column_by_property(table.entity_id, key)
            relation = self.registry.find_relation(table.entity_id, key)
            if column is not None:
                values[column.column_name] = to_database(column, value)
            elif relation is not None and owns_foreign_key(relation):
                related_key = self._primary_value(value) if value is not None else None
                values[self.resolver.foreign_key(relation).column] = related_key
            else:
                values[key] = value

        result = await self._run(self.sql.update(table, values, where))
        return result.rows_affected

    async def upsert(self, target: type, entity_or_entities: Any, conflict_paths: Sequence[str]) -> None:
        table = self.registry.require_table(target)
        items = entity_or_entities if isinstance(entity_or_entities, (list, tuple)) else [entity_or_entities]

        for item in items:
            values: Dict[str, Any] = {}
            for column in self.registry.find_columns(table.entity_id):
                if isinstance(item, Mapping):
                    if column.property_name not in item:
                        continue
                    value = item[column.property_name]
                else:
                    value = table.accessor.get(item, column.property_name)
                if value is None and column.primary:
                    continue
                values[column.column_name] = to_database(column, value)

            await self._run(self.sql.upsert(table, values, conflict_paths))

    async def insert(self, target: type, entity_or_entities: Any) -> List[Optional[int]]:
        """Plain INSERTs without cascades or listeners. Returns the new row ids."""
        table = self.registry.require_table(target)
        items = entity_or_entities if isinstance(entity_or_entities, (list, tuple)) else [entity_or_entities]
        now = utc_now()
        ids = []

        for item in items:
            values: Dict[str, Any] = {}
            for column in self.registry.find_columns(table.entity_id):
                if column.mode in (ColumnMode.CREATE_DATE, ColumnMode.UPDATE_DATE):
                    value = now
                elif isinstance(item, Mapping):
                    value = item.get(column.property_name)
                else:
                    value = table.accessor.get(item, column.property_name)
                if value is not None:
                    values[column.column_name] = to_database(column, value)

            result = await self._run(self.sql.insert(table, values))
            ids.append(result.insert_id)
        return ids

    async def increment(self, target: type, conditions: Any, property_path: str, value: Any) -> int:
        table = self.registry.require_table(target)
        statement = self.sql.update_counter(
            table, self._criteria(table, conditions), property_path, value, "increment"
        )
        return (await self._run(statement)).rows_affected

    async def decrement(self, target: type, conditions: Any, property_path: str, value: Any) -> int:
        table = self.registry.require_table(target)
        statement = self.sql.update_counter(
            table, self._criteria(table, conditions), property_path, value, "decrement"
        )
        return (await self._run(statement)).rows_affected

    async def clear(self, target: type) -> None:
        table = self.registry.require_table(target)
        await self._run(self.sql.clear(table))

    # =========================
    # Reads
    # =========================
    async def find(
        self,
        target: type,
        where: Optional[Mapping[str, Any]] = None,
        relations: Sequence[str] = (),
        order: Optional[Mapping[str, Any]] = None,
        take: Optional[int] = None,
        skip: Optional[int] = None,
        select: Optional[Sequence[str]] = None,
        with_deleted: bool = False,
    ) -> List[Any]:
        table = self.registry.require_table(target)
        statement = self.sql.select(
            table,
            where=where,
            relations=relations,
            order=order,
            take=take,
            skip=skip,
            select=select,
            with_deleted=with_deleted,
        )
        rows = await self._run(statement)
        return await self.materializer.materialize(table, rows, relations)

    async def find_one(self, target: type, where=None, **options) -> Optional[Any]:
        # No LIMIT here: joined rows of one root would be cut off
        found = await self.find(target, where=where, **options)
        return found[0] if found else None

    async def find_one_by(self, target: type, where: Mapping[str, Any]) -> Optional[Any]:
        return await self.find_one(target, where=where)

    async def count(
        self, target: type, where: Optional[Mapping[str, Any]] = None, with_deleted: bool = False
    ) -> int:
        table = self.registry.require_table(target)
        rows = await self._run(self.sql.count(table, where, with_deleted))
        return rows[0]["count"] if rows else 0

    async def find_and_count(self, target: type, **options) -> Tuple[List[Any], int]:
        items = await self.find(target, **options)
        total = await self.count(
            target, options.get("where"), with_deleted=options.get("with_deleted", False)
        )
        return items, total

    async def reload(self, entity: Any) -> Any:
        """Refresh `entity` in place from its stored row."""
        table = self.registry.require_table(type(entity))
        primary = self._primary(table)
        key = self._primary_value(entity)
        if key is None:
            raise MissingPrimaryKey(f"Cannot reload {table.name} without a primary key value")

        fresh = await self.find_one(table.target, where={primary.property_name: key}, with_deleted=True)
        if fresh is not None:
            for column in self.registry.find_columns(table.entity_id):
                value = table.accessor.get(fresh, column.property_name)
                table.accessor.set(entity, column.property_name, value)
        return entity

    # =========================
    # Instances
    # =========================
    def create(self, target: type, data: Any = None) -> Any:
        """Build unsaved instance(s) from a mapping or a list of mappings."""
        table = self.registry.require_table(target)
        if isinstance(data, (list, tuple)):
            return [self.create(target, item) for item in data]

        entity = table.accessor.create()
        for key, value in (data or {}).items():
            table.accessor.set(entity, key, value)
        return entity

    def merge(self, entity: Any, *data: Mapping[str, Any]) -> Any:
        table = self.registry.require_table(type(entity))
        for item in data:
            for key, value in item.items():
                table.accessor.set(entity, key, value)
        return entity

    def has_id(self, entity: Any) -> bool:
        return self._primary_value(entity) is not None
