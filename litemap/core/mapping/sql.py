"""
SQL GENERATOR

Compiles descriptors (plus filters and eager relation lists for reads) into
`Statement(sql, params)` pairs for SQLite. Nothing here touches the database.

Filters are mappings of column (or property) name to a literal value, meaning
equality, or a FindOperator built with litemap.core.operators. All keys are
AND-combined.
"""

from typing import Any, Callable, List, Mapping, Optional, Sequence, Tuple

from litemap.core.errors import MetadataError, MissingSoftDeleteColumn, MissingWhereClause
from litemap.core.metadata import MetadataRegistry
from litemap.core.mapping.resolver import JunctionTable, RelationResolver, owns_foreign_key
from litemap.core.mapping.transform import to_database
from litemap.core.schemas import (
    ColumnDescriptor,
    ColumnType,
    FindOperator,
    IndexDescriptor,
    Operator,
    RelationDescriptor,
    RelationKind,
    Statement,
    TableDescriptor,
)


SQL_TYPES = {
    ColumnType.STRING: "TEXT",
    ColumnType.ARRAY: "TEXT",
    ColumnType.JSON: "TEXT",
    ColumnType.TEXT: "TEXT",
    ColumnType.DATE: "TEXT",
    ColumnType.NUMBER: "INTEGER",
    ColumnType.BOOLEAN: "INTEGER",
    ColumnType.INTEGER: "INTEGER",
    ColumnType.DATETIME: "INTEGER",
}

COMPARISONS = {
    Operator.EQUAL: "=",
    Operator.NOT_EQUAL: "!=",
    Operator.LESS_THAN: "<",
    Operator.GREATER_THAN: ">",
    Operator.LESS_THAN_OR_EQUAL: "<=",
    Operator.GREATER_THAN_OR_EQUAL: ">=",
}

DESCENDING = ("DESC", "desc", -1)


def sql_type(column_type: ColumnType) -> str:
    return SQL_TYPES.get(column_type, "TEXT")


def has_where(where: Optional[Mapping[str, Any]]) -> bool:
    return bool(where)


def _placeholders(count: int) -> str:
    return ", ".join("?" for _ in range(count))


def _encoder(column: Optional[ColumnDescriptor]) -> Callable[[Any], Any]:
    """Filter values are compared in their stored form."""
    if column is None:
        return lambda value: value
    return lambda value: to_database(column, value)


class SqlGenerator:
    def __init__(self, registry: MetadataRegistry, resolver: RelationResolver):
        self.registry = registry
        self.resolver = resolver

    # =========================
    # Names
    # =========================
    def column_name(self, table: TableDescriptor, key: str) -> str:
        """Translate a property name to its column name; unknown keys pass through."""
        column = self.registry.column_by_property(table.entity_id, key)
        return column.column_name if column is not None else key

    def _primary_name(self, table: TableDescriptor) -> str:
        column = self.registry.primary_column(table.entity_id)
        return column.column_name if column is not None else "id"

    def _primary_type(self, table: TableDescriptor) -> str:
        column = self.registry.primary_column(table.entity_id)
        return sql_type(column.type) if column is not None else "INTEGER"

    # =========================
    # Filters
    # =========================
    def build_conditions(
        self,
        table: TableDescriptor,
        where: Mapping[str, Any],
        qualify: bool = False,
    ) -> Tuple[str, List[Any]]:
        values: List[Any] = []
        conditions = []

        for key, value in where.items():
            descriptor = self.registry.column_by_property(table.entity_id, key)
            column = descriptor.column_name if descriptor is not None else key
            # Dotted keys address a joined relation alias, e.g. "author.name"
            if qualify and "." not in column:
                column = f"{table.table_name}.{column}"

            if isinstance(value, FindOperator):
                conditions.append(
                    self._compile_operator(column, value, values, _encoder(descriptor))
                )
            elif value is None:
                conditions.append(f"{column} IS NULL")
            else:
                values.append(_encoder(descriptor)(value))
                conditions.append(f"{column} = ?")

        return " AND ".join(conditions), values

    def _compile_operator(
        self, column: str, node: FindOperator, values: List[Any], encode: Callable[[Any], Any]
    ) -> str:
        operator = node.operator

        # Patterns and raw SQL are text, never stored values
        if operator in (Operator.LIKE, Operator.ILIKE):
            values.append(node.value)
            if operator == Operator.LIKE:
                return f"{column} LIKE ?"
            return f"LOWER({column}) LIKE LOWER(?)"

        if operator in COMPARISONS:
            values.append(encode(node.value))
            return f"{column} {COMPARISONS[operator]} ?"

        if operator == Operator.BETWEEN:
            start, end = node.value
            values.extend([encode(start), encode(end)])
            return f"{column} BETWEEN ? AND ?"

        if operator == Operator.IN:
            items = [encode(item) for item in node.value]
            if not items:
                return "0 = 1"
            values.extend(items)
            return f"{column} IN ({_placeholders(len(items))})"

        if operator == Operator.IS_NULL:
            return f"{column} IS NULL"

        if operator == Operator.RAW:
            return f"{column} {node.value}"

        if operator == Operator.NOT:
            return self._compile_not(column, node.value, values, encode)

        raise ValueError(f"Unsupported operator: {operator}")

    def _compile_not(
        self, column: str, inner: Any, values: List[Any], encode: Callable[[Any], Any]
    ) -> str:
        if isinstance(inner, FindOperator):
            if inner.operator == Operator.IN:
                items = [encode(item) for item in inner.value]
                if not items:
                    return "1 = 1"
                values.extend(items)
                return f"{column} NOT IN ({_placeholders(len(items))})"
            if inner.operator == Operator.LIKE:
                values.append(inner.value)
                return f"{column} NOT LIKE ?"
            if inner.operator == Operator.ILIKE:
                values.append(inner.value)
                return f"LOWER({column}) NOT LIKE LOWER(?)"
            if inner.operator == Operator.IS_NULL:
                return f"{column} IS NOT NULL"
            inner = inner.value

        values.append(encode(inner))
        return f"{column} != ?"

    def _where(
        self,
        table: TableDescriptor,
        where: Optional[Mapping[str, Any]],
        operation: str,
    ) -> Tuple[str, List[Any]]:
        if not has_where(where):
            raise MissingWhereClause(f"{operation} on {table.table_name} requires a where clause")
        clause, values = self.build_conditions(table, where)
        return f" WHERE {clause}", values

    # =========================
    # Schema
    # =========================
    def create_table(self, table: TableDescriptor) -> str:
        definitions = []
        constraints = []

        for column in self.registry.find_columns(table.entity_id):
            definition = f"{column.column_name} {sql_type(column.type)}"
            if column.primary:
                definition += " PRIMARY KEY"
            if column.generated and column.primary:
                definition += " AUTOINCREMENT"
            if not column.nullable:
                definition += " NOT NULL"
            definitions.append(definition)

        for relation in self.registry.find_relations(table.entity_id):
            if not owns_foreign_key(relation):
                continue

            fk_name = self.resolver.foreign_key(relation).column
            related = self.resolver.related_table(relation)
            column_type = self._primary_type(related) if related is not None else "INTEGER"

            definition = f"{fk_name} {column_type}"
            if not relation.nullable:
                definition += " NOT NULL"
            definitions.append(definition)

            if related is not None:
                constraint = (
                    f"FOREIGN KEY ({fk_name}) REFERENCES "
                    f"{related.table_name}({self._primary_name(related)})"
                )
                if relation.on_delete:
                    constraint += f" ON DELETE {relation.on_delete}"
                constraints.append(constraint)

        body = ", ".join(definitions + constraints)
        return f"CREATE TABLE IF NOT EXISTS {table.table_name} ({body})"

    def create_index(self, table: TableDescriptor, index: IndexDescriptor) -> str:
        columns = [self.column_name(table, column) for column in index.columns]
        unique = "UNIQUE " if index.unique else ""
        name = index.name or f"IDX_{table.table_name}_{'_'.join(columns)}"
        return (
            f"CREATE {unique}INDEX IF NOT EXISTS {name} "
            f"ON {table.table_name} ({', '.join(columns)})"
        )

    def create_junction_table(self, junction: JunctionTable) -> str:
        owner, related = junction.owner_table, junction.related_table
        return (
            f"CREATE TABLE IF NOT EXISTS {junction.name} ("
            f"{junction.owner_column} {self._primary_type(owner)}, "
            f"{junction.related_column} {self._primary_type(related)}, "
            f"PRIMARY KEY ({junction.owner_column}, {junction.related_column}), "
            f"FOREIGN KEY ({junction.owner_column}) REFERENCES "
            f"{owner.table_name}({self._primary_name(owner)}) ON DELETE CASCADE, "
            f"FOREIGN KEY ({junction.related_column}) REFERENCES "
            f"{related.table_name}({self._primary_name(related)}) ON DELETE CASCADE)"
        )

    # =========================
    # Reads
    # =========================
    def select(
        self,
        table: TableDescriptor,
        where: Optional[Mapping[str, Any]] = None,
        relations: Sequence[str] = (),
        order: Optional[Mapping[str, Any]] = None,
        take: Optional[int] = None,
        skip: Optional[int] = None,
        select: Optional[Sequence[str]] = None,
        with_deleted: bool = False,
    ) -> Statement:
        name = table.table_name

        if select:
            columns = [self.column_name(table, column) for column in select]
            primary = self._primary_name(table)
            if primary not in columns:
                columns.insert(0, primary)
            projection = [f"{name}.{column}" for column in columns]
        else:
            projection = [f"{name}.*"]

        joins: List[str] = []
        for relation_name in relations:
            relation = self.registry.find_relation(table.entity_id, relation_name)
            if relation is None:
                raise MetadataError(f"{table.name} has no relation named {relation_name}")

            related = self.resolver.related_table(relation)
            if related is None:
                continue

            for column in self.registry.find_columns(related.entity_id):
                projection.append(
                    f"{relation_name}.{column.column_name} AS {relation_name}_{column.column_name}"
                )
            joins.extend(self._join(table, relation, related, with_deleted))

        sql = f"SELECT {', '.join(projection)} FROM {name}"
        if joins:
            sql += " " + " ".join(joins)

        clause, params = self._read_filter(table, where, with_deleted)
        sql += clause

        if order:
            terms = []
            for key, direction in order.items():
                column = self.registry.column_by_property(table.entity_id, key)
                if column is not None:
                    target = f"{name}.{column.column_name}"
                elif "." in key:
                    # Joined relation alias, e.g. "author.name"
                    target = key
                else:
                    raise MetadataError(f"{table.name} has no column named {key}")
                terms.append(f"{target} {'DESC' if direction in DESCENDING else 'ASC'}")
            sql += f" ORDER BY {', '.join(terms)}"

        if take is not None:
            sql += f" LIMIT {int(take)}"
        elif skip is not None:
            # SQLite only accepts OFFSET after a LIMIT
            sql += " LIMIT -1"
        if skip is not None:
            sql += f" OFFSET {int(skip)}"

        return Statement(sql, params)

    def count(
        self,
        table: TableDescriptor,
        where: Optional[Mapping[str, Any]] = None,
        with_deleted: bool = False,
    ) -> Statement:
        clause, params = self._read_filter(table, where, with_deleted)
        return Statement(f"SELECT COUNT(*) AS count FROM {table.table_name}{clause}", params)

    def _read_filter(
        self,
        table: TableDescriptor,
        where: Optional[Mapping[str, Any]],
        with_deleted: bool,
    ) -> Tuple[str, List[Any]]:
        clauses = []
        params: List[Any] = []

        if not with_deleted:
            deleted = self.registry.delete_date_column(table.entity_id)
            if deleted is not None:
                clauses.append(f"{table.table_name}.{deleted.column_name} IS NULL")

        if where:
            clause, values = self.build_conditions(table, where, qualify=True)
            clauses.append(clause)
            params.extend(values)

        if not clauses:
            return "", params
        return f" WHERE {' AND '.join(clauses)}", params

    def _join(
        self,
        table: TableDescriptor,
        relation: RelationDescriptor,
        related: TableDescriptor,
        with_deleted: bool,
    ) -> List[str]:
        alias = relation.property_name
        owner = table.table_name

        if relation.kind == RelationKind.MANY_TO_MANY:
            junction = self.resolver.junction_table(relation)
            link = f"{alias}_link"
            on_related = f"{alias}.{self._primary_name(related)} = {link}.{junction.related_column}"
            return [
                f"LEFT JOIN {junction.name} AS {link} "
                f"ON {link}.{junction.owner_column} = {owner}.{self._primary_name(table)}",
                f"LEFT JOIN {related.table_name} AS {alias} "
                f"ON {on_related}{self._join_soft_delete(related, alias, with_deleted)}",
            ]

        placement = self.resolver.require_foreign_key(relation)
        if placement.owner_side:
            condition = f"{alias}.{self._primary_name(related)} = {owner}.{placement.column}"
        else:
            condition = f"{alias}.{placement.column} = {owner}.{self._primary_name(table)}"

        return [
            f"LEFT JOIN {related.table_name} AS {alias} "
            f"ON {condition}{self._join_soft_delete(related, alias, with_deleted)}"
        ]

    def _join_soft_delete(self, related: TableDescriptor, alias: str, with_deleted: bool) -> str:
        if with_deleted:
            return ""
        deleted = self.registry.delete_date_column(related.entity_id)
        if deleted is None:
            return ""
        return f" AND {alias}.{deleted.column_name} IS NULL"

    # =========================
    # Writes
    # =========================
    def insert(self, table: TableDescriptor, values: Mapping[str, Any]) -> Statement:
        if not values:
            return Statement(f"INSERT INTO {table.table_name} DEFAULT VALUES", [])
        columns = list(values)
        sql = (
            f"INSERT INTO {table.table_name} ({', '.join(columns)}) "
            f"VALUES ({_placeholders(len(columns))})"
        )
        return Statement(sql, [values[column] for column in columns])

    def insert_junction(self, junction: JunctionTable, owner_id: Any, related_id: Any) -> Statement:
        sql = (
            f"INSERT INTO {junction.name} ({junction.owner_column}, {junction.related_column}) "
            f"VALUES (?, ?)"
        )
        return Statement(sql, [owner_id, related_id])

    def update(
        self,
        table: TableDescriptor,
        values: Mapping[str, Any],
        where: Optional[Mapping[str, Any]],
    ) -> Statement:
        clause, where_values = self._where(table, where, "UPDATE")
        if not values:
            raise ValueError(f"UPDATE on {table.table_name} has no values to set")

        assignments = ", ".join(f"{column} = ?" for column in values)
        params = list(values.values()) + where_values
        return Statement(f"UPDATE {table.table_name} SET {assignments}{clause}", params)

    def delete(self, table: TableDescriptor, where: Optional[Mapping[str, Any]]) -> Statement:
        clause, params = self._where(table, where, "DELETE")
        return Statement(f"DELETE FROM {table.table_name}{clause}", params)

    def upsert(
        self,
        table: TableDescriptor,
        values: Mapping[str, Any],
        conflict_paths: Sequence[str],
    ) -> Statement:
        statement = self.insert(table, values)
        if not conflict_paths:
            return statement

        conflict = [self.column_name(table, path) for path in conflict_paths]
        updates = [column for column in values if column not in conflict]

        sql = statement.sql + f" ON CONFLICT({', '.join(conflict)})"
        if updates:
            assignments = ", ".join(f"{column} = excluded.{column}" for column in updates)
            sql += f" DO UPDATE SET {assignments}"
        else:
            sql += " DO NOTHING"
        return Statement(sql, statement.params)

    def update_counter(
        self,
        table: TableDescriptor,
        where: Optional[Mapping[str, Any]],
        property_path: str,
        value: Any,
        mode: str,
    ) -> Statement:
        if mode not in ("increment", "decrement"):
            raise ValueError(f"Unknown counter mode: {mode}")
        column = self.column_name(table, property_path)
        symbol = "+" if mode == "increment" else "-"

        sql = f"UPDATE {table.table_name} SET {column} = {column} {symbol} ?"
        params = [value]
        if where:
            clause, values = self.build_conditions(table, where)
            sql += f" WHERE {clause}"
            params.extend(values)
        return Statement(sql, params)

    def soft_remove(
        self,
        table: TableDescriptor,
        where: Optional[Mapping[str, Any]],
        deleted_at: Any,
    ) -> Statement:
        column = self._require_delete_date(table, "soft remove")
        clause, params = self._where(table, where, "Soft remove")
        sql = f"UPDATE {table.table_name} SET {column.column_name} = ?{clause}"
        return Statement(sql, [deleted_at] + params)

    def recover(self, table: TableDescriptor, where: Optional[Mapping[str, Any]]) -> Statement:
        column = self._require_delete_date(table, "recover")
        clause, params = self._where(table, where, "Recover")
        return Statement(f"UPDATE {table.table_name} SET {column.column_name} = NULL{clause}", params)

    def clear(self, table: TableDescriptor) -> Statement:
        return Statement(f"DELETE FROM {table.table_name}", [])

    def _require_delete_date(self, table: TableDescriptor, operation: str) -> ColumnDescriptor:
        column = self.registry.delete_date_column(table.entity_id)
        if column is None:
            raise MissingSoftDeleteColumn(
                f"{table.name} has no delete-date column; cannot {operation}"
            )
        return column
