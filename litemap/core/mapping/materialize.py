"""
RESULT MATERIALIZER

Turns the flat rows of a (possibly joined) select into entity graphs:

    users.id | users.name | posts_id | posts_title
    ---------+------------+----------+------------
    1        | Ann        | 10       | First        ->  User(id=1, posts=[Post(10), Post(11)])
    1        | Ann        | 11       | Second

Roots are grouped by primary key in first-seen order, to-many relations are
de-duplicated by the related primary key, and AfterLoad listeners run once per
root after every row has been consumed.
"""

import inspect
from typing import Any, Dict, List, Mapping, Sequence

from litemap.core.metadata import MetadataRegistry
from litemap.core.mapping.resolver import RelationResolver
from litemap.core.mapping.transform import from_database
from litemap.core.schemas import ColumnDescriptor, ListenerEvent, TableDescriptor


async def invoke_listeners(registry: MetadataRegistry, entity: Any, event: ListenerEvent) -> None:
    """Call every `event` listener registered for the entity's class, in order."""
    for listener in registry.find_listeners(type(entity), event):
        method = getattr(entity, listener.method_name, None)
        if not callable(method):
            continue
        result = method()
        if inspect.isawaitable(result):
            await result


class ResultMaterializer:
    def __init__(self, registry: MetadataRegistry, resolver: RelationResolver):
        self.registry = registry
        self.resolver = resolver

    def _populate(
        self,
        table: TableDescriptor,
        columns: List[ColumnDescriptor],
        row: Mapping[str, Any],
        prefix: str = "",
    ) -> Any:
        entity = table.accessor.create()
        for column in columns:
            key = prefix + column.column_name
            if key in row:
                table.accessor.set(entity, column.property_name, from_database(column, row[key]))
        return entity

    async def materialize(
        self,
        table: TableDescriptor,
        rows: Sequence[Mapping[str, Any]],
        relations: Sequence[str] = (),
    ) -> List[Any]:
        if not rows:
            return []

        accessor = table.accessor
        columns = self.registry.find_columns(table.entity_id)
        primary = self.registry.primary_column(table.entity_id)
        if primary is None:
            return []

        # Resolve every requested relation once, skipping the unresolvable ones
        plans = []
        for relation_name in relations:
            relation = self.registry.find_relation(table.entity_id, relation_name)
            if relation is None:
                continue
            related = self.resolver.related_table(relation)
            if related is None:
                continue
            related_columns = self.registry.find_columns(related.entity_id)
            related_primary = self.registry.primary_column(related.entity_id)
            if related_primary is None:
                continue
            plans.append((relation, related, related_columns, related_primary))

        roots: Dict[Any, Any] = {}

        for row in rows:
            key = row.get(primary.column_name)
            if key is None:
                continue

            entity = roots.get(key)
            if entity is None:
                entity = self._populate(table, columns, row)
                for relation, _, _, _ in plans:
                    accessor.set(
                        entity, relation.property_name, [] if relation.kind.is_to_many else None
                    )
                roots[key] = entity

            for relation, related, related_columns, related_primary in plans:
                prefix = f"{relation.property_name}_"
                related_key = row.get(prefix + related_primary.column_name)
                if related_key is None:
                    continue

                child = self._populate(related, related_columns, row, prefix)

                if relation.kind.is_to_many:
                    items = accessor.get(entity, relation.property_name)
                    child_key = related.accessor.get(child, related_primary.property_name)
                    if not any(
                        related.accessor.get(item, related_primary.property_name) == child_key
                        for item in items
                    ):
                        items.append(child)
                else:
                    accessor.set(entity, relation.property_name, child)

        loaded = list(roots.values())
        for entity in loaded:
            await invoke_listeners(self.registry, entity, ListenerEvent.AFTER_LOAD)
        return loaded

