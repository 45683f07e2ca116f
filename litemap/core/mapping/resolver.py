"""
RELATION RESOLVER

Answers three questions about a relation:
    - which table stores the foreign key (or the junction table)
    - which column / junction table name to use
    - which TableDescriptor sits on the other side

Related types are given as zero-argument functions so that two entity classes
can reference each other in any declaration order. They are evaluated on first
use and cached once they resolve to a registered table.
"""

import logging
from typing import Dict, NamedTuple, Optional, Tuple

from litemap.core.errors import RelationConfigurationError
from litemap.core.metadata import MetadataRegistry
from litemap.core.schemas import RelationDescriptor, RelationKind, TableDescriptor

logger = logging.getLogger(__name__)

FALLBACK_FOREIGN_KEY = "foreignKey"


class ForeignKeyPlacement(NamedTuple):
    """Where the FK of a to-one / one-to-many relation lives."""

    owner_side: bool  # True: FK column is on the relation's own table
    column: str
    fallback: bool = False


class JunctionTable(NamedTuple):
    name: str
    owner_table: TableDescriptor
    related_table: TableDescriptor
    owner_column: str
    related_column: str
    owning: bool


class _PropertyRecorder:
    """Stand-in passed to inverse-side functions; returns the attribute name read."""

    def __getattr__(self, name: str) -> str:
        return name


def owns_foreign_key(relation: RelationDescriptor) -> bool:
    return relation.kind == RelationKind.MANY_TO_ONE or (
        relation.kind == RelationKind.ONE_TO_ONE and relation.join_column
    )


def owning_column_name(relation: RelationDescriptor) -> str:
    return relation.join_column_name or f"{relation.property_name}Id"


class RelationResolver:
    def __init__(self, registry: MetadataRegistry):
        self.registry = registry
        self._resolved: Dict[Tuple[int, str], TableDescriptor] = {}

    def related_table(self, relation: RelationDescriptor) -> Optional[TableDescriptor]:
        """Evaluate the relation's type function. None means "unresolved"."""
        key = (relation.entity_id, relation.property_name)
        cached = self._resolved.get(key)
        if cached is not None:
            return cached

        try:
            related = relation.type_function()
        except Exception as error:
            logger.warning(
                "Relation %s could not resolve its type: %s", relation.property_name, error
            )
            return None

        table = self.registry.find_table(related) if isinstance(related, type) else None
        if table is None:
            logger.warning(
                "Relation %s points at unregistered type %r", relation.property_name, related
            )
            return None

        self._resolved[key] = table
        return table

    def foreign_key(self, relation: RelationDescriptor) -> ForeignKeyPlacement:
        """FK placement for every relation kind except many-to-many."""
        if relation.kind == RelationKind.MANY_TO_MANY:
            raise ValueError("many-to-many relations are mapped through a junction table")

        if owns_foreign_key(relation):
            return ForeignKeyPlacement(owner_side=True, column=owning_column_name(relation))

        inverse = self.inverse_relation(relation)
        if inverse is None:
            return ForeignKeyPlacement(
                owner_side=False, column=FALLBACK_FOREIGN_KEY, fallback=True
            )
        return ForeignKeyPlacement(owner_side=False, column=owning_column_name(inverse))

    def require_foreign_key(self, relation: RelationDescriptor) -> ForeignKeyPlacement:
        placement = self.foreign_key(relation)
        if placement.fallback:
            owner = self.registry.find_table(relation.entity_id)
            raise RelationConfigurationError(
                f"{owner.name}.{relation.property_name}: no owning relation on the related "
                f"entity points back here, so the foreign key column is unknown"
            )
        return placement

    def inverse_relation(self, relation: RelationDescriptor) -> Optional[RelationDescriptor]:
        """The relation on the related entity that owns the FK for `relation`."""
        related = self.related_table(relation)
        if related is None:
            return None

        if relation.kind == RelationKind.ONE_TO_MANY:
            wanted = (RelationKind.MANY_TO_ONE,)
        elif relation.kind == RelationKind.ONE_TO_ONE:
            wanted = (RelationKind.ONE_TO_ONE,)
        else:
            return None

        candidates = [
            candidate
            for candidate in self.registry.find_relations(related.entity_id)
            if candidate.kind in wanted
            and (candidate.kind != RelationKind.ONE_TO_ONE or candidate.join_column)
            and self._points_at(candidate, relation.entity_id)
        ]
        if not candidates:
            return None

        # Prefer the one named as the inverse side when several point back
        inverse_name = self.inverse_property(relation, fallback=False)
        if inverse_name:
            for candidate in candidates:
                if candidate.property_name == inverse_name:
                    return candidate
        return candidates[0]

    def _points_at(self, relation: RelationDescriptor, entity_id: int) -> bool:
        table = self.related_table(relation)
        return table is not None and table.entity_id == entity_id

    def inverse_property(self, relation: RelationDescriptor, fallback: bool = True) -> Optional[str]:
        """Name of the property on related objects that points back at the owner."""
        inverse_side = relation.inverse_side
        if isinstance(inverse_side, str):
            return inverse_side
        if callable(inverse_side):
            try:
                name = inverse_side(_PropertyRecorder())
            except Exception as error:
                logger.warning(
                    "Inverse side of %s could not be evaluated: %s", relation.property_name, error
                )
                name = None
            if isinstance(name, str):
                return name

        if not fallback:
            return None
        inverse = self.inverse_relation(relation)
        return inverse.property_name if inverse is not None else None

    def junction_table(self, relation: RelationDescriptor) -> Optional[JunctionTable]:
        """Junction table backing a many-to-many relation, None while unresolved."""
        owner = self.registry.find_table(relation.entity_id)
        related = self.related_table(relation)
        if owner is None or related is None:
            return None

        owner_column = f"{owner.table_name}Id"
        related_column = f"{related.table_name}Id"

        if relation.join_table:
            name = relation.join_table_name or f"{owner.table_name}_{related.table_name}"
            return JunctionTable(name, owner, related, owner_column, related_column, True)

        counterpart = self._owning_many_to_many(related, relation.entity_id)
        if counterpart is not None:
            name = counterpart.join_table_name or f"{related.table_name}_{owner.table_name}"
            return JunctionTable(name, owner, related, owner_column, related_column, False)

        name = f"{owner.table_name}_{related.table_name}"
        return JunctionTable(name, owner, related, owner_column, related_column, True)

    def _owning_many_to_many(
        self, table: TableDescriptor, entity_id: int
    ) -> Optional[RelationDescriptor]:
        for candidate in self.registry.find_relations(table.entity_id):
            if (
                candidate.kind == RelationKind.MANY_TO_MANY
                and candidate.join_table
                and self._points_at(candidate, entity_id)
            ):
                return candidate
        return None
