from typing import TYPE_CHECKING, Any, List, Mapping, Optional, Sequence, Tuple

if TYPE_CHECKING:
    from litemap.api.query_builder import QueryBuilder
    from litemap.core.data_source import DataSource


class Repository:
    """Entity-bound shortcut to the DataSource operations for one registered class."""

    def __init__(self, data_source: "DataSource", target: type):
        self.data_source = data_source
        self.target = target

    def create_query_builder(self) -> "QueryBuilder":
        return self.data_source.create_query_builder(self.target)

    def create(self, data: Any = None) -> Any:
        return self.data_source.create(self.target, data)

    def merge(self, entity: Any, *data: Mapping[str, Any]) -> Any:
        return self.data_source.merge(entity, *data)

    def has_id(self, entity: Any) -> bool:
        return self.data_source.has_id(entity)

    # Writes
    async def save(self, entity: Any) -> Any:
        return await self.data_source.save(entity)

    async def remove(self, entity: Any) -> Any:
        return await self.data_source.remove(entity)

    async def insert(self, entity_or_entities: Any) -> List[Optional[int]]:
        return await self.data_source.insert(self.target, entity_or_entities)

    async def update(self, criteria: Any, partial: Mapping[str, Any]) -> int:
        return await self.data_source.update(self.target, criteria, partial)

    async def upsert(self, entity_or_entities: Any, conflict_paths: Sequence[str]) -> None:
        await self.data_source.upsert(self.target, entity_or_entities, conflict_paths)

    async def delete(self, criteria: Any) -> int:
        return await self.data_source.delete(self.target, criteria)

    async def soft_delete(self, criteria: Any) -> int:
        return await self.data_source.soft_remove(self.target, criteria)

    async def restore(self, criteria: Any) -> int:
        return await self.data_source.recover(self.target, criteria)

    async def increment(self, conditions: Any, property_path: str, value: Any) -> int:
        return await self.data_source.increment(self.target, conditions, property_path, value)

    async def decrement(self, conditions: Any, property_path: str, value: Any) -> int:
        return await self.data_source.decrement(self.target, conditions, property_path, value)

    async def clear(self) -> None:
        await self.data_source.clear(self.target)

    # Reads
    async def find(self, **options) -> List[Any]:
        return await self.data_source.find(self.target, **options)

    async def find_one(self, **options) -> Optional[Any]:
        return await self.data_source.find_one(self.target, **options)

    async def find_one_by(self, where: Mapping[str, Any]) -> Optional[Any]:
        return await self.data_source.find_one_by(self.target, where)

    async def find_and_count(self, **options) -> Tuple[List[Any], int]:
        return await self.data_source.find_and_count(self.target, **options)

    async def count(self, where: Optional[Mapping[str, Any]] = None, with_deleted: bool = False) -> int:
        return await self.data_source.count(self.target, where, with_deleted=with_deleted)

    async def reload(self, entity: Any) -> Any:
        return await self.data_source.reload(entity)
