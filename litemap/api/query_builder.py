from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Sequence

if TYPE_CHECKING:
    from litemap.core.data_source import DataSource


class QueryBuilder:
    """
    Fluent reader on top of DataSource.find().

    Example:
        posts = await (
            ds.create_query_builder(Post)
            .where({"published": True})
            .left_join_and_select("post.author")
            .order_by("created_at", "DESC")
            .take(10)
            .get_many()
        )
    """

    def __init__(self, data_source: "DataSource", target: type):
        self.data_source = data_source
        self.target = target
        self._where: Dict[str, Any] = {}
        self._relations: List[str] = []
        self._order: Dict[str, str] = {}
        self._columns: Optional[List[str]] = None
        self._skip: Optional[int] = None
        self._take: Optional[int] = None
        self._with_deleted = False

    def select(self, columns: Sequence[str]) -> "QueryBuilder":
        self._columns = list(columns)
        return self

    def where(self, where: Mapping[str, Any]) -> "QueryBuilder":
        self._where = dict(where)
        return self

    def and_where(self, where: Mapping[str, Any]) -> "QueryBuilder":
        self._where.update(where)
        return self

    def left_join_and_select(self, property_path: str) -> "QueryBuilder":
        # "post.author" and "author" both name the relation "author"
        relation = property_path.split(".")[-1]
        if relation not in self._relations:
            self._relations.append(relation)
        return self

    def order_by(self, sort: str, order: str = "ASC") -> "QueryBuilder":
        self._order = {sort: order}
        return self

    def add_order_by(self, sort: str, order: str = "ASC") -> "QueryBuilder":
        self._order[sort] = order
        return self

    def skip(self, skip: int) -> "QueryBuilder":
        self._skip = skip
        return self

    def take(self, take: int) -> "QueryBuilder":
        self._take = take
        return self

    def with_deleted(self) -> "QueryBuilder":
        self._with_deleted = True
        return self

    async def get_many(self) -> List[Any]:
        return await self.data_source.find(
            self.target,
            where=self._where or None,
            relations=self._relations,
            order=self._order or None,
            take=self._take,
            skip=self._skip,
            select=self._columns,
            with_deleted=self._with_deleted,
        )

    async def get_one(self) -> Optional[Any]:
        results = await self.get_many()
        return results[0] if results else None

    async def get_count(self) -> int:
        return await self.data_source.count(
            self.target, self._where or None, with_deleted=self._with_deleted
        )
