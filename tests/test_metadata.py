import pytest

from litemap.core.errors import EntityNotRegistered, MetadataError
from litemap.core.metadata import MetadataRegistry
from litemap.core.schemas import ColumnMode, RelationKind

from blog import Post, Profile, Tag, User


class Unregistered:
    pass


def test_find_table_returns_registered_class(registry):
    """Table lookup works by class and by handle"""
    table = registry.find_table(User)
    assert table.table_name == "users"
    assert table.target is User
    assert registry.find_table(table.entity_id) is table


def test_unregistered_lookups_are_empty(registry):
    """Unknown classes give None / empty lists instead of raising"""
    assert registry.find_table(Unregistered) is None
    assert registry.find_columns(Unregistered) == []
    assert registry.find_relations(Unregistered) == []
    assert registry.primary_column(Unregistered) is None


def test_require_table_raises_for_unregistered(registry):
    with pytest.raises(EntityNotRegistered) as error:
        registry.require_table(Unregistered)
    assert "Unregistered" in str(error.value)


def test_same_table_name_does_not_collide():
    """Two classes sharing a table name keep their own columns"""

    class First:
        pass

    class Second:
        pass

    registry = MetadataRegistry()
    registry.entity(First, "things").primary_generated_column().column("a")
    registry.entity(Second, "things").primary_generated_column().column("b")

    assert [c.property_name for c in registry.find_columns(First)] == ["id", "a"]
    assert [c.property_name for c in registry.find_columns(Second)] == ["id", "b"]


def test_register_twice_raises(registry):
    with pytest.raises(MetadataError):
        registry.register_table(User)


def test_second_primary_column_raises():
    class Thing:
        pass

    registry = MetadataRegistry()
    builder = registry.entity(Thing).primary_column("code")
    with pytest.raises(MetadataError):
        builder.primary_column("other")


def test_generated_column_must_be_primary():
    """Only the primary key can autoincrement"""

    class Thing:
        pass

    registry = MetadataRegistry()
    builder = registry.entity(Thing, "things").primary_column("code")
    with pytest.raises(MetadataError):
        builder.column("counter", generated=True)
    assert [c.property_name for c in registry.find_columns(Thing)] == ["code"]


def test_primary_column_falls_back_to_first_column():
    class Thing:
        pass

    registry = MetadataRegistry()
    registry.entity(Thing, "things").column("slug").column("title")
    assert registry.primary_column(Thing).property_name == "slug"


def test_column_defaults(registry):
    """Date and version helpers set the column mode"""
    modes = {c.property_name: c.mode for c in registry.find_columns(User)}
    assert modes["created_at"] == ColumnMode.CREATE_DATE
    assert modes["updated_at"] == ColumnMode.UPDATE_DATE
    assert modes["deleted_at"] == ColumnMode.DELETE_DATE
    assert modes["version"] == ColumnMode.VERSION
    assert registry.delete_date_column(User).property_name == "deleted_at"
    assert registry.delete_date_column(Post) is None


def test_finalize_merges_join_declarations(registry):
    """Join columns and join tables end up on their relations"""
    assert registry.find_relation(Profile, "user").join_column is False

    registry.finalize()

    user = registry.find_relation(Profile, "user")
    assert user.join_column is True
    assert user.join_column_name == "user_id"

    tags = registry.find_relation(Post, "tags")
    assert tags.join_table is True
    assert tags.join_table_name is None
    assert registry.find_relation(Tag, "posts").join_table is False


def test_finalize_is_idempotent(registry):
    registry.finalize()
    relations = list(registry.relations)
    registry.finalize()
    assert registry.relations == relations


def test_register_after_finalize_raises(registry):
    registry.finalize()

    class Late:
        pass

    with pytest.raises(MetadataError):
        registry.register_table(Late)


def test_cascade_options(registry):
    posts = registry.find_relation(User, "posts")
    tags = registry.find_relation(Post, "tags")
    assert posts.kind == RelationKind.ONE_TO_MANY
    assert posts.cascades("insert") and posts.cascades("update")
    assert tags.cascades("insert")
    assert not tags.cascades("update")
