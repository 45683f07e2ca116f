import pytest

from litemap.core.errors import RelationConfigurationError
from litemap.core.mapping.resolver import FALLBACK_FOREIGN_KEY, RelationResolver
from litemap.core.metadata import MetadataRegistry

from blog import Post, Profile, Tag, User


@pytest.fixture
def resolver(finalized_registry):
    return RelationResolver(finalized_registry)


def test_many_to_one_owns_default_column(finalized_registry, resolver):
    """Many-to-one keeps `<property>Id` on its own table"""
    placement = resolver.foreign_key(finalized_registry.find_relation(Post, "author"))
    assert placement.owner_side is True
    assert placement.column == "authorId"
    assert placement.fallback is False


def test_one_to_many_uses_inverse_column(finalized_registry, resolver):
    placement = resolver.foreign_key(finalized_registry.find_relation(User, "posts"))
    assert placement.owner_side is False
    assert placement.column == "authorId"


def test_one_to_one_sides(finalized_registry, resolver):
    """Join column side owns the FK, the other side reads it from there"""
    owning = resolver.foreign_key(finalized_registry.find_relation(Profile, "user"))
    inverse = resolver.foreign_key(finalized_registry.find_relation(User, "profile"))
    assert owning == (True, "user_id", False)
    assert inverse == (False, "user_id", False)


def test_many_to_many_has_no_foreign_key(finalized_registry, resolver):
    with pytest.raises(ValueError):
        resolver.foreign_key(finalized_registry.find_relation(Post, "tags"))


def test_junction_table_for_both_sides(finalized_registry, resolver):
    """Owning side names the junction, the inverse side reuses it"""
    owning = resolver.junction_table(finalized_registry.find_relation(Post, "tags"))
    inverse = resolver.junction_table(finalized_registry.find_relation(Tag, "posts"))

    assert owning.name == "posts_tags"
    assert owning.owning is True
    assert (owning.owner_column, owning.related_column) == ("postsId", "tagsId")

    assert inverse.name == "posts_tags"
    assert inverse.owning is False
    assert (inverse.owner_column, inverse.related_column) == ("tagsId", "postsId")


def test_explicit_junction_name():
    class Student:
        pass

    class Course:
        pass

    registry = MetadataRegistry()
    (
        registry.entity(Student, "students")
        .primary_generated_column()
        .many_to_many("courses", lambda: Course)
        .join_table("courses", name="enrollments")
    )
    registry.entity(Course, "courses").primary_generated_column()
    registry.finalize()

    junction = RelationResolver(registry).junction_table(
        registry.find_relation(Student, "courses")
    )
    assert junction.name == "enrollments"


def test_inverse_property_from_function(finalized_registry, resolver):
    relation = finalized_registry.find_relation(User, "profile")
    assert resolver.inverse_property(relation) == "user"


def test_inverse_property_found_without_inverse_side():
    """Falls back to the owning relation on the related entity"""

    class Comment:
        pass

    registry = MetadataRegistry()
    registry.entity(User, "users").primary_generated_column().one_to_many(
        "comments", lambda: Comment
    )
    registry.entity(Comment, "comments").primary_generated_column().many_to_one(
        "writer", lambda: User
    )
    registry.finalize()

    relation = registry.find_relation(User, "comments")
    resolver = RelationResolver(registry)
    assert resolver.inverse_property(relation) == "writer"
    assert resolver.foreign_key(relation).column == "writerId"


def test_fallback_foreign_key_is_flagged():
    """No owning relation on the other side means the FK column is unknown"""

    class Shelf:
        pass

    class Book:
        pass

    registry = MetadataRegistry()
    registry.entity(Shelf, "shelves").primary_generated_column().one_to_many(
        "books", lambda: Book
    )
    registry.entity(Book, "books").primary_generated_column()
    registry.finalize()

    resolver = RelationResolver(registry)
    relation = registry.find_relation(Shelf, "books")

    placement = resolver.foreign_key(relation)
    assert placement.fallback is True
    assert placement.column == FALLBACK_FOREIGN_KEY
    with pytest.raises(RelationConfigurationError):
        resolver.require_foreign_key(relation)


def test_unresolvable_type_functions_give_none():
    """A raising or unregistered type function leaves the relation unresolved"""

    class Lonely:
        pass

    class Elsewhere:
        pass

    def broken():
        raise NameError("not defined yet")

    registry = MetadataRegistry()
    (
        registry.entity(Lonely, "lonely")
        .primary_generated_column()
        .many_to_one("broken", broken)
        .many_to_one("elsewhere", lambda: Elsewhere)
    )
    resolver = RelationResolver(registry)

    assert resolver.related_table(registry.find_relation(Lonely, "broken")) is None
    assert resolver.related_table(registry.find_relation(Lonely, "elsewhere")) is None


def test_type_function_is_cached_after_resolving(finalized_registry):
    calls = []

    def author_type():
        calls.append(1)
        return User

    relation = finalized_registry.find_relation(Post, "author").model_copy(
        update={"type_function": author_type}
    )
    resolver = RelationResolver(finalized_registry)

    assert resolver.related_table(relation).target is User
    assert resolver.related_table(relation).target is User
    assert len(calls) == 1
