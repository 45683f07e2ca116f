"""Entity classes and registrations shared by the test modules."""

from litemap.core.metadata import MetadataRegistry
from litemap.core.schemas import CascadeOption, ColumnType, ListenerEvent


class Model:
    def __init__(self, **fields):
        for name, value in fields.items():
            setattr(self, name, value)


class User(Model):
    def normalize_email(self):
        if getattr(self, "email", None):
            self.email = self.email.strip().lower()

    def mark_loaded(self):
        self.load_count = getattr(self, "load_count", 0) + 1


class Profile(Model):
    pass


class Post(Model):
    def __init__(self, **fields):
        self.events = []
        super().__init__(**fields)

    def before_insert(self):
        self.events.append("before_insert")

    def after_insert(self):
        self.events.append("after_insert")

    def before_update(self):
        self.events.append("before_update")

    async def after_update(self):
        self.events.append("after_update")

    def before_remove(self):
        self.events.append("before_remove")

    def after_remove(self):
        self.events.append("after_remove")

    async def after_load(self):
        self.events.append("after_load")


class Tag(Model):
    pass


def build_registry() -> MetadataRegistry:
    registry = MetadataRegistry()

    (
        registry.entity(User, "users")
        .primary_generated_column("id")
        .column("email", nullable=False)
        .column("name")
        .column("tags", ColumnType.ARRAY)
        .column("settings", ColumnType.JSON)
        .column("birthday", ColumnType.DATE)
        .create_date_column("created_at")
        .update_date_column("updated_at")
        .delete_date_column("deleted_at")
        .version_column("version")
        .one_to_many("posts", lambda: Post, inverse_side="author", cascade=True)
        .one_to_one("profile", lambda: Profile, inverse_side=lambda profile: profile.user, cascade=True)
        .index(["email"], unique=True)
        .listener(ListenerEvent.BEFORE_INSERT, "normalize_email")
        .listener(ListenerEvent.AFTER_LOAD, "mark_loaded")
    )

    (
        registry.entity(Profile, "profiles")
        .primary_generated_column("id")
        .column("bio", ColumnType.TEXT)
        .one_to_one("user", lambda: User, inverse_side="profile", on_delete="CASCADE")
        .join_column("user", name="user_id")
    )

    (
        registry.entity(Post, "posts")
        .primary_generated_column("id")
        .column("title", nullable=False)
        .column("published", ColumnType.BOOLEAN)
        .column("views", ColumnType.INTEGER)
        .many_to_one("author", lambda: User, inverse_side="posts", on_delete="CASCADE")
        .many_to_many("tags", lambda: Tag, inverse_side="posts", cascade=[CascadeOption.INSERT])
        .join_table("tags")
        .listener(ListenerEvent.BEFORE_INSERT, "before_insert")
        .listener(ListenerEvent.AFTER_INSERT, "after_insert")
        .listener(ListenerEvent.BEFORE_UPDATE, "before_update")
        .listener(ListenerEvent.AFTER_UPDATE, "after_update")
        .listener(ListenerEvent.BEFORE_REMOVE, "before_remove")
        .listener(ListenerEvent.AFTER_REMOVE, "after_remove")
        .listener(ListenerEvent.AFTER_LOAD, "after_load")
    )

    (
        registry.entity(Tag, "tags")
        .primary_generated_column("id")
        .column("label", nullable=False)
        .many_to_many("posts", lambda: Post, inverse_side="tags")
    )

    return registry
