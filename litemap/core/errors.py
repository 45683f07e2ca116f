"""
Exception types raised by the mapping core.

Every failure is raised to the caller of the operation. The only failure the
core swallows on purpose is a rejected junction-row insert during a
many-to-many save, which means the pair is already linked.
"""

__all__ = [
    "LitemapError",
    "MetadataError",
    "EntityNotRegistered",
    "RelationConfigurationError",
    "MissingPrimaryKey",
    "MissingWhereClause",
    "MissingSoftDeleteColumn",
    "NestedTransactionError",
]


class LitemapError(Exception):
    """Base class for every error raised by litemap."""


class MetadataError(LitemapError, ValueError):
    """Invalid or inconsistent entity registration."""


class EntityNotRegistered(MetadataError):
    """The given type has no table descriptor."""

    def __init__(self, target):
        name = getattr(target, "__name__", repr(target))
        super().__init__(f"Entity {name} is not registered")
        self.target = target


class RelationConfigurationError(MetadataError):
    """A relation cannot be mapped to a foreign key or an inverse property."""


class MissingPrimaryKey(LitemapError, ValueError):
    """An instance operation needs a primary key value that is not set."""


class MissingWhereClause(LitemapError, ValueError):
    """A mutating statement was requested without a filter."""


class MissingSoftDeleteColumn(LitemapError, ValueError):
    """Soft remove or recover on an entity without a delete-date column."""


class NestedTransactionError(LitemapError, RuntimeError):
    """A transaction was started while another one is still open."""
