"""
Filter operators for `where` mappings.

    from litemap.core.operators import in_, like, not_

    await ds.find(User, where={"name": like("A%"), "id": not_(in_([1, 2]))})
"""

from typing import Any, Sequence

from litemap.core.schemas import FindOperator, Operator


def equal(value: Any) -> FindOperator:
    return FindOperator(operator=Operator.EQUAL, value=value)


def not_equal(value: Any) -> FindOperator:
    return FindOperator(operator=Operator.NOT_EQUAL, value=value)


def less_than(value: Any) -> FindOperator:
    return FindOperator(operator=Operator.LESS_THAN, value=value)


def more_than(value: Any) -> FindOperator:
    return FindOperator(operator=Operator.GREATER_THAN, value=value)


def less_than_or_equal(value: Any) -> FindOperator:
    return FindOperator(operator=Operator.LESS_THAN_OR_EQUAL, value=value)


def more_than_or_equal(value: Any) -> FindOperator:
    return FindOperator(operator=Operator.GREATER_THAN_OR_EQUAL, value=value)


def between(start: Any, end: Any) -> FindOperator:
    return FindOperator(operator=Operator.BETWEEN, value=(start, end))


def like(pattern: str) -> FindOperator:
    return FindOperator(operator=Operator.LIKE, value=pattern)


def ilike(pattern: str) -> FindOperator:
    """Case-insensitive LIKE."""
    return FindOperator(operator=Operator.ILIKE, value=pattern)


def in_(values: Sequence[Any]) -> FindOperator:
    return FindOperator(operator=Operator.IN, value=list(values))


def is_null() -> FindOperator:
    return FindOperator(operator=Operator.IS_NULL)


def raw(sql: str) -> FindOperator:
    """Literal SQL placed after the column name. Never pass user input here."""
    return FindOperator(operator=Operator.RAW, value=sql)


def not_(value: Any) -> FindOperator:
    """
    Negate another operator.

    not_(in_(...)) -> NOT IN, not_(like(...)) -> NOT LIKE, not_(is_null()) -> IS NOT NULL.
    Anything else compiles to `!= ?`.
    """
    return FindOperator(operator=Operator.NOT, value=value)


# Shortcuts for common LIKE patterns
def contains(value: str) -> FindOperator:
    return like(f"%{value}%")


def icontains(value: str) -> FindOperator:
    return ilike(f"%{value}%")


def startswith(value: str) -> FindOperator:
    return like(f"{value}%")


def istartswith(value: str) -> FindOperator:
    return ilike(f"{value}%")


def endswith(value: str) -> FindOperator:
    return like(f"%{value}")


def iendswith(value: str) -> FindOperator:
    return ilike(f"%{value}")
