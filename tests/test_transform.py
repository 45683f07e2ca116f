from datetime import date, datetime, timezone

from litemap.core.mapping.transform import (
    datetime_to_millis,
    from_database,
    millis_to_datetime,
    now_for,
    to_database,
)
from litemap.core.schemas import ColumnDescriptor, ColumnType


def column(column_type, transformer=None):
    return ColumnDescriptor(
        entity_id=1, property_name="value", type=column_type, transformer=transformer
    )


class Cents:
    """Transformer storing euros as integer cents"""

    def to(self, value):
        return None if value is None else round(value * 100)

    def from_(self, value):
        return None if value is None else value / 100


def test_simple_array():
    tags = column(ColumnType.ARRAY)
    assert to_database(tags, ["a", "b", "c"]) == "a,b,c"
    assert from_database(tags, "a,b,c") == ["a", "b", "c"]
    assert from_database(tags, "") == []


def test_simple_json():
    settings = column(ColumnType.JSON)
    stored = to_database(settings, {"theme": "dark", "size": [1, 2]})
    assert isinstance(stored, str)
    assert from_database(settings, stored) == {"theme": "dark", "size": [1, 2]}


def test_invalid_json_is_returned_raw():
    assert from_database(column(ColumnType.JSON), "{not json") == "{not json"


def test_date_column():
    """Dates come back as dates, full timestamps as datetimes"""
    birthday = column(ColumnType.DATE)
    assert to_database(birthday, date(1990, 5, 17)) == "1990-05-17"
    assert from_database(birthday, "1990-05-17") == date(1990, 5, 17)

    moment = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert from_database(birthday, to_database(birthday, moment)) == moment


def test_datetime_column_uses_epoch_millis():
    created = column(ColumnType.DATETIME)
    moment = datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)

    stored = to_database(created, moment)
    assert stored == datetime_to_millis(moment) == 1704164645678
    assert from_database(created, stored) == moment
    assert from_database(created, stored).tzinfo is not None


def test_naive_datetime_is_treated_as_utc():
    assert datetime_to_millis(datetime(1970, 1, 1, 0, 0, 1)) == 1000
    assert millis_to_datetime(1000) == datetime(1970, 1, 1, 0, 0, 1, tzinfo=timezone.utc)


def test_boolean_column():
    flag = column(ColumnType.BOOLEAN)
    assert to_database(flag, True) == 1
    assert to_database(flag, False) == 0
    assert from_database(flag, 1) is True
    assert from_database(flag, 0) is False


def test_none_passes_through():
    for column_type in ColumnType:
        assert to_database(column(column_type), None) is None
        assert from_database(column(column_type), None) is None


def test_transformer_wins():
    price = column(ColumnType.JSON, transformer=Cents())
    assert to_database(price, 12.5) == 1250
    assert from_database(price, 1250) == 12.5


def test_now_for_matches_storage():
    assert isinstance(now_for(column(ColumnType.DATETIME)), int)
    assert isinstance(now_for(column(ColumnType.DATE)), str)
