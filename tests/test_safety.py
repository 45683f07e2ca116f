import pytest

from litemap.core.errors import MissingPrimaryKey, MissingWhereClause

from blog import Post, User


@pytest.mark.asyncio
@pytest.mark.parametrize("criteria", [None, {}])
async def test_filter_writes_without_criteria_run_nothing(
    offline_ds, recording_transport, criteria
):
    """Missing criteria raise before any SQL reaches the transport"""
    with pytest.raises(MissingWhereClause):
        await offline_ds.delete(Post, criteria)
    with pytest.raises(MissingWhereClause):
        await offline_ds.update(Post, criteria, {"title": "x"})
    with pytest.raises(MissingWhereClause):
        await offline_ds.soft_remove(User, criteria)
    with pytest.raises(MissingWhereClause):
        await offline_ds.recover(User, criteria)
    with pytest.raises(MissingWhereClause):
        await offline_ds.delete(User, criteria)

    assert recording_transport.statements == []


@pytest.mark.asyncio
async def test_unsaved_instance_is_not_a_criteria(offline_ds, recording_transport):
    with pytest.raises(MissingWhereClause):
        await offline_ds.delete(Post, Post(title="unsaved"))
    assert recording_transport.statements == []


@pytest.mark.asyncio
async def test_remove_without_primary_key(offline_ds, recording_transport):
    post = Post(title="never saved")
    with pytest.raises(MissingPrimaryKey):
        await offline_ds.remove(post)
    assert post.events == []
    assert recording_transport.statements == []


@pytest.mark.asyncio
async def test_criteria_shapes(offline_ds, recording_transport):
    """Scalars, lists and saved instances all filter by primary key"""
    await offline_ds.delete(Post, 5)
    await offline_ds.delete(Post, [1, 2])
    await offline_ds.delete(Post, Post(id=7))

    assert recording_transport.statements == [
        ("DELETE FROM posts WHERE id = ?", [5]),
        ("DELETE FROM posts WHERE id IN (?, ?)", [1, 2]),
        ("DELETE FROM posts WHERE id = ?", [7]),
    ]


@pytest.mark.asyncio
async def test_find_one_sends_no_limit(offline_ds, recording_transport):
    assert await offline_ds.find_one(Post, where={"title": "x"}) is None
    (sql, params), = recording_transport.statements
    assert "LIMIT" not in sql
    assert params == ["x"]
