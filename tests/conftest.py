import pytest
import pytest_asyncio

from litemap.core.data_source import DataSource
from litemap.core.database import SqlAlchemyTransport, returns_rows
from litemap.core.schemas import ExecResult

from blog import build_registry

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class RecordingTransport:
    """Keeps every statement instead of running it."""

    def __init__(self, rows=None):
        self.statements = []
        self.rows = rows or []

    async def execute(self, sql, params=()):
        self.statements.append((sql, list(params)))
        if returns_rows(sql):
            return list(self.rows)
        return ExecResult(insert_id=len(self.statements), rows_affected=0)

    async def close(self):
        pass


# Fresh metadata for every test
@pytest.fixture
def registry():
    return build_registry()


@pytest.fixture
def finalized_registry(registry):
    registry.finalize()
    return registry


@pytest.fixture
def recording_transport():
    return RecordingTransport()


@pytest.fixture
def offline_ds(registry, recording_transport):
    registry.finalize()
    return DataSource(registry, recording_transport, synchronize=False)


# A brand new in-memory database per test, schema created on initialize
@pytest_asyncio.fixture(scope="function")
async def ds(registry):
    data_source = DataSource(
        registry, SqlAlchemyTransport(TEST_DATABASE_URL, echo=False), synchronize=True
    )
    await data_source.initialize()
    yield data_source
    await data_source.close()
