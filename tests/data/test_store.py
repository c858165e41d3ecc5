"""Tests for record stores."""

import pytest
from tests.conftest import make_record

from ig_timeseries.data.store import (
    InMemoryRecordStore,
    PostgresRecordStore,
    RecordStore,
    load_dataset,
    record_key,
    save_dataset,
)


def test_record_key_format():
    """Test the accountId_year_month key."""
    assert record_key("1001", 2025, 9) == "1001_2025_9"
    assert make_record().key == record_key("1001", 2025, 9)


@pytest.mark.asyncio
async def test_in_memory_store_upserts():
    """Later writes for the same key should replace earlier ones."""
    store = InMemoryRecordStore()
    await store.put(make_record(views=1))
    await store.put(make_record(views=2))
    assert len(store) == 1
    assert (await store.get("1001_2025_9")).value("views") == 2
    assert await store.get("missing") is None
    assert isinstance(store, RecordStore)


@pytest.mark.asyncio
async def test_in_memory_store_queries(sample_dataset):
    """Queries by account and by period should filter records."""
    store = InMemoryRecordStore()
    assert await save_dataset(store, sample_dataset) == 6

    by_account = await store.get_all_by_account("1001")
    assert [record.month for record in by_account] == [7, 8, 9]
    by_period = await store.get_all_by_period(2025, 9)
    assert {record.account_id for record in by_period} == {"1001", "2002"}

    await store.clear()
    assert await store.keys() == []


@pytest.mark.asyncio
async def test_load_dataset_rebuilds(sample_dataset):
    """load_dataset should rebuild an equivalent dataset."""
    store = InMemoryRecordStore()
    await save_dataset(store, sample_dataset)
    restored = await load_dataset(store)
    assert restored.stats() == sample_dataset.stats()


@pytest.mark.asyncio
async def test_connect_reuses_single_connection(mocker):
    """Subsequent connect calls should reuse the same asyncpg connection."""
    mock_connection = mocker.AsyncMock()
    connect_mock = mocker.patch("asyncpg.connect", return_value=mock_connection)

    store = PostgresRecordStore(dsn="postgres://example")
    first = await store.connect(timeout=5)
    second = await store.connect()

    assert first is second is mock_connection
    connect_mock.assert_called_once_with("postgres://example", timeout=5)


@pytest.mark.asyncio
async def test_close_closes_connection(mocker):
    """close() should release the cached connection when present."""
    mock_connection = mocker.AsyncMock()
    store = PostgresRecordStore()
    store._connection = mock_connection

    await store.close()

    mock_connection.close.assert_awaited_once()
    assert store._connection is None


@pytest.mark.asyncio
async def test_ensure_schema_creates_table(mocker):
    """ensure_schema should create the schema-qualified record table."""
    mock_connection = mocker.AsyncMock()
    store = PostgresRecordStore(schema="analytics")
    store._connection = mock_connection

    await store.ensure_schema()

    ddl = mock_connection.execute.await_args.args[0]
    assert "CREATE TABLE IF NOT EXISTS analytics.ig_monthly_record" in ddl


@pytest.mark.asyncio
async def test_put_many_upserts_rows(mocker):
    """put_many should issue one ON CONFLICT upsert for all records."""
    mock_connection = mocker.AsyncMock()
    store = PostgresRecordStore()
    store._connection = mock_connection

    count = await store.put_many([make_record(views=5), make_record(month=10, reach=7)])

    assert count == 2
    query, rows = mock_connection.executemany.await_args.args
    assert query.lstrip().startswith("INSERT INTO public.ig_monthly_record")
    assert "ON CONFLICT (record_key)" in query
    assert rows[0][:6] == ("1001_2025_9", "1001", "alpha", "alpha", 2025, 9)
    assert rows[1][6] == 7


@pytest.mark.asyncio
async def test_put_many_skips_empty(mocker):
    """An empty batch should not touch the database."""
    connect_mock = mocker.patch("asyncpg.connect")
    assert await PostgresRecordStore().put_many([]) == 0
    connect_mock.assert_not_called()


@pytest.mark.asyncio
async def test_get_all_by_account_maps_rows(mocker):
    """Fetched rows should be converted back into records."""
    mock_connection = mocker.AsyncMock()
    mock_connection.fetch.return_value = [
        {
            "record_key": "1001_2025_9",
            "account_id": "1001",
            "handle": "alpha",
            "display_name": "Alpha",
            "year": 2025,
            "month": 9,
            "reach": 10.0,
            "views": 20.0,
            "followers": 30.0,
        }
    ]
    store = PostgresRecordStore()
    store._connection = mock_connection

    records = await store.get_all_by_account("1001")

    assert records[0].account.display_name == "Alpha"
    assert records[0].value("followers") == 30.0
    assert mock_connection.fetch.await_args.args[1] == "1001"
