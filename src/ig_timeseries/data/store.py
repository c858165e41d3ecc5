"""Keyed persistence for monthly records (in-memory and PostgreSQL)."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, Protocol, runtime_checkable

import asyncpg
import structlog
from attrs import define, field

from .models import Account, Dataset, MonthlyRecord
from .periods import Period

logger = structlog.get_logger(__name__)


def record_key(account_id: str, year: int, month: int) -> str:
    """Return the store key ``accountId_year_month``."""
    return f"{account_id}_{year}_{month}"


@runtime_checkable
class RecordStore(Protocol):
    """Async key/value persistence for :class:`MonthlyRecord` objects."""

    async def put(self, record: MonthlyRecord) -> None: ...

    async def put_many(self, records: Iterable[MonthlyRecord]) -> int: ...

    async def get(self, key: str) -> MonthlyRecord | None: ...

    async def keys(self) -> list[str]: ...

    async def records(self) -> list[MonthlyRecord]: ...

    async def get_all_by_account(self, account_id: str) -> list[MonthlyRecord]: ...

    async def get_all_by_period(self, year: int, month: int) -> list[MonthlyRecord]: ...

    async def clear(self) -> None: ...


@define(slots=True)
class InMemoryRecordStore:
    """Dictionary-backed store; later writes for the same key replace earlier ones."""

    _records: dict[str, MonthlyRecord] = field(factory=dict, init=False, repr=False)

    async def put(self, record: MonthlyRecord) -> None:
        self._records[record.key] = record

    async def put_many(self, records: Iterable[MonthlyRecord]) -> int:
        count = 0
        for record in records:
            self._records[record.key] = record
            count += 1
        return count

    async def get(self, key: str) -> MonthlyRecord | None:
        return self._records.get(key)

    async def keys(self) -> list[str]:
        return sorted(self._records)

    async def records(self) -> list[MonthlyRecord]:
        return [self._records[key] for key in sorted(self._records)]

    async def get_all_by_account(self, account_id: str) -> list[MonthlyRecord]:
        matches = [record for record in self._records.values() if record.account_id == account_id]
        return sorted(matches, key=lambda record: record.period)

    async def get_all_by_period(self, year: int, month: int) -> list[MonthlyRecord]:
        return [
            record for record in self._records.values() if record.is_same_period(year, month)
        ]

    async def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)


_COLUMNS = (
    "record_key",
    "account_id",
    "handle",
    "display_name",
    "year",
    "month",
    "reach",
    "views",
    "followers",
)


def _row_args(record: MonthlyRecord) -> tuple[Any, ...]:
    return (
        record.key,
        record.account.account_id,
        record.account.handle,
        record.account.display_name,
        record.period.year,
        record.period.month,
        record.value("reach"),
        record.value("views"),
        record.value("followers"),
    )


def _record_from_row(row: Any) -> MonthlyRecord:
    return MonthlyRecord(
        account=Account(
            account_id=row["account_id"],
            handle=row["handle"],
            display_name=row["display_name"],
        ),
        period=Period(row["year"], row["month"]),
        metrics={
            "reach": row["reach"],
            "views": row["views"],
            "followers": row["followers"],
        },
    )


@define(slots=True)
class PostgresRecordStore:
    """Persist monthly records into PostgreSQL using asyncpg primitives."""

    dsn: str | None = None
    schema: str = "public"
    table: str = "ig_monthly_record"
    connection_kwargs: dict[str, Any] = field(factory=dict)
    _connection: asyncpg.Connection | None = field(default=None, init=False, repr=False)

    async def connect(self, **overrides: Any) -> asyncpg.Connection:
        """Establish (or reuse) the async connection."""
        if self._connection is not None:
            return self._connection
        kwargs: dict[str, Any] = {**self.connection_kwargs, **overrides}
        if self.dsn:
            connection = await asyncpg.connect(self.dsn, **kwargs)
        else:
            connection = await asyncpg.connect(**kwargs)
        self._connection = connection
        logger.debug("store.connected", schema=self.schema, table=self.table)
        return connection

    async def close(self) -> None:
        """Close the open connection, if any."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    async def ensure_schema(self) -> None:
        """Create the record table if it does not already exist."""
        conn = await self.connect()
        await conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {self._qualified()} (
                record_key text PRIMARY KEY,
                account_id text NOT NULL,
                handle text NOT NULL,
                display_name text NOT NULL,
                year integer NOT NULL,
                month integer NOT NULL CHECK (month BETWEEN 1 AND 12),
                reach double precision NOT NULL,
                views double precision NOT NULL,
                followers double precision NOT NULL
            );
            """
        )

    async def put(self, record: MonthlyRecord) -> None:
        await self.put_many([record])

    async def put_many(self, records: Iterable[MonthlyRecord]) -> int:
        """Upsert records keyed by ``accountId_year_month``."""
        records = list(records)
        if not records:
            return 0
        conn = await self.connect()
        placeholders = ", ".join(f"${index}" for index in range(1, len(_COLUMNS) + 1))
        updates = ",\n            ".join(
            f"{column} = EXCLUDED.{column}" for column in _COLUMNS[1:]
        )
        query = f"""
        INSERT INTO {self._qualified()} ({", ".join(_COLUMNS)})
        VALUES ({placeholders})
        ON CONFLICT (record_key) DO UPDATE SET
            {updates};
        """  # noqa: S608
        await conn.executemany(query, [_row_args(record) for record in records])
        logger.info("store.records_upserted", count=len(records), table=self.table)
        return len(records)

    async def get(self, key: str) -> MonthlyRecord | None:
        conn = await self.connect()
        row = await conn.fetchrow(
            f"SELECT * FROM {self._qualified()} WHERE record_key = $1",  # noqa: S608
            key,
        )
        return _record_from_row(row) if row is not None else None

    async def keys(self) -> list[str]:
        conn = await self.connect()
        rows = await conn.fetch(
            f"SELECT record_key FROM {self._qualified()} ORDER BY record_key"  # noqa: S608
        )
        return [row["record_key"] for row in rows]

    async def records(self) -> list[MonthlyRecord]:
        conn = await self.connect()
        rows = await conn.fetch(
            f"SELECT * FROM {self._qualified()} ORDER BY record_key"  # noqa: S608
        )
        return [_record_from_row(row) for row in rows]

    async def get_all_by_account(self, account_id: str) -> list[MonthlyRecord]:
        conn = await self.connect()
        rows = await conn.fetch(
            f"SELECT * FROM {self._qualified()} WHERE account_id = $1 ORDER BY year, month",  # noqa: S608
            account_id,
        )
        return [_record_from_row(row) for row in rows]

    async def get_all_by_period(self, year: int, month: int) -> list[MonthlyRecord]:
        conn = await self.connect()
        rows = await conn.fetch(
            f"SELECT * FROM {self._qualified()} WHERE year = $1 AND month = $2 "  # noqa: S608
            "ORDER BY handle",
            year,
            month,
        )
        return [_record_from_row(row) for row in rows]

    async def clear(self) -> None:
        conn = await self.connect()
        await conn.execute(f"TRUNCATE TABLE {self._qualified()}")

    def _qualified(self) -> str:
        """Return the schema-qualified table name."""
        return f"{self.schema}.{self.table}"


async def save_dataset(store: RecordStore, dataset: Dataset) -> int:
    """Write every record of ``dataset`` to ``store``."""
    return await store.put_many(dataset.records())


async def load_dataset(store: RecordStore) -> Dataset:
    """Rebuild a :class:`Dataset` from everything held in ``store``."""
    dataset = Dataset()
    dataset.extend_records(await store.records())
    logger.info("store.dataset_loaded", **dataset.stats().to_dict())
    return dataset


__all__ = [
    "InMemoryRecordStore",
    "PostgresRecordStore",
    "RecordStore",
    "load_dataset",
    "record_key",
    "save_dataset",
]
