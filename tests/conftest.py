"""Global test configuration and fixtures."""

from collections.abc import Sequence

import pytest
import structlog

from ig_timeseries.data.files import EXPECTED_COLUMNS
from ig_timeseries.data.models import Account, AccountSeries, Dataset, MonthlyRecord
from ig_timeseries.data.periods import Period

HEADER = ",".join(EXPECTED_COLUMNS)


def make_row(
    handle: str,
    account_id: str,
    reach: object = 0,
    views: object = 0,
    followers: object = 0,
    *,
    name: str = "",
    status: str = "",
) -> str:
    """Render one export row in column order."""
    return ",".join(
        str(cell)
        for cell in (handle, name, account_id, "", reach, views, followers, status, "")
    )


def make_csv(rows: Sequence[str], header: str = HEADER) -> str:
    """Join a header and rows into export text."""
    return "\n".join([header, *rows]) + "\n"


def make_record(
    account_id: str = "1001",
    handle: str = "alpha",
    year: int = 2025,
    month: int = 9,
    *,
    reach: float = 0,
    views: float = 0,
    followers: float = 0,
) -> MonthlyRecord:
    """Build a monthly record with explicit metric values."""
    return MonthlyRecord(
        account=Account(account_id=account_id, handle=handle),
        period=Period(year, month),
        metrics={"reach": reach, "views": views, "followers": followers},
    )


def make_series(metric: str, values: Sequence[float], *, start: Period = Period(2025, 1)):
    """Build a single-account series with consecutive months of ``metric`` values."""
    series = AccountSeries(Account(account_id="1001", handle="alpha"))
    period = start
    for value in values:
        series.add(make_record(year=period.year, month=period.month, **{metric: value}))
        period = period.next()
    return series


@pytest.fixture
def sample_dataset() -> Dataset:
    """Two accounts over three months, plus a third account in September only."""
    dataset = Dataset()
    dataset.extend_records(
        [
            make_record("1001", "alpha", 2025, 7, reach=900, views=80, followers=100),
            make_record("1001", "alpha", 2025, 8, reach=950, views=90, followers=150),
            make_record("1001", "alpha", 2025, 9, reach=1000, views=100, followers=90),
            make_record("2002", "Bravo", 2025, 7, reach=2500, views=150, followers=400),
            make_record("2002", "Bravo", 2025, 8, reach=2800, views=180, followers=410),
            make_record("2002", "Bravo", 2025, 9, reach=3000, views=200, followers=420),
        ]
    )
    return dataset


@pytest.fixture
def valid_export_text() -> str:
    """A well-formed export with two accounts."""
    return make_csv(
        [
            make_row("alpha", "1001", 1000, 100, 90, name="Alpha"),
            make_row("bravo", "2002", 3000, 200, 420, name="Bravo"),
        ]
    )


@pytest.fixture(autouse=True)
def reset_structlog():
    """Keep structlog configuration from leaking between tests."""
    yield
    structlog.reset_defaults()
