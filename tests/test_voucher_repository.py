"""Tests for VoucherRepository routing vouchers into fiscal-year databases."""

import datetime
import sqlite3

import pytest
import pytest_asyncio
from pydantic import ValidationError

from fiscaldb.core.errors import ConnectionClosed, InvalidLabel
from fiscaldb.db.models import Voucher
from fiscaldb.db.repositories import VoucherRepository


@pytest_asyncio.fixture
async def repo(router):
    return VoucherRepository(router)


@pytest.mark.asyncio
async def test_add_routes_by_voucher_date(repo, router):
    may = await repo.add(
        voucher_no="R-1",
        kind="receipt",
        party="ACME",
        amount=10000,
        voucher_date=datetime.date(2025, 5, 31),
        description="Invoice 17",
    )
    june = await repo.add(
        voucher_no="R-2",
        kind="receipt",
        party="ACME",
        amount=5000,
        voucher_date=datetime.date(2025, 6, 1),
    )

    assert may.fiscal_year == "2024_2025"
    assert june.fiscal_year == "2025_2026"
    assert may.voucher_date == datetime.date(2025, 5, 31)
    assert may.description == "Invoice 17"

    assert [v.voucher_no for v in await repo.list_for_year("2024_2025")] == ["R-1"]
    assert [v.voucher_no for v in await repo.list_for_year("2025_2026")] == ["R-2"]
    assert router.available_years() == ["2024_2025", "2025_2026"]


@pytest.mark.asyncio
async def test_get_reads_from_requested_year(repo):
    created = await repo.add(
        voucher_no="P-1",
        kind="payment",
        party="Landlord",
        amount=120000,
        voucher_date=datetime.date(2023, 11, 1),
    )
    fetched = await repo.get("2023_2024", created.voucher_id)
    assert fetched is not None
    assert fetched.voucher_no == "P-1"
    assert fetched.amount == 120000

    # Same id in another year's database does not exist
    assert await repo.get("2024_2025", created.voucher_id) is None


@pytest.mark.asyncio
async def test_list_for_year_filters_by_party_and_orders_by_date(repo):
    for no, party, day in [
        ("J-3", "Bank", datetime.date(2025, 9, 3)),
        ("J-1", "Bank", datetime.date(2025, 7, 1)),
        ("J-2", "Other", datetime.date(2025, 8, 1)),
    ]:
        await repo.add(voucher_no=no, kind="journal", party=party, amount=100, voucher_date=day)

    bank = await repo.list_for_year("2025_2026", party="Bank")
    assert [v.voucher_no for v in bank] == ["J-1", "J-3"]

    current = await repo.list_current()
    assert [v.voucher_no for v in current] == ["J-1", "J-2", "J-3"]


@pytest.mark.asyncio
async def test_totals_by_kind(repo):
    day = datetime.date(2025, 12, 1)
    await repo.add(voucher_no="R-1", kind="receipt", party="A", amount=300, voucher_date=day)
    await repo.add(voucher_no="R-2", kind="receipt", party="B", amount=200, voucher_date=day)
    await repo.add(voucher_no="P-1", kind="payment", party="C", amount=50, voucher_date=day)

    totals = {t.kind: (t.count, t.total) for t in await repo.totals_by_kind("2025_2026")}
    assert totals == {"payment": (1, 50), "receipt": (2, 500)}
    assert await repo.totals_by_kind("2010_2011") == []


@pytest.mark.asyncio
async def test_duplicate_voucher_number_is_rejected_atomically(repo):
    day = datetime.date(2025, 7, 10)
    await repo.add(voucher_no="R-1", kind="receipt", party="A", amount=100, voucher_date=day)
    with pytest.raises(sqlite3.IntegrityError):
        await repo.add(voucher_no="R-1", kind="receipt", party="B", amount=200, voucher_date=day)

    vouchers = await repo.list_for_year("2025_2026")
    assert [(v.voucher_no, v.party) for v in vouchers] == [("R-1", "A")]


@pytest.mark.asyncio
async def test_non_positive_amount_is_rejected_by_database(repo):
    with pytest.raises(sqlite3.IntegrityError):
        await repo.add(
            voucher_no="R-9",
            kind="receipt",
            party="A",
            amount=0,
            voucher_date=datetime.date(2025, 7, 10),
        )


@pytest.mark.asyncio
async def test_invalid_label_is_propagated(repo):
    with pytest.raises(InvalidLabel):
        await repo.list_for_year("2025")


@pytest.mark.asyncio
async def test_repository_fails_after_shutdown(repo, router):
    await router.shutdown()
    with pytest.raises(ConnectionClosed):
        await repo.list_current()


def test_voucher_model_validation():
    with pytest.raises(ValidationError):
        Voucher(
            voucher_id=1,
            voucher_no="R-1",
            kind="receipt",
            party="A",
            amount=-5,
            voucher_date=datetime.date(2025, 1, 1),
            fiscal_year="2024_2025",
        )
    with pytest.raises(ValidationError):
        Voucher(
            voucher_id=1,
            voucher_no="   ",
            kind="receipt",
            party="A",
            amount=5,
            voucher_date=datetime.date(2025, 1, 1),
            fiscal_year="2024_2025",
        )
    with pytest.raises(ValidationError):
        Voucher(
            voucher_id=1,
            voucher_no="X-1",
            kind="refund",
            party="A",
            amount=5,
            voucher_date=datetime.date(2025, 1, 1),
            fiscal_year="2024_2025",
        )


def test_voucher_created_at_defaults_to_utc():
    voucher = Voucher(
        voucher_id=1,
        voucher_no="R-1",
        kind="receipt",
        party="A",
        amount=5,
        voucher_date=datetime.date(2025, 1, 1),
        fiscal_year="2024_2025",
    )
    assert voucher.created_at.utcoffset() == datetime.timedelta(0)
