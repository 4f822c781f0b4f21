"""Voucher repository routed through the fiscal-year database router."""

from __future__ import annotations

import datetime
import logging
from typing import List, Optional

from .handle import FiscalYearDatabase
from .models import KindTotal, Voucher, VoucherKind
from .router import DatabaseRouter

logger = logging.getLogger(__name__)


def _to_model(db: FiscalYearDatabase, row) -> Voucher:
    return Voucher(**dict(row), fiscal_year=db.label)


class VoucherRepository:
    """Stores each voucher in the database of the fiscal year it is dated in."""

    def __init__(self, router: DatabaseRouter) -> None:
        self._router = router

    async def add(
        self,
        *,
        voucher_no: str,
        kind: VoucherKind,
        party: str,
        amount: int,
        voucher_date: datetime.date,
        description: Optional[str] = None,
    ) -> Voucher:
        """Insert a voucher into the fiscal year containing *voucher_date*."""
        db = await self._router.database_for_date(voucher_date)
        try:
            async with db.transaction():
                cursor = await db.execute(
                    f"""
                    INSERT INTO {db.table('vouchers')}
                        (voucher_no, kind, party, amount, voucher_date, description)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (voucher_no, kind, party, amount, voucher_date.isoformat(), description),
                )
                voucher_id = cursor.lastrowid
                await cursor.close()
                row = await db.fetchone(
                    f"SELECT * FROM {db.table('vouchers')} WHERE voucher_id = ?",
                    (voucher_id,),
                )
            if row is None:
                raise RuntimeError(f"Voucher {voucher_no} not found after insertion")
            logger.debug("Added voucher %s to fiscal year %s", voucher_no, db.label)
            return _to_model(db, row)
        except Exception as e:
            logger.exception("Failed to add voucher %s to fiscal year %s: %s", voucher_no, db.label, e)
            raise

    async def get(self, label: str, voucher_id: int) -> Optional[Voucher]:
        """Retrieve a voucher from the fiscal year *label*."""
        db = await self._router.database_for_year(label)
        row = await db.fetchone(
            f"SELECT * FROM {db.table('vouchers')} WHERE voucher_id = ?",
            (voucher_id,),
        )
        if row:
            return _to_model(db, row)
        return None

    async def list_for_year(self, label: str, *, party: Optional[str] = None) -> List[Voucher]:
        """List vouchers of a fiscal year ordered by date, optionally for one party."""
        db = await self._router.database_for_year(label)
        sql = f"SELECT * FROM {db.table('vouchers')}"
        params: tuple = ()
        if party is not None:
            sql += " WHERE party = ?"
            params = (party,)
        sql += " ORDER BY voucher_date, voucher_id"
        rows = await db.fetchall(sql, params)
        return [_to_model(db, row) for row in rows]

    async def list_current(self) -> List[Voucher]:
        """List vouchers of the current fiscal year."""
        db = await self._router.current_database()
        return await self.list_for_year(db.label)

    async def totals_by_kind(self, label: str) -> List[KindTotal]:
        """Return count and amount per voucher kind for a fiscal year."""
        db = await self._router.database_for_year(label)
        rows = await db.fetchall(
            f"""
            SELECT kind, COUNT(*) AS count, SUM(amount) AS total
            FROM {db.table('vouchers')}
            GROUP BY kind
            ORDER BY kind
            """
        )
        return [KindTotal(kind=row["kind"], count=row["count"], total=row["total"] or 0) for row in rows]
