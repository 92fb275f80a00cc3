"""
Transaction store adapters.

The detection core only ever reads from a store. Two implementations:
- InMemoryTransactionStore: dict-backed, for tests and embedding callers
- DuckDBTransactionStore:   reads the `transactions` table of a DuckDB file

Both return expense transactions only, ordered by date ascending.
"""

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Protocol, Set

import duckdb

from expense_anomaly.features.feature_definitions import coerce_date
from expense_anomaly.features.time_utils import chronological_key
from expense_anomaly.ingestion.schema import Transaction

logger = logging.getLogger(__name__)


class TransactionStore(Protocol):
    def list_expense_transactions(
        self, user_id: str, category_id: Optional[str] = None
    ) -> List[Transaction]:
        ...

    def list_distinct_expense_categories(self, user_id: str) -> Set[str]:
        ...


class InMemoryTransactionStore:
    """
    Store backed by plain Python lists, keyed by user id.

    Usage:
        store = InMemoryTransactionStore()
        store.add("user_1", [{"id": "t1", "amount": 12.5, "date": "2025-01-01",
                              "category": "food", "type": "expense"}])
    """

    def __init__(self, transactions: Optional[Dict[str, Iterable]] = None):
        self._transactions: Dict[str, List[Transaction]] = defaultdict(list)
        for user_id, records in (transactions or {}).items():
            self.add(user_id, records)

    def add(self, user_id: str, records: Iterable) -> None:
        for record in records:
            if not isinstance(record, Transaction):
                record = Transaction.model_validate(record)
            self._transactions[user_id].append(record)

    def list_expense_transactions(
        self, user_id: str, category_id: Optional[str] = None
    ) -> List[Transaction]:
        expenses = [
            txn for txn in self._transactions.get(user_id, [])
            if txn.is_expense and (category_id is None or txn.category == category_id)
        ]
        return sorted(expenses, key=lambda t: chronological_key(coerce_date(t.date)))

    def list_distinct_expense_categories(self, user_id: str) -> Set[str]:
        return {
            txn.category for txn in self._transactions.get(user_id, [])
            if txn.is_expense and txn.category
        }


class DuckDBTransactionStore:
    """
    Read-only view over a DuckDB `transactions` table.

    Expected columns:
        user_id, id, amount, date, category, category_name, type

    amount and date are stored as VARCHAR so malformed values reach the
    detectors untouched. Rows are ordered in Python with the same date
    coercion the detectors use, unparseable dates first.
    """

    TABLE = "transactions"

    def __init__(self, db_path: str, read_only: bool = True):
        self.db_path = db_path
        self._con = duckdb.connect(str(db_path), read_only=read_only)
        logger.info(f"Opened DuckDB transaction store at {db_path}")

    def list_expense_transactions(
        self, user_id: str, category_id: Optional[str] = None
    ) -> List[Transaction]:
        query = f"""
            SELECT id, amount, date, category, category_name, type
            FROM {self.TABLE}
            WHERE user_id = ? AND type = 'expense'
        """
        params = [user_id]
        if category_id is not None:
            query += " AND category = ?"
            params.append(category_id)
        query += " ORDER BY id"

        # One cursor per call: the connection is shared by worker threads
        cursor = self._con.cursor()
        try:
            rows = cursor.execute(query, params).fetchall()
        finally:
            cursor.close()

        transactions = [
            Transaction(
                id=row[0],
                amount=row[1],
                date=row[2],
                category=row[3],
                categoryName=row[4],
                type=row[5],
            )
            for row in rows
        ]
        return sorted(transactions, key=lambda t: chronological_key(coerce_date(t.date)))

    def list_distinct_expense_categories(self, user_id: str) -> Set[str]:
        cursor = self._con.cursor()
        try:
            rows = cursor.execute(
                f"""
                SELECT DISTINCT category
                FROM {self.TABLE}
                WHERE user_id = ? AND type = 'expense' AND category IS NOT NULL AND category <> ''
                """,
                [user_id],
            ).fetchall()
        finally:
            cursor.close()
        return {row[0] for row in rows}

    def close(self) -> None:
        self._con.close()
