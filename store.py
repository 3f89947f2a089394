# store.py
import itertools
import math
import threading
import time
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Union

import structlog

from csv_import import ImportedRow, parse_amount
from errors import NotFoundError, ValidationError
from models import BulkTransactionIn, Expense, ExpenseIn, ExpenseUpdate

logger = structlog.get_logger(__name__)

DEFAULT_CATEGORY = "Other"
BULK_CATEGORY = "Imported"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def resolve_user(value: Optional[str], allowed_users: Dict[str, str]) -> str:
    """Map a user id ("matt") or display name ("Matt") to the display name."""
    if value in allowed_users:
        return allowed_users[value]
    if value in allowed_users.values():
        return value
    names = " and ".join(allowed_users.values())
    raise ValidationError(f"Invalid user. Only {names} are allowed.")


def _numeric_amount(value: Union[float, str]) -> float:
    amount = parse_amount(value)
    if amount is None or not math.isfinite(amount):
        raise ValidationError("Amount must be a number")
    return amount


def _require_amount(value: Union[float, str]) -> float:
    amount = _numeric_amount(value)
    if amount < 0:
        raise ValidationError("Amount cannot be negative")
    return amount


def _present(value) -> bool:
    return value is not None and value != ""


class ExpenseStore:
    """
    Ordered in-memory collection of expense records.

    All reads and writes go through one lock; FastAPI runs sync
    endpoints on a thread pool so handlers can overlap.
    """

    def __init__(self, allowed_users: Dict[str, str]):
        self._allowed_users = allowed_users
        self._lock = threading.Lock()
        self._records: List[Expense] = []
        self._ids = itertools.count(1)
        self._last_batch_ms = 0

    def __len__(self):
        with self._lock:
            return len(self._records)

    def _index_of(self, expense_id: str) -> int:
        for i, record in enumerate(self._records):
            if record.id == expense_id:
                return i
        raise NotFoundError("Expense not found")

    def list(self) -> List[Expense]:
        with self._lock:
            return [r.model_copy() for r in self._records]

    def get(self, expense_id: str) -> Expense:
        with self._lock:
            return self._records[self._index_of(expense_id)].model_copy()

    def create(self, fields: ExpenseIn) -> Expense:
        required = (fields.user, fields.amount, fields.description, fields.date)
        if not all(_present(v) for v in required):
            raise ValidationError("Missing required fields")
        user = resolve_user(fields.user, self._allowed_users)
        amount = _require_amount(fields.amount)

        with self._lock:
            expense = Expense(
                id=str(next(self._ids)),
                user=user,
                amount=amount,
                description=fields.description,
                date=fields.date,
                category=fields.category or DEFAULT_CATEGORY,
                created_at=utc_now(),
            )
            self._records.append(expense)

        logger.info("expense_created", expense_id=expense.id, user=user, amount=amount)
        return expense.model_copy()

    def update(self, expense_id: str, fields: ExpenseUpdate) -> Expense:
        with self._lock:
            record = self._records[self._index_of(expense_id)]

            # validate everything before writing so a bad field leaves the record untouched
            changes = {}
            if _present(fields.user):
                changes["user"] = resolve_user(fields.user, self._allowed_users)
            if _present(fields.amount):
                changes["amount"] = _require_amount(fields.amount)
            for name in ("description", "date", "category"):
                value = getattr(fields, name)
                if _present(value):
                    changes[name] = value

            for name, value in changes.items():
                setattr(record, name, value)
            record.updated_at = utc_now()
            if _present(fields.updated_by):
                record.updated_by = fields.updated_by
            updated = record.model_copy()

        logger.info("expense_updated", expense_id=expense_id, fields=sorted(changes))
        return updated

    def delete(self, expense_id: str) -> Expense:
        with self._lock:
            removed = self._records.pop(self._index_of(expense_id))
        logger.info("expense_deleted", expense_id=expense_id, user=removed.user)
        return removed

    def add_imported(self, rows: Iterable[ImportedRow], user: str) -> List[Expense]:
        user = resolve_user(user, self._allowed_users)
        added = []
        with self._lock:
            for row in rows:
                expense = Expense(
                    id=str(next(self._ids)),
                    user=user,
                    amount=abs(row.amount),
                    description=row.description,
                    date=row.date,
                    category=row.category,
                    created_at=utc_now(),
                )
                self._records.append(expense)
                added.append(expense.model_copy())
        return added

    def add_batch(self, user_id: str, transactions: List[BulkTransactionIn]) -> List[Expense]:
        """Insert client-parsed transactions, stamping ``<user>_<ms>_<position>`` ids."""
        user = resolve_user(user_id, self._allowed_users)
        owner = next(uid for uid, name in self._allowed_users.items() if name == user)
        amounts = [abs(_numeric_amount(t.amount)) for t in transactions]

        with self._lock:
            # strictly increasing per batch so composite ids never repeat
            stamp_ms = max(int(time.time() * 1000), self._last_batch_ms + 1)
            self._last_batch_ms = stamp_ms
            uploaded_at = utc_now()

            batch = []
            for position, (item, amount) in enumerate(zip(transactions, amounts)):
                expense = Expense(
                    id=f"{owner}_{stamp_ms}_{position}",
                    user=user,
                    amount=amount,
                    description=item.description,
                    date=item.date,
                    category=item.category or BULK_CATEGORY,
                    created_at=uploaded_at,
                    uploaded_at=uploaded_at,
                )
                self._records.append(expense)
                batch.append(expense.model_copy())

        logger.info("transactions_inserted", user=user, count=len(batch))
        return batch

    def reset(self) -> int:
        with self._lock:
            cleared = len(self._records)
            self._records.clear()
        return cleared
