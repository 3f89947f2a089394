# csv_import.py
"""
Schema-less CSV import.

Bank and card exports all name their columns differently, so instead of
asking for a mapping we guess each column's role from its header text.
Rows that don't yield an amount, a description and a date are dropped
without comment.
"""
import math
import re
from dataclasses import dataclass
from typing import List, Optional, Union

import structlog

logger = structlog.get_logger(__name__)

DEFAULT_IMPORT_CATEGORY = "Imported"

AMOUNT_KEYWORDS = ("amount", "debit", "withdrawal")
DESCRIPTION_KEYWORDS = ("description", "merchant", "payee")
DATE_KEYWORDS = ("date",)  # also covers "transaction date", "posted date", ...
CATEGORY_KEYWORDS = ("category", "type")

_LEADING_NUMBER = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")


def parse_amount(value: Union[str, float, int, None]) -> Optional[float]:
    """
    Read the leading number out of ``value`` ("12.50 USD" -> 12.5).
    Returns None when there isn't one.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    match = _LEADING_NUMBER.match(value.lstrip())
    if not match:
        return None
    return float(match.group(0))


def split_fields(line: str) -> List[str]:
    return [field.strip().replace('"', "") for field in line.split(",")]


@dataclass
class ColumnRoles:
    amount: Optional[int] = None
    description: Optional[int] = None
    date: Optional[int] = None
    category: Optional[int] = None


def infer_columns(headers: List[str]) -> ColumnRoles:
    """Scan headers left to right; when several match a role the last one wins."""
    roles = ColumnRoles()
    for index, header in enumerate(headers):
        lower = header.lower()
        if any(k in lower for k in AMOUNT_KEYWORDS):
            roles.amount = index
        if any(k in lower for k in DESCRIPTION_KEYWORDS):
            roles.description = index
        if any(k in lower for k in DATE_KEYWORDS):
            roles.date = index
        if any(k in lower for k in CATEGORY_KEYWORDS):
            roles.category = index
    return roles


@dataclass
class ImportedRow:
    amount: float
    description: str
    date: str
    category: str


def _row_from_values(values: List[str], roles: ColumnRoles) -> Optional[ImportedRow]:
    amount = 0.0
    if roles.amount is not None:
        amount = parse_amount(values[roles.amount]) or 0.0
        if not math.isfinite(amount):
            amount = 0.0
    description = values[roles.description] if roles.description is not None else ""
    date = values[roles.date] if roles.date is not None else ""
    category = DEFAULT_IMPORT_CATEGORY
    if roles.category is not None:
        category = values[roles.category] or DEFAULT_IMPORT_CATEGORY

    # a zero amount counts as missing, so genuine 0.00 rows never import
    if not amount or not description or not date:
        return None
    return ImportedRow(
        amount=abs(amount),
        description=description,
        date=date,
        category=category,
    )


def parse_csv(text: str) -> List[ImportedRow]:
    lines = [line for line in text.split("\n") if line.strip()]
    if not lines:
        return []

    headers = split_fields(lines[0])
    roles = infer_columns(headers)

    rows = []
    skipped = 0
    for line in lines[1:]:
        values = split_fields(line)
        if len(values) < len(headers):
            skipped += 1
            continue
        row = _row_from_values(values, roles)
        if row is None:
            skipped += 1
            continue
        rows.append(row)

    logger.debug(
        "csv_parsed",
        headers=headers,
        roles=vars(roles),
        parsed=len(rows),
        skipped=skipped,
    )
    return rows


def decode_upload(raw: bytes) -> str:
    return raw.decode("utf-8-sig", errors="replace")
