# models.py
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, model_serializer
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys (``createdAt``) while Python code uses snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------- Records ----------
# Only present once the matching event happened; dropped from JSON while unset.
_STAMP_FIELDS = ("updated_at", "updated_by", "uploaded_at")
_STAMP_KEYS = set(_STAMP_FIELDS) | {to_camel(f) for f in _STAMP_FIELDS}

# booleans are not amounts
AmountValue = Union[StrictFloat, StrictInt, str]


class Expense(CamelModel):
    # document the declared fields, not the stamp-dropping serializer
    model_config = ConfigDict(json_schema_mode_override="validation")

    id: str
    user: str
    amount: float
    description: str
    date: str
    category: str
    created_at: str
    updated_at: Optional[str] = None
    updated_by: Optional[str] = None
    uploaded_at: Optional[str] = None

    @model_serializer(mode="wrap")
    def _drop_unset_stamps(self, handler) -> Dict[str, Any]:
        data = handler(self)
        return {k: v for k, v in data.items() if v is not None or k not in _STAMP_KEYS}


class PresenceEntry(CamelModel):
    id: str
    name: str
    connected: bool = False
    last_seen: Optional[str] = None


class DataSnapshot(CamelModel):
    transactions: List[Expense]
    users: Dict[str, PresenceEntry]


# ---------- Request bodies ----------
class ExpenseIn(CamelModel):
    # everything optional so missing fields surface as a single "Missing required fields" error
    user: Optional[str] = None
    amount: Optional[AmountValue] = None
    description: Optional[str] = None
    date: Optional[str] = None
    category: Optional[str] = None


class ExpenseUpdate(ExpenseIn):
    updated_by: Optional[str] = None


class CategoryUpdateIn(CamelModel):
    category: Optional[str] = None
    updated_by: Optional[str] = None


class BulkTransactionIn(CamelModel):
    amount: AmountValue
    description: str = Field(..., min_length=1)
    date: str = Field(..., min_length=1)
    category: Optional[str] = None


class BulkInsertIn(CamelModel):
    user_id: str
    transactions: List[BulkTransactionIn]


# ---------- Responses ----------
class ImportResult(BaseModel):
    message: str
    expenses: List[Expense]
    count: int


class BulkInsertResult(BaseModel):
    message: str
    transactions: List[Expense]
    count: int


class ConnectResult(BaseModel):
    user: PresenceEntry
    data: DataSnapshot
    message: str


class StatusOut(BaseModel):
    success: bool
    message: Optional[str] = None
