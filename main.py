# main.py
from contextlib import asynccontextmanager
from typing import List, Optional

import structlog
import uvicorn
from fastapi import APIRouter, Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.datastructures import Headers
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import Settings, get_settings
from csv_import import decode_upload, parse_csv
from errors import NoFileError, PayloadTooLargeError, TrackerError, ValidationError
from log import configure_logging
from models import (
    BulkInsertIn,
    BulkInsertResult,
    CategoryUpdateIn,
    ConnectResult,
    DataSnapshot,
    Expense,
    ExpenseIn,
    ExpenseUpdate,
    ImportResult,
    StatusOut,
)
from presence import PresenceTracker
from store import ExpenseStore, resolve_user, utc_now

logger = structlog.get_logger(__name__)


# ---------- BODY SIZE LIMIT ----------
class JSONBodyLimitMiddleware:
    """
    Reject JSON bodies larger than ``max_bytes`` with 413 before routing.

    Content-Length is checked first; bodies without one (chunked) are
    buffered and counted as they arrive, then replayed to the app.
    """

    def __init__(self, app, max_bytes: int):
        self.app = app
        self.max_bytes = max_bytes

    async def _too_large(self, scope, receive, send):
        logger.warning("request_failed", path=scope.get("path"), status=413, error="Request body too large")
        response = JSONResponse(status_code=413, content={"error": "Request body too large"})
        await response(scope, receive, send)

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            return await self.app(scope, receive, send)
        headers = Headers(scope=scope)
        if not headers.get("content-type", "").startswith("application/json"):
            return await self.app(scope, receive, send)

        length = headers.get("content-length")
        if length and length.isdigit():
            if int(length) > self.max_bytes:
                return await self._too_large(scope, receive, send)
            return await self.app(scope, receive, send)

        body = b""
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] == "http.disconnect":
                return
            body += message.get("body", b"")
            more_body = message.get("more_body", False)
            if len(body) > self.max_bytes:
                return await self._too_large(scope, receive, send)

        replayed = False

        async def replay():
            nonlocal replayed
            if not replayed:
                replayed = True
                return {"type": "http.request", "body": body, "more_body": False}
            return await receive()

        await self.app(scope, replay, send)


# ---------- APPLICATION STATE ----------
class TrackerState:
    """Everything the handlers share: one per app, so each test gets its own."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.store = ExpenseStore(settings.allowed_users)
        self.presence = PresenceTracker(settings.allowed_users)

    def dataset(self) -> DataSnapshot:
        return DataSnapshot(transactions=self.store.list(), users=self.presence.snapshot())

    def reset(self) -> int:
        cleared = self.store.reset()
        self.presence.reset()
        return cleared


def get_state(request: Request) -> TrackerState:
    return request.app.state.tracker


router = APIRouter()


@router.get("/")
def root():
    return {
        "message": "Matt and Eileen's Expense Tracker Server is running!",
        "endpoints": [
            "GET /api/expenses - Get all expenses",
            "POST /api/expenses - Add new expense",
            "PUT /api/expenses/:id - Update expense",
            "DELETE /api/expenses/:id - Delete expense",
            "POST /api/upload-csv - Upload CSV file",
            "GET /api/data - Get all transactions and user status",
            "POST /api/transactions - Add parsed transactions",
            "PUT /api/transactions/:id - Change a transaction's category",
            "DELETE /api/transactions/:id - Delete transaction",
            "POST /api/connect/:userId - Connect as a user",
            "POST /api/heartbeat/:userId - Keep a user marked online",
            "POST /api/reset - Clear all data",
        ],
    }


# ---------- EXPENSE ENDPOINTS ----------
@router.get("/api/expenses", response_model=List[Expense])
def list_expenses(state: TrackerState = Depends(get_state)):
    return state.store.list()


@router.post("/api/expenses", response_model=Expense, status_code=201)
def create_expense(payload: ExpenseIn, state: TrackerState = Depends(get_state)):
    return state.store.create(payload)


@router.put("/api/expenses/{expense_id}", response_model=Expense)
def update_expense(expense_id: str, payload: ExpenseUpdate, state: TrackerState = Depends(get_state)):
    return state.store.update(expense_id, payload)


@router.delete("/api/expenses/{expense_id}", response_model=Expense)
def delete_expense(expense_id: str, state: TrackerState = Depends(get_state)):
    return state.store.delete(expense_id)


@router.post("/api/upload-csv", response_model=ImportResult)
async def upload_csv(
    user: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    state: TrackerState = Depends(get_state),
):
    """
    Import a bank/card CSV export for ``user``.
    Columns are guessed from the header row; rows that don't make sense are skipped.
    """
    user = resolve_user(user, state.settings.allowed_users)
    if file is None:
        raise NoFileError("No file uploaded")

    limit = state.settings.max_csv_upload_bytes
    raw = await file.read(limit + 1)
    if len(raw) > limit:
        raise PayloadTooLargeError(f"File too large (max {limit} bytes)")

    rows = parse_csv(decode_upload(raw))
    added = state.store.add_imported(rows, user)
    logger.info("csv_imported", user=user, filename=file.filename, imported=len(added))
    return {
        "message": f"Successfully imported {len(added)} expenses",
        "expenses": added,
        "count": len(added),
    }


# ---------- SHARED DATASET ENDPOINTS ----------
@router.get("/api/data", response_model=DataSnapshot)
def get_data(state: TrackerState = Depends(get_state)):
    return state.dataset()


@router.post("/api/transactions", response_model=BulkInsertResult)
def add_transactions(payload: BulkInsertIn, state: TrackerState = Depends(get_state)):
    batch = state.store.add_batch(payload.user_id, payload.transactions)
    return {
        "message": f"Added {len(batch)} transactions",
        "transactions": batch,
        "count": len(batch),
    }


@router.put("/api/transactions/{transaction_id}", response_model=Expense)
def update_transaction_category(
    transaction_id: str, payload: CategoryUpdateIn, state: TrackerState = Depends(get_state)
):
    state.store.get(transaction_id)
    if not payload.category:
        raise ValidationError("Category is required")
    return state.store.update(
        transaction_id,
        ExpenseUpdate(category=payload.category, updated_by=payload.updated_by),
    )


@router.delete("/api/transactions/{transaction_id}", response_model=StatusOut)
def delete_transaction(transaction_id: str, state: TrackerState = Depends(get_state)):
    state.store.delete(transaction_id)
    return {"success": True, "message": "Transaction deleted"}


# ---------- PRESENCE ENDPOINTS ----------
@router.post("/api/connect/{user_id}", response_model=ConnectResult)
def connect(user_id: str, state: TrackerState = Depends(get_state)):
    entry = state.presence.connect(user_id)
    return {
        "user": entry,
        "data": state.dataset(),
        "message": f"Welcome, {entry.name}!",
    }


@router.post("/api/heartbeat/{user_id}", response_model=StatusOut, response_model_exclude_none=True)
def heartbeat(user_id: str, state: TrackerState = Depends(get_state)):
    return {"success": state.presence.heartbeat(user_id)}


@router.post("/api/reset", response_model=StatusOut)
def reset(state: TrackerState = Depends(get_state)):
    cleared = state.reset()
    logger.info("data_reset", cleared=cleared)
    return {"success": True, "message": "All data has been reset"}


# ---------- SIMPLE HEALTH CHECK ----------
@router.get("/health")
def health():
    return {"status": "healthy", "timestamp": utc_now()}


# ---------- APP ----------
def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_json)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("server_started", host=settings.host, port=settings.port)
        yield

    app = FastAPI(title="Matt and Eileen's Expense Tracker", lifespan=lifespan)
    app.state.tracker = TrackerState(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials="*" not in settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(JSONBodyLimitMiddleware, max_bytes=settings.max_json_body_bytes)

    @app.exception_handler(TrackerError)
    async def tracker_error_handler(request: Request, exc: TrackerError):
        logger.warning("request_failed", path=request.url.path, status=exc.status_code, error=exc.message)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        problems = [
            f"{'.'.join(str(part) for part in err['loc'] if part != 'body')}: {err['msg']}"
            for err in exc.errors()
        ]
        message = "Invalid request: " + "; ".join(problems)
        logger.warning("request_failed", path=request.url.path, status=400, error=message)
        return JSONResponse(status_code=400, content={"error": message})

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)
