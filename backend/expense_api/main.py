from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Path, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .auth import CurrentUser, get_identity_provider
from .config import settings
from .logging_config import get_logger, setup_logging
from .persistence import get_persistence
from .schemas import (
    AccountResponse,
    ApiErrorDetail,
    ApiErrorPayload,
    ApiErrorResponse,
    CategoryResponse,
    HealthResponse,
    SummaryResponse,
    TagResponse,
    TransactionCreate,
    TransactionResponse,
    TransactionUpdate,
)
from .services.filters import build_transaction_filter
from .services.summary import build_summary

logger = get_logger(__name__)

app = FastAPI(
    title="Expense API",
    version="0.1.0",
    description="Personal finance tracking API: transactions and monthly summaries.",
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)

persistence = get_persistence()
identity_provider = get_identity_provider()

ERROR_CODES = {
    400: "VALIDATION_ERROR",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    500: "INTERNAL_ERROR",
}


def build_error_response(
    status_code: int,
    message: str,
    details: Optional[list[ApiErrorDetail]] = None,
) -> JSONResponse:
    payload = ApiErrorResponse(
        error=ApiErrorPayload(
            code=ERROR_CODES.get(status_code, "HTTP_ERROR"),
            message=message,
            details=details or [],
        )
    )
    return JSONResponse(status_code=status_code, content=payload.model_dump())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details: list[ApiErrorDetail] = []
    for err in exc.errors():
        loc = ".".join(str(item) for item in err.get("loc", []) if item not in ("body", "query", "path"))
        details.append(ApiErrorDetail(field=loc or "body", message=err.get("msg", "validation error")))
    return build_error_response(status.HTTP_400_BAD_REQUEST, "Invalid request payload", details)


@app.exception_handler(ValueError)
async def value_error_exception_handler(request: Request, exc: ValueError) -> JSONResponse:
    field = getattr(exc, "field", "body")
    return build_error_response(
        status.HTTP_400_BAD_REQUEST,
        "Invalid request payload",
        [ApiErrorDetail(field=field, message=str(exc))],
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    if exc.status_code >= 500:
        message = "Internal Server Error"
    response = build_error_response(exc.status_code, message)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return build_error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error")


@app.on_event("startup")
async def on_startup() -> None:
    setup_logging(settings)
    persistence.init_schema()
    logger.info("Expense API started", extra={"app_env": settings.app_env})


def _require_user(request: Request) -> CurrentUser:
    external_id = identity_provider.external_id(request)
    if not external_id:
        raise HTTPException(status_code=401, detail="authentication required")
    user = persistence.ensure_local_user(
        external_id,
        lambda: identity_provider.lookup_profile(request, external_id),
    )
    return CurrentUser(
        id=user["id"],
        external_id=external_id,
        is_admin=external_id in settings.admin_external_ids,
    )


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def _to_transaction_response(row: dict[str, Any]) -> TransactionResponse:
    account = row.get("account")
    category = row.get("category_ref")
    return TransactionResponse(
        id=row["id"],
        type=row["type"],
        date=_as_utc(row["date"]),
        category=row.get("category"),
        description=row.get("description"),
        amount=row["amount"],
        isDeleted=row["is_deleted"],
        userId=row["user_id"],
        accountId=row.get("account_id"),
        categoryId=row.get("category_id"),
        createdAt=_as_utc(row["created_at"]),
        updatedAt=_as_utc(row["updated_at"]),
        account=AccountResponse(
            id=account["id"],
            name=account["name"],
            type=account["type"],
            currency=account["currency"],
            initialBalance=account["initial_balance"],
        )
        if account
        else None,
        categoryRef=CategoryResponse(**category) if category else None,
        tags=[TagResponse(**tag) for tag in row.get("tags", [])],
    )


@app.get("/api/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(status="ok")


@app.get("/api/transactions", response_model=list[TransactionResponse])
def list_transactions(
    request: Request,
    type: Optional[str] = None,
    category: Optional[str] = None,
    month: Optional[str] = None,
    accountId: Optional[str] = None,
    categoryId: Optional[str] = None,
    userId: Optional[str] = None,
) -> list[TransactionResponse]:
    caller = _require_user(request)
    filters = build_transaction_filter(
        caller,
        type=type,
        category=category,
        category_id=categoryId,
        account_id=accountId,
        user_id=userId,
        month=month,
    )
    return [_to_transaction_response(row) for row in persistence.list_transactions(filters)]


@app.post("/api/transactions", response_model=TransactionResponse, status_code=201)
def create_transaction(payload: TransactionCreate, request: Request) -> TransactionResponse:
    caller = _require_user(request)
    owner_id = caller.resolve_user_id(payload.userId)
    row = persistence.create_transaction(owner_id, payload)
    logger.info("Transaction created", extra={"transaction_id": row["id"], "user_id": owner_id})
    return _to_transaction_response(row)


@app.put("/api/transactions/{transaction_id}", response_model=TransactionResponse)
def update_transaction(
    payload: TransactionUpdate,
    request: Request,
    transaction_id: int = Path(gt=0),
) -> TransactionResponse:
    caller = _require_user(request)
    row = persistence.update_transaction(caller.owner_scope, transaction_id, payload, caller.resolve_user_id)
    return _to_transaction_response(row)


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def delete_transaction(request: Request, transaction_id: int = Path(gt=0)) -> Response:
    caller = _require_user(request)
    persistence.soft_delete_transaction(caller.owner_scope, transaction_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/api/summary", response_model=SummaryResponse)
def get_summary(
    request: Request,
    type: Optional[str] = None,
    category: Optional[str] = None,
    month: Optional[str] = None,
    accountId: Optional[str] = None,
    categoryId: Optional[str] = None,
    userId: Optional[str] = None,
) -> SummaryResponse:
    caller = _require_user(request)
    filters = build_transaction_filter(
        caller,
        type=type,
        category=category,
        category_id=categoryId,
        account_id=accountId,
        user_id=userId,
        month=month,
    )
    totals = persistence.summarize(filters)
    income_total, income_count = totals["income"]
    expense_total, expense_count = totals["expense"]
    return build_summary(income_total, expense_total, income_count, expense_count)
