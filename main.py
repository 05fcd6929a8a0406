"""Main FastAPI application for the MoneyFlow ledger API."""
import sys
import time
import secrets
import datetime as dt
from typing import Any, Optional

import uvicorn
from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlmodel import SQLModel, Session, create_engine
from starlette.exceptions import HTTPException as StarletteHTTPException

import crud
from auth import (
    RESET_TOKEN_TTL,
    AuthFailure,
    Principal,
    authenticate,
    get_password_hash,
    issue_session,
    verify_password,
)
from config import Settings, get_settings
from crud import CONFLICT, NOT_FOUND, Failure
from currency import BASE_CURRENCY, convert_amount, get_exchange_rates
from logger import configure_logging, get_logger
from mailer import MailError, send_password_reset_email
from schemas import (
    AuthResponse,
    Dashboard,
    ExchangeRates,
    ForgotPasswordRequest,
    LoginRequest,
    Message,
    PasswordChange,
    ProfileUpdate,
    RegisterRequest,
    ResetPasswordRequest,
    SampleReset,
    SampleSeeded,
    TransactionDeleted,
    TransactionIn,
    TransactionRead,
    TransactionsPurged,
    UserRead,
)
from utils import aggregate, parse_object_id, round_money

APP_NAME = "moneyflow"
APP_VERSION = "0.1.0"
FORGOT_PASSWORD_MESSAGE = "If this email exists, a reset link will be sent."
TRANSACTION_NOT_FOUND = "Transaction not found or unauthorized"

# Loaded once; request handlers receive settings through Depends(get_settings).
settings = get_settings()
configure_logging(settings.log_level, json_logs=settings.is_production)
logger = get_logger(__name__)

app = FastAPI(title="MoneyFlow Ledger API", version=APP_VERSION)
Instrumentator().instrument(app).expose(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept"],
    expose_headers=["Content-Range", "X-Content-Range"],
)


def make_engine(database_url: str):
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
    else:
        connect_args = {}
    return create_engine(
        database_url,
        connect_args=connect_args,
        pool_pre_ping=True,
        echo=False,
    )


engine = make_engine(settings.database_url) if settings.database_url else None


# Opens a session before each request and closes it automatically after.
def get_session():
    """Provide a database session per request."""
    if engine is None:
        raise RuntimeError("DATABASE_URL is not configured")
    with Session(engine) as session:
        yield session


# ERROR HANDLING
# Every error body is JSON with a "message" field.

MISSING_FIELD_MESSAGES = {
    "/api/auth/register": "All fields are required",
    "/api/auth/login": "Email and password are required",
}


def _clean_msg(msg: str) -> str:
    return msg.removeprefix("Value error, ")


def _is_missing(error: dict) -> bool:
    return error["type"] == "missing" or error.get("input") in (None, "")


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404 and exc.detail == "Not Found":
        body: dict[str, Any] = {
            "message": "Route not found",
            "path": request.url.path,
            "method": request.method,
        }
    elif isinstance(exc.detail, dict):
        body = exc.detail
    else:
        body = {"message": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=body, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if any(_is_missing(e) for e in errors):
        message = MISSING_FIELD_MESSAGES.get(request.url.path, "Missing required fields")
    else:
        message = _clean_msg(errors[0]["msg"]) if errors else "Invalid request"
    details = [
        {"field": ".".join(str(p) for p in e["loc"][1:]), "message": _clean_msg(e["msg"])}
        for e in errors
    ]
    return JSONResponse(status_code=400, content={"message": message, "errors": details})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(
        "unhandled_error",
        method=request.method,
        path=request.url.path,
        exc_info=exc,
    )
    return JSONResponse(status_code=500, content={"message": "Something went wrong!"})


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "request",
        method=request.method,
        path=request.url.path,
        status=response.status_code,
        duration_ms=round((time.perf_counter() - start) * 1000, 1),
    )
    return response


def server_error(message: str, cause: Optional[Exception], settings: Settings) -> HTTPException:
    """500 whose underlying cause is only echoed outside production."""
    detail: dict[str, Any] = {"message": message}
    if cause is not None and not settings.is_production:
        detail["error"] = str(cause)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


def unwrap(
    result,
    settings: Settings,
    server_message: str = "Server error",
    not_found: Optional[str] = None,
    conflict: Optional[str] = None,
):
    """Return the Ok value or raise the HTTP error matching the Failure."""
    if not isinstance(result, Failure):
        return result.value
    if result.kind == NOT_FOUND and not_found:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=not_found)
    if result.kind == CONFLICT and conflict:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=conflict)
    raise server_error(server_message, result.cause, settings)


def hash_or_400(password: str) -> str:
    try:
        return get_password_hash(password)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


def start_session(user, settings: Settings) -> dict:
    if not settings.jwt_secret:
        logger.error("jwt_secret_missing")
        raise HTTPException(status_code=500, detail="Server configuration error")
    return issue_session(user, settings)


# AUTH GUARD

def get_current_principal(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
    session: Session = Depends(get_session),
) -> Principal:
    """Resolve the current principal from the Authorization header."""
    outcome = authenticate(authorization, settings, lambda user_id: crud.get_user(session, user_id))
    if isinstance(outcome, AuthFailure):
        headers = {"WWW-Authenticate": "Bearer"} if outcome.status_code == 401 else None
        raise HTTPException(status_code=outcome.status_code, detail=outcome.message, headers=headers)
    return outcome


def load_user(session: Session, principal: Principal, settings: Settings):
    user = unwrap(crud.get_user(session, principal.id), settings)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def to_read(rows) -> list[TransactionRead]:
    return [TransactionRead.model_validate(row) for row in rows]


def transaction_id_or_400(transaction_id: str):
    tx_id = parse_object_id(transaction_id)
    if tx_id is None:
        raise HTTPException(status_code=400, detail="Invalid transaction ID format")
    return tx_id


@app.on_event("startup")
def on_startup() -> None:
    """
    Run once when the app starts:
    - Wait for the database to be ready
    - Create tables
    """
    missing = settings.missing_required()
    if missing:
        logger.error("missing_required_configuration", missing=missing)
        raise RuntimeError(f"Missing required configuration: {', '.join(missing)}")
    if engine is None:
        raise RuntimeError("DATABASE_URL is not configured")

    retries = 10
    delay = 2  # seconds
    last_exc: Exception | None = None

    for attempt in range(1, retries + 1):
        try:
            SQLModel.metadata.create_all(engine)
            logger.info("database_ready", environment=settings.app_env)
            return
        except OperationalError as exc:
            last_exc = exc
            logger.warning("database_not_ready", attempt=attempt, retries=retries, wait_s=delay)
            time.sleep(delay)

    logger.error("database_unreachable")
    if last_exc:
        raise last_exc
    raise RuntimeError("Database not reachable on startup.")


@app.on_event("shutdown")
def on_shutdown() -> None:
    if engine is not None:
        engine.dispose()
    logger.info("shutdown_complete")


@app.get("/")
def root():
    return {"message": "MoneyFlow API is running. See /health for status."}


@app.get("/health")
def health(
    settings: Settings = Depends(get_settings),
    session: Session = Depends(get_session),
):
    """Liveness plus a storage round trip."""
    try:
        session.connection().execute(text("SELECT 1"))
        database = "connected"
    except SQLAlchemyError as exc:
        logger.warning("health_database_unreachable", error=str(exc))
        database = "disconnected"

    return {
        "status": "ok" if database == "connected" else "degraded",
        "timestamp": dt.datetime.now(dt.timezone.utc).isoformat(),
        "app": APP_NAME,
        "version": APP_VERSION,
        "environment": settings.app_env,
        "database": database,
    }


# AUTH ENDPOINTS

@app.post("/api/auth/register", response_model=AuthResponse, status_code=201)
def register_user(
    user_in: RegisterRequest,
    settings: Settings = Depends(get_settings),
    session: Session = Depends(get_session),
):
    """Create an account, seed the sample ledger and issue a token."""
    hashed = hash_or_400(user_in.password)
    user = unwrap(
        crud.create_user(session, user_in.name, user_in.email, hashed),
        settings,
        "Server error during registration",
        conflict="User already exists",
    )
    unwrap(crud.reseed_transactions(session, user.id), settings, "Server error during registration")
    logger.info("user_registered", user_id=str(user.id))
    return start_session(user, settings)


@app.post("/api/auth/login", response_model=AuthResponse)
def login(
    user_in: LoginRequest,
    settings: Settings = Depends(get_settings),
    session: Session = Depends(get_session),
):
    """Authenticate a user and return a bearer token."""
    user = unwrap(crud.get_user_by_email(session, user_in.email), settings, "Server error during login")
    if not user or not verify_password(user_in.password, user.hashed_password):
        logger.info("login_failed")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid credentials")

    logger.info("login_succeeded", user_id=str(user.id))
    return start_session(user, settings)


@app.get("/api/auth/me", response_model=UserRead)
def read_current_user(
    principal: Principal = Depends(get_current_principal),
    settings: Settings = Depends(get_settings),
    session: Session = Depends(get_session),
):
    """Return the current authenticated user."""
    return UserRead.model_validate(load_user(session, principal, settings))


@app.put("/api/auth/profile", response_model=UserRead)
def update_profile(
    payload: ProfileUpdate,
    principal: Principal = Depends(get_current_principal),
    settings: Settings = Depends(get_settings),
    session: Session = Depends(get_session),
):
    """Update name, username and display preferences."""
    user = load_user(session, principal, settings)
    user = unwrap(
        crud.update_user(session, user, payload.changes()),
        settings,
        "Server error during profile update",
        conflict="Username already in use",
    )
    return UserRead.model_validate(user)


@app.put("/api/auth/password", response_model=Message)
def change_password(
    payload: PasswordChange,
    principal: Principal = Depends(get_current_principal),
    settings: Settings = Depends(get_settings),
    session: Session = Depends(get_session),
):
    """Change the current user's password."""
    user = load_user(session, principal, settings)
    if not verify_password(payload.current_password, user.hashed_password):
        raise HTTPException(status_code=400, detail="Current password is incorrect")

    unwrap(
        crud.update_user(session, user, {"hashed_password": hash_or_400(payload.new_password)}),
        settings,
        "Server error during password update",
    )
    return {"message": "Password updated successfully"}


@app.post("/api/auth/forgot-password", response_model=Message)
def forgot_password(
    payload: ForgotPasswordRequest,
    settings: Settings = Depends(get_settings),
    session: Session = Depends(get_session),
):
    """Issue a one-hour reset token. The answer never reveals whether the email exists."""
    user = unwrap(crud.get_user_by_email(session, payload.email), settings)
    if user is not None:
        token = secrets.token_hex(32)
        unwrap(crud.set_reset_token(session, user, token, RESET_TOKEN_TTL), settings)
        try:
            send_password_reset_email(settings, user.email, token)
        except MailError as exc:
            logger.error("password_reset_mail_failed", user_id=str(user.id), error=str(exc))

    return {"message": FORGOT_PASSWORD_MESSAGE}


@app.post("/api/auth/reset-password", response_model=Message)
def reset_password(
    payload: ResetPasswordRequest,
    settings: Settings = Depends(get_settings),
    session: Session = Depends(get_session),
):
    """Consume a reset token and set the new password."""
    user = unwrap(crud.get_user_by_reset_token(session, payload.token), settings)
    if user is None:
        raise HTTPException(status_code=400, detail="Invalid or expired token")

    unwrap(crud.consume_reset_token(session, user, hash_or_400(payload.password)), settings)
    logger.info("password_reset", user_id=str(user.id))
    return {"message": "Password has been reset."}


# EXPENSE ENDPOINTS
# Fixed paths are registered before "/api/expenses/{transaction_id}".

@app.get("/api/expenses/dashboard", response_model=Dashboard)
def get_dashboard(
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    principal: Principal = Depends(get_current_principal),
    settings: Settings = Depends(get_settings),
    session: Session = Depends(get_session),
):
    """Totals, category breakdown and recent transactions. Seeds an empty ledger."""
    user = load_user(session, principal, settings)
    rows = unwrap(crud.list_transactions(session, principal.id), settings)
    if not rows:
        unwrap(crud.reseed_transactions(session, principal.id), settings)
        rows = unwrap(crud.list_transactions(session, principal.id), settings)

    summary = aggregate(rows)
    recent = rows[:limit] if limit else rows
    return Dashboard(
        **summary.as_floats(),
        currency=user.currency,
        recent_transactions=to_read(recent),
    )


@app.get("/api/expenses", response_model=list[TransactionRead])
def list_transactions(
    principal: Principal = Depends(get_current_principal),
    settings: Settings = Depends(get_settings),
    session: Session = Depends(get_session),
):
    """List the principal's transactions ordered by date descending."""
    return to_read(unwrap(crud.list_transactions(session, principal.id), settings))


@app.post("/api/expenses", response_model=TransactionRead, status_code=201)
def create_transaction(
    payload: TransactionIn,
    principal: Principal = Depends(get_current_principal),
    settings: Settings = Depends(get_settings),
    session: Session = Depends(get_session),
):
    """Create an income or expense transaction."""
    row = unwrap(crud.create_transaction(session, principal.id, payload.to_record()), settings)
    return TransactionRead.model_validate(row)


@app.delete("/api/expenses/delete-all", response_model=TransactionsPurged)
def delete_all_transactions(
    principal: Principal = Depends(get_current_principal),
    settings: Settings = Depends(get_settings),
    session: Session = Depends(get_session),
):
    """Remove every transaction the principal owns."""
    count = unwrap(crud.delete_all_transactions(session, principal.id), settings)
    logger.info("transactions_purged", user_id=str(principal.id), count=count)
    return {"message": "All transactions deleted successfully", "deleted_count": count}


@app.post("/api/expenses/create-initial", response_model=SampleSeeded, status_code=201)
def create_initial_transactions(
    principal: Principal = Depends(get_current_principal),
    settings: Settings = Depends(get_settings),
    session: Session = Depends(get_session),
):
    """Replace the principal's ledger with the sample set."""
    rows = unwrap(crud.reseed_transactions(session, principal.id), settings)
    return {"message": "Initial transactions created successfully", "transactions": to_read(rows)}


@app.post("/api/expenses/force-reset", response_model=SampleReset, status_code=201)
def force_reset_transactions(
    principal: Principal = Depends(get_current_principal),
    settings: Settings = Depends(get_settings),
    session: Session = Depends(get_session),
):
    """Reseed, then recompute totals from what is actually stored."""
    rows = unwrap(crud.reseed_transactions(session, principal.id), settings)
    stored = unwrap(crud.list_transactions(session, principal.id), settings)
    summary = aggregate(stored)
    logger.info(
        "transactions_force_reset",
        user_id=str(principal.id),
        income=float(summary.total_income),
        expenses=float(summary.total_expenses),
    )
    return {
        "message": "Transactions force reset successfully",
        "transactions": to_read(rows),
        "totals": {
            "income": float(summary.total_income),
            "expenses": float(summary.total_expenses),
            "balance": float(summary.balance),
        },
    }


@app.put("/api/expenses/{transaction_id}", response_model=TransactionRead)
def update_transaction(
    transaction_id: str,
    payload: TransactionIn,
    principal: Principal = Depends(get_current_principal),
    settings: Settings = Depends(get_settings),
    session: Session = Depends(get_session),
):
    """Replace a transaction the principal owns."""
    tx_id = transaction_id_or_400(transaction_id)
    transaction = unwrap(
        crud.get_owned_transaction(session, tx_id, principal.id),
        settings,
        not_found=TRANSACTION_NOT_FOUND,
    )
    row = unwrap(
        crud.update_transaction(session, transaction, payload.to_record()),
        settings,
        "Failed to update transaction",
    )
    return TransactionRead.model_validate(row)


@app.delete("/api/expenses/{transaction_id}", response_model=TransactionDeleted)
def delete_transaction(
    transaction_id: str,
    principal: Principal = Depends(get_current_principal),
    settings: Settings = Depends(get_settings),
    session: Session = Depends(get_session),
):
    """Delete one transaction and return what is left."""
    tx_id = transaction_id_or_400(transaction_id)
    transaction = unwrap(
        crud.get_owned_transaction(session, tx_id, principal.id),
        settings,
        not_found=TRANSACTION_NOT_FOUND,
    )
    unwrap(crud.delete_transaction(session, transaction), settings, "Failed to delete transaction")
    remaining = unwrap(crud.list_transactions(session, principal.id), settings)
    return {
        "message": "Transaction deleted successfully",
        "deleted_id": tx_id,
        "transactions": to_read(remaining),
    }


# CURRENCY

@app.get("/api/currency/rates", response_model=ExchangeRates)
def exchange_rates(settings: Settings = Depends(get_settings)):
    """USD-based rates from a public provider, or the static fallback table."""
    rates, source = get_exchange_rates(timeout=settings.rates_timeout)
    return {"base": BASE_CURRENCY, "rates": rates, "source": source}


@app.get("/api/currency/convert")
def convert(
    amount: float = Query(..., ge=0),
    from_currency: str = Query(default=BASE_CURRENCY, alias="from", min_length=3, max_length=3),
    to_currency: str = Query(..., alias="to", min_length=3, max_length=3),
    settings: Settings = Depends(get_settings),
):
    """Convert an amount between two currencies (display only)."""
    rates, source = get_exchange_rates(timeout=settings.rates_timeout)
    from_code, to_code = from_currency.upper(), to_currency.upper()
    return {
        "amount": amount,
        "from": from_code,
        "to": to_code,
        "result": round_money(convert_amount(amount, from_code, to_code, rates)),
        "source": source,
    }


def run() -> None:
    """Console entry point. Exits with status 1 when required configuration is missing."""
    missing = settings.missing_required()
    if missing:
        logger.error("missing_required_configuration", missing=missing)
        sys.exit(1)

    logger.info(
        "server_starting",
        host=settings.host,
        port=settings.port,
        environment=settings.app_env,
        origins=settings.allowed_origins,
    )
    # uvicorn drains in-flight requests on SIGTERM/SIGINT before exiting
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    run()
