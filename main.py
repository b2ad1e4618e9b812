from fastapi import FastAPI, HTTPException, Request, Depends, Body, Query, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from typing import Annotated, List, Optional
import io
import structlog
import time
from contextlib import asynccontextmanager

from models import (
    AccountSnapshot,
    ErrorResponse,
    HealthResponse,
    OperationResponse,
    OperationUnion,
    ReplaySummary,
)
from errors import (
    AccountLocked,
    BalanceLimitExceeded,
    InsufficientFunds,
    OperationError,
    RecordDecodeError,
    TransactionAlreadyDisputed,
    TransactionNotDisputed,
    UnknownReferencedTransaction,
)
from services import LedgerService, get_ledger_service
from repositories import AccountRepository, get_account_repository
from csv_io import read_operations, render_snapshot
from config import configure_logging, get_settings

settings = get_settings()

logger = structlog.get_logger()

# Rate limiting
limiter = Limiter(key_func=get_remote_address)

OPERATION_ERROR_STATUS = {
    InsufficientFunds: status.HTTP_400_BAD_REQUEST,
    BalanceLimitExceeded: status.HTTP_422_UNPROCESSABLE_ENTITY,
    UnknownReferencedTransaction: status.HTTP_404_NOT_FOUND,
    AccountLocked: status.HTTP_409_CONFLICT,
    TransactionAlreadyDisputed: status.HTTP_409_CONFLICT,
    TransactionNotDisputed: status.HTTP_409_CONFLICT,
}

# Application lifespan
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    configure_logging(settings)
    logger.info("Starting Ledger Replay API")
    yield
    # Shutdown
    logger.info("Shutting down Ledger Replay API")

# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Replays deposits, withdrawals and the dispute lifecycle against per-client ledgers",
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Add rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    logger.info(
        "Request started",
        method=request.method,
        url=str(request.url),
        client_ip=request.client.host if request.client else None
    )

    response = await call_next(request)

    process_time = time.time() - start_time
    logger.info(
        "Request completed",
        method=request.method,
        url=str(request.url),
        status_code=response.status_code,
        process_time=round(process_time, 4)
    )

    return response

# Dependency injection
def get_service(
    account_repo: AccountRepository = Depends(get_account_repository)
) -> LedgerService:
    return get_ledger_service(account_repo)

# Health check endpoint
@app.get(
    "/health",
    response_model=HealthResponse,
    summary="Health Check",
    description="Check API health and get ledger statistics"
)
async def health_check(account_repo: AccountRepository = Depends(get_account_repository)):
    accounts = account_repo.all_accounts()
    return HealthResponse(
        status="healthy",
        accounts_count=len(accounts),
        locked_accounts_count=sum(1 for account in accounts if account.locked)
    )

# Single operation endpoint
@app.post(
    "/operations",
    response_model=OperationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Apply Operation",
    description="Apply one deposit, withdrawal, dispute, resolve or chargeback to its client account",
    responses={
        201: {"description": "Operation applied"},
        400: {"description": "Insufficient funds"},
        404: {"description": "Referenced transaction not found for this client"},
        409: {"description": "Account locked or dispute state conflict"},
        422: {"description": "Malformed operation or balance limit exceeded"},
        429: {"description": "Rate limit exceeded"},
    }
)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def apply_operation(
    request: Request,
    operation: Annotated[OperationUnion, Body(discriminator="type")],
    service: LedgerService = Depends(get_service)
):
    logger.info(
        "Operation request received",
        type=operation.type,
        client=operation.client,
        tx=operation.tx
    )

    account = service.apply(operation)

    return OperationResponse(
        status="applied",
        type=operation.type,
        tx=operation.tx,
        account=AccountSnapshot.from_account(account)
    )

# Batch replay endpoint
@app.post(
    "/operations/replay",
    response_model=ReplaySummary,
    summary="Replay CSV",
    description="Replay a CSV body of operation records in order",
    responses={
        422: {"description": "Undecodable row aborted the replay"},
    }
)
async def replay_operations(
    request: Request,
    skip_malformed: Optional[bool] = Query(None, description="Skip undecodable rows instead of aborting"),
    service: LedgerService = Depends(get_service)
):
    body = await request.body()
    try:
        text = body.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(status_code=422, detail="Body must be UTF-8 encoded CSV")

    if skip_malformed is None:
        skip_malformed = settings.skip_malformed_rows

    try:
        return service.replay(read_operations(io.StringIO(text), skip_malformed=skip_malformed))
    except RecordDecodeError as e:
        logger.error("Replay aborted on malformed row", line=e.line, detail=e.detail)
        raise HTTPException(status_code=422, detail=str(e))

@app.get(
    "/accounts",
    response_model=List[AccountSnapshot],
    summary="Account Snapshot",
)
async def list_accounts(
    sort: Optional[bool] = Query(None, description="Order rows by client identifier"),
    service: LedgerService = Depends(get_service)
):
    return service.snapshot(sort_by_client=settings.sort_output if sort is None else sort)

@app.get("/accounts/report", response_class=PlainTextResponse, summary="CSV Report")
async def accounts_report(
    sort: Optional[bool] = Query(None, description="Order rows by client identifier"),
    service: LedgerService = Depends(get_service)
):
    rows = service.snapshot(sort_by_client=settings.sort_output if sort is None else sort)
    return PlainTextResponse(render_snapshot(rows), media_type="text/csv")

@app.get("/accounts/{client}", response_model=AccountSnapshot, summary="Single Account")
async def get_account(
    client: int,
    account_repo: AccountRepository = Depends(get_account_repository)
):
    account = account_repo.get(client)
    if account is None:
        raise HTTPException(status_code=404, detail="Account not found")
    return AccountSnapshot.from_account(account)

# Operation rejections
@app.exception_handler(OperationError)
async def operation_error_handler(request: Request, exc: OperationError):
    return JSONResponse(
        status_code=OPERATION_ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST),
        content=ErrorResponse(
            detail=exc.message,
            error_code=exc.error_code
        ).model_dump(mode="json")
    )

# Global exception handler
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            detail=exc.detail,
            error_code=f"HTTP_{exc.status_code}"
        ).model_dump(mode="json")
    )

@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled exception",
        error=str(exc),
        url=str(request.url),
        method=request.method,
        exc_info=True
    )

    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            detail="Internal server error",
            error_code="INTERNAL_ERROR"
        ).model_dump(mode="json")
    )

# Root endpoint
@app.get("/", include_in_schema=False)
async def root():
    return {"message": "Ledger Replay API", "docs": "/docs"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
