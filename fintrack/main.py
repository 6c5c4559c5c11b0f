from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from .logging_config import setup_logging, get_logger
from .db.core import init_db, NotFoundError, BudgetExceededError, ConflictError, TransientError
from .routers.users import router as users_router
from .routers.categories import router as categories_router
from .routers.accounts import router as accounts_router
from .routers.transactions import router as transactions_router
from .routers.budgets import router as budgets_router
from .routers.investments import router as investments_router

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_db()
    yield


app = FastAPI(title="fintrack", lifespan=lifespan)


app.include_router(users_router)
app.include_router(categories_router)
app.include_router(accounts_router)
app.include_router(transactions_router)
app.include_router(budgets_router)
app.include_router(investments_router)


# ===== ERROR MAPPING =====

def _error_response(status_code: int, kind: str, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": kind, "message": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return _error_response(status.HTTP_404_NOT_FOUND, "NotFound", exc)


@app.exception_handler(ValueError)
async def invalid_argument_handler(request: Request, exc: ValueError):
    return _error_response(status.HTTP_400_BAD_REQUEST, "InvalidArgument", exc)


@app.exception_handler(BudgetExceededError)
async def budget_exceeded_handler(request: Request, exc: BudgetExceededError):
    return _error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, "BudgetExceeded", exc)


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError):
    return _error_response(status.HTTP_409_CONFLICT, "Conflict", exc)


@app.exception_handler(TransientError)
async def transient_handler(request: Request, exc: TransientError):
    logger.error(f"Transient failure on {request.method} {request.url.path}: {exc}")
    return _error_response(status.HTTP_503_SERVICE_UNAVAILABLE, "Transient", exc)


@app.get("/")
def read_root():
    return "Server is running."
