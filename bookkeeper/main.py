import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from .config import settings
from .database import create_tables
from .errors import LedgerError
from .logging_config import configure_logging
from .routers import accounts, categories, changes, imports, reports, transactions, transfers

configure_logging(settings.LOG_LEVEL, settings.LOG_JSON)
logger = structlog.get_logger(__name__)

# Create FastAPI app
app = FastAPI(title=settings.PROJECT_NAME)

# Create database tables on startup
@app.on_event("startup")
async def startup_event():
    create_tables()
    logger.info("startup_complete", database_url=settings.DATABASE_URL)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=exc.message, kind=exc.kind)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("database_error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=500, content={"detail": "Database error", "error": "storage_error"})


# Include API routers
app.include_router(accounts.router, prefix=f"{settings.API_V1_STR}/accounts", tags=["accounts"])
app.include_router(categories.router, prefix=f"{settings.API_V1_STR}/categories", tags=["categories"])
app.include_router(transactions.router, prefix=f"{settings.API_V1_STR}/transactions", tags=["transactions"])
app.include_router(transfers.router, prefix=f"{settings.API_V1_STR}/transfers", tags=["transfers"])
app.include_router(imports.router, prefix=f"{settings.API_V1_STR}/imports", tags=["imports"])
app.include_router(reports.router, prefix=f"{settings.API_V1_STR}/reports", tags=["reports"])
app.include_router(changes.router, prefix=f"{settings.API_V1_STR}/changes", tags=["changes"])

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
