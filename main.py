import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from coopbank.core import config
from coopbank.exceptions import CoopBankError
from coopbank.utils.logging import setup_logging

setup_logging(config.LOG_LEVEL, config.LOG_FORMAT)

import coopbank.models  # ensure models are registered
from coopbank.utils.database import engine, Base
from coopbank.initial_data import init_seed

from coopbank.routers import (
    accounts_router,
    transactions_router,
    loans_router,
    caisse_router,
    accounting_router,
    reports_router,
    settings_router,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Cooperative Banking Back Office API", version="1.0")

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(accounts_router.router)
app.include_router(transactions_router.router)
app.include_router(loans_router.router)
app.include_router(caisse_router.router)
app.include_router(accounting_router.router)
app.include_router(reports_router.router)
app.include_router(settings_router.router)


@app.exception_handler(CoopBankError)
def coopbank_error_handler(request: Request, exc: CoopBankError):
    logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(Exception)
def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.on_event("startup")
def on_startup():
    # DEV ONLY - migrations are not managed yet
    Base.metadata.create_all(bind=engine)

    logger.info("Running initial database seeding…")
    init_seed()


@app.get("/")
def root():
    return {"message": "Cooperative banking back office is running"}
