import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from crewsync.core.config import settings
from crewsync.core.database import create_tables
from crewsync.core.exceptions import CrewSyncError
from crewsync.core.logging import configure_logging
from crewsync.api.v1.auth import router as auth_router
from crewsync.api.v1.shifts import router as shifts_router
from crewsync.api.v1.timesheets import router as timesheets_router, shift_timesheet_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    # Tabellen beim Start anlegen (SQLite / lokale Entwicklung)
    await create_tables()
    logger.info("CrewSync API started (%s)", settings.APP_ENV)
    yield


app = FastAPI(
    title="CrewSync API",
    description="Personal-Einsatzplanung, Zeiterfassung & Timesheet-Freigabe",
    version="1.0.0",
    lifespan=lifespan,
    # Swagger UI nur in Entwicklung – in Produktion DEBUG=false setzen
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CrewSyncError)
async def crewsync_error_handler(request: Request, exc: CrewSyncError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


API_PREFIX = "/api/v1"

app.include_router(auth_router, prefix=API_PREFIX)
app.include_router(shifts_router, prefix=API_PREFIX)
app.include_router(shift_timesheet_router, prefix=API_PREFIX)
app.include_router(timesheets_router, prefix=API_PREFIX)


@app.get("/health")
async def health_check():
    return {"status": "ok", "service": "CrewSync API", "version": "1.0.0"}
