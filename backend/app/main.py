import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import CORS_ORIGINS, LOG_LEVEL
from .db import Base, engine
from .errors import TowRadarError
from . import models  # noqa: F401  (registers tables on Base)
from .routers import alerts as alerts_router
from .routers import claims as claims_router
from .routers import health as health_router
from .routers import incidents as incidents_router

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
log = logging.getLogger(__name__)

Base.metadata.create_all(bind=engine)

app = FastAPI(title="TowRadar Backend")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(TowRadarError)
async def towradar_error_handler(request: Request, exc: TowRadarError):
    if exc.status_code >= 500:
        log.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"ok": False, "error": exc.message})


app.include_router(incidents_router.router, prefix="/incidents", tags=["incidents"])
app.include_router(alerts_router.router, prefix="/alerts", tags=["alerts"])
app.include_router(claims_router.router, prefix="/claims", tags=["claims"])
app.include_router(health_router.router, tags=["health"])
