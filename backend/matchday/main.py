import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from matchday.config import LOG_LEVEL
from matchday.database import init_db
from matchday.errors import EngineError
from matchday.routes import brackets, competitions, runtime, schedule

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Matchday Competition Engine API")

_cors_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
_extra = os.getenv("CORS_ORIGINS", "")
if _extra:
    _cors_origins.extend(o.strip() for o in _extra.split(",") if o.strip())

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Include routers
app.include_router(competitions.router, prefix="/api", tags=["competitions"])
app.include_router(brackets.router, prefix="/api", tags=["brackets"])
app.include_router(runtime.router, prefix="/api", tags=["runtime"])
app.include_router(schedule.router, prefix="/api", tags=["schedule"])


@app.on_event("startup")
def on_startup():
    init_db()
    logger.info(f"Matchday API started with {len(app.routes)} routes")


@app.get("/api/health")
def health_check():
    return {"status": "ok"}
