from contextlib import asynccontextmanager
import logging
import sys
import time

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import config
from .db import init_db
from .lists_api import router as lists_router
from .notes_api import router as notes_router
from .tags_api import router as tags_router
from .tasks_api import router as tasks_router
from .users_api import router as users_router
from .utils import isoformat_utc, now_utc

logger = logging.getLogger(__name__)
# Make sure package logs reach the console when no handlers are configured
# (uvicorn only configures its own loggers).
_pkg_logger = logging.getLogger('organic_mind')
if not _pkg_logger.handlers:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s:%(name)s: %(message)s'))
    _pkg_logger.addHandler(handler)
_pkg_logger.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))


@asynccontextmanager
async def lifespan(app: FastAPI):
    # The server should not start with the test fallback secret; tokens
    # signed with it are forgeable.
    if config.SECRET_KEY == 'CHANGE_ME_IN_ENV_FOR_TESTS' and not config.DEV_MODE:
        raise RuntimeError("SECRET_KEY not set or insecure fallback in use; set the SECRET_KEY environment variable before starting the server")
    await init_db()
    logger.info('starting server using DATABASE_URL=%s', config.DATABASE_URL)
    yield


app = FastAPI(title='Organic Mind', lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies and parameters are 400s, like every other validation error."""
    return JSONResponse(status_code=400, content={'detail': jsonable_encoder(exc.errors())})


@app.middleware('http')
async def timing_middleware(request: Request, call_next):
    start = time.perf_counter()
    resp = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000.0
    if duration_ms >= config.SLOW_REQUEST_MS:
        logger.warning('slow request %s %s %.1fms', request.method, request.url.path, duration_ms)
    else:
        logger.debug('timing %s %s %.1fms', request.method, request.url.path, duration_ms)
    return resp


@app.get('/api/health')
async def health():
    return {'status': 'healthy', 'timestamp': isoformat_utc(now_utc())}


app.include_router(tasks_router)
app.include_router(lists_router)
app.include_router(tags_router)
app.include_router(notes_router)
app.include_router(users_router)
