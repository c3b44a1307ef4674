import os
import time
import logging
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pythonjsonlogger import jsonlogger

from .core import init_metrics
from .errors import StoryServiceError
from .models import engine
from .routes import router
from .storage import MediaStorage


def configure_logging(level: str = os.getenv('LOG_LEVEL', 'INFO')) -> logging.Logger:
    """JSON lines on stderr for every logger under `storyhub`."""
    root = logging.getLogger('storyhub')
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(jsonlogger.JsonFormatter('%(asctime)s %(levelname)s %(name)s %(message)s'))
        root.addHandler(handler)
    root.setLevel(level.upper())
    return root


logger = configure_logging()

app = FastAPI(title="StoryHub API", version="0.3.0")
app.state.media_storage = MediaStorage()

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv('CORS_ORIGINS', '*').split(','),
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

app.include_router(router, prefix="/api")


@app.get('/healthz')
async def healthz():
    return {'status': 'ok'}


@app.middleware('http')
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    logger.info({'msg': 'request_start', 'method': request.method, 'path': request.url.path})
    response = await call_next(request)
    logger.info({
        'msg': 'request_end',
        'method': request.method,
        'path': request.url.path,
        'status': response.status_code,
        'ms': round((time.perf_counter() - started) * 1000, 1),
    })
    return response


@app.exception_handler(StoryServiceError)
async def story_error_handler(request: Request, exc: StoryServiceError):
    level = logging.ERROR if exc.status_code >= 500 else logging.INFO
    logger.log(level, {'msg': 'request_failed', 'path': request.url.path, 'error': exc.error_code, 'detail': exc.message})
    return JSONResponse(
        status_code=exc.status_code,
        content={'status': False, 'message': exc.message, 'error': exc.to_dict()},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [e['msg'] for e in exc.errors()]
    logger.info({'msg': 'request_invalid', 'path': request.url.path, 'errors': errors})
    return JSONResponse(
        status_code=400,
        content={
            'status': False,
            'message': 'Validation Error',
            'error': {'code': 'ValidationError', 'details': {'errors': errors}},
        },
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error({'msg': 'request_crashed', 'path': request.url.path, 'error': str(exc)}, exc_info=exc)
    return JSONResponse(status_code=500, content={'status': False, 'message': 'Internal server error'})


@app.on_event("startup")
async def startup():
    # metrics are optional, never block startup on them
    try:
        init_metrics()
    except Exception as e:
        logger.warning({'msg': 'metrics_init_failed', 'error': str(e)})


@app.on_event("shutdown")
async def shutdown():
    await engine.dispose()
