import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from counselhub.core import config
from counselhub.database import Base, engine, ensure_appointment_schema
from counselhub.models import appointment, user  # noqa: F401 (register tables)
from counselhub.routes import admin_routes, auth_routes, counselor_routes, student_routes
from counselhub.scheduling.errors import SchedulingError

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)

config.validate_runtime_config()

app = FastAPI(title='CounselHub API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    try:
        Base.metadata.create_all(bind=engine)
        ensure_appointment_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={'detail': exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = []
    for error in exc.errors():
        field = '.'.join(str(part) for part in error.get('loc', ()) if part != 'body')
        problems.append(f"{field}: {error.get('msg')}" if field else str(error.get('msg')))
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={'detail': '; '.join(problems)})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception('Unhandled error on %s %s', request.method, request.url.path)
    return JSONResponse(status_code=500, content={'detail': 'Internal server error'})


@app.get('/')
def root():
    return {'status': 'CounselHub API Running'}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(student_routes.router, prefix='/student')
app.include_router(counselor_routes.router, prefix='/counselor')
app.include_router(admin_routes.router, prefix='/admin')
