import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from jam.config import settings as default_settings
from jam.database import Database
from jam.identity import IdentityProvider
from jam.routers import auth, messages, posts, profiles, social, users

logger = logging.getLogger(__name__)


def create_app(
    settings=None,
    database: Optional[Database] = None,
    identity: Optional[IdentityProvider] = None,
) -> FastAPI:
    settings = settings or default_settings
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if database is None:
        database = Database(settings.DATABASE_URL, read_timeout=settings.READ_TIMEOUT_SECONDS)
    if identity is None:
        identity = IdentityProvider(
            settings.SUPABASE_URL,
            settings.SUPABASE_SERVICE_ROLE_KEY,
            timeout=settings.IDENTITY_TIMEOUT_SECONDS,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting %s", settings.APP_NAME)
        database.open()
        yield
        logger.info("Shutting down %s", settings.APP_NAME)
        database.close()

    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
    app.state.settings = settings
    app.state.database = database
    app.state.identity = identity

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError):
        logger.error("Database error on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": "Database error"})

    app.include_router(auth.router)
    app.include_router(profiles.router)
    app.include_router(users.router)
    app.include_router(posts.router)
    app.include_router(social.follows)
    app.include_router(social.friends)
    app.include_router(social.blocks)
    app.include_router(messages.router)

    return app
