# chat_core/main.py
import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from chat_core.api import chats, messages, sockets, users
from chat_core.config import AppConfig
from chat_core.domain.errors import ChatError, TransientError, ValidationError
from chat_core.infrastructure.connection_registry import ConnectionRegistry
from chat_core.infrastructure.database import create_database
from chat_core.infrastructure.event_dispatcher import EventDispatcher
from chat_core.infrastructure.event_handlers import EventHandlers
from chat_core.infrastructure.event_resolver import (
    HttpEventResolver,
    OpaqueEventResolver,
)
from chat_core.infrastructure.redis_client import RedisClient
from chat_core.infrastructure.security import SecurityService


class Application:
    def __init__(self, config: AppConfig):
        self.config = config
        self.logger = self.setup_logger()
        self.database = create_database(self.create_engine())
        self.redis_client = (
            RedisClient(config.REDIS_HOST, config.REDIS_PORT, self.logger)
            if config.REDIS_HOST
            else None
        )
        self.connection_registry = ConnectionRegistry(self.logger)
        self.event_dispatcher = EventDispatcher(self.logger)
        self.security_service = SecurityService(config)
        self.event_resolver = (
            HttpEventResolver(config.EVENTS_API_URL, config.EVENTS_API_TIMEOUT, self.logger)
            if config.EVENTS_API_URL
            else OpaqueEventResolver()
        )
        self.event_handlers = EventHandlers(
            self.connection_registry, self.redis_client, self.logger
        )
        self.event_handlers.register_all(self.event_dispatcher)

    def create_engine(self):
        if self.config.DATABASE_URL.endswith(":memory:"):
            # one shared connection, otherwise every session sees an empty database
            return create_async_engine(
                self.config.DATABASE_URL,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
                echo=False,
            )
        return create_async_engine(self.config.DATABASE_URL, echo=False)

    @asynccontextmanager
    async def lifespan(self, app: FastAPI):
        await self.database.connect()
        if self.redis_client is not None:
            await self.redis_client.connect()
        yield
        await self.connection_registry.close()
        await self.event_resolver.aclose()
        if self.redis_client is not None:
            await self.redis_client.disconnect()
        await self.database.disconnect()

    def setup_logger(self):
        logger = logging.getLogger("ChatCore")
        logger.setLevel(self.config.LOG_LEVEL.upper())

        if not logger.handlers:
            c_handler = logging.StreamHandler(sys.stdout)
            formatter = logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            )
            c_handler.setFormatter(formatter)
            logger.addHandler(c_handler)

        return logger

    def create_app(self) -> FastAPI:
        app = FastAPI(
            title=self.config.PROJECT_NAME,
            version=self.config.PROJECT_VERSION,
            description=self.config.PROJECT_DESCRIPTION,
            openapi_url=f"{self.config.API_V1_STR}/openapi.json",
            lifespan=self.lifespan,
        )

        app.state.config = self.config
        app.state.security_service = self.security_service
        app.state.event_dispatcher = self.event_dispatcher
        app.state.event_resolver = self.event_resolver
        app.state.connection_registry = self.connection_registry
        app.state.database = self.database
        app.state.logger = self.logger
        app.state.socket_gateway = sockets.SocketGateway(app.state)

        app.include_router(
            users.router, prefix=f"{self.config.API_V1_STR}/users", tags=["users"]
        )
        app.include_router(
            chats.router, prefix=f"{self.config.API_V1_STR}/chats", tags=["chats"]
        )
        app.include_router(
            messages.router,
            prefix=f"{self.config.API_V1_STR}/messages",
            tags=["messages"],
        )
        app.include_router(sockets.router, prefix=self.config.API_V1_STR, tags=["sockets"])

        logger = self.logger

        @app.exception_handler(ChatError)
        async def chat_error_handler(request: Request, exc: ChatError):
            return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

        @app.exception_handler(RequestValidationError)
        async def request_validation_handler(request: Request, exc: RequestValidationError):
            problems = []
            for detail in exc.errors():
                location = ".".join(str(part) for part in detail["loc"] if part != "body")
                problems.append(f"{location}: {detail['msg']}" if location else detail["msg"])
            error = ValidationError("; ".join(problems) or None)
            return JSONResponse(status_code=error.status_code, content=error.to_dict())

        @app.exception_handler(OperationalError)
        @app.exception_handler(InterfaceError)
        async def storage_error_handler(request: Request, exc: Exception):
            logger.warning(f"Storage unavailable on {request.url.path}: {exc!s}")
            error = TransientError()
            return JSONResponse(status_code=error.status_code, content=error.to_dict())

        @app.exception_handler(Exception)
        async def global_exception_handler(request: Request, exc: Exception):
            logger.exception(f"Unhandled error on {request.url.path}")
            return JSONResponse(
                status_code=500,
                content={"code": "INTERNAL_ERROR", "message": f"An unexpected error occurred: {str(exc)}"},
            )

        @app.get("/")
        async def root():
            return {"message": "Welcome to the Chat Core API"}

        return app


def create():
    config = AppConfig()
    application = Application(config)
    app = application.create_app()
    application.logger.info("Application created and configured")

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create(), host="127.0.0.1", port=8000)
