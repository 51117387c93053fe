from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from DataSync_app.config import settings
from DataSync_app.db.session import init_db, dispose_db
from DataSync_app.api.rest import rest_router
from DataSync_app.api.users import users_router
from DataSync_app.api.websocket import ws_router
from DataSync_app.realtime.hub import RealtimeHub
from logging.config import dictConfig

dictConfig({
    "version": 1,
    "disable_existing_loggers": False,     # keep uvicorn's loggers
    "formatters": {
        "plain": {"format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "plain"},
    },
    "loggers": {
        "": {"handlers": ["console"], "level": settings.log_level.upper()},
        "uvicorn": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "uvicorn.error": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "uvicorn.access": {"handlers": ["console"], "level": "INFO", "propagate": False},
    },
})

def create_app() -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await init_db()
        app.state.hub.start()
        yield
        await app.state.hub.stop()
        await dispose_db()

    app = FastAPI(title="DataSync API", lifespan=lifespan)
    app.state.hub = RealtimeHub(
        liveness_interval=settings.liveness_interval_seconds,
        outbox_size=settings.outbox_size,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # routers
    app.include_router(users_router)  # /api/register, /api/login, /api/logout, /api/user
    app.include_router(rest_router)   # /api/tables..., /api/columns...
    app.include_router(ws_router)     # realtime table updates

    @app.exception_handler(RequestValidationError)
    async def invalid_payload(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": f"invalid payload: {exc.errors()}"},
        )

    return app

app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("DataSync_app.main:app",
                host=settings.http_host,
                port=settings.http_port,
                reload=settings.env == "development")

#uvicorn DataSync_app.main:app --host 0.0.0.0 --port 8080
