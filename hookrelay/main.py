from contextlib import asynccontextmanager
import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from hookrelay.api.v1.endpoints.health import router as health_router
from hookrelay.api.v1.endpoints.incoming_routes import router as incoming_router
from hookrelay.core.config import settings
from hookrelay.db.base import Base
from hookrelay.db.session import SessionLocal, engine
from hookrelay.services.trigger_handler import session_trigger_handler
from hookrelay.services.triggers import build_default_registry

_logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)

    registry = build_default_registry()
    registry.bind(session_trigger_handler(registry, SessionLocal))
    app.state.trigger_registry = registry
    _logger.info(f"{settings.app_name} {settings.app_version} started with {registry.count()} triggers")

    yield

    registry.unbind()


app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)

origins = [
    "http://localhost",
    "http://localhost:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router, tags=["health"])
app.include_router(incoming_router, prefix=settings.incoming_prefix, tags=["incoming"])

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
