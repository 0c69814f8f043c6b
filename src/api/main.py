import random
from contextlib import asynccontextmanager

import uvicorn
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from src import config
from src.api.dependencies import get_auth_service
from src.api.errors import register_exception_handlers
from src.api.logging_config import LOG_FILE
from src.api.routers import auth, guest, maintenance, users
from src.comecome_app.models.database import init_database
from src.comecome_app.services.auth_service import AuthService

# Share of health checks that also run the maintenance sweep
CLEANUP_PROBABILITY = 0.01


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize services on startup"""
    logger.info("=" * 60)
    logger.info(f"Starting {config.APP_NAME} API...")
    logger.info(f"Log file: {LOG_FILE}")
    logger.info("=" * 60)

    try:
        init_database()
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        logger.exception("Database initialization traceback:")

    if config.AuthSettings.from_config().unlock_code == config.DEFAULT_UNLOCK_CODE:
        logger.warning("UNLOCK_CODE is still the install default; change it in env.properties")

    logger.info("Server ready to accept requests")

    yield

    logger.info(f"Shutting down {config.APP_NAME} API...")


logger.debug(f"Loading main.py from {__file__}")

app = FastAPI(
    title=f"{config.APP_NAME} API",
    description="Authentication API for the ComeCome family meal tracker",
    version=config.APP_VERSION,
    lifespan=lifespan,
)

register_exception_handlers(app)


@app.get("/api/health")
def health(auth: AuthService = Depends(get_auth_service)):
    """Health check endpoint. Occasionally runs the maintenance sweep."""
    if random.random() < CLEANUP_PROBABILITY:
        try:
            auth.cleanup()
        except Exception as e:
            auth.db.rollback()
            logger.error(f"Probabilistic cleanup failed: {e}")
    return {"status": "online", "app": config.APP_NAME, "version": config.APP_VERSION}


app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(users.router, prefix="/api/users", tags=["users"])
app.include_router(guest.router, prefix="/api/guest", tags=["guest"])
app.include_router(maintenance.router, prefix="/api/maintenance", tags=["maintenance"])

origins = [o.strip() for o in config.get("ALLOWED_ORIGINS", "").split(",") if o.strip()]
if not origins:
    logger.warning("ALLOWED_ORIGINS is empty; falling back to development defaults")
    origins = [
        f"http://localhost:{config.BACKEND_PORT}",
        f"http://127.0.0.1:{config.BACKEND_PORT}",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if __name__ == "__main__":
    uvicorn.run("src.api.main:app", host=config.BACKEND_HOST, port=config.BACKEND_PORT, reload=True)
