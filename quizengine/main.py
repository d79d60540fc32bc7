from contextlib import asynccontextmanager
from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from quizengine.core.config import settings
from quizengine.core.logging import get_logger, setup_logging
from quizengine.db.session import init_db
from quizengine.utils.error_handler import setup_exception_handlers
from quizengine.api.v1 import quizzes

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    setup_logging()
    logger.info(f"Starting Quiz Engine API ({settings.ENVIRONMENT})")

    try:
        await init_db()
        logger.info("Database tables created successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise

    yield
    logger.info("Shutting down Quiz Engine API")


app = FastAPI(
    lifespan=lifespan,
    title="Quiz Engine API",
    description="Quiz authoring, attempts and grading for content nodes",
    version="0.1.0",
    docs_url="/",
    redoc_url="/redoc",
)

setup_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

#api routes
app.include_router(quizzes.router, prefix="/api/v1/quizzes", tags=["Quizzes"])


@app.get("/health")
async def health_check():
    return {"status": "ok"}
