import logging
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.errors import PyMongoError

import auth
import courses
import students
from config import settings
from database import close_db, ensure_indexes, get_db
from errors import register_exception_handlers

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    db = get_db()
    # Serving without the database is not an option
    try:
        await db.command("ping")
    except PyMongoError as exc:
        logger.critical(f"MongoDB connection failed: {exc}")
        raise RuntimeError("Database unavailable") from exc
    logger.info(f"MongoDB connected: {settings.DATABASE_NAME}")
    await ensure_indexes(db)
    yield
    close_db()


def create_app() -> FastAPI:
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    api_router = APIRouter(prefix="/api")
    api_router.include_router(auth.router)
    api_router.include_router(courses.router)
    api_router.include_router(students.router)

    @api_router.get("/health")
    async def health():
        return {"ok": True}

    app.include_router(api_router)

    @app.get("/")
    async def root():
        return {"ok": True, "service": "eduport-api"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host=settings.HOST, port=settings.PORT)
