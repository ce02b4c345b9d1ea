from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from webcare.api.api import api_router
from webcare.core.config import settings
from webcare.db.base import Base
from webcare.db.session import engine

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


# Self-healing schema: columns added after the first release
def _ensure_schema_up_to_date():
    from sqlalchemy import inspect, text

    logger.info("Checking database schema...")
    inspector = inspect(engine)
    existing_tables = inspector.get_table_names()

    required_columns = {
        "websites": [
            ("connection_status", "VARCHAR DEFAULT 'unknown' NOT NULL"),
            ("last_checked_at", "DATETIME"),
            ("wp_data", "TEXT"),
            ("last_update", "DATETIME"),
        ],
        "update_logs": [
            ("duration_ms", "INTEGER"),
            ("automated_update", "BOOLEAN DEFAULT 0"),
        ],
    }

    for table, columns in required_columns.items():
        if table not in existing_tables:
            continue
        present = {c["name"] for c in inspector.get_columns(table)}
        missing = [c for c in columns if c[0] not in present]
        if not missing:
            continue
        logger.info(f"Missing {len(missing)} columns in '{table}'. Repairing...")
        with engine.connect() as conn:
            for col_name, col_type in missing:
                conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {col_name} {col_type}"))
                logger.info(f"Added column {table}.{col_name}")
            conn.commit()

    logger.info("Database schema is up to date.")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    Base.metadata.create_all(bind=engine)
    _ensure_schema_up_to_date()
    yield


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Trust proxy headers (X-Forwarded-Proto, X-Forwarded-For) from reverse proxies like HAProxy/nginx
app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=["*"])

app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
