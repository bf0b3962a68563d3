# ruff: noqa: I001

import logging
import os
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from tetherdesk import models
from tetherdesk.api.router import api_router
from tetherdesk.config import settings
from tetherdesk.core.observability import (
    global_exception_handler,
    request_logging_middleware,
    uptime_seconds,
    utc_now_iso,
)
from tetherdesk.database import POOL_CONFIG, SessionLocal, engine
from tetherdesk.models.domain import CryptoNetwork, PaymentMethodType
from tetherdesk.core.security import hash_password
from tetherdesk.services.scheduler import runner as expiry_runner

api_prefix = settings.api_prefix

logger = logging.getLogger("tetherdesk")
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")

app = FastAPI(
    title=settings.app_name,
    docs_url="/docs" if settings.enable_docs else None,
    redoc_url="/redoc" if settings.enable_docs else None,
    openapi_url=(f"{api_prefix}/openapi.json" if api_prefix else "/openapi.json")
    if settings.enable_docs
    else None,
)

# Expose logger for middleware without creating circular imports.
app.state.logger = logger

app.add_exception_handler(Exception, global_exception_handler)

# Request-level logging + request correlation id.
app.middleware("http")(request_logging_middleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix=api_prefix)

# Seeded into an empty rate table outside prod: [min, max, buy, sell].
DEFAULT_RATE_BRACKETS = (
    (0.0, 50.0, 86.0, 85.5),
    (50.0, 100.0, 85.5, 85.0),
    (100.0, None, 84.0, 83.5),
)

DEFAULT_DEPOSIT_WALLETS = (
    (CryptoNetwork.erc20, "USDT ERC-20 deposit", "0xa3674b3d96bbd967b2557455a1f85459ad391f1e"),
    (CryptoNetwork.trc20, "USDT TRC-20 deposit", "THmtZz3hpiRLrZ1dbb7vBxJj5D5EfVaGov"),
)


def _run_migrations_if_configured() -> None:
    if not settings.run_migrations_on_start:
        return

    # Avoid running migrations during tests.
    if (settings.environment or "").lower() == "test":
        return

    # Import lazily to keep import graph light for non-migration startups.
    from alembic import command
    from alembic.config import Config
    from sqlalchemy import text

    backend_root = Path(__file__).resolve().parents[1]
    alembic_cfg = Config(str(backend_root / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(backend_root / "alembic"))

    try:
        with engine.connect() as connection:
            dialect = str(connection.dialect.name or "").lower()

            # Best-effort: avoid concurrent migrations across multiple instances.
            lock_acquired = True
            if dialect == "postgresql":
                lock_acquired = bool(
                    connection.execute(
                        text("select pg_try_advisory_lock(:k)"), {"k": 70181001}
                    ).scalar()
                )
            if not lock_acquired:
                logger.info("migrations_skipped_lock_not_acquired")
                return

            try:
                alembic_cfg.attributes["connection"] = connection
                command.upgrade(alembic_cfg, "head")
                logger.info("migrations_applied")
            finally:
                if dialect == "postgresql":
                    connection.execute(text("select pg_advisory_unlock(:k)"), {"k": 70181001})
                    connection.commit()
    except Exception as e:
        # Don't crash the API if migrations fail; endpoints that need the DB will answer 503.
        logger.error("migrations_failed error=%s", str(e))


def seed_dev_data() -> None:
    env = str(settings.environment or "dev").lower()
    if env in {"prod", "production", "test"}:
        return

    db = SessionLocal()
    try:
        admin_email = settings.dev_admin_email.strip().lower()
        if not db.query(models.Profile).filter(models.Profile.email == admin_email).first():
            db.add(
                models.Profile(
                    email=admin_email,
                    full_name="Desk Admin",
                    hashed_password=hash_password(settings.dev_admin_password),
                    is_admin=True,
                    is_verified=True,
                    active=True,
                )
            )

        if not db.query(models.RateBracket.id).first():
            for qmin, qmax, buy, sell in DEFAULT_RATE_BRACKETS:
                db.add(
                    models.RateBracket(
                        quantity_min=qmin, quantity_max=qmax, buy_rate=buy, sell_rate=sell
                    )
                )

        if not db.query(models.PaymentMethod.id).first():
            db.add(
                models.PaymentMethod(
                    type=PaymentMethodType.upi,
                    name=settings.upi_payee_name,
                    identifier=settings.upi_payee_vpa,
                )
            )
            for network, name, address in DEFAULT_DEPOSIT_WALLETS:
                db.add(
                    models.PaymentMethod(
                        type=PaymentMethodType.crypto,
                        name=name,
                        identifier=address,
                        network=network,
                    )
                )

        db.commit()
    except SQLAlchemyError as e:
        # Database not ready yet (e.g., missing tables) - don't block startup.
        logger.warning("dev_seed_failed", extra={"error": str(e)})
        db.rollback()
    finally:
        db.close()


@app.on_event("startup")
def _startup():
    logger.info(
        "runtime_config",
        extra={
            "pid": os.getpid(),
            "web_concurrency": os.getenv("WEB_CONCURRENCY"),
            "db_pool": POOL_CONFIG,
            "payment_window_minutes": settings.payment_window_minutes,
        },
    )
    _run_migrations_if_configured()
    seed_dev_data()
    # Avoid running background threads in test context.
    if (settings.environment or "").lower() == "test":
        return
    if not settings.expiry_sweep_enabled:
        return
    expiry_runner.start()


@app.on_event("shutdown")
def _shutdown():
    expiry_runner.stop()
    logger.info("expiry_sweep_stopped")


@app.get("/", tags=["meta"])
def root():
    docs_path = (
        (f"{api_prefix}/openapi.json" if api_prefix else "/openapi.json")
        if settings.enable_docs
        else None
    )
    return {"message": settings.app_name, "docs": docs_path}


@app.get("/health", tags=["meta"])
@app.get("/healthz", tags=["meta"])
def healthcheck():
    """Liveness probe. Keep payload stable for monitoring systems."""

    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.environment,
        "time": utc_now_iso(),
        "uptime_seconds": round(uptime_seconds(), 2),
        "version": settings.build_version,
    }
