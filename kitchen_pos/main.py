import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from kitchen_pos.core.config import CORS_ORIGINS, DATABASE_URL, SUPER_ADMIN_EMAIL, SUPER_ADMIN_PASSWORD
from kitchen_pos.core.database import Base, SessionLocal, engine
from kitchen_pos.core.errors import IdentityAccountExistsError, install_error_handlers
from kitchen_pos.core.logging_setup import configure_logging
from kitchen_pos.core.startup_checks import ensure_migrations_applied, validate_database_environment
from kitchen_pos.middleware.observability import ObservabilityMiddleware
import kitchen_pos.models  # noqa: F401  registers every table on Base.metadata

from kitchen_pos.models.user import User
from kitchen_pos.services.access_control import SUPER_ADMIN
from kitchen_pos.services.identity import get_identity_provider
from kitchen_pos.routers.auth import router as auth_router
from kitchen_pos.routers.business_hours import router as business_hours_router
from kitchen_pos.routers.customers import router as customers_router
from kitchen_pos.routers.internal_metrics import router as internal_metrics_router
from kitchen_pos.routers.kitchen_owners import router as kitchen_owners_router
from kitchen_pos.routers.menu import router as menu_router
from kitchen_pos.routers.orders import router as orders_router
from kitchen_pos.routers.payments import router as payments_router
from kitchen_pos.routers.restaurants import router as restaurants_router
from kitchen_pos.routers.revenue_centers import router as revenue_centers_router
from kitchen_pos.routers.staff import router as staff_router

configure_logging()

logger = logging.getLogger(__name__)
BOOTSTRAP_PREFIX = "[SUPER_ADMIN_BOOTSTRAP]"
REPO_ROOT = Path(__file__).resolve().parents[1]
ALEMBIC_CONFIG_PATH = Path(
    os.getenv("ALEMBIC_CONFIG", str(REPO_ROOT / "alembic.ini"))
)


@asynccontextmanager
async def lifespan(_: FastAPI):
    _startup_tasks()
    yield


app = FastAPI(
    title="Kitchen POS API",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(ObservabilityMiddleware)
install_error_handlers(app)


def _bootstrap_super_admin() -> None:
    if not SUPER_ADMIN_EMAIL or not SUPER_ADMIN_PASSWORD:
        logger.info("%s skipped: configure SUPER_ADMIN_EMAIL and SUPER_ADMIN_PASSWORD", BOOTSTRAP_PREFIX)
        return

    db = SessionLocal()
    try:
        identity = get_identity_provider(db)
        user = db.query(User).filter(User.email == SUPER_ADMIN_EMAIL).first()
        if user is not None and user.auth_user_id and identity.get_account(user.auth_user_id) is not None:
            logger.info("%s exists id=%s email=%s", BOOTSTRAP_PREFIX, user.id, user.email)
            return

        try:
            account = identity.create_account(SUPER_ADMIN_EMAIL, SUPER_ADMIN_PASSWORD)
        except IdentityAccountExistsError:
            account = identity.find_account_by_email(SUPER_ADMIN_EMAIL)
            if account is None:
                raise RuntimeError(f"Identity account for {SUPER_ADMIN_EMAIL} not found")

        if user is None:
            user = User(email=SUPER_ADMIN_EMAIL, full_name="Super Admin", role=SUPER_ADMIN, is_active=True)
            db.add(user)
        user.auth_user_id = account.id
        db.commit()
        db.refresh(user)
        logger.info("%s created id=%s email=%s", BOOTSTRAP_PREFIX, user.id, user.email)
    except Exception:
        db.rollback()
        logger.exception("%s ERROR bootstrap failed", BOOTSTRAP_PREFIX)
        raise
    finally:
        db.close()


def _startup_tasks() -> None:
    try:
        validate_database_environment()
        if DATABASE_URL.startswith("sqlite"):
            Base.metadata.create_all(bind=engine)
        else:
            ensure_migrations_applied(engine=engine, alembic_config_path=ALEMBIC_CONFIG_PATH)
        _bootstrap_super_admin()
    except Exception:
        logger.exception("[STARTUP] ERROR startup failed")
        raise


# Routers
app.include_router(auth_router)
app.include_router(kitchen_owners_router)
app.include_router(restaurants_router)
app.include_router(revenue_centers_router)
app.include_router(business_hours_router)
app.include_router(staff_router)
app.include_router(menu_router)
app.include_router(customers_router)
app.include_router(orders_router)
app.include_router(payments_router)
app.include_router(internal_metrics_router)


@app.get("/")
def root():
    return {"status": "ok"}


@app.get("/health")
def health():
    return {"status": "ok"}
