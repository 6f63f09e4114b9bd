"""
FastAPI application factory.

Assembles the app, registers all routers, builds the authorization
policy registry (once; it is frozen before the first request), and
wires up lifecycle events.  Database schema is managed by Alembic,
NOT create_all.
"""

import logging

from fastapi import FastAPI

from app.controllers.permission_controller import router as permission_router
from app.core.cache import build_cache
from app.core.config import settings
from app.core.database import engine
from app.models import Base  # noqa: F401  ensures all models are registered
from app.rbac.dependencies import build_policy_registry

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # ── Register routers ─────────────────────────────────────────────
    app.include_router(permission_router)

    # ── Authorization policies & permission cache ────────────────────
    # Registration happens after every router is included so the pass
    # sees all declared permission markers.
    app.state.policy_registry = build_policy_registry(app)
    app.state.permission_cache_backend = build_cache(settings)

    # ── Startup / Shutdown ───────────────────────────────────────────
    @app.on_event("startup")
    async def on_startup() -> None:
        """Seed permissions & roles on startup (idempotent).

        NOTE: Database schema is managed by Alembic migrations.
        Run `alembic upgrade head` before starting the app.
        """
        if not settings.SEED_ON_STARTUP:
            return

        from sqlalchemy.ext.asyncio import async_sessionmaker

        from app.rbac.permission_cache import PermissionCacheService
        from app.rbac.permission_seed import seed
        from app.rbac.permission_store import SqlAlchemyPermissionStore

        session_factory = async_sessionmaker(engine, expire_on_commit=False)
        async with session_factory() as session:
            changed_roles = await seed(session)
            permission_cache = PermissionCacheService(
                SqlAlchemyPermissionStore(session),
                app.state.permission_cache_backend,
                settings.PERMISSION_CACHE_TTL_SECONDS,
            )
            await permission_cache.invalidate_all_permission_cache()
            for role_id in changed_roles:
                await permission_cache.invalidate_role_cache(role_id)
        logger.info("Permission seed complete.")

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        await app.state.permission_cache_backend.close()
        await engine.dispose()
        logger.info("Permission cache closed, database engine disposed.")

    # ── Health check ─────────────────────────────────────────────────
    @app.get("/health", tags=["Health"])
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
