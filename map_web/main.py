"""FastAPI application for the map-intelligente canvas"""

from __future__ import annotations

from typing import Optional

from fastapi import FastAPI
from fastapi.responses import HTMLResponse

from map_core.auth.service import AuthService
from map_core.auth.store import AccountStore, create_store
from map_core.auth.tokens import TokenAuthority
from map_core.policy.engine import PathPolicy
from map_core.utils.config import Settings, load_settings
from map_core.utils.logger import get_logger, setup_logging

from .admin_routes import router as admin_router
from .auth_middleware import PathPolicyMiddleware
from .auth_routes import router as auth_router

logger = get_logger(__name__)

_PAGE = "<!doctype html><html><head><title>{title}</title></head><body><div id=\"root\" data-page=\"{page}\"></div></body></html>"


def _page(title: str, page: str) -> HTMLResponse:
    return HTMLResponse(_PAGE.format(title=title, page=page))


def create_app(settings: Optional[Settings] = None, store: Optional[AccountStore] = None) -> FastAPI:
    """
    Build the app: token authority, account store and path policy are created
    once and shared through app.state.
    """
    settings = settings or load_settings()
    setup_logging(
        level=settings.logging.level,
        fmt=settings.logging.format,
        file_path=settings.logging.file_path,
        max_bytes=settings.logging.max_bytes,
        backup_count=settings.logging.backup_count,
    )

    store = store or create_store(settings.store)
    tokens = TokenAuthority(settings.auth.secret, ttl_days=settings.auth.token_ttl_days)
    auth_service = AuthService(tokens, store, settings.auth)
    policy = PathPolicy(store, settings.policy)

    app = FastAPI(
        title="map-intelligente",
        description="Collaborative visual map with signed-session access control",
        version=settings.app.version,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.auth_service = auth_service
    app.state.policy = policy

    app.add_middleware(
        PathPolicyMiddleware,
        auth=auth_service,
        policy=policy,
        cookie_name=settings.auth.cookie_name,
    )
    app.include_router(auth_router)
    app.include_router(admin_router)

    @app.get("/", response_class=HTMLResponse)
    async def canvas_page() -> HTMLResponse:
        return _page("Map", "canvas")

    @app.get("/admin", response_class=HTMLResponse)
    async def admin_page() -> HTMLResponse:
        return _page("Admin", "admin")

    @app.get("/login", response_class=HTMLResponse)
    async def login_page() -> HTMLResponse:
        return _page("Login", "login")

    @app.get("/signup", response_class=HTMLResponse)
    async def signup_page() -> HTMLResponse:
        return _page("Sign up", "signup")

    if not tokens.configured:
        logger.warning("No session secret configured; logins will fail until MAP_AUTH_SECRET is set")
    logger.info("App created", environment=settings.app.environment, store=settings.store.backend)
    return app
