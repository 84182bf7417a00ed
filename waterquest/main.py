"""WaterQuest MCP Server - Entry point.

Runs the MCP server with HTTP transport for Cloud Run deployment.
Uses Starlette with the MCP HTTP app for maximum compatibility.
"""

import contextlib
import logging
import secrets

import uvicorn
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route, Mount

from .shell.config import ServerConfig
from .shell.mcp_server import mcp, current_user_id, get_engine, get_firestore_client, register_reminder_loop
from .shell.reminder_loop import ReminderLoop


config = ServerConfig.from_env()

logging.basicConfig(
    level=getattr(logging, config.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ==================== Route Handlers ====================


async def health_check(request: Request) -> JSONResponse:
    """Health check endpoint for Cloud Run."""
    return JSONResponse({"status": "healthy", "service": "waterquest-mcp"})


# ==================== Auth Middleware ====================


class AuthMiddleware(BaseHTTPMiddleware):
    """Authenticate MCP requests using the configured bearer token."""

    def __init__(self, app, server_config: ServerConfig) -> None:
        super().__init__(app)
        self.server_config = server_config

    async def dispatch(self, request: Request, call_next):
        # Skip auth for non-MCP routes
        if not request.url.path.startswith("/mcp"):
            return await call_next(request)

        expected = self.server_config.api_token
        if expected is not None:
            auth_header = request.headers.get("Authorization", "")
            token = auth_header.removeprefix("Bearer ") if auth_header.startswith("Bearer ") else ""
            if not secrets.compare_digest(token.encode(), expected.encode()):
                logger.warning("Rejected MCP request with missing or invalid token")
                return JSONResponse({"error": "Unauthorized"}, status_code=401)

        current_user_id.set(self.server_config.user_id)
        return await call_next(request)


# ==================== Live Reminders ====================


def build_reminder_loop(server_config: ServerConfig) -> ReminderLoop:
    """Create the live loop for the configured user, delivering via Firestore."""
    user_id = server_config.user_id
    db = get_firestore_client()
    loop = ReminderLoop(
        engine_provider=lambda: get_engine(user_id),
        deliver=lambda request: db.deliver(user_id, request),
        generator_timeout=server_config.generator_timeout,
    )
    register_reminder_loop(user_id, loop)
    return loop


# ==================== Create ASGI App ====================


def create_app(server_config: ServerConfig | None = None) -> Starlette:
    """Create the Starlette application with MCP at root.

    The MCP streamable_http_app() handles /mcp/ internally when mounted at root.
    Its lifespan runs first; the live reminder loop runs inside it when enabled.
    """
    server_config = server_config or config
    mcp_app = mcp.streamable_http_app()

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette):
        async with mcp_app.router.lifespan_context(app):
            loop = None
            if server_config.live_reminders:
                loop = build_reminder_loop(server_config)
                loop.start()
            try:
                yield
            finally:
                if loop is not None:
                    await loop.stop()

    routes = [
        Route("/health", health_check, methods=["GET"]),
        # Mount MCP app at root - it handles /mcp/ path internally
        Mount("/", app=mcp_app),
    ]

    return Starlette(
        routes=routes,
        middleware=[
            Middleware(
                CORSMiddleware,
                allow_origins=["http://localhost:5173"],
                allow_methods=["GET", "POST", "OPTIONS"],
                allow_headers=["*"],
            ),
            Middleware(AuthMiddleware, server_config=server_config),
        ],
        lifespan=lifespan,
    )


# Create app at module level for Cloud Run
app = create_app()


def main() -> None:
    """Run the server."""
    logger.info("Starting WaterQuest MCP server on %s:%d", config.host, config.port)

    uvicorn.run(app, host=config.host, port=config.port)


if __name__ == "__main__":
    main()
