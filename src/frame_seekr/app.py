"""FastAPI application for frame-seekr."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from . import __version__
from .api import router as api_router
from .config import ensure_dirs
from .context import SeekrContext, create_context
from .server import build_mcp


def create_app(ctx: SeekrContext | None = None) -> FastAPI:
    """Create the app serving the REST API under /api and MCP at /mcp."""
    ctx = ctx or create_context()
    mcp = build_mcp(ctx)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage application lifespan."""
        ensure_dirs()
        await ctx.initialize()

        # Initialize MCP session manager (required for streamable HTTP)
        async with mcp.session_manager.run():
            yield

    app = FastAPI(
        title="Frame Seekr",
        description="Find video frames by what is said in them - subtitle search, frames, clips",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.context = ctx

    # Include REST API routes
    app.include_router(api_router, prefix="/api", tags=["API"])

    # Mount MCP server routes (streamable HTTP only, provides /mcp endpoint)
    # This also creates mcp.session_manager
    app.mount("/", mcp.streamable_http_app())

    return app


def main():
    """Run the server."""
    import uvicorn

    uvicorn.run(
        "frame_seekr.app:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        reload=False,
    )


if __name__ == "__main__":
    main()
