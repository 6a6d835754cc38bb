"""
Text command HTTP API for the Web-Sight browser agent.

Commands posted here go through the same safety gate and agent loop as
spoken commands; replies come back as text.
"""

import argparse
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from . import __version__
from .config import BROWSER_START_URL, HISTORY_PATH
from .logging_setup import setup_logging
from .modes.web_sight import WebSightController
from .page.browser import PlaywrightPageDriver
from .runtime import build_web_sight_controller


# Request/Response models
class CommandRequest(BaseModel):
    text: str


class CommandResponse(BaseModel):
    status: str
    response: str
    actions: List[str] = []
    pending_confirmation: bool = False


class HistoryItem(BaseModel):
    role: str
    type: str
    text: str
    timestamp: float


class HistoryResponse(BaseModel):
    entries: List[HistoryItem]


def create_app(controller: Optional[WebSightController] = None, headless: bool = True, start_url: str = BROWSER_START_URL) -> FastAPI:
    """Build the API; without a controller one is created on startup."""
    logger = logging.getLogger("AccessAI.Server")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        driver = None
        if app.state.controller is None:
            driver = PlaywrightPageDriver(headless=headless, start_url=start_url, logger=logger)
            await driver.setup()
            app.state.controller = build_web_sight_controller(driver, history_path=HISTORY_PATH, logger=logger)
        try:
            yield
        finally:
            if driver is not None:
                await driver.close()

    app = FastAPI(
        title="AccessAI Text API",
        description="Text commands for the AccessAI browser agent",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.controller = controller

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def get_controller() -> WebSightController:
        if app.state.controller is None:
            raise HTTPException(status_code=503, detail="Agent is not ready")
        return app.state.controller

    @app.get("/")
    async def root():
        """API info endpoint."""
        return {
            "name": "AccessAI Text API",
            "version": __version__,
            "status": "running",
            "mode": "web-sight",
        }

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy"}

    @app.post("/command", response_model=CommandResponse)
    async def command(request: CommandRequest):
        """Run one command against the browser."""
        controller = get_controller()
        logger.info(f"Processing command: {request.text[:100]}")
        try:
            outcome = await controller.handle_command(request.text)
        except Exception as e:
            logger.error(f"Error in /command endpoint: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))
        return CommandResponse(
            status=outcome.status,
            response=outcome.response,
            actions=outcome.actions,
            pending_confirmation=outcome.pending_confirmation,
        )

    @app.get("/history", response_model=HistoryResponse)
    async def history():
        """Recent commands and replies."""
        return HistoryResponse(entries=get_controller().loop.history.to_list())

    @app.delete("/history")
    async def clear_history():
        """Forget all commands and replies."""
        get_controller().loop.history.clear()
        return {"status": "cleared"}

    return app


def main():
    """Main entry point for the text API server."""
    parser = argparse.ArgumentParser(description="AccessAI Text API Server")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to listen on")
    parser.add_argument("--url", default=BROWSER_START_URL, help="Page to open on startup")
    parser.add_argument("--show-browser", action="store_true", help="Run the browser with a visible window")

    args = parser.parse_args()

    logger = setup_logging()
    logger.info("=" * 60)
    logger.info("AccessAI Text API Server")
    logger.info("=" * 60)
    logger.info(f"Host: {args.host}")
    logger.info(f"Port: {args.port}")
    logger.info(f"Start URL: {args.url}")

    app = create_app(headless=not args.show_browser, start_url=args.url)
    uvicorn.run(app, host=args.host, port=args.port, log_level="info")


if __name__ == "__main__":
    main()
