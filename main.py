"""
Entry point: builds the FastAPI app and runs it with uvicorn.
"""
import argparse
import asyncio
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from call_service import TwilioCallService
from config import Settings, load_settings
from errors import ConfigurationError
from logging_config import configure_logging, get_logger
from routes import Routes
from session_manager import SessionManager

logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None, session_manager: Optional[SessionManager] = None) -> FastAPI:
    """Build the app. Settings are loaded from the environment unless given."""
    settings = settings or load_settings()
    configure_logging(settings.log_level, settings.log_format)
    session_manager = session_manager or SessionManager(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Call relay starting",
            mode=settings.voice_processing_mode,
            callback_url=settings.callback_url or None,
        )
        yield
        await session_manager.close_all()
        logger.info("Call relay stopped")

    app = FastAPI(title="Call Relay", lifespan=lifespan)
    app.state.settings = settings
    app.state.session_manager = session_manager
    Routes(app, settings, session_manager)
    return app


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Twilio <-> realtime AI call relay")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("serve", help="Run the webhook and media-stream server (default)")
    call = sub.add_parser("call", help="Place an outbound call through the running server")
    call.add_argument("to_number", help="E.164 number to call")
    call.add_argument("call_context", nargs="?", default="", help="Task for the assistant on this call")
    return parser.parse_args(argv)


def main(argv=None):
    args = _parse_args(argv)
    settings = load_settings()

    if args.command == "call":
        configure_logging(settings.log_level, settings.log_format)
        if not settings.callback_url:
            raise ConfigurationError("TWILIO_CALLBACK_URL must be set to place a call")
        if not os.getenv("API_SECRET"):
            raise ConfigurationError("API_SECRET must be set (and shared with the server) to place a call")
        call_sid = asyncio.run(
            TwilioCallService(settings).make_call(settings.callback_url, args.to_number, args.call_context)
        )
        print(call_sid)
        return

    import uvicorn

    uvicorn.run("main:create_app", factory=True, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
