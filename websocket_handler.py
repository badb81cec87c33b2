"""
WebSocket handler for Twilio media-stream connections.
"""
import secrets

import structlog
from fastapi import WebSocket
from starlette.websockets import WebSocketState

from config import Settings
from logging_config import get_logger
from models import CallType
from session_manager import SessionManager

logger = get_logger(__name__)

POLICY_VIOLATION = 1008


def secret_matches(provided: str, expected: str) -> bool:
    return bool(provided) and secrets.compare_digest(str(provided), str(expected))


class WebSocketHandler:
    """Accepts Twilio stream sockets and hands each one to a call session."""

    def __init__(self, settings: Settings, session_manager: SessionManager):
        self.settings = settings
        self.session_manager = session_manager

    async def handle_media_stream(self, websocket: WebSocket, secret: str, call_type: CallType = CallType.OUTBOUND):
        """Run one call for the lifetime of the Twilio socket."""
        await websocket.accept()
        if not secret_matches(secret, self.settings.api_secret):
            logger.warning("Unauthorized: Invalid or missing API secret")
            await websocket.close(code=POLICY_VIOLATION, reason="Unauthorized: Invalid or missing API secret")
            return

        structlog.contextvars.clear_contextvars()
        handler = self.session_manager.create_session(websocket, call_type)
        try:
            await handler.run()
        except Exception:
            logger.exception("Call relay failed")
            await handler.terminate()
            if websocket.application_state == WebSocketState.CONNECTED:
                await websocket.close()
        finally:
            self.session_manager.remove_session(websocket)
