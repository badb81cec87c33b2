"""
FastAPI routes for the Twilio webhook and media-stream socket.
"""
from typing import Optional

from fastapi import FastAPI, Request, WebSocket
from fastapi.responses import HTMLResponse, JSONResponse
from twilio.twiml.voice_response import Connect, VoiceResponse

from config import Settings
from logging_config import get_logger
from session_manager import SessionManager
from websocket_handler import WebSocketHandler, secret_matches

logger = get_logger(__name__)


class Routes:
    """Contains all FastAPI route handlers."""

    def __init__(self, app: FastAPI, settings: Settings, session_manager: SessionManager):
        self.app = app
        self.settings = settings
        self.session_manager = session_manager
        self.websocket_handler = WebSocketHandler(settings, session_manager)
        self._setup_routes()

    def _setup_routes(self):
        """Setup all route handlers."""
        self.app.get("/", response_class=JSONResponse)(self.index_page)
        self.app.get("/healthz", response_class=JSONResponse)(self.health_check)
        self.app.post("/call/outgoing")(self.handle_outgoing_call)
        self.app.websocket("/call/connection-outgoing/{secret}")(self.handle_outgoing_connection)

    async def index_page(self):
        return {"message": "Call relay server is running."}

    async def health_check(self):
        return {"status": "ok", "active_sessions": self.session_manager.active_session_count}

    def _stream_url(self, request: Request, secret: str) -> str:
        if self.settings.callback_url:
            base = self.settings.callback_url.rstrip("/")
            base = base.replace("https://", "wss://").replace("http://", "ws://")
        else:
            base = f"wss://{request.headers.get('host') or request.url.hostname}"
        return f"{base}/call/connection-outgoing/{secret}"

    async def handle_outgoing_call(self, request: Request, apiSecret: Optional[str] = None, callContext: Optional[str] = None):
        """Answer Twilio's outgoing-call webhook with TwiML that opens the media stream."""
        if not secret_matches(apiSecret, self.settings.api_secret):
            logger.warning("Rejected outgoing call webhook with a bad API secret")
            return JSONResponse(status_code=401, content={"error": "Unauthorized: Invalid or missing API secret"})

        form = await request.form()
        from_number = form.get("From", "")
        to_number = form.get("To", "")

        response = VoiceResponse()
        connect = Connect()
        stream = connect.stream(url=self._stream_url(request, apiSecret))
        stream.parameter(name="fromNumber", value=from_number)
        stream.parameter(name="toNumber", value=to_number)
        stream.parameter(name="callContext", value=callContext or "")
        response.append(connect)

        logger.info("Connecting outgoing call to media stream", from_number=from_number, to_number=to_number)
        return HTMLResponse(content=str(response), media_type="application/xml")

    async def handle_outgoing_connection(self, websocket: WebSocket, secret: str):
        await self.websocket_handler.handle_media_stream(websocket, secret)
