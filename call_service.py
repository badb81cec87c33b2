"""
Twilio call-control service: recording, hang-up and outbound call placement.
"""
import asyncio
from typing import Optional
from urllib.parse import quote

from twilio.base.exceptions import TwilioException
from twilio.rest import Client

from config import Settings
from logging_config import get_logger

logger = get_logger(__name__)


class TwilioCallService:
    """Service for handling Twilio call operations."""

    def __init__(self, settings: Settings, client: Optional[Client] = None):
        self.settings = settings
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = Client(self.settings.twilio_account_sid, self.settings.twilio_auth_token)
        return self._client

    async def start_recording(self, call_sid: str) -> None:
        """Start recording the call. Failures are logged, not raised."""
        if not self.settings.record_calls or not call_sid:
            return
        try:
            await asyncio.to_thread(lambda: self.client.calls(call_sid).recordings.create())
            logger.info("Recording started", call_sid=call_sid)
        except (TwilioException, OSError) as e:
            logger.error("Failed to start recording", call_sid=call_sid, error=str(e))

    async def end_call(self, call_sid: str) -> None:
        """Hang up the call. Failures are logged, not raised."""
        if not call_sid:
            return
        try:
            await asyncio.to_thread(lambda: self.client.calls(call_sid).update(status="completed"))
            logger.info("Call ended", call_sid=call_sid)
        except (TwilioException, OSError) as e:
            logger.error("Failed to end call", call_sid=call_sid, error=str(e))

    async def make_call(self, callback_url: str, to_number: str, call_context: str = "") -> str:
        """Place an outbound call that streams into this server. Returns the call SID."""
        url = (
            f"{callback_url.rstrip('/')}/call/outgoing"
            f"?apiSecret={quote(self.settings.api_secret)}"
            f"&callType=outgoing&callContext={quote(call_context)}"
        )
        try:
            call = await asyncio.to_thread(
                lambda: self.client.calls.create(to=to_number, from_=self.settings.twilio_number, url=url)
            )
        except TwilioException as e:
            logger.error("Error making call", to_number=to_number, error=str(e))
            raise
        logger.info("Outbound call placed", call_sid=call.sid, to_number=to_number)
        return call.sid
