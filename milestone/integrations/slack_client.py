from __future__ import annotations

from typing import Dict, Any, List, Optional

from slack_sdk.web.async_client import AsyncWebClient
from slack_sdk.errors import SlackApiError

from .base import (
    AuthenticationError,
    MessageTransport,
    TransportConfig,
    TransportError,
    TransportStatus,
)


class SlackConfig(TransportConfig):
    """Slack transport configuration."""

    name: str = "slack"
    bot_token: Optional[str] = None


class SlackError(TransportError):
    """Slack-specific error."""
    pass


class SlackClient(MessageTransport[SlackConfig]):
    """
    Slack Web API transport for workflow notifications.

    Connects (and verifies the token with ``auth.test``) on the first message.
    """

    def __init__(self, config: SlackConfig) -> None:
        super().__init__(config)
        self._client: Optional[AsyncWebClient] = None

    async def connect(self) -> None:
        self._logger.info("Connecting to Slack")

        if not self.config.bot_token:
            raise AuthenticationError("No Slack bot token configured", self.config.name)

        self._client = AsyncWebClient(token=self.config.bot_token, timeout=self.config.timeout)

        if not await self.test_connection():
            self.status = TransportStatus.ERROR
            self._client = None
            raise AuthenticationError("Slack rejected the bot token", self.config.name)

        self.status = TransportStatus.CONNECTED
        self._logger.info("Connected to Slack")

    async def disconnect(self) -> None:
        # Slack SDK doesn't require explicit cleanup
        self._client = None
        self.status = TransportStatus.DISCONNECTED
        self._logger.info("Disconnected from Slack")

    async def test_connection(self) -> bool:
        if not self._client:
            return False

        try:
            response = await self._client.auth_test()
        except SlackApiError as e:
            self._logger.error("Slack auth test failed: %s", e.response.get("error"))
            return False

        if response["ok"]:
            self._logger.debug("Slack auth ok, bot: %s", response.get("user"))
            return True
        self._logger.error("Slack auth test failed: %s", response.get("error"))
        return False

    async def post_message(
        self,
        channel: str,
        text: str,
        blocks: Optional[List[Dict[str, Any]]] = None
    ) -> str:
        """Post to a channel, returning the message timestamp."""
        if not self._client:
            await self.connect()

        try:
            response = await self._client.chat_postMessage(
                channel=channel,
                text=text,
                blocks=blocks
            )
        except SlackApiError as e:
            error = e.response.get("error", str(e))
            self.metrics.record_failure(error)
            raise SlackError(
                f"Failed to post message to {channel}: {error}",
                self.config.name,
                e.response.status_code,
                e.response.data
            ) from e

        self.metrics.record_sent()
        return response["ts"]
