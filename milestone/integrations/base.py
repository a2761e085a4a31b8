from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional, TypeVar, Generic
from datetime import datetime, timezone
from enum import Enum
import logging

from pydantic import BaseModel, ConfigDict, Field

ConfigType = TypeVar('ConfigType', bound='TransportConfig')


class TransportStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    ERROR = "error"


class TransportConfig(BaseModel):
    """Settings shared by every outbound message transport."""

    model_config = ConfigDict(extra="forbid")

    name: str
    timeout: int = Field(default=30, ge=1, le=300)


class DeliveryMetrics(BaseModel):
    """Per-process delivery counters, reported alongside NotificationLog rows."""

    sent: int = 0
    failed: int = 0
    last_error: Optional[str] = None
    last_sent_at: Optional[datetime] = None

    @property
    def success_rate(self) -> float:
        attempts = self.sent + self.failed
        if attempts == 0:
            return 0.0
        return (self.sent / attempts) * 100

    def record_sent(self) -> None:
        self.sent += 1
        self.last_sent_at = datetime.now(timezone.utc)

    def record_failure(self, error: str) -> None:
        self.failed += 1
        self.last_error = error


class TransportError(Exception):
    """A message could not be handed to the remote service."""

    def __init__(
        self,
        message: str,
        transport: str,
        status_code: Optional[int] = None,
        response_data: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(message)
        self.transport = transport
        self.status_code = status_code
        self.response_data = response_data


class AuthenticationError(TransportError):
    """Credentials missing or rejected."""
    pass


class MessageTransport(ABC, Generic[ConfigType]):
    """
    Outbound channel used by NotificationService.

    Implementations connect lazily and raise TransportError on delivery
    failure; the notification layer decides what a failure means.
    """

    def __init__(self, config: ConfigType) -> None:
        self.config = config
        self.status = TransportStatus.DISCONNECTED
        self.metrics = DeliveryMetrics()
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @property
    def is_connected(self) -> bool:
        return self.status == TransportStatus.CONNECTED

    @abstractmethod
    async def connect(self) -> None:
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        pass

    @abstractmethod
    async def test_connection(self) -> bool:
        pass

    @abstractmethod
    async def post_message(
        self,
        channel: str,
        text: str,
        blocks: Optional[List[Dict[str, Any]]] = None
    ) -> str:
        """Deliver one message, returning the remote message id."""
