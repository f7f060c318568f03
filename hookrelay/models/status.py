"""Response models for the HTTP surface."""

from enum import Enum

from fastapi import status
from pydantic import BaseModel


class AcceptanceStatus(str, Enum):
    """Outcome of handing a webhook request to the ingestor."""

    ACCEPTED = "accepted"
    MALFORMED = "malformed"
    UNAUTHORIZED = "unauthorized"
    OVERLOADED = "overloaded"
    UNAVAILABLE = "unavailable"

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self]

    @property
    def retryable(self) -> bool:
        return self in (AcceptanceStatus.OVERLOADED, AcceptanceStatus.UNAVAILABLE)


_HTTP_STATUS = {
    AcceptanceStatus.ACCEPTED: status.HTTP_202_ACCEPTED,
    AcceptanceStatus.MALFORMED: status.HTTP_400_BAD_REQUEST,
    AcceptanceStatus.UNAUTHORIZED: status.HTTP_400_BAD_REQUEST,
    AcceptanceStatus.OVERLOADED: status.HTTP_503_SERVICE_UNAVAILABLE,
    AcceptanceStatus.UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


class ServiceStatus(BaseModel):
    """Health of the two ends of the relay."""

    discord: bool
    github: bool
