"""Event envelope carried from the webhook endpoint to the chat notifier.

An Event is built only after a webhook request has passed validation.
It is immutable; whoever holds it owns it, and it is discarded after
delivery (or after a failed delivery is logged). Nothing is persisted.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Event(BaseModel):
    """A validated webhook notification awaiting delivery."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Delivery id supplied by the sender, used for log correlation")
    kind: str = Field(description="Event category as declared by the sender, e.g. issues/push")
    payload: Any = Field(default=None, description="Decoded request body, passed through verbatim")
    meta: dict[str, str] = Field(default_factory=dict, description="Informational request headers")

    def describe(self) -> str:
        return f"event id={self.id} kind={self.kind}"
