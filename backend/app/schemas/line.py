"""Pydantic schemas for LINE Messaging API webhooks and profiles."""

from typing import Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class LineModel(BaseModel):
    """Base for LINE payloads (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class EventSource(LineModel):
    type: str
    user_id: str | None = None


class MessageContent(LineModel):
    id: str | None = None
    type: str
    text: str | None = None


class PostbackContent(LineModel):
    data: str


class WebhookEvent(LineModel):
    """
    One webhook event.

    Only follow, unfollow, message and postback events are acted on; other
    types parse but are ignored.
    """

    type: str
    timestamp: int | None = None
    reply_token: str | None = None
    source: EventSource
    message: MessageContent | None = None
    postback: PostbackContent | None = None

    @property
    def user_id(self) -> str | None:
        return self.source.user_id


class WebhookRequest(LineModel):
    destination: str | None = None
    events: list[WebhookEvent] = []


class LineProfile(LineModel):
    user_id: str
    display_name: str
    picture_url: str | None = None
    status_message: str | None = None


class WebhookResponse(BaseModel):
    status: Literal["ok"] = "ok"
