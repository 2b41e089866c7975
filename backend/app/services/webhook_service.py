"""LINE webhook event handling: follow/unfollow, text commands and postbacks."""

import asyncio
import uuid
from collections.abc import Coroutine
from typing import Any

import structlog
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.database import session_scope
from app.core.telemetry import service_span
from app.models.user import User
from app.network.stations import Direction, get_station
from app.network.topology import NetworkTopology
from app.schemas.line import WebhookEvent
from app.schemas.subscription import SubscriptionCreate
from app.services.alert_service import collect_station_arrivals
from app.services.line_service import LineApiError, LineMessagingClient
from app.services.messages import (
    COMMAND_LIST_TEXT,
    ERROR_TEXT,
    FETCH_ERROR_TEXT,
    Message,
    build_current_status_text,
    build_delete_prompt_text,
    build_direction_prompt,
    build_station_carousel,
    build_subscription_created_text,
    build_subscription_list_message,
    build_trigger_prompt,
    build_welcome_message,
    parse_postback,
    text_message,
)
from app.services.subscription_service import SubscriptionService
from app.services.tram_service import TramApiError, TramPositionClient
from app.utils.pii import hash_pii

logger = structlog.get_logger(__name__)

SETTING_COMMANDS = frozenset({"設定", "せってい", "setting"})
LIST_COMMANDS = frozenset({"確認", "かくにん", "status", "list"})
ENABLE_COMMANDS = frozenset({"オン", "on", "有効"})
DISABLE_COMMANDS = frozenset({"オフ", "off", "無効"})
DELETE_COMMANDS = frozenset({"削除", "delete"})
HELP_COMMANDS = frozenset({"ヘルプ", "help", "使い方", "?"})
CURRENT_COMMANDS = frozenset({"いま", "今", "now", "current"})


class BackgroundEventRunner:
    """
    Runs webhook events after the HTTP response has been sent.

    Each event becomes an asyncio task that the runner keeps a reference to
    until it finishes. Failures are logged by the completion callback and
    never reach the webhook caller. ``drain()`` waits for outstanding tasks
    (used at shutdown and in tests).
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, coro: Coroutine[Any, Any, None], *, name: str) -> asyncio.Task[None]:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("webhook_event_cancelled", task=task.get_name())
            return
        if (exc := task.exception()) is not None:
            logger.error("webhook_event_failed", task=task.get_name(), error=str(exc), exc_info=exc)

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for outstanding events; cancel whatever is left after ``timeout``."""
        if not self._tasks:
            return
        _, still_running = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.wait(still_running)


class WebhookService:
    """Handles one webhook event against the stores and LINE."""

    def __init__(
        self,
        db: AsyncSession,
        line_client: LineMessagingClient,
        tram_client: TramPositionClient,
        topology: NetworkTopology,
    ) -> None:
        self.subscriptions = SubscriptionService(db)
        self.line_client = line_client
        self.tram_client = tram_client
        self.topology = topology

    async def _reply(self, reply_token: str, *messages: Message) -> None:
        await self.line_client.reply_message(reply_token, list(messages))

    async def _reply_text(self, reply_token: str, text: str) -> None:
        await self._reply(reply_token, text_message(text))

    async def handle_event(self, event: WebhookEvent) -> None:
        """Route an event by type; unsupported types are ignored."""
        with service_span("webhook.handle_event", "webhook-service") as span:
            span.set_attribute("line.event_type", event.type)
            if event.type == "follow":
                await self.handle_follow(event)
            elif event.type == "unfollow":
                await self.handle_unfollow(event)
            elif event.type == "message":
                await self.handle_message(event)
            elif event.type == "postback":
                await self.handle_postback(event)
            else:
                logger.debug("webhook_event_ignored", event_type=event.type)

    # ==================== Follow / Unfollow ====================

    async def handle_follow(self, event: WebhookEvent) -> None:
        if not (line_user_id := event.user_id):
            logger.warning("follow_event_missing_user_id")
            return

        display_name: str | None = None
        try:
            display_name = (await self.line_client.get_profile(line_user_id)).display_name
        except LineApiError as e:
            logger.warning("line_profile_unavailable", line_user_id_hash=hash_pii(line_user_id), error=str(e))

        _, created = await self.subscriptions.upsert_user(line_user_id, display_name)
        logger.info("user_followed", line_user_id_hash=hash_pii(line_user_id), created=created)

        if event.reply_token:
            await self._reply(event.reply_token, build_welcome_message())

    async def handle_unfollow(self, event: WebhookEvent) -> None:
        """Mark the user inactive; their subscriptions survive a re-follow."""
        if line_user_id := event.user_id:
            await self.subscriptions.deactivate_user(line_user_id)

    # ==================== Text messages ====================

    async def handle_message(self, event: WebhookEvent) -> None:
        if event.message is None or event.message.type != "text" or event.message.text is None:
            return
        if not (line_user_id := event.user_id) or not (reply_token := event.reply_token):
            return

        text = event.message.text.strip()
        try:
            if not (user := await self.subscriptions.get_user_by_line_id(line_user_id)):
                await self._reply(reply_token, build_welcome_message())
                return
            await self._dispatch_command(reply_token, user, text)
        except SQLAlchemyError as e:
            logger.error("webhook_message_failed", line_user_id_hash=hash_pii(line_user_id), error=str(e), exc_info=e)
            await self._reply_text(reply_token, ERROR_TEXT)

    async def _dispatch_command(self, reply_token: str, user: User, text: str) -> None:
        command = text.lower()
        if command in SETTING_COMMANDS:
            await self._reply(reply_token, build_station_carousel())
        elif command in LIST_COMMANDS:
            await self._reply_subscription_list(reply_token, user)
        elif command in ENABLE_COMMANDS:
            await self._toggle_all(reply_token, user, enabled=True)
        elif command in DISABLE_COMMANDS:
            await self._toggle_all(reply_token, user, enabled=False)
        elif command in DELETE_COMMANDS:
            await self._prompt_delete(reply_token, user)
        elif command in HELP_COMMANDS:
            await self._reply(reply_token, build_welcome_message())
        elif command in CURRENT_COMMANDS:
            await self._reply_current_status(reply_token, user)
        elif command.isdigit():
            await self._delete_by_number(reply_token, user, int(command))
        else:
            await self._reply_text(reply_token, COMMAND_LIST_TEXT)

    async def _reply_subscription_list(self, reply_token: str, user: User) -> None:
        subscriptions = await self.subscriptions.list_subscriptions(user.id)
        await self._reply(reply_token, build_subscription_list_message(subscriptions))

    async def _toggle_all(self, reply_token: str, user: User, *, enabled: bool) -> None:
        if not await self.subscriptions.set_all_enabled(user.id, enabled):
            await self._reply_text(reply_token, "通知設定がありません。「設定」から追加してください。")
            return
        status = "有効" if enabled else "無効"
        await self._reply_text(reply_token, f"✅ すべての通知を{status}にしました。")

    async def _prompt_delete(self, reply_token: str, user: User) -> None:
        subscriptions = await self.subscriptions.list_subscriptions(user.id)
        if not subscriptions:
            await self._reply_text(reply_token, "削除する設定がありません。")
            return
        await self._reply_text(reply_token, build_delete_prompt_text(subscriptions))

    async def _delete_by_number(self, reply_token: str, user: User, number: int) -> None:
        """Delete the n-th subscription as numbered by the delete prompt."""
        subscriptions = await self.subscriptions.list_subscriptions(user.id)
        if not 1 <= number <= len(subscriptions):
            await self._reply_text(reply_token, f"{number}番の設定はありません。「削除」で一覧を確認してください。")
            return
        subscription = subscriptions[number - 1]
        station = get_station(subscription.station_id)
        await self.subscriptions.delete_subscription(subscription.id, user.id)
        name = station.name if station else f"駅ID:{subscription.station_id}"
        await self._reply_text(reply_token, f"✅ {number}. {name} の設定を削除しました。")

    async def _reply_current_status(self, reply_token: str, user: User) -> None:
        subscriptions = await self.subscriptions.list_subscriptions(user.id)
        if not subscriptions:
            await self._reply_text(reply_token, "設定された電停がありません。「設定」から通知電停を追加してください。")
            return

        try:
            positions = await self.tram_client.fetch_positions()
        except TramApiError as e:
            logger.warning("current_status_fetch_failed", error=str(e))
            await self._reply_text(reply_token, FETCH_ERROR_TEXT)
            return

        arrivals = collect_station_arrivals(
            self.topology,
            positions,
            subscriptions,
            min_stops=0,
            max_stops=settings.CURRENT_MAX_STOPS,
            limit=settings.CURRENT_TRAMS_PER_STATION,
        )
        await self._reply_text(reply_token, build_current_status_text(arrivals))

    # ==================== Postbacks ====================

    async def handle_postback(self, event: WebhookEvent) -> None:
        if event.postback is None:
            return
        if not (line_user_id := event.user_id) or not (reply_token := event.reply_token):
            return

        data = parse_postback(event.postback.data)
        action = data.get("action")
        try:
            if not (user := await self.subscriptions.get_user_by_line_id(line_user_id)):
                await self._reply_text(reply_token, "ユーザー情報が見つかりません。もう一度友だち追加してください。")
                return

            if action == "new_setting":
                await self._reply(reply_token, build_station_carousel())
            elif action == "select_station":
                await self._select_station(reply_token, data)
            elif action == "select_direction":
                await self._select_direction(reply_token, data)
            elif action == "select_trigger":
                await self._select_trigger(reply_token, user, data)
            elif action == "delete_setting":
                await self._delete_setting(reply_token, user, data)
            elif action == "view_settings":
                await self._reply_subscription_list(reply_token, user)
            else:
                logger.warning("unknown_postback_action", action=action)
                await self._reply_text(reply_token, "不明な操作です。")
        except SQLAlchemyError as e:
            logger.error("webhook_postback_failed", action=action, error=str(e), exc_info=e)
            await self._reply_text(reply_token, ERROR_TEXT)

    async def _select_station(self, reply_token: str, data: dict[str, str]) -> None:
        station_id = data.get("station_id", "")
        if not station_id.isdigit() or not (station := get_station(int(station_id))):
            await self._reply_text(reply_token, "電停が見つかりません。")
            return
        await self._reply(reply_token, build_direction_prompt(station))

    async def _select_direction(self, reply_token: str, data: dict[str, str]) -> None:
        station_id = data.get("station_id", "")
        if not station_id.isdigit() or not (station := get_station(int(station_id))):
            await self._reply_text(reply_token, "電停が見つかりません。")
            return
        try:
            direction = Direction(data.get("direction"))
        except ValueError:
            await self._reply_text(reply_token, "不明な操作です。")
            return
        await self._reply(reply_token, build_trigger_prompt(station, direction))

    async def _select_trigger(self, reply_token: str, user: User, data: dict[str, str]) -> None:
        try:
            request = SubscriptionCreate(
                station_id=data.get("station_id"),
                direction=data.get("direction"),
                trigger_stops=data.get("trigger"),
            )
        except ValidationError as e:
            logger.warning("subscription_postback_invalid", error=str(e))
            await self._reply_text(reply_token, "設定内容が正しくありません。もう一度「設定」からやり直してください。")
            return

        await self.subscriptions.create_subscription(user.id, request)
        station = get_station(request.station_id)
        assert station is not None  # checked by SubscriptionCreate
        await self._reply_text(
            reply_token,
            build_subscription_created_text(station, request.direction, request.trigger_stops),
        )

    async def _delete_setting(self, reply_token: str, user: User, data: dict[str, str]) -> None:
        try:
            subscription_id = uuid.UUID(data.get("setting_id", ""))
        except ValueError:
            await self._reply_text(reply_token, "設定IDが指定されていません。")
            return
        if not await self.subscriptions.delete_subscription(subscription_id, user.id):
            await self._reply_text(reply_token, "設定が見つかりません。")
            return
        await self._reply_text(reply_token, "✅ 設定を削除しました。")


async def process_webhook_event(
    event: WebhookEvent,
    *,
    line_client: LineMessagingClient,
    tram_client: TramPositionClient,
    topology: NetworkTopology,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> None:
    """Handle one event in its own database session (background entry point)."""
    async with session_scope(session_factory) as session:
        await WebhookService(session, line_client, tram_client, topology).handle_event(event)
