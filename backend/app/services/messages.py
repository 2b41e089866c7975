"""LINE message payload builders (text, quick replies, flex bubbles).

Builders return plain dicts in the Messaging API wire format so they can be
passed straight to LineMessagingClient.
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Any
from urllib.parse import parse_qsl, urlencode

from app.models.subscription import Subscription
from app.network.stations import STATIONS, Direction, Station, direction_label, get_station
from app.schemas.tram import ApproachingTram, StationArrivals

Message = dict[str, Any]

BRAND_COLOR = "#27ACB2"
STATIONS_PER_BUBBLE = 10
TRIGGER_STOP_CHOICES = (1, 2, 3, 5)

COMMAND_LIST_TEXT = (
    "📝 コマンド一覧\n\n"
    "「設定」→ 通知設定\n"
    "「確認」→ 設定一覧\n"
    "「オン」→ 通知有効化\n"
    "「オフ」→ 通知無効化\n"
    "「削除」→ 設定削除\n"
    "「いま」→ 接近中の電車"
)
ERROR_TEXT = "エラーが発生しました。しばらくしてから再度お試しください。"
FETCH_ERROR_TEXT = "電車情報の取得に失敗しました。"


# ==================== Postback data ====================


def encode_postback(action: str, **params: object) -> str:
    """
    Encode postback data as a query string.

    Example:
        >>> encode_postback("select_station", station_id=8)
        'action=select_station&station_id=8'
    """
    return urlencode({"action": action, **{key: str(value) for key, value in params.items()}})


def parse_postback(data: str) -> dict[str, str]:
    """
    Decode postback data produced by encode_postback.

    Example:
        >>> parse_postback("action=select_direction&station_id=8&direction=up")
        {'action': 'select_direction', 'station_id': '8', 'direction': 'up'}
    """
    return dict(parse_qsl(data, keep_blank_values=False))


# ==================== Primitives ====================


def text_message(text: str, quick_replies: list[dict[str, Any]] | None = None) -> Message:
    message: Message = {"type": "text", "text": text}
    if quick_replies:
        message["quickReply"] = {"items": quick_replies}
    return message


def flex_message(alt_text: str, contents: dict[str, Any]) -> Message:
    return {"type": "flex", "altText": alt_text, "contents": contents}


def postback_action(label: str, data: str) -> dict[str, Any]:
    return {"type": "postback", "label": label, "data": data}


def quick_reply_item(label: str, data: str) -> dict[str, Any]:
    return {"type": "action", "action": postback_action(label, data)}


def _header(title: str, subtitle: str | None = None, *, size: str = "md") -> dict[str, Any]:
    contents: list[dict[str, Any]] = [
        {"type": "text", "text": title, "color": "#FFFFFF", "weight": "bold", "size": size},
    ]
    if subtitle:
        contents.append({"type": "text", "text": subtitle, "color": "#FFFFFF", "size": "sm"})
    return {
        "type": "box",
        "layout": "vertical",
        "backgroundColor": BRAND_COLOR,
        "paddingAll": "10px",
        "contents": contents,
    }


def _icon_row(icon: str, text: str) -> dict[str, Any]:
    return {
        "type": "box",
        "layout": "baseline",
        "spacing": "sm",
        "contents": [
            {"type": "text", "text": icon, "size": "sm", "flex": 0},
            {"type": "text", "text": text, "size": "sm", "color": "#666666", "flex": 1},
        ],
    }


def _subscription_direction_label(subscription: Subscription) -> str:
    if station := get_station(subscription.station_id):
        return direction_label(station, subscription.direction)
    return "健軍町方面" if subscription.direction == Direction.DOWN else "始発方面"


def _station_name(station_id: int) -> str:
    station = get_station(station_id)
    return station.name if station else f"駅ID:{station_id}"


# ==================== Notifications ====================


def build_approach_message(station: Station, tram: ApproachingTram) -> Message:
    """Push message for one tram reaching a subscription's trigger distance."""
    label = direction_label(station, tram.direction)
    bubble = {
        "type": "bubble",
        "size": "kilo",
        "header": _header("電車接近通知"),
        "body": {
            "type": "box",
            "layout": "vertical",
            "spacing": "md",
            "contents": [
                {"type": "text", "text": f"{station.name}駅（{label}）", "weight": "bold", "size": "lg", "wrap": True},
                {"type": "separator"},
                {
                    "type": "box",
                    "layout": "vertical",
                    "spacing": "sm",
                    "contents": [
                        _icon_row("📍", f"{tram.stops_away}駅前"),
                        _icon_row("⏱", f"あと約{tram.estimated_minutes}分で到着予定"),
                        _icon_row("🚋", f"{tram.line.value}系統 {tram.vehicle_type_label}"),
                    ],
                },
            ],
        },
    }
    return flex_message(f"電車接近通知: {station.name}駅に{tram.stops_away}駅前", bubble)


def build_morning_message(arrivals: Sequence[StationArrivals], now: datetime) -> Message:
    """
    One combined morning summary for all of a user's stations.

    Args:
        arrivals: Next trams per subscribed (station, direction)
        now: Local time shown in the header
    """
    contents: list[dict[str, Any]] = []
    for entry in arrivals:
        contents.append(
            {
                "type": "text",
                "text": f"📍 {entry.station_name}（{entry.direction_label}）",
                "weight": "bold",
                "size": "sm",
                "margin": "lg",
            }
        )
        if not entry.trams:
            contents.append(
                {"type": "text", "text": "  現在接近中の電車はありません", "size": "sm", "color": "#888888", "margin": "sm"}
            )
            continue
        for index, tram in enumerate(entry.trams):
            label = "次の電車" if index == 0 else "その次"
            contents.append(
                {
                    "type": "box",
                    "layout": "horizontal",
                    "margin": "sm",
                    "contents": [
                        {"type": "text", "text": f"  {label}:", "size": "sm", "flex": 2},
                        {
                            "type": "text",
                            "text": f"{tram.stops_away}駅前 (約{tram.estimated_minutes}分)",
                            "size": "sm",
                            "flex": 3,
                        },
                    ],
                }
            )
            contents.append(
                {
                    "type": "text",
                    "text": f"    {tram.line.value}系統 {tram.vehicle_type_label}",
                    "size": "xs",
                    "color": "#666666",
                }
            )

    bubble = {
        "type": "bubble",
        "size": "mega",
        "header": _header("🚃 おはようございます", f"{now.hour}:{now.minute:02d} 現在の電車情報", size="lg"),
        "body": {"type": "box", "layout": "vertical", "spacing": "sm", "contents": contents},
    }
    return flex_message("おはようございます。電車情報です", bubble)


def build_current_status_text(arrivals: Sequence[StationArrivals]) -> str:
    """Plain-text answer to the "いま" command."""
    lines = ["🚃 現在の電車状況"]
    for entry in arrivals:
        lines.append("")
        lines.append(f"📍 {entry.station_name} ({entry.direction_label})")
        if not entry.trams:
            lines.append("  → 近くに電車はありません")
            continue
        for tram in entry.trams:
            if tram.stops_away > 0:
                where = f"{tram.stops_away}駅前 (約{tram.estimated_minutes}分)"
            else:
                where = "到着中" if tram.is_at_station else "まもなく到着"
            lines.append(f"  → {where} {tram.line.value}系統")
    return "\n".join(lines)


# ==================== Setting flow ====================


def build_station_carousel(stations: Sequence[Station] = STATIONS) -> Message:
    """Station picker: a carousel of bubbles with ten station buttons each."""
    chunks = [stations[i : i + STATIONS_PER_BUBBLE] for i in range(0, len(stations), STATIONS_PER_BUBBLE)]
    bubbles = [
        {
            "type": "bubble",
            "size": "kilo",
            "body": {
                "type": "box",
                "layout": "vertical",
                "spacing": "sm",
                "contents": [
                    {"type": "text", "text": f"電停を選択 ({index + 1}/{len(chunks)})", "weight": "bold", "size": "sm"},
                    *(
                        {
                            "type": "button",
                            "action": postback_action(
                                station.name, encode_postback("select_station", station_id=station.id)
                            ),
                            "height": "sm",
                            "style": "secondary",
                        }
                        for station in chunk
                    ),
                ],
            },
        }
        for index, chunk in enumerate(chunks)
    ]
    return flex_message("電停を選択してください", {"type": "carousel", "contents": bubbles})


def build_direction_prompt(station: Station) -> Message:
    items = [
        quick_reply_item(
            direction_label(station, direction),
            encode_postback("select_direction", station_id=station.id, direction=direction.value),
        )
        for direction in (Direction.UP, Direction.DOWN)
    ]
    return text_message(f"📍 {station.name}\n\nどちら方面の電車を通知しますか？", items)


def build_trigger_prompt(station: Station, direction: Direction) -> Message:
    items = [
        quick_reply_item(
            f"{stops}駅前で通知",
            encode_postback("select_trigger", station_id=station.id, direction=direction.value, trigger=stops),
        )
        for stops in TRIGGER_STOP_CHOICES
    ]
    return text_message(
        f"📍 {station.name} ({direction_label(station, direction)})\n\n何駅前で通知しますか？\n（目安: 1駅=約2分）",
        items,
    )


def build_subscription_created_text(station: Station, direction: Direction, trigger_stops: int) -> str:
    return (
        "✅ 設定完了！\n\n"
        f"📍 {station.name}\n"
        f"🚃 {direction_label(station, direction)}\n"
        f"⏰ {trigger_stops}駅前で通知\n\n"
        "電車が近づいたらお知らせします。\n"
        "「確認」で設定一覧を表示できます。"
    )


def build_subscription_list_message(subscriptions: Sequence[Subscription]) -> Message:
    """Flex bubble listing a user's subscriptions with their on/off state."""
    if subscriptions:
        rows: list[dict[str, Any]] = [
            {
                "type": "box",
                "layout": "horizontal",
                "spacing": "sm",
                "contents": [
                    {"type": "text", "text": "✅" if subscription.is_enabled else "⏸", "size": "sm", "flex": 0},
                    {
                        "type": "text",
                        "text": (
                            f"{_station_name(subscription.station_id)} "
                            f"({_subscription_direction_label(subscription)})"
                        ),
                        "size": "sm",
                        "flex": 3,
                        "wrap": True,
                    },
                    {
                        "type": "text",
                        "text": f"{subscription.trigger_stops}駅前",
                        "size": "sm",
                        "flex": 1,
                        "align": "end",
                    },
                ],
            }
            for subscription in subscriptions
        ]
    else:
        rows = [{"type": "text", "text": "設定がありません", "size": "sm", "color": "#888888"}]

    bubble = {
        "type": "bubble",
        "size": "kilo",
        "header": _header("通知設定一覧"),
        "body": {"type": "box", "layout": "vertical", "spacing": "md", "contents": rows},
        "footer": {
            "type": "box",
            "layout": "vertical",
            "spacing": "sm",
            "contents": [
                {
                    "type": "button",
                    "action": postback_action("新規追加", encode_postback("new_setting")),
                    "style": "primary",
                    "height": "sm",
                }
            ],
        },
    }
    return flex_message("通知設定一覧", bubble)


def build_delete_prompt_text(subscriptions: Sequence[Subscription]) -> str:
    lines = ["削除する設定の番号を送信してください:", ""]
    lines.extend(
        f"{number}. {_station_name(subscription.station_id)} ({_subscription_direction_label(subscription)})"
        for number, subscription in enumerate(subscriptions, start=1)
    )
    lines.append("")
    lines.append("例: 「1」と送信で1番を削除")
    return "\n".join(lines)


def build_welcome_message() -> Message:
    bubble = {
        "type": "bubble",
        "size": "mega",
        "header": _header("🚃 熊本市電通知サービス", size="lg"),
        "body": {
            "type": "box",
            "layout": "vertical",
            "spacing": "md",
            "contents": [
                {"type": "text", "text": "ようこそ！", "weight": "bold", "size": "md"},
                {
                    "type": "text",
                    "text": "このBotは、熊本市電が指定した電停に近づいたらお知らせします。",
                    "wrap": True,
                    "size": "sm",
                },
                {"type": "separator"},
                {"type": "text", "text": "📝 使い方", "weight": "bold", "size": "sm"},
                {
                    "type": "text",
                    "text": "「設定」と送信 → 通知設定\n「確認」と送信 → 設定一覧\n「オン」「オフ」 → 通知切替",
                    "wrap": True,
                    "size": "sm",
                    "color": "#666666",
                },
            ],
        },
        "footer": {
            "type": "box",
            "layout": "vertical",
            "contents": [
                {
                    "type": "button",
                    "action": postback_action("通知設定を始める", encode_postback("new_setting")),
                    "style": "primary",
                }
            ],
        },
    }
    return flex_message("熊本市電通知サービスへようこそ！", bubble)
