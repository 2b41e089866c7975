"""Tests for the CLI tool."""

import argparse

import pytest
from app.cli import build_parser, cmd_list_subscriptions, cmd_resolve, main
from app.network.stations import Direction
from app.schemas.subscription import SubscriptionCreate
from app.services.subscription_service import SubscriptionService
from sqlalchemy.ext.asyncio import AsyncSession


def _resolve_args(*argv: str) -> argparse.Namespace:
    return build_parser().parse_args(["resolve", *argv])


class TestParser:
    def test_no_command_prints_help(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main([]) == 1
        assert "Kumamoto tram notifier jobs" in capsys.readouterr().out

    def test_resolve_rejects_unknown_line(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["resolve", "--line", "C", "--direction", "up", "--code", "1"])

    def test_poll_once_force_flag(self) -> None:
        assert build_parser().parse_args(["poll-once", "--force"]).force is True
        assert build_parser().parse_args(["run-poller"]).interval is None


class TestResolveCommand:
    async def test_resolves_code_and_distance(self, capsys: pytest.CaptureFixture[str]) -> None:
        code = await cmd_resolve(_resolve_args("--line", "A", "--direction", "down", "--code", "18", "--station", "8"))

        out = capsys.readouterr().out
        assert code == 0
        assert "Line A down code 18: approaching 河原町 (#6)" in out
        assert "辛島町: 2 stop(s), about 4 min" in out

    async def test_at_station_code(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert await cmd_resolve(_resolve_args("--line", "A", "--direction", "down", "--code", "30")) == 0
        assert "at 辛島町 (#8)" in capsys.readouterr().out

    async def test_unmapped_code(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert await cmd_resolve(_resolve_args("--line", "B", "--direction", "down", "--code", "5")) == 1
        assert "does not map" in capsys.readouterr().out

    async def test_unknown_target_station(self, capsys: pytest.CaptureFixture[str]) -> None:
        args = _resolve_args("--line", "A", "--direction", "down", "--code", "18", "--station", "999")
        assert await cmd_resolve(args) == 1
        assert "Unknown station: 999" in capsys.readouterr().err

    async def test_target_on_other_line(self, capsys: pytest.CaptureFixture[str]) -> None:
        args = _resolve_args("--line", "A", "--direction", "down", "--code", "18", "--station", "25")
        assert await cmd_resolve(args) == 1
        assert "not heading to" in capsys.readouterr().out


class TestListSubscriptions:
    async def test_empty(self, db_session: AsyncSession, capsys: pytest.CaptureFixture[str]) -> None:
        assert await cmd_list_subscriptions(argparse.Namespace(), db_session) == 0
        assert "No active subscriptions found" in capsys.readouterr().out

    async def test_lists_active(self, db_session: AsyncSession, capsys: pytest.CaptureFixture[str]) -> None:
        store = SubscriptionService(db_session)
        user, _ = await store.upsert_user("U-cli")
        await store.create_subscription(
            user.id, SubscriptionCreate(station_id=12, direction=Direction.UP, days_of_week=["SAT"])
        )

        assert await cmd_list_subscriptions(argparse.Namespace(), db_session) == 0

        out = capsys.readouterr().out
        assert "水道町" in out
        assert "all day" in out
        assert "SAT" in out
