from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import pytest

from codestrap_bridge.flag_channel import (
    ChannelSession,
    FlagChannel,
    FlagCommand,
    NameGrammar,
    NonceGrammar,
)
from codestrap_bridge.errors import MalformedCommand


class _Recorder:
    def __init__(self) -> None:
        self.payloads: list[str] = []

    async def __call__(self, command: FlagCommand) -> None:
        self.payloads.append(command.payload)


def _reload_channel(path: Path, handler) -> FlagChannel:
    return FlagChannel(path, NonceGrammar("RELOAD"), handler, interval=0.01, name="reload")


def _profile_channel(path: Path, handler) -> FlagChannel:
    return FlagChannel(path, NameGrammar(), handler, interval=0.01, name="profile")


def _write(path: Path, content: str) -> None:
    path.write_text(content, encoding="utf-8")


def _read(path: Path) -> str:
    return path.read_text(encoding="utf-8").strip()


def test_ensure_file_creates_parent_and_seeds_idle(tmp_path: Path) -> None:
    flag = tmp_path / "nested" / ".codestrap" / "reload.signal"
    channel = _reload_channel(flag, _Recorder())
    channel.ensure_file()
    assert _read(flag) == "IDLE"


def test_ensure_file_keeps_existing_content(tmp_path: Path) -> None:
    flag = tmp_path / "reload.signal"
    _write(flag, "RELOAD:3\n")
    _reload_channel(flag, _Recorder()).ensure_file()
    assert _read(flag) == "RELOAD:3"


def test_seeded_file_does_not_fire(tmp_path: Path) -> None:
    flag = tmp_path / "reload.signal"
    rec = _Recorder()
    channel = _reload_channel(flag, rec)
    channel.ensure_file()
    assert asyncio.run(channel.poll_once()) is False
    assert rec.payloads == []


def test_same_reload_nonce_fires_once(tmp_path: Path) -> None:
    flag = tmp_path / "reload.signal"
    rec = _Recorder()
    channel = _reload_channel(flag, rec)

    async def scenario() -> None:
        _write(flag, "RELOAD:5")
        assert await channel.poll_once() is True
        assert _read(flag) == "ACK:5"
        _write(flag, "RELOAD:5")
        assert await channel.poll_once() is False

    asyncio.run(scenario())
    assert rec.payloads == ["5"]
    assert channel.session.honored == 1


def test_older_nonce_after_newer_is_ignored(tmp_path: Path) -> None:
    flag = tmp_path / "reload.signal"
    rec = _Recorder()
    channel = _reload_channel(flag, rec)

    async def scenario() -> None:
        _write(flag, "RELOAD:7")
        await channel.poll_once()
        _write(flag, "RELOAD:3")
        await channel.poll_once()
        _write(flag, "RELOAD:8")
        await channel.poll_once()

    asyncio.run(scenario())
    assert rec.payloads == ["7", "8"]
    assert channel.session.high_water == 8


@pytest.mark.parametrize("content", ["RELOAD:", "RELOAD:abc", "reload:4", "garbage", "RELOAD:-1"])
def test_malformed_reload_content_is_ignored_silently(tmp_path: Path, content: str) -> None:
    flag = tmp_path / "reload.signal"
    _write(flag, content)
    rec = _Recorder()
    channel = _reload_channel(flag, rec)
    assert asyncio.run(channel.poll_once()) is False
    assert rec.payloads == []
    # No ACK written for content we did not understand.
    assert _read(flag) == content


def test_nonce_grammar_rejects_bad_content() -> None:
    grammar = NonceGrammar("RELOAD")
    with pytest.raises(MalformedCommand):
        grammar.parse("RELOAD:x")
    assert grammar.parse("IDLE") is None
    assert grammar.parse("ACK:4") is None
    assert grammar.parse(" RELOAD:12 \n") == FlagCommand(payload="12", nonce=12)


def test_profile_name_is_honored_and_acked(tmp_path: Path) -> None:
    flag = tmp_path / "profile.signal"
    _write(flag, "  team-default \n")
    rec = _Recorder()
    channel = _profile_channel(flag, rec)
    assert asyncio.run(channel.poll_once()) is True
    assert rec.payloads == ["team-default"]
    assert _read(flag) == "ACK:team-default"


def test_profile_channel_ignores_ack_idle_and_repeats(tmp_path: Path) -> None:
    flag = tmp_path / "profile.signal"
    rec = _Recorder()
    channel = _profile_channel(flag, rec)

    async def scenario() -> None:
        for content in ("IDLE", "ACK:team-default", ""):
            _write(flag, content)
            assert await channel.poll_once() is False
        _write(flag, "team-default")
        assert await channel.poll_once() is True
        # Still ACK'd, and then re-written with the same name.
        assert await channel.poll_once() is False
        _write(flag, "team-default")
        assert await channel.poll_once() is False
        _write(flag, "other")
        assert await channel.poll_once() is True

    asyncio.run(scenario())
    assert rec.payloads == ["team-default", "other"]


def test_handler_failure_is_contained_and_still_acked(tmp_path: Path) -> None:
    flag = tmp_path / "profile.signal"
    _write(flag, "broken")

    async def boom(_command: FlagCommand) -> None:
        raise RuntimeError("host exploded")

    channel = _profile_channel(flag, boom)
    assert asyncio.run(channel.poll_once()) is True
    assert _read(flag) == "ACK:broken"
    assert channel.session.busy is False


def test_state_is_recorded_before_handler_and_reentry_is_skipped(tmp_path: Path) -> None:
    flag = tmp_path / "reload.signal"
    _write(flag, "RELOAD:2")
    seen: dict[str, object] = {}
    channel: FlagChannel

    async def handler(_command: FlagCommand) -> None:
        seen["high_water"] = channel.session.high_water
        seen["nested"] = await channel.poll_once()

    channel = _reload_channel(flag, handler)
    asyncio.run(channel.poll_once())
    assert seen == {"high_water": 2, "nested": False}


def test_busy_session_skips_poll(tmp_path: Path) -> None:
    flag = tmp_path / "reload.signal"
    _write(flag, "RELOAD:1")
    rec = _Recorder()
    channel = _reload_channel(flag, rec)
    channel.session = ChannelSession(busy=True)
    assert asyncio.run(channel.poll_once()) is False
    assert rec.payloads == []


def test_stop_without_start_is_safe(tmp_path: Path) -> None:
    channel = _reload_channel(tmp_path / "reload.signal", _Recorder())
    asyncio.run(channel.stop())
    assert channel.running is False


def test_interval_must_be_positive(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        FlagChannel(tmp_path / "x", NameGrammar(), _Recorder(), interval=0)


def test_polling_loop_picks_up_external_write(tmp_path: Path) -> None:
    flag = tmp_path / "flags" / "reload.signal"
    rec = _Recorder()
    channel = _reload_channel(flag, rec)

    async def scenario() -> None:
        await channel.start()
        assert channel.running
        await asyncio.sleep(0.05)
        _write(flag, "RELOAD:1")
        for _ in range(200):
            if _read(flag) == "ACK:1":
                break
            await asyncio.sleep(0.01)
        await channel.stop()

    asyncio.run(scenario())
    assert rec.payloads == ["1"]
    assert _read(flag) == "ACK:1"
    assert channel.running is False



def test_half_written_multibyte_content_is_ignored_quietly(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    flag = tmp_path / "profile.signal"
    flag.write_bytes(b"team-\xe2\x82")
    rec = _Recorder()
    channel = _profile_channel(flag, rec)

    with caplog.at_level(logging.DEBUG, logger="codestrap_bridge.flag_channel"):
        assert asyncio.run(channel.poll_once()) is False
    assert rec.payloads == []
    assert channel.session.busy is False
    assert flag.read_bytes() == b"team-\xe2\x82"
    assert [r.levelno for r in caplog.records if "undecodable" in r.getMessage()] == [
        logging.DEBUG
    ]

    # Once the write completes the command goes through.
    _write(flag, "team-€\n")
    assert asyncio.run(channel.poll_once()) is True
    assert rec.payloads == ["team-€"]


def test_failed_cycle_is_logged_and_polling_continues(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    class _FlakyGrammar(NonceGrammar):
        def __init__(self) -> None:
            super().__init__("RELOAD")
            self.failures = 1

        def parse(self, content: str) -> FlagCommand | None:
            if self.failures:
                self.failures -= 1
                raise RuntimeError("parser bug")
            return super().parse(content)

    flag = tmp_path / "reload.signal"
    _write(flag, "RELOAD:1")
    rec = _Recorder()
    channel = FlagChannel(flag, _FlakyGrammar(), rec, interval=0.01, name="reload")

    async def scenario() -> None:
        await channel.start()
        for _ in range(200):
            if _read(flag) == "ACK:1":
                break
            await asyncio.sleep(0.01)
        await channel.stop()

    with caplog.at_level(logging.ERROR, logger="codestrap_bridge.flag_channel"):
        asyncio.run(scenario())
    assert rec.payloads == ["1"]
    assert any("poll cycle failed" in r.getMessage() for r in caplog.records)


def test_stop_lets_in_flight_handler_finish_and_ack(tmp_path: Path) -> None:
    flag = tmp_path / "reload.signal"
    events: list[str] = []

    async def slow_handler(command: FlagCommand) -> None:
        events.append("start")
        try:
            await asyncio.sleep(0.3)
        except asyncio.CancelledError:
            events.append("cancelled")
            raise
        events.append("done")

    channel = _reload_channel(flag, slow_handler)

    async def scenario() -> None:
        await channel.start()
        _write(flag, "RELOAD:1")
        for _ in range(200):
            if events:
                break
            await asyncio.sleep(0.01)
        await channel.stop()

    asyncio.run(scenario())
    assert events == ["start", "done"]
    assert _read(flag) == "ACK:1"
