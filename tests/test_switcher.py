from __future__ import annotations

import asyncio
from pathlib import Path

from fakes import FakeHost

from codestrap_bridge.flag_channel import FlagChannel, FlagCommand, NameGrammar
from codestrap_bridge.output import LogNotifier
from codestrap_bridge.profiles.host import (
    CREATE_AND_SWITCH_PROFILE,
    CREATE_PROFILE,
    SWITCH_PROFILE,
)
from codestrap_bridge.profiles.switcher import ProfileSwitcher, ProfileSwitchHandler

ALL_ATTEMPTS = [
    (SWITCH_PROFILE, "string"),
    (SWITCH_PROFILE, "structured"),
    (CREATE_AND_SWITCH_PROFILE, "string"),
    (CREATE_AND_SWITCH_PROFILE, "structured"),
    (CREATE_PROFILE, "string"),
    (CREATE_PROFILE, "structured"),
]


def test_direct_switch_short_circuits() -> None:
    host = FakeHost({(SWITCH_PROFILE, "string")})
    switcher = ProfileSwitcher(host)
    assert asyncio.run(switcher.switch_to("team-default")) is True
    assert host.calls == [(SWITCH_PROFILE, ("team-default",))]


def test_structured_form_is_tried_after_string_form() -> None:
    host = FakeHost({(SWITCH_PROFILE, "structured")})
    switcher = ProfileSwitcher(host)
    assert asyncio.run(switcher.switch_to("team-default")) is True
    assert host.calls == [
        (SWITCH_PROFILE, ("team-default",)),
        (SWITCH_PROFILE, ({"name": "team-default"},)),
    ]


def test_create_and_switch_is_second_strategy() -> None:
    host = FakeHost({(CREATE_AND_SWITCH_PROFILE, "structured")})
    switcher = ProfileSwitcher(host)
    assert asyncio.run(switcher.switch_to("team-default")) is True
    assert switcher.attempts == ALL_ATTEMPTS[:4]


def test_create_then_switch_retries_direct_forms() -> None:
    # Direct switch only works once the profile exists.
    host = FakeHost(
        {(CREATE_PROFILE, "string")},
        results={(SWITCH_PROFILE, "string"): False},
    )
    switcher = ProfileSwitcher(host)

    async def scenario() -> bool:
        original = host.execute_command

        async def execute(command: str, *args):
            if command == CREATE_PROFILE:
                host.results.pop((SWITCH_PROFILE, "string"))
                host.works.add((SWITCH_PROFILE, "string"))
            return await original(command, *args)

        host.execute_command = execute  # type: ignore[method-assign]
        return await switcher.switch_to("team-default")

    assert asyncio.run(scenario()) is True
    assert switcher.attempts == ALL_ATTEMPTS[:5] + [(SWITCH_PROFILE, "string")]


def test_explicit_false_result_counts_as_not_ok() -> None:
    host = FakeHost(results={key: False for key in ALL_ATTEMPTS})
    switcher = ProfileSwitcher(host)
    assert asyncio.run(switcher.switch_to("team-default")) is False
    assert switcher.attempts == ALL_ATTEMPTS


def test_all_strategies_fail_and_never_call_without_argument() -> None:
    host = FakeHost()
    switcher = ProfileSwitcher(host)
    assert asyncio.run(switcher.switch_to("  team-default  ")) is False
    assert switcher.attempts == ALL_ATTEMPTS
    assert all(len(args) == 1 for _command, args in host.calls)
    assert host.calls[0] == (SWITCH_PROFILE, ("team-default",))


def test_blank_name_is_rejected_without_probing() -> None:
    host = FakeHost({(SWITCH_PROFILE, "string")})
    assert asyncio.run(ProfileSwitcher(host).switch_to("   ")) is False
    assert host.calls == []


def test_failed_switch_still_acks_and_warns(tmp_path: Path) -> None:
    flag = tmp_path / "profile.signal"
    flag.write_text("team-default\n", encoding="utf-8")
    host = FakeHost()
    notifier = LogNotifier()
    applied: list[bool] = []

    async def apply() -> None:
        applied.append(True)

    handler = ProfileSwitchHandler(ProfileSwitcher(host), notifier, apply=apply, settle_delay=0)
    channel = FlagChannel(flag, NameGrammar(), handler, interval=0.01)

    assert asyncio.run(channel.poll_once()) is True
    assert flag.read_text(encoding="utf-8").strip() == "ACK:team-default"
    [note] = notifier.recent()
    assert note["severity"] == "warning"
    assert "team-default" in note["message"]
    assert "manually" in note["message"]
    assert applied == []
    assert len(host.calls) == len(ALL_ATTEMPTS)


def test_successful_switch_notifies_and_applies() -> None:
    host = FakeHost({(SWITCH_PROFILE, "string")})
    notifier = LogNotifier()
    applied: list[bool] = []

    async def apply() -> None:
        applied.append(True)

    handler = ProfileSwitchHandler(ProfileSwitcher(host), notifier, apply=apply, settle_delay=0)
    asyncio.run(handler(FlagCommand(payload="team-default")))
    assert applied == [True]
    assert notifier.recent()[-1] == {
        "severity": "info",
        "message": "Switched to profile 'team-default'.",
        "timestamp": notifier.recent()[-1]["timestamp"],
    }
