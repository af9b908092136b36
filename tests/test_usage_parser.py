"""Tests for parsing the CLI /usage screen."""

from __future__ import annotations

from ccweb.terminal.usage_parser import (
    parse_percentage,
    parse_reset_time,
    parse_usage_output,
    strip_ansi,
)

USAGE_SCREEN = (
    "\x1b[2J\x1b[H Settings:  Status   Config   \x1b[1mUsage\x1b[0m\n"
    "\n"
    " \x1b[1mCurrent session\x1b[0m\n"
    " \x1b[38;5;208m██████\x1b[0m                                 12% used\n"
    " Resets 7:59pm (America/New_York)\n"
    "\n"
    " Current week (all models)\n"
    " █████████████████                             34% used\n"
    " Resets Jan 20, 9:59am (America/New_York)\n"
    "\n"
    " Current week (Sonnet only)\n"
    " ██                                                 5% used\n"
    " Resets Jan 20\n"
    "\n"
    " Esc to exit\n"
)


def test_strip_ansi() -> None:
    assert strip_ansi("\x1b[1mbold\x1b[0m \x1b]0;title\x07text") == "bold text"


def test_parse_percentage_and_reset() -> None:
    assert parse_percentage("███ 42% used") == 42
    assert parse_percentage("no numbers here") == 0
    assert parse_reset_time("Resets 3am (Europe/Berlin)") == ("3am", "Europe/Berlin")
    assert parse_reset_time("Reset tomorrow") == ("tomorrow", None)
    assert parse_reset_time("") == ("", None)


def test_parse_usage_output_buckets() -> None:
    usage = parse_usage_output(USAGE_SCREEN)

    assert usage.current_session is not None
    assert usage.current_session.name == "Current Session"
    assert usage.current_session.percent_used == 12
    assert usage.current_session.reset_time == "7:59pm"
    assert usage.current_session.reset_timezone == "America/New_York"

    assert usage.current_week_all_models is not None
    assert usage.current_week_all_models.percent_used == 34
    assert usage.current_week_all_models.reset_time == "Jan 20, 9:59am"

    assert usage.current_week_sonnet_only is not None
    assert usage.current_week_sonnet_only.percent_used == 5
    assert usage.current_week_sonnet_only.reset_timezone is None

    assert usage.raw_output is None
    assert usage.timestamp.endswith("Z")


def test_parse_usage_output_partial_and_raw() -> None:
    screen = " Current session\n 80% used\n"
    usage = parse_usage_output(screen, include_raw=True)
    assert usage.current_session is not None
    assert usage.current_session.percent_used == 80
    assert usage.current_session.reset_time == ""
    assert usage.current_week_all_models is None
    assert usage.raw_output == screen

    wire = usage.to_wire()
    assert "currentWeekAllModels" not in wire
    assert wire["currentSession"]["percentUsed"] == 80


def test_percent_line_without_section_is_ignored() -> None:
    usage = parse_usage_output("Context: 40% used\n")
    assert usage.current_session is None
