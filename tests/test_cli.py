"""Tests for command line parsing."""

from __future__ import annotations

from pathlib import Path

from litewatch.cli import build_settings, parse_args


def test_flags_override_environment() -> None:
    args = parse_args(["serve", "--port", "5000", "--poll-interval", "0.25"])

    settings = build_settings(args, {"DB_PATH": "/data/app.sqlite", "PORT": "4100"})

    assert settings.port == 5000
    assert settings.poll_interval == 0.25
    assert settings.db_path == Path("/data/app.sqlite")


def test_db_flag_wins_over_environment() -> None:
    args = parse_args(["serve", "--db", "local.sqlite"])

    settings = build_settings(args, {"DB_PATH": "/data/app.sqlite"})

    assert settings.db_path == Path("local.sqlite")


def test_view_accepts_candidate_ports() -> None:
    args = parse_args(["view", "--ports", "4000", "4001", "4002"])

    assert args.command == "view"
    assert args.ports == [4000, 4001, 4002]


def test_no_subcommand_is_allowed() -> None:
    args = parse_args([])

    assert args.command is None
