"""Tests for the command line interface."""

import json
from unittest.mock import patch

import pytest

from district_linkage.batch.runner import run_batch
from district_linkage.cli.__main__ import (
    build_parser,
    main,
    run_export,
    run_match,
    run_pending,
    run_revert,
    run_review,
)
from district_linkage.config.settings import Settings
from district_linkage.ledger.match_ledger import MatchLedger
from district_linkage.matching.policy import MatchPolicy

CLI = "district_linkage.cli.__main__"


def test_parser_match_defaults():
    args = build_parser().parse_args(["match", "batch-1"])
    assert args.command == "match"
    assert args.batch_id == "batch-1"
    assert args.no_activate is False


def test_parser_review():
    args = build_parser().parse_args(["review", "7", "accept", "--baseline-id", "0622710"])
    assert args.record_id == 7
    assert args.decision == "accept"
    assert args.baseline_id == "0622710"


def test_parser_rejects_unknown_decision():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["review", "7", "maybe"])


def test_help_exits_cleanly(capsys):
    with pytest.raises(SystemExit) as exc_info:
        main(["--help"])
    assert exc_info.value.code == 0
    assert "State registry to NCES district linkage" in capsys.readouterr().out


def test_no_command_prints_help(capsys):
    with pytest.raises(SystemExit) as exc_info:
        main([])
    assert exc_info.value.code == 1
    assert "usage" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_run_match_and_revert(seeded_db, tmp_path):
    """match then revert leaves no active decisions behind."""
    settings = Settings(
        matching_policy_path=tmp_path / "absent.yaml", actor="cli-test", worker_count=2
    )
    with patch(f"{CLI}.get_settings", return_value=settings), patch(
        f"{CLI}.get_session_factory", return_value=seeded_db
    ):
        summary = await run_match("batch-1", activate=True)

        assert summary["status"] == "activated"
        assert summary["activated"] == 4
        assert summary["errored"] == 2

        reverted = await run_revert("batch-1")

    assert reverted == {"batch_id": "batch-1", "deactivated": 4}
    assert await MatchLedger(seeded_db).active_record_for("src-la") is None
    assert (await MatchLedger(seeded_db).history("src-la"))[0].decided_by == "cli-test"


@pytest.mark.asyncio
async def test_run_pending_and_review(seeded_db):
    await run_batch(seeded_db, "batch-1", policy=MatchPolicy())

    with patch(f"{CLI}.get_session_factory", return_value=seeded_db), patch(
        f"{CLI}.get_settings", return_value=Settings(actor="reviewer")
    ):
        pending = await run_pending(min_confidence=None, flagged_only=False, region=None, limit=10)
        assert [p["method"] for p in pending] == ["normalized_name", "exact_name", "exact_id"]
        json.dumps(pending)

        decided = await run_review(pending[0]["record_id"], "accept", None, "looks right")

    assert decided["source_id"] == "src-la"
    assert decided["baseline_id"] == "0622710"
    manual = await MatchLedger(seeded_db).active_match_for("src-la")
    assert manual.verified_by == "reviewer"


@pytest.mark.asyncio
async def test_run_export(seeded_db, tmp_path):
    """run_export writes directory JSON chunks for one region."""
    output_dir = tmp_path / "out"

    with patch(f"{CLI}.get_session_factory", return_value=seeded_db):
        await run_export(region="ma", output_dir=output_dir)

    files = list(output_dir.glob("directory_MA_*_part_*.json"))
    assert len(files) == 1
    data = json.loads(files[0].read_text())
    assert data["metadata"]["districtCount"] == 1
    assert data["metadata"]["filters"] == {"region": "MA"}
    assert data["districts"][0]["nces_id"] == "2502790"


@pytest.mark.asyncio
async def test_run_export_empty_region(seeded_db, tmp_path):
    output_dir = tmp_path / "empty"

    with patch(f"{CLI}.get_session_factory", return_value=seeded_db):
        await run_export(region="WY", output_dir=output_dir)

    [path] = output_dir.glob("directory_WY_*_part_1.json")
    data = json.loads(path.read_text())
    assert data["districts"] == []
    assert data["metadata"]["totalParts"] == 1
