"""CLI entry point: python -m district_linkage.cli {match,revert,pending,review,export}"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

import structlog

from district_linkage.batch.runner import run_batch
from district_linkage.config.settings import get_settings
from district_linkage.db.engine import dispose_engine
from district_linkage.db.session import get_session_factory, reset_session_factory
from district_linkage.directory.service import build_directory, chunk_rows, tier_counts
from district_linkage.errors import DistrictLinkageError
from district_linkage.ledger.match_ledger import MatchLedger
from district_linkage.logging_config import configure_logging
from district_linkage.matching.policy import load_policy_for_run
from district_linkage.preprocessing.normalizer import load_normalization_rules
from district_linkage.review.queue import ReviewQueue


async def run_match(batch_id: str, activate: bool) -> dict:
    """Match one import batch and return its summary."""
    settings = get_settings()
    session_factory = get_session_factory()
    policy = await load_policy_for_run(session_factory, settings.matching_policy_path)
    rules = load_normalization_rules(settings.normalization_rules_path)

    summary = await run_batch(
        session_factory,
        batch_id,
        policy=policy,
        actor=settings.actor,
        worker_count=settings.worker_count,
        activate=activate,
        rules=rules,
    )
    return summary.as_dict()


async def run_revert(batch_id: str) -> dict:
    """Deactivate every active record of a batch."""
    ledger = MatchLedger(get_session_factory())
    deactivated = await ledger.deactivate_batch(batch_id)
    return {"batch_id": batch_id, "deactivated": deactivated}


async def run_pending(
    min_confidence: float | None, flagged_only: bool, region: str | None, limit: int
) -> list[dict]:
    """List the review queue, least certain first."""
    queue = ReviewQueue(get_session_factory())
    rows = await queue.pending(
        min_confidence=min_confidence, flagged_only=flagged_only, region=region, limit=limit
    )
    return [
        {
            "record_id": row.id,
            "source_id": row.source_id,
            "baseline_id": row.baseline_id,
            "method": row.method,
            "status": row.status,
            "confidence": row.confidence,
            "review_reason": row.review_reason,
            "decided_at": row.decided_at.isoformat() if row.decided_at else None,
        }
        for row in rows
    ]


async def run_review(
    record_id: int, decision: str, baseline_id: str | None, notes: str | None
) -> dict:
    """Accept or reject one queued record."""
    settings = get_settings()
    queue = ReviewQueue(get_session_factory())
    if decision == "accept":
        row = await queue.accept(record_id, settings.actor, baseline_id=baseline_id, notes=notes)
    else:
        row = await queue.reject(record_id, settings.actor, notes=notes)
    return {"record_id": row.id, "source_id": row.source_id, "baseline_id": row.baseline_id}


async def run_export(region: str | None, output_dir: Path) -> None:
    """Materialize the directory and write it to output_dir as JSON chunks."""
    log = structlog.get_logger()
    session_factory = get_session_factory()

    async with session_factory() as session:
        rows = await build_directory(session, region=region)

    log.info("directory_built", districts=len(rows), tiers=tier_counts(rows))

    chunks = chunk_rows(rows, filters={"region": region.upper() if region else None})
    output_dir.mkdir(parents=True, exist_ok=True)
    for filename, content in chunks:
        filepath = output_dir / filename
        filepath.write_text(content, encoding="utf-8")
        log.info(
            "export_file_written",
            path=str(filepath),
            districts=json.loads(content)["metadata"]["districtCount"],
        )

    log.info("export_complete", files=len(chunks), directory=str(output_dir))


async def _run(coro):
    try:
        return await coro
    finally:
        await dispose_engine()
        reset_session_factory()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="district_linkage.cli",
        description="State registry to NCES district linkage",
    )
    subparsers = parser.add_subparsers(dest="command")

    match_parser = subparsers.add_parser("match", help="Match one import batch")
    match_parser.add_argument("batch_id", help="Import batch id (must already exist)")
    match_parser.add_argument(
        "--no-activate",
        action="store_true",
        help="Record decisions but leave the batch inactive",
    )

    revert_parser = subparsers.add_parser("revert", help="Deactivate a batch's matches")
    revert_parser.add_argument("batch_id")

    pending_parser = subparsers.add_parser("pending", help="List the review queue")
    pending_parser.add_argument("--min-confidence", type=float, default=None)
    pending_parser.add_argument("--flagged-only", action="store_true")
    pending_parser.add_argument("--region", type=str, default=None)
    pending_parser.add_argument("--limit", type=int, default=50)

    review_parser = subparsers.add_parser("review", help="Accept or reject a queued record")
    review_parser.add_argument("record_id", type=int)
    review_parser.add_argument("decision", choices=["accept", "reject"])
    review_parser.add_argument(
        "--baseline-id", type=str, default=None, help="Target NCES id (accept only)"
    )
    review_parser.add_argument("--notes", type=str, default=None)

    export_parser = subparsers.add_parser("export", help="Export the unified directory as JSON")
    export_parser.add_argument("--region", type=str, default=None, help="Two-letter state code")
    export_parser.add_argument(
        "--output-dir",
        type=str,
        default=None,
        help="Output directory (default: DISTRICT_LINKAGE_EXPORT_DIR)",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    settings = get_settings()
    configure_logging(json_output=settings.log_json, log_level=settings.log_level)

    try:
        if args.command == "match":
            result = asyncio.run(_run(run_match(args.batch_id, activate=not args.no_activate)))
        elif args.command == "revert":
            result = asyncio.run(_run(run_revert(args.batch_id)))
        elif args.command == "pending":
            result = asyncio.run(
                _run(run_pending(args.min_confidence, args.flagged_only, args.region, args.limit))
            )
        elif args.command == "review":
            result = asyncio.run(
                _run(run_review(args.record_id, args.decision, args.baseline_id, args.notes))
            )
        else:
            output_dir = Path(args.output_dir) if args.output_dir else settings.export_dir
            asyncio.run(_run(run_export(args.region, output_dir)))
            return
    except DistrictLinkageError as exc:
        structlog.get_logger().error("command_failed", command=args.command, error=str(exc))
        sys.exit(2)

    print(json.dumps(result, indent=2, default=str))


if __name__ == "__main__":
    main()
