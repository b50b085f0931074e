from __future__ import annotations

import argparse
import json
import logging
from dataclasses import asdict
from typing import Any, Dict, List, Optional, Sequence, Tuple

from dotenv import load_dotenv
from pydantic import ValidationError

from .config import engine_config_from_env
from .cursor import InvalidCursorError, paginate
from .normalize import BattleEvent, normalize_documents
from .query import PageQuery, RollupQuery
from .render import render_breakdown_text, render_text
from .report import build_breakdown, build_report


def _read_documents(path: str) -> List[Dict[str, Any]]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise SystemExit(f"Could not read documents from {path}: {exc}")
    if isinstance(raw, dict):
        raw = raw.get("documents") or []
    if not isinstance(raw, list):
        raise SystemExit(f"Expected a JSON list of documents in {path}")
    return raw


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Pairing rollup over battle report documents")
    parser.add_argument("--from-raw", required=True, help="JSON file with a list of report documents")
    parser.add_argument("--start", default=None, help="First day, YYYY-MM-DD")
    parser.add_argument("--end", default=None, help="Last day, YYYY-MM-DD (inclusive)")
    parser.add_argument("--year", type=int, default=None, help="Calendar year when no days are given")
    parser.add_argument("--events", action="store_true", help="List normalized events instead of a rollup")
    parser.add_argument("--cursor", default=None, help="Resume an event listing after this cursor")
    parser.add_argument("--limit", type=int, default=None, help="Events per page")
    parser.add_argument("--pairing", default=None, help="Commander pairing PRIMARY:SECONDARY to break down")
    parser.add_argument(
        "--breakdown", choices=["loadouts", "enemies"], default="loadouts", help="Breakdown for --pairing"
    )
    parser.add_argument(
        "--granularity",
        choices=["overall", "exact", "normalized"],
        default=None,
        help="Loadout granularity (loadouts: exact; enemies: overall)",
    )
    parser.add_argument("--loadout-key", default=None, help="Restrict an enemy breakdown to one loadout")
    parser.add_argument("--output", default=None, help="Path to output report JSON/text")
    parser.add_argument(
        "--output-format", choices=["json", "text"], default="json", help="Output format"
    )
    parser.add_argument("--debug", action="store_true", help="Print debug logs")
    return parser.parse_args(argv)


def _parse_pairing(value: str) -> Tuple[int, int]:
    parts = value.replace("/", ":").split(":")
    try:
        primary, secondary = (int(p) for p in parts)
    except ValueError:
        raise SystemExit(f"Invalid pairing {value!r}; expected PRIMARY:SECONDARY")
    return primary, secondary


def _event_page(documents: List[Dict[str, Any]], args: argparse.Namespace) -> Dict[str, Any]:
    config = engine_config_from_env()
    try:
        page_query = PageQuery(cursor=args.cursor, limit=args.limit or config.page_size)
    except ValidationError as exc:
        raise SystemExit(f"Invalid page request: {exc}")

    def _position(event: BattleEvent):
        return (event.timestamp_ms, event.record_id)

    try:
        page = paginate(
            normalize_documents(documents),
            key=_position,
            cursor=page_query.cursor,
            limit=page_query.limit,
        )
    except InvalidCursorError as exc:
        raise SystemExit(f"{exc}; restart without --cursor")
    return {"items": [asdict(e) for e in page.items], "cursor": page.next_cursor}


def main(argv: Optional[Sequence[str]] = None) -> None:
    load_dotenv()
    args = _parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.debug else logging.WARNING)

    documents = _read_documents(args.from_raw)

    if args.events:
        output_text = json.dumps(_event_page(documents, args), indent=2)
    else:
        try:
            query = RollupQuery(start=args.start, end=args.end, year=args.year)
        except ValidationError as exc:
            raise SystemExit(f"Invalid window: {exc}")
        if args.pairing:
            try:
                breakdown = build_breakdown(
                    documents,
                    query.window(),
                    _parse_pairing(args.pairing),
                    args.breakdown,
                    granularity=args.granularity,
                    loadout_key=args.loadout_key,
                )
            except ValueError as exc:
                raise SystemExit(f"Invalid breakdown: {exc}")
            if args.output_format == "json":
                output_text = json.dumps(breakdown, indent=2)
            else:
                output_text = render_breakdown_text(breakdown)
        else:
            config = engine_config_from_env()
            report = build_report(documents, query.window(), max_records=config.max_records)
            if args.output_format == "json":
                output_text = json.dumps(report, indent=2)
            else:
                output_text = render_text(report)

    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(output_text)
    else:
        print(output_text)


if __name__ == "__main__":
    main()
