from __future__ import annotations

from typing import Any, Dict


def _fmt(value: float) -> str:
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.2f}"


def render_text(report: Dict[str, Any]) -> str:
    meta = report.get("meta", {})
    window = report.get("window", {})
    previous = report.get("previous_window", {})
    items = report.get("items", [])

    lines = []
    lines.append("PAIRING ROLLUP")
    lines.append(f"Window: {window.get('start')} -> {window.get('end')}")
    lines.append(f"Compared to: {previous.get('start')} -> {previous.get('end')}")
    lines.append(
        f"Documents: {meta.get('documents', 0)} | Events: {meta.get('events', 0)} | "
        f"Pairings: {meta.get('pairings', 0)}"
    )
    lines.append("")

    for item in items:
        totals = item.get("totals") or {}
        trends = item.get("trends") or {}
        lines.append(
            f"- {item.get('primary_commander_id')}/{item.get('secondary_commander_id')}: "
            f"{item.get('count', 0)} battles"
        )
        for metric in ("kill_score", "deaths", "severely_wounded", "dps"):
            label = (trends.get(metric) or {}).get("label", "N/A")
            lines.append(f"  {metric}: {_fmt(totals.get(metric, 0))} ({label})")
        months = item.get("monthly") or []
        if months:
            lines.append(
                "  months: " + ", ".join(f"{m.get('month_key')}={m.get('count')}" for m in months)
            )

    if not items:
        lines.append("No battles in window.")

    return "\n".join(lines)


def render_breakdown_text(breakdown: Dict[str, Any]) -> str:
    pairing = breakdown.get("pairing", {})
    window = breakdown.get("window", {})
    items = breakdown.get("items", [])

    lines = []
    lines.append(f"{str(breakdown.get('breakdown', '')).upper()} BREAKDOWN")
    lines.append(
        f"Pairing: {pairing.get('primary_commander_id')}/{pairing.get('secondary_commander_id')}"
    )
    lines.append(f"Window: {window.get('start')} -> {window.get('end')}")
    lines.append("")

    for item in items:
        if "key" in item:
            name = item["key"]
        else:
            name = f"vs {item.get('enemy_primary_commander_id')}/{item.get('enemy_secondary_commander_id')}"
        totals = item.get("totals") or {}
        lines.append(
            f"- {name}: {item.get('count', 0)} battles, "
            f"kill_score {_fmt(totals.get('kill_score', 0))}"
        )

    if not items:
        lines.append("No battles in window.")

    return "\n".join(lines)
