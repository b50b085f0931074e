"""Battle report normalization and pairing rollup engine."""

__all__ = [
    "config",
    "timestamps",
    "parsers",
    "normalize",
    "rollup",
    "trends",
    "cursor",
    "query",
    "report",
    "render",
]
