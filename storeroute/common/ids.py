"""Run identifiers and cache keys."""

from __future__ import annotations

from datetime import datetime, timezone


def generate_run_id() -> str:
    now = datetime.now(tz=timezone.utc)
    return now.strftime("route-%Y%m%dT%H%M%S%fZ")


def cache_key(discriminator: str, kind: str, code: str) -> str:
    """Key for one cached artifact, e.g. ``records:postal:3350016``."""
    return f"{discriminator}:{kind}:{code}"


def point_code(lat: float, lon: float) -> str:
    # Six decimals is ~0.1 m, finer than any probe radius.
    return f"{lat:.6f},{lon:.6f}"
