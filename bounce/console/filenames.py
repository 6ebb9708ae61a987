"""Export filename templating.

Tokens: ``{patternName}``, ``{arrangementName}``, ``{channelName}``,
``{timestamp}``, ``{format}``. A template that is empty or still contains a
``{...}`` token after substitution falls back to ``<name>_<epochMillis>.<ext>``.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone

from bounce.console.catalog import ExportFormat

_UNRESOLVED = re.compile(r"\{[^{}]*\}")
_UNSAFE = re.compile(r"[\\/:*?\"<>|]+")


def _timestamp(now: datetime) -> str:
    # 2026-10-18T09-15-02
    return now.strftime("%Y-%m-%dT%H-%M-%S")


def with_item_token(template: str) -> str:
    """Make ``template`` name each item of a multi-file export apart.

    Templates that already use ``{channelName}`` are returned unchanged. Otherwise
    the token goes in front of ``{timestamp}``, or at the end.
    """
    if not template or "{channelName}" in template:
        return template
    if "{timestamp}" in template:
        return template.replace("{timestamp}", "{channelName}_{timestamp}", 1)
    return template + "_{channelName}"


def generate_filename(
    template: str,
    fmt: ExportFormat,
    *,
    name: str = "export",
    pattern_name: str | None = None,
    arrangement_name: str | None = None,
    channel_name: str | None = None,
    now: datetime | None = None,
) -> str:
    """Resolve ``template`` into a filename ending in the format's extension."""
    now = now or datetime.now(timezone.utc)
    values = {
        "patternName": pattern_name,
        "arrangementName": arrangement_name,
        "channelName": channel_name,
        "timestamp": _timestamp(now),
        "format": fmt.value.upper(),
    }

    filename = template or ""
    for token, value in values.items():
        if value is not None:
            filename = filename.replace("{" + token + "}", value)

    if not filename.strip() or _UNRESOLVED.search(filename):
        filename = f"{name}_{int(now.timestamp() * 1000)}"

    filename = _UNSAFE.sub("_", filename)
    if not filename.endswith(fmt.extension):
        filename += fmt.extension
    return filename
