from __future__ import annotations

import re

from .constants import CONFIG_ROOT, CONFIG_ROOT_NAMES, MANIFEST_NAME, WORKSPACE_DIR_NAME
from .errors import SecurityRejection


_DRIVE_RE = re.compile(r"^[A-Za-z]:")


def _segments(p: str) -> list[str]:
    p = p.replace("\\", "/")
    return [q for q in p.split("/") if q not in ("", ".")]


def normalize_entry_path(name: str) -> str:
    """Map a container entry name to its restore path (forward slashes).

    Rules:
    - Reject absolute names, drive prefixes and '..' segments
    - Drop empty and '.' segments
    - A configuration root (current or legacy name) becomes the canonical root
    - The manifest stays at the container root
    - Any other root ``R/rest`` becomes ``<config>/workspace/rest``
    """
    raw = name.replace("\\", "/")
    if raw.startswith("/") or _DRIVE_RE.match(raw):
        raise SecurityRejection(name, "Absolute entry path")
    parts = _segments(raw)
    if not parts:
        raise SecurityRejection(name, "Empty entry path")
    if ".." in parts:
        raise SecurityRejection(name, "Entry path escapes target")

    top, rest = parts[0], parts[1:]
    if top in CONFIG_ROOT_NAMES:
        out = [CONFIG_ROOT] + rest
    elif top == MANIFEST_NAME and not rest:
        out = [MANIFEST_NAME]
    else:
        out = [CONFIG_ROOT, WORKSPACE_DIR_NAME] + rest

    if ".." in out:
        raise SecurityRejection(name, "Entry path escapes target")
    return "/".join(out)
