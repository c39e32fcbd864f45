from __future__ import annotations

import json
import os
import platform
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from .constants import CONFIG_ROOT_NAMES, MANIFEST_VERSION
from .errors import FormatError


@dataclass
class HostContext:
    """Facts about the machine an operation runs on.

    Passed explicitly into the writer and the healer so tests can pin them.
    """
    home: str
    runtime: str
    platform: str
    arch: str
    now: datetime

    @classmethod
    def current(cls) -> "HostContext":
        return cls(
            home=str(Path.home()),
            runtime=f"{platform.python_implementation()} {platform.python_version()}",
            platform=sys.platform,
            arch=platform.machine(),
            now=datetime.now(timezone.utc),
        )


@dataclass
class Manifest:
    home_original: str
    workspace_original: Optional[str] = None
    env: Dict[str, str] = field(default_factory=dict)
    created_at: str = ""
    version: int = MANIFEST_VERSION

    @classmethod
    def build(cls, sources: Iterable[str], host: HostContext) -> "Manifest":
        workspace = None
        for src in sources:
            name = os.path.basename(os.path.normpath(src))
            if name not in CONFIG_ROOT_NAMES:
                workspace = os.path.abspath(src)
                break
        return cls(
            home_original=host.home,
            workspace_original=workspace,
            env={"runtime": host.runtime, "platform": host.platform, "arch": host.arch},
            created_at=host.now.isoformat(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "env": dict(self.env),
            "workspaceOriginal": self.workspace_original,
            "homeOriginal": self.home_original,
            "createdAt": self.created_at,
        }

    def to_bytes(self) -> bytes:
        return json.dumps(self.to_dict(), indent=2).encode("utf-8")

    @staticmethod
    def from_dict(obj: Dict[str, Any]) -> "Manifest":
        if not isinstance(obj, dict):
            raise FormatError("Manifest must be a JSON object")
        # "home" is the key early prototypes wrote
        home = obj.get("homeOriginal", obj.get("home"))
        if not isinstance(home, str) or not home:
            raise FormatError("Manifest has no original home directory")
        workspace = obj.get("workspaceOriginal")
        if workspace is not None and not isinstance(workspace, str):
            raise FormatError("Manifest workspaceOriginal must be a string or null")
        env = obj.get("env") or {}
        return Manifest(
            home_original=home,
            workspace_original=workspace or None,
            env={str(k): str(v) for k, v in env.items()} if isinstance(env, dict) else {},
            created_at=str(obj.get("createdAt", "")),
            version=int(obj.get("version", MANIFEST_VERSION)),
        )

    @staticmethod
    def from_bytes(b: bytes) -> "Manifest":
        try:
            obj = json.loads(b.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise FormatError(f"Manifest is not valid JSON: {exc}") from exc
        return Manifest.from_dict(obj)


def load_manifest(path: str) -> Optional[Manifest]:
    if not os.path.isfile(path):
        return None
    with open(path, "rb") as fh:
        return Manifest.from_bytes(fh.read())
