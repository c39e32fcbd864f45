from __future__ import annotations

import json
import os
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

from ocmigrator.errors import FormatError
from ocmigrator.manifest import HostContext, Manifest, load_manifest


HOST = HostContext(
    home="/home/olduser",
    runtime="CPython 3.12.1",
    platform="linux",
    arch="x86_64",
    now=datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
)


class ManifestTests(unittest.TestCase):
    def test_build_from_sources(self):
        m = Manifest.build(["/home/olduser/.openclaw", "/home/olduser/clawd", "/srv/other"], HOST)
        self.assertEqual(m.home_original, "/home/olduser")
        self.assertEqual(m.workspace_original, "/home/olduser/clawd")
        self.assertEqual(m.env, {"runtime": "CPython 3.12.1", "platform": "linux", "arch": "x86_64"})
        self.assertEqual(m.created_at, "2026-01-02T03:04:05+00:00")

    def test_build_without_workspace(self):
        m = Manifest.build(["/home/olduser/.openclaw/", "/home/olduser/.clawdbot"], HOST)
        self.assertIsNone(m.workspace_original)

    def test_json_keys(self):
        m = Manifest.build(["/home/olduser/clawd"], HOST)
        obj = json.loads(m.to_bytes().decode("utf-8"))
        self.assertEqual(
            set(obj),
            {"version", "env", "workspaceOriginal", "homeOriginal", "createdAt"},
        )
        self.assertEqual(Manifest.from_dict(obj), m)

    def test_accepts_prototype_home_key(self):
        m = Manifest.from_dict({"home": "/Users/olduser"})
        self.assertEqual(m.home_original, "/Users/olduser")
        self.assertIsNone(m.workspace_original)

    def test_rejects_malformed(self):
        with self.assertRaises(FormatError):
            Manifest.from_bytes(b"{not json")
        with self.assertRaises(FormatError):
            Manifest.from_dict({"workspaceOriginal": "/x"})
        with self.assertRaises(FormatError):
            Manifest.from_dict(["/x"])

    def test_load_manifest(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "manifest.json"
            self.assertIsNone(load_manifest(str(path)))
            m = Manifest.build(["/home/olduser/clawd"], HOST)
            path.write_bytes(m.to_bytes())
            self.assertEqual(load_manifest(str(path)), m)

    def test_current_host(self):
        host = HostContext.current()
        self.assertTrue(os.path.isabs(host.home))
        self.assertIsNotNone(host.now.tzinfo)


if __name__ == "__main__":
    unittest.main()
