from __future__ import annotations

import json
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path
from typing import Dict, Optional


def _build_agent_home(home: Path) -> Dict[str, bytes]:
    files: Dict[str, bytes] = {}
    cfg = home / ".openclaw"
    cfg.mkdir(parents=True)
    config = {
        "auth": {"profiles": {"openai:default": {"provider": "openai", "mode": "api_key"}}},
        "agents": {"defaults": {"workspace": str(home / "clawd"), "logs": str(home / "clawd" / "logs")}},
        "skills": {"custom": str(home / "my-skills")},
    }
    (cfg / "openclaw.json").write_text(json.dumps(config, indent=2), encoding="utf-8")
    ws = home / "clawd"
    ws.mkdir()
    memory = b"# Memory\n\nThis is a mock memory file for testing migration.\n"
    (ws / "MEMORY.md").write_bytes(memory)
    files[".openclaw/workspace/MEMORY.md"] = memory
    data = os.urandom(4096)
    (ws / "logs").mkdir()
    (ws / "logs" / "run.bin").write_bytes(data)
    files[".openclaw/workspace/logs/run.bin"] = data
    return files


class CLIIntegrationTests(unittest.TestCase):
    def run_cli(self, args, *, expect: Optional[int] = 0, home: Optional[Path] = None, password: Optional[str] = None):
        cmd = [sys.executable, "-m", "ocmigrator.cli"] + list(args)
        env = os.environ.copy()
        repo_root = Path(__file__).resolve().parents[1]
        existing = env.get("PYTHONPATH", "")
        env["PYTHONPATH"] = str(repo_root) if not existing else f"{repo_root}{os.pathsep}{existing}"
        env.pop("MIGRATOR_PASSWORD", None)
        if password is not None:
            env["MIGRATOR_PASSWORD"] = password
        if home is not None:
            env["HOME"] = str(home)
        proc = subprocess.run(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            env=env,
        )
        if expect is not None and proc.returncode != expect:
            raise AssertionError(
                f"CLI exited {proc.returncode}, expected {expect}\nCommand: {' '.join(cmd)}\nSTDOUT:\n{proc.stdout}\nSTDERR:\n{proc.stderr}"
            )
        return proc

    def test_export_import_and_heal(self):
        if os.name != "posix":
            self.skipTest("HOME override is POSIX-only")
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            old_home = root / "old-home"
            expected = _build_agent_home(old_home)
            archive = root / "agent-backup.oca"

            export_proc = self.run_cli(["export", "-o", str(archive)], home=old_home, password="s3cret")
            self.assertIn("Done:", export_proc.stdout)
            self.assertTrue(archive.is_file())

            new_home = root / "new-home"
            new_home.mkdir()
            import_proc = self.run_cli(["import", "-i", str(archive)], home=new_home, password="s3cret")
            self.assertIn("Paths updated", import_proc.stdout)

            for rel, data in expected.items():
                self.assertEqual(new_home.joinpath(*rel.split("/")).read_bytes(), data)
            healed = json.loads((new_home / ".openclaw" / "openclaw.json").read_text(encoding="utf-8"))
            new_ws = str(new_home / ".openclaw" / "workspace")
            self.assertEqual(healed["agents"]["defaults"]["workspace"], new_ws)
            self.assertEqual(healed["agents"]["defaults"]["logs"], os.path.join(new_ws, "logs"))
            self.assertEqual(healed["skills"]["custom"], str(new_home / "my-skills"))

            again = self.run_cli(["import", "-i", str(archive), "--no-heal"], home=new_home, password="s3cret")
            self.assertNotIn("Paths", again.stdout)

    def test_explicit_sources_and_dest(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            src = root / "project"
            src.mkdir()
            (src / "notes.md").write_text("hello", encoding="utf-8")
            missing = root / "does-not-exist"
            archive = root / "out.oca"
            proc = self.run_cli(
                ["export", "-o", str(archive), "-p", "pw", "--source", str(missing), str(src)]
            )
            self.assertEqual(proc.stderr.count("Source dir not found"), 1)

            dest = root / "restore" / "here"
            proc = self.run_cli(["import", "-i", str(archive), "-p", "pw", "-d", str(dest)])
            self.assertEqual((dest / ".openclaw" / "workspace" / "notes.md").read_text(encoding="utf-8"), "hello")
            self.assertIn("healing skipped", proc.stdout)

    def test_info(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            src = root / "clawd"
            src.mkdir()
            (src / "a.txt").write_text("a", encoding="utf-8")
            archive = root / "out.oca"
            self.run_cli(["export", "-o", str(archive), "--source", str(src)], password="pw")
            proc = self.run_cli(["info", str(archive)], password="pw")
            self.assertIn("Authenticated: yes", proc.stdout)
            self.assertIn(f"Workspace: {src}", proc.stdout)

    def test_wrong_password_and_missing_password(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            src = root / "clawd"
            src.mkdir()
            (src / "a.txt").write_text("a", encoding="utf-8")
            archive = root / "out.oca"
            self.run_cli(["export", "-o", str(archive), "--source", str(src)], password="right")

            dest = root / "dest"
            proc = self.run_cli(["import", "-i", str(archive), "-d", str(dest)], password="wrong", expect=3)
            self.assertIn("Authentication failed", proc.stderr)
            self.assertEqual(os.listdir(dest), [])

            proc = self.run_cli(["import", "-i", str(archive), "-d", str(dest)], expect=2)
            self.assertIn("Password required", proc.stderr)

    def test_missing_or_invalid_archive(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            proc = self.run_cli(["import", "-i", str(root / "nope.oca"), "-d", str(root)], password="pw", expect=2)
            self.assertIn("Archive not found", proc.stderr)

            bogus = root / "bogus.oca"
            bogus.write_bytes(b"not an archive at all")
            proc = self.run_cli(["import", "-i", str(bogus), "-d", str(root / "d")], password="pw", expect=2)
            self.assertIn("invalid archive", proc.stderr)


if __name__ == "__main__":
    unittest.main()
