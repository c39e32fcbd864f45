from __future__ import annotations

import argparse
import getpass as _getpass
import logging
import os
import sys
import time
from pathlib import Path
from typing import List, Optional

from ocmigrator.constants import (
    CONFIG_ROOT,
    DEFAULT_ARCHIVE_NAME,
    DEFAULT_WORKSPACE_NAME,
    PASSWORD_ENV_VAR,
)
from ocmigrator.errors import AuthenticationError, FormatError, MigratorError
from ocmigrator.heal import fix_paths
from ocmigrator.reader import ArchiveReader, restore_archive
from ocmigrator.writer import create_archive


def _resolve_password(password: Optional[str]) -> str:
    """Flag, then environment, then an interactive prompt."""
    if password:
        return password
    env_pw = os.environ.get(PASSWORD_ENV_VAR)
    if env_pw:
        return env_pw
    if not sys.stdin.isatty():
        raise RuntimeError(f"Password required. Use --password or set {PASSWORD_ENV_VAR}.")
    return _getpass.getpass("Archive password: ")


def _default_sources() -> List[str]:
    home = Path.home()
    return [str(home / CONFIG_ROOT), str(home / DEFAULT_WORKSPACE_NAME)]


def cmd_export(output: str, sources: List[str], *, password: Optional[str] = None, quiet: bool = False) -> bool:
    """Export configuration and workspace directories to an encrypted archive.

    Args:
        output: Path of the archive to write (overwritten if present).
        sources: Directories to store; each becomes a root named by its base name.
        password: Encryption password (falls back to the environment or a prompt).
    """
    pw = _resolve_password(password)
    out = os.path.abspath(output)
    if not quiet:
        print(f" Archiving sources: {', '.join(sources)}")
    t0 = time.time()
    stats = create_archive(sources, out, pw)
    dt = max(0.000001, time.time() - t0)
    mib = stats.bytes / (1024.0 * 1024.0)
    print(
        f"Done: {stats.files} files, {stats.dirs} dirs; {mib:.2f} MiB in {dt:.1f}s; "
        f"archive written to {out}"
    )
    return True


def cmd_import(
    archive: str,
    *,
    dest: Optional[str] = None,
    password: Optional[str] = None,
    heal: bool = True,
    quiet: bool = False,
) -> bool:
    """Restore an archive into ``dest`` and repair path references.

    Args:
        archive: Archive produced by ``export``.
        dest: Destination directory (defaults to the home directory; created if missing).
        password: Decryption password.
        heal: Run path healing on the restored configuration.
    """
    pw = _resolve_password(password)
    src = os.path.abspath(archive)
    if not os.path.isfile(src):
        raise FileNotFoundError(f"Archive not found: {src}")
    dst = os.path.abspath(dest or str(Path.home()))
    os.makedirs(dst, exist_ok=True)
    if not quiet:
        print(f" Restoring to: {dst}")
    t0 = time.time()
    stats = restore_archive(src, dst, pw)
    dt = max(0.000001, time.time() - t0)
    for name in stats.rejected:
        print(f"Warning: skipped unsafe entry: {name}", file=sys.stderr)
    print(
        f"Done: extracted {stats.files} files, {stats.dirs} dirs in {dt:.1f}s; "
        f"rejected={len(stats.rejected)} ignored={stats.ignored}"
    )
    if heal:
        report = fix_paths(dst)
        if report is None:
            print("No configuration restored; path healing skipped")
        elif report.changed:
            print(f"Paths updated ({report.replacements} replacement(s)); workspace: {report.workspace}")
        else:
            print("Paths already up to date")
    return True


def cmd_info(archive: str, *, password: Optional[str] = None) -> bool:
    """Authenticate an archive and show its header and manifest.

    Args:
        archive: Archive path.
        password: Decryption password.
    """
    pw = _resolve_password(password)
    with ArchiveReader(archive, pw) as r:
        r.verify()
        manifest = r.read_manifest()
        print(f"Archive: {archive}")
        if r.header:
            print(f"  Version: {r.header.version}")
            print(f"  Algorithm: {r.header.algorithm_id} (AES-256-GCM)")
            print(f"  Salt/IV: {len(r.header.salt)}/{len(r.header.iv)} bytes")
        print("  Authenticated: yes")
        if manifest is None:
            print("  Manifest: none")
        else:
            print(f"  Created: {manifest.created_at}")
            print(f"  Home: {manifest.home_original}")
            print(f"  Workspace: {manifest.workspace_original or '-'}")
            env = manifest.env
            print(f"  Host: {env.get('runtime', '?')} on {env.get('platform', '?')}/{env.get('arch', '?')}")
    return True


def main(argv: List[str] | None = None):
    ap = argparse.ArgumentParser(
        prog="ocmigrator",
        description="Securely migrate OpenClaw agents between machines",
        epilog=f"The password may also be supplied through {PASSWORD_ENV_VAR}.",
    )
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_export = sub.add_parser("export", help="Export agent state to an encrypted archive")
    ap_export.add_argument("-o", "--output", default=DEFAULT_ARCHIVE_NAME, help="Output archive path")
    ap_export.add_argument("-p", "--password", help="Encryption password")
    ap_export.add_argument("--source", nargs="+", default=None, help="Source directories (default: ~/.openclaw ~/clawd)")
    ap_export.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")

    ap_import = sub.add_parser("import", help="Restore agent state from an archive")
    ap_import.add_argument("-i", "--input", required=True, help="Input archive path")
    ap_import.add_argument("-p", "--password", help="Decryption password")
    ap_import.add_argument("-d", "--dest", default=None, help="Destination directory (defaults to HOME)")
    ap_import.add_argument("--no-heal", action="store_true", help="Do not rewrite paths in the restored configuration")
    ap_import.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")

    ap_info = sub.add_parser("info", help="Authenticate an archive and show its manifest")
    ap_info.add_argument("archive", help="Archive path")
    ap_info.add_argument("-p", "--password", help="Archive password")

    args = ap.parse_args(argv)
    quiet = getattr(args, "quiet", False)
    logging.basicConfig(
        level=logging.ERROR if quiet else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )
    try:
        if args.cmd == "export":
            cmd_export(args.output, args.source or _default_sources(), password=args.password, quiet=quiet)
        elif args.cmd == "import":
            cmd_import(args.input, dest=args.dest, password=args.password, heal=not args.no_heal, quiet=quiet)
        elif args.cmd == "info":
            cmd_info(args.archive, password=args.password)
        else:
            raise RuntimeError("Unknown command")
    except AuthenticationError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(3)
    except FormatError as e:
        print(f"Error: invalid archive: {e}", file=sys.stderr)
        sys.exit(2)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except (MigratorError, OSError, ValueError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
