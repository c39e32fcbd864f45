"""
OpenClaw migrator: move an agent's configuration and workspace to another machine.

Features:

- Single-file export: tar+gzip container encrypted with AES-256-GCM, key derived
  with Argon2id from a password. The 16-byte tag trails the ciphertext and is
  recovered while streaming, so archives are never buffered in memory.
- Restore with path-traversal rejection and normalization of legacy
  configuration directory names into the current layout.
- Path healing: rewrites home and workspace references inside the restored
  configuration for the new host.

Archive layout: "OCM1" | version | algorithm | salt_len | iv_len | salt | iv |
ciphertext | tag.
"""

__version__ = "0.1"

__all__ = [
    "constants",
    "writer",
    "reader",
    "heal",
    "encryption",
]

# Programmatic API: ocmigrator.writer.create_archive, ocmigrator.reader.restore_archive
# and ocmigrator.heal.fix_paths; the CLI functions in ocmigrator.cli (cmd_export/cmd_import)
# take normal parameters.
