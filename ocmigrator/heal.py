from __future__ import annotations

import copy
import json
import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .constants import CONFIG_FILE_NAME, CONFIG_ROOT, MANIFEST_NAME, WORKSPACE_DIR_NAME
from .errors import FormatError
from .manifest import HostContext, load_manifest


_LOGGER: logging.Logger = logging.getLogger(__name__)


@dataclass
class HealReport:
    changed: bool
    replacements: int
    workspace: str


def _apply(node: Any, pattern: re.Pattern, lookup: Mapping[str, str]) -> Tuple[Any, int]:
    if isinstance(node, str):
        return pattern.subn(lambda m: lookup[m.group(0)], node)
    if isinstance(node, dict):
        out: Dict[Any, Any] = {}
        total = 0
        for key, value in node.items():
            out[key], n = _apply(value, pattern, lookup)
            total += n
        return out, total
    if isinstance(node, list):
        items: List[Any] = []
        total = 0
        for value in node:
            item, n = _apply(value, pattern, lookup)
            items.append(item)
            total += n
        return items, total
    return node, 0


def substitute_in_tree(node: Any, substitutions: Mapping[str, str]) -> Tuple[Any, int]:
    """Apply several substring substitutions to every string leaf in one pass.

    All ``old`` values are matched together, longest first, and replacement
    text is never scanned again, so a new value that contains another old
    value is left intact. Empty and unchanged pairs are ignored. Keys,
    numbers, booleans and None are left alone. Returns (new_tree, count).
    """
    lookup = {old: new for old, new in substitutions.items() if old and old != new}
    if not lookup:
        return node, 0
    pattern = re.compile("|".join(re.escape(old) for old in sorted(lookup, key=len, reverse=True)))
    return _apply(node, pattern, lookup)


def replace_in_tree(node: Any, old: str, new: str) -> Tuple[Any, int]:
    """Substring-replace ``old`` with ``new`` in every string leaf of ``node``.

    Matching is plain substring matching, so a string that merely contains
    ``old`` is rewritten too.
    """
    return substitute_in_tree(node, {old: new})


def _assign_workspace(doc: Dict[str, Any], workspace: str) -> None:
    agents = doc.setdefault("agents", {})
    if not isinstance(agents, dict):
        raise FormatError("Configuration field 'agents' is not an object")
    defaults = agents.setdefault("defaults", {})
    if not isinstance(defaults, dict):
        raise FormatError("Configuration field 'agents.defaults' is not an object")
    defaults["workspace"] = workspace
    if "workspace" in doc:
        doc["workspace"] = workspace


def config_path_for(target_dir: str) -> str:
    return os.path.join(target_dir, CONFIG_ROOT, CONFIG_FILE_NAME)


def fix_paths(target_dir: str, host: Optional[HostContext] = None) -> Optional[HealReport]:
    """Rewrite path references in a restored configuration for this host.

    Returns None when no configuration file was restored. The old home and
    the original workspace path are replaced in a single pass, the longer
    match winning, so references below the old workspace move under the new
    one and an inserted path is never rewritten a second time.
    """
    config_path = config_path_for(target_dir)
    if not os.path.isfile(config_path):
        _LOGGER.info("No configuration at %s; nothing to heal", config_path)
        return None
    host = host or HostContext.current()
    with open(config_path, "r", encoding="utf-8") as fh:
        try:
            original = json.load(fh)
        except ValueError as exc:
            raise FormatError(f"Configuration is not valid JSON: {exc}") from exc
    if not isinstance(original, dict):
        raise FormatError("Configuration root must be a JSON object")

    manifest = load_manifest(os.path.join(target_dir, MANIFEST_NAME))
    new_workspace = os.path.join(target_dir, CONFIG_ROOT, WORKSPACE_DIR_NAME)

    substitutions: Dict[str, str] = {}
    if manifest is not None:
        if manifest.home_original != host.home:
            substitutions[manifest.home_original] = host.home
        if manifest.workspace_original:
            substitutions[manifest.workspace_original] = new_workspace
    else:
        _LOGGER.warning("No manifest in %s; only the workspace field is updated", target_dir)

    doc, total = substitute_in_tree(copy.deepcopy(original), substitutions)
    if total:
        _LOGGER.info("Replaced %d path reference(s): %s", total, substitutions)
    _assign_workspace(doc, new_workspace)

    changed = doc != original
    if changed:
        with open(config_path, "w", encoding="utf-8") as fh:
            fh.write(json.dumps(doc, indent=2, ensure_ascii=False) + "\n")
    return HealReport(changed=changed, replacements=total, workspace=new_workspace)
