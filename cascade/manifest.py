"""package.json reading and writing utilities.

Manifests are written back with 2-space indentation and a trailing newline,
matching what npm itself produces, so release diffs stay minimal.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

MANIFEST_NAME = "package.json"

DEPENDENCY_FIELDS = (
    "dependencies",
    "devDependencies",
    "peerDependencies",
    "optionalDependencies",
)


def load_manifest(path: Path | str) -> dict[str, Any]:
    """Load and parse a package.json file.

    A leading byte-order-mark is stripped before parsing.

    Raises:
        OSError: If the file cannot be read.
        json.JSONDecodeError: If the file is not valid JSON.
    """
    content = Path(path).read_text(encoding="utf-8")
    return json.loads(content.lstrip("\ufeff"))


def save_manifest(path: Path | str, data: dict[str, Any]) -> None:
    """Save a manifest back to disk, preserving key order."""
    Path(path).write_text(
        json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8"
    )


def get_name(manifest: dict[str, Any]) -> str | None:
    name = manifest.get("name")
    return name if isinstance(name, str) and name else None


def get_version(manifest: dict[str, Any]) -> str | None:
    version = manifest.get("version")
    return version if isinstance(version, str) and version else None


def iter_dependency_tables(manifest: dict[str, Any]):
    """Yield ``(field, table)`` for every dependency field that is a mapping."""
    for field in DEPENDENCY_FIELDS:
        table = manifest.get(field)
        if isinstance(table, dict):
            yield field, table
