"""
Deterministic keyspace naming.

A model name is a human-chosen string; each stage saved for it lives in the
keyspace ``<safe model name>__<stage type>``. Reopening the same name after a
restart therefore lands on the same keyspace.
"""

from __future__ import annotations

import hashlib

KEYSPACE_SEPARATOR = "__"
DATAFRAME_STAGE_TYPE = "dataframe"
PIPELINE_STAGE_TYPE = "pipeline"


def safe_name(name: str) -> str:
    """
    Make a model name filesystem friendly.

    Characters outside ``[A-Za-z0-9-_]`` are replaced by ``_``; when that
    changes the name, a short hash of the original is appended so distinct
    names never collapse onto one keyspace. A trailing ``_`` is hashed too so
    the name cannot run into the ``__`` separator.
    """
    if not isinstance(name, str) or not name.strip():
        raise ValueError(f"Model name must be a non-empty string, got {name!r}")
    safe = "".join(c if (c.isascii() and c.isalnum()) or c in "-_" else "_" for c in name)
    safe = safe.replace(KEYSPACE_SEPARATOR, "_-")
    if safe != name or not safe[0].isalnum() or safe.endswith("_"):
        digest = hashlib.sha1(name.encode("utf-8")).hexdigest()[:8]
        safe = f"m{safe}-{digest}"
    return safe


def keyspace_for(model_name: str, stage_type: str) -> str:
    """Keyspace owned by ``stage_type`` under ``model_name``."""
    return f"{safe_name(model_name)}{KEYSPACE_SEPARATOR}{stage_type}"
