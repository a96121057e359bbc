"""Audit logging for salarymask runs.

Produces an audit JSON alongside the output PDF including config snapshot,
hashes, version, redaction mode and counts, and an optional HMAC signature
when `SALARYMASK_HMAC_KEY` is present.
"""

from __future__ import annotations

from typing import Dict, Any, List, Optional
from pathlib import Path
import getpass
import hashlib
import hmac
import os
import socket
import time

import orjson


def _sha256_file(path: str | Path) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


def sign_record(record: Dict[str, Any], key: str) -> Dict[str, Any]:
    """Return the HMAC block for ``record`` (computed before the block is added)."""
    sig = hmac.new(key.encode("utf-8"), orjson.dumps(record), hashlib.sha256).hexdigest()
    return {"alg": "HMAC-SHA256", "key_hint": "env:SALARYMASK_HMAC_KEY", "value": sig}


def write_audit(
    input_path: str,
    output_path: str,
    result: Dict[str, Any],
    cfg: Dict[str, Any],
    errors: Optional[List[str]] = None,
) -> Path:
    """Write an audit JSON next to the output PDF and return its path."""
    out_pdf = Path(output_path)
    inp = Path(input_path)
    audit_path = out_pdf.with_suffix(".audit.json")
    from salarymask import __version__ as version

    record = {
        "version": version,
        "timestamp": int(time.time()),
        "user": _current_user(),
        "host": socket.gethostname(),
        "input": {
            "path": str(inp),
            "sha256": _sha256_file(inp),
        },
        "output": {
            "path": str(out_pdf),
            "sha256": _sha256_file(out_pdf) if out_pdf.exists() else None,
        },
        "config": cfg,
        "result": {
            "mode": result.get("mode"),
            "masked": bool(result.get("masked")),
            "masked_count": int(result.get("masked_count", 0)),
            # Overlay output still carries the covered text in its content stream
            "text_recoverable": bool(result.get("text_recoverable")),
        },
        "errors": errors or [],
    }

    key = os.environ.get("SALARYMASK_HMAC_KEY")
    if key:
        record["hmac"] = sign_record(record, key)

    audit_path.write_bytes(orjson.dumps(record, option=orjson.OPT_INDENT_2))
    return audit_path
