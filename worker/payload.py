"""
Job payload for the password-change notifier.

The web route passes the job as `--payload=<base64 JSON>`; `NOTIFY_ITEMS_JSON`
and stdin are accepted for manual runs:

    {"items": [{"correo": "email@dominio.com", "nuevaClave": "Clave123"}, ...]}
"""
from __future__ import annotations

import base64
import binascii
import json
import os
import sys
import threading
from typing import Any, Dict, List, Mapping, Sequence, TextIO

PAYLOAD_ARG = "--payload="
PAYLOAD_ENV = "NOTIFY_ITEMS_JSON"
STDIN_TIMEOUT_SECONDS = 1.5
READ_CHUNK_BYTES = 4096


class PayloadError(ValueError):
    """The job payload could not be decoded."""


def _loads(text: str, source: str) -> Dict[str, Any]:
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise PayloadError(f"invalid JSON in {source}: {exc}") from exc


def _decode_b64(raw: str) -> str:
    padded = raw + "=" * (-len(raw) % 4)
    try:
        return base64.b64decode(padded, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise PayloadError(f"invalid base64 payload: {exc}") from exc


def _read_stdin(stream: TextIO, timeout: float) -> str:
    """
    Read until EOF or `timeout` seconds, whichever comes first. Whatever
    arrived before the timeout is kept, including an unterminated last line.
    """
    chunks: List[bytes] = []

    def _reader():
        try:
            fd = stream.fileno()
        except OSError:
            # in-memory stream, already complete
            chunks.append(stream.read().encode("utf-8"))
            return
        while True:
            data = os.read(fd, READ_CHUNK_BYTES)
            if not data:
                break
            chunks.append(data)

    # Daemon thread: a writer that never closes the pipe must not keep us alive.
    t = threading.Thread(target=_reader, name="payload-stdin", daemon=True)
    t.start()
    t.join(timeout)
    return b"".join(list(chunks)).decode("utf-8", errors="replace")


def read_payload(
    argv: Sequence[str] | None = None,
    environ: Mapping[str, str] | None = None,
    stdin: TextIO | None = None,
    timeout: float = STDIN_TIMEOUT_SECONDS,
) -> Dict[str, Any]:
    """
    Return the job object from (in order) the `--payload=` argument, the
    NOTIFY_ITEMS_JSON variable or stdin. Returns {} when none has data.
    """
    args = sys.argv[1:] if argv is None else argv
    env = os.environ if environ is None else environ
    stream = sys.stdin if stdin is None else stdin

    for arg in args:
        if arg.startswith(PAYLOAD_ARG):
            raw = arg[len(PAYLOAD_ARG):].strip()
            return _loads(_decode_b64(raw), "--payload")

    if env.get(PAYLOAD_ENV):
        return _loads(env[PAYLOAD_ENV], PAYLOAD_ENV)

    if stream is None or stream.closed or stream.isatty():
        return {}
    data = _read_stdin(stream, timeout)
    if not data.strip():
        return {}
    return _loads(data, "stdin")


def extract_items(payload: Any) -> List[Dict[str, Any]]:
    if not isinstance(payload, dict):
        return []
    items = payload.get("items")
    return items if isinstance(items, list) else []
