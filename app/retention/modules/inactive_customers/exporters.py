from __future__ import annotations

import csv
import io
import json
from collections.abc import Sequence
from pathlib import Path

FORMAT_ALIASES = {"csv": "csv", "json": "json", "text": "text", "txt": "text"}


class ExportFormatError(ValueError):
    pass


def normalize_format(fmt: str) -> str:
    key = (fmt or "").strip().lower()
    if key not in FORMAT_ALIASES:
        raise ExportFormatError(f"Unknown export format {fmt!r}. Use one of: csv, json, text.")
    return FORMAT_ALIASES[key]


def render_emails(emails: Sequence[str], fmt: str) -> str:
    """File body for `fmt`: CSV with an `email` header, a JSON array, or one address per line."""
    fmt = normalize_format(fmt)
    if fmt == "json":
        return json.dumps(list(emails), indent=4)
    if fmt == "csv":
        out = io.StringIO()
        w = csv.writer(out, lineterminator="\n")
        w.writerow(["email"])
        for email in emails:
            w.writerow([email])
        return out.getvalue()
    return "\n".join(emails)


def render_for_console(emails: Sequence[str], fmt: str) -> str:
    # No CSV header on the console: addresses only, unless JSON was asked for.
    if normalize_format(fmt) == "json":
        return json.dumps(list(emails), indent=4)
    return "\n".join(emails)


def write_emails(emails: Sequence[str], path: Path, fmt: str) -> Path:
    body = render_emails(emails, fmt)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(body, encoding="utf-8", newline="")
    return path
