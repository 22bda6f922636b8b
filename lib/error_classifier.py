# =============================================================================
# lib/error_classifier.py - PostgREST Failure Classification
# =============================================================================
# Turns a failed backend response (HTTP status + body text) into a closed
# taxonomy that drives fallback decisions in the services.
#
# The backend does not guarantee a typed error contract: depending on the
# PostgREST version and whether the error comes from Postgres or from the
# schema cache, the same problem shows up as a SQLSTATE code, a PGRST code,
# or only in free text. Classification therefore inspects the whole body,
# case-insensitively, and never raises.
#
# Usage:
#   info = classify_remote_error(404, '{"code":"PGRST205","message":"..."}')
#   if info.kind is RemoteErrorKind.RELATION_MISSING: ...
# =============================================================================

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any


class RemoteErrorKind(str, Enum):
    """Closed set of remote failure categories."""
    RELATION_MISSING = "relation_missing"
    COLUMN_MISSING = "column_missing"
    FOREIGN_KEY_VIOLATION = "foreign_key_violation"
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    UNCLASSIFIED = "unclassified"


@dataclass(frozen=True)
class RemoteErrorInfo:
    """
    Result of classifying one failed response.

    Only `kind`, `status` and `message` are always set; the rest are filled
    when the body names them.
    """
    kind: RemoteErrorKind
    status: int
    message: str
    relation: str | None = None
    column: str | None = None
    parent_table: str | None = None
    constraint: str | None = None
    key_column: str | None = None
    key_value: str | None = None

    def as_details(self) -> dict[str, Any]:
        """Non-empty fields, for error payloads and logs."""
        details: dict[str, Any] = {"kind": self.kind.value}
        for name in ("relation", "column", "parent_table", "constraint", "key_column", "key_value"):
            value = getattr(self, name)
            if value:
                details[name] = value
        return details


# -----------------------------------------------------------------------------
# Patterns
# -----------------------------------------------------------------------------

_RELATION_CODES = ("42p01", "pgrst205")
_COLUMN_CODES = ("42703", "pgrst204")
_FK_CODES = ("23503",)
_UNAUTHORIZED_CODES = ("42501", "pgrst301", "pgrst302")
_NOT_FOUND_CODES = ("pgrst116",)

_NAME = r'["\']?(?:public\.)?([\w]+)["\']?'

_RELATION_PATTERNS = (
    re.compile(rf"relation {_NAME} does not exist"),
    re.compile(rf"could not find the table {_NAME}"),
)

_COLUMN_PATTERNS = (
    re.compile(rf"could not find the {_NAME} column"),
    re.compile(rf"column {_NAME} of relation {_NAME} does not exist"),
    re.compile(rf"column (?:[\w]+\.)?{_NAME} does not exist"),
)

_FK_TABLE_PATTERN = re.compile(rf"is not present in table {_NAME}")
_FK_CONSTRAINT_PATTERN = re.compile(rf"violates foreign key constraint {_NAME}")
_FK_KEY_PATTERN = re.compile(r"key \(([\w]+)\)=\(([^)]*)\)", re.IGNORECASE)
_ON_TABLE_PATTERN = re.compile(rf"on table {_NAME}")


def _flatten_body(body: str | bytes | None) -> tuple[str, str]:
    """
    Return (display_message, searchable_text).

    JSON bodies are flattened from the fields PostgREST uses; anything else
    is searched as-is.
    """
    if body is None:
        return "", ""
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")

    text = body.strip()
    message = text
    try:
        parsed = json.loads(text) if text else None
    except ValueError:
        parsed = None

    if isinstance(parsed, dict):
        parts = [
            str(parsed[field])
            for field in ("code", "message", "details", "hint", "error", "msg")
            if parsed.get(field)
        ]
        if parts:
            message = str(parsed.get("message") or parsed.get("error") or parsed.get("msg") or text)
            text = " | ".join(parts)

    return message, text


def _first_group(patterns, text: str) -> str | None:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return match.group(1)
    return None


def classify_remote_error(status_code: int, body: str | bytes | None) -> RemoteErrorInfo:
    """
    Classify a failed remote response.

    Precedence: relation missing, column missing, foreign key violation,
    unauthorized, not found, unclassified. A PostgREST 404 for a table that
    is missing from the schema cache is therefore RELATION_MISSING.

    Args:
        status_code: HTTP status of the failed response
        body: Raw response body (JSON or plain text)

    Returns:
        RemoteErrorInfo describing the failure

    Example:
        >>> classify_remote_error(400, 'column "recurring_weekdays" does not exist').column
        'recurring_weekdays'
    """
    message, original = _flatten_body(body)
    text = original.lower()

    if any(code in text for code in _RELATION_CODES) or (
        "relation" in text and "does not exist" in text and "column" not in text
    ) or "could not find the table" in text:
        return RemoteErrorInfo(
            kind=RemoteErrorKind.RELATION_MISSING,
            status=status_code,
            message=message,
            relation=_first_group(_RELATION_PATTERNS, text),
        )

    if any(code in text for code in _COLUMN_CODES) or (
        "column" in text and ("does not exist" in text or "could not find" in text)
    ):
        relation_match = _COLUMN_PATTERNS[1].search(text)
        return RemoteErrorInfo(
            kind=RemoteErrorKind.COLUMN_MISSING,
            status=status_code,
            message=message,
            column=_first_group(_COLUMN_PATTERNS, text),
            relation=relation_match.group(2) if relation_match else None,
        )

    if any(code in text for code in _FK_CODES) or "foreign key constraint" in text:
        key_match = _FK_KEY_PATTERN.search(original)
        return RemoteErrorInfo(
            kind=RemoteErrorKind.FOREIGN_KEY_VIOLATION,
            status=status_code,
            message=message,
            relation=_first_group((_ON_TABLE_PATTERN,), text),
            parent_table=_first_group((_FK_TABLE_PATTERN,), text),
            constraint=_first_group((_FK_CONSTRAINT_PATTERN,), text),
            key_column=key_match.group(1) if key_match else None,
            key_value=key_match.group(2) if key_match else None,
        )

    if status_code in (401, 403) or any(code in text for code in _UNAUTHORIZED_CODES) or any(
        phrase in text for phrase in ("permission denied", "invalid api key", "jwt")
    ):
        return RemoteErrorInfo(kind=RemoteErrorKind.UNAUTHORIZED, status=status_code, message=message)

    if status_code == 404 or any(code in text for code in _NOT_FOUND_CODES):
        return RemoteErrorInfo(kind=RemoteErrorKind.NOT_FOUND, status=status_code, message=message)

    return RemoteErrorInfo(kind=RemoteErrorKind.UNCLASSIFIED, status=status_code, message=message)
