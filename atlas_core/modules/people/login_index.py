# atlas_core/modules/people/login_index.py
"""
Normalized login columns on `people` and the write fallback for stores that lack them.

Deployments differ in whether the `people` schema accepts the derived columns
`username_norm`, `username_flat`, `email_norm` and `email_flat` (older collections
run with a strict `$jsonSchema` validator). Writes first include every column
still believed supported; when the store rejects one by name, that column is
disabled for the rest of the process and the write is retried without it.
"""

import re
import unicodedata
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Tuple, TypeVar

from pymongo.errors import DuplicateKeyError, OperationFailure
from loguru import logger

T = TypeVar("T")

LOGIN_INDEX_FIELDS: Tuple[str, ...] = ("username_norm", "username_flat", "email_norm", "email_flat")

_DISALLOWED_LOGIN_CHARS = re.compile(r"[^a-z0-9@._+-]")
_FLATTEN_CHARS = re.compile(r"[._+-]")


def normalize_login_input(raw: Any) -> str:
    text = unicodedata.normalize("NFKD", str(raw or "").strip().lower())
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    return _DISALLOWED_LOGIN_CHARS.sub("", text)


def flatten_login_input(normalized: str) -> str:
    return _FLATTEN_CHARS.sub("", normalized)


def build_login_indexes(raw: Any) -> Tuple[str, str]:
    norm = normalize_login_input(raw)
    return norm, flatten_login_input(norm)


def build_login_index_values(username: Optional[str] = None, email: Optional[str] = None) -> Dict[str, str]:
    values: Dict[str, str] = {}
    if username:
        values["username_norm"], values["username_flat"] = build_login_indexes(username)
    if email:
        values["email_norm"], values["email_flat"] = build_login_indexes(email)
    return values


def _error_text(exc: BaseException) -> str:
    details = getattr(exc, "details", None)
    return f"{exc} {details or ''}".lower()


class LoginIndexSupport:
    """Process-local record of which login columns the store accepts."""

    def __init__(self):
        self._support: Dict[str, bool] = {}

    def is_supported(self, field: str) -> bool:
        return self._support.get(field) is not False

    def pick(self, values: Dict[str, str]) -> Dict[str, str]:
        return {
            field: values[field]
            for field in LOGIN_INDEX_FIELDS
            if values.get(field) and self.is_supported(field)
        }

    def has_values(self, values: Dict[str, str]) -> bool:
        return any(values.get(field) for field in LOGIN_INDEX_FIELDS)

    def mark_missing_from_error(self, exc: BaseException, candidates: Iterable[str]) -> Optional[str]:
        """Disables the first candidate column named by the store error."""
        text = _error_text(exc)
        for field in candidates:
            if field in text:
                self._support[field] = False
                return field
        return None

    def reset(self):
        self._support.clear()


login_index_support = LoginIndexSupport()


async def run_with_login_index_fallback(
    support: LoginIndexSupport,
    base_payload: Dict[str, Any],
    values: Dict[str, str],
    execute: Callable[[Dict[str, Any]], Awaitable[T]],
    on_disabled: Optional[Callable[[str], None]] = None,
) -> T:
    """
    Runs `execute` with the base payload plus every supported login column.

    A store error naming one of the included columns disables it and retries, at
    most once per column. Duplicate keys and any other error propagate untouched.
    """
    remaining_retries = len(LOGIN_INDEX_FIELDS) if support.has_values(values) else 0

    while True:
        picked = support.pick(values)
        payload = {**base_payload, **picked}
        try:
            return await execute(payload)
        except DuplicateKeyError:
            raise
        except OperationFailure as exc:
            if remaining_retries <= 0:
                raise
            missing = support.mark_missing_from_error(exc, picked.keys())
            if not missing:
                raise
            remaining_retries -= 1
            logger.warning(f"people.{missing} rejected by the store. Retrying without that field.")
            if on_disabled:
                on_disabled(missing)
