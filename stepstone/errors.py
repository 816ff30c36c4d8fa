"""
stepstone/errors.py — Exception types and storage error classification.

Verifiers never let these escape: each one is caught at a step boundary and
turned into a CheckDetail. The capability adapters in stepstone.backends raise
them so the verifiers only ever deal with one family of exceptions per backend.
"""

from __future__ import annotations

import re
from enum import Enum


class StepstoneError(Exception):
    """Base class for every error raised by stepstone."""


class ConfigError(StepstoneError):
    """A role configuration file could not be read or validated."""


class AddressError(StepstoneError, ValueError):
    def __init__(self, address: str, message: str) -> None:
        super().__init__(message)
        self.address = address


class MissingPortError(AddressError):
    def __init__(self, address: str) -> None:
        super().__init__(address, f"Address must contain port number (host:port): {address}")


class InvalidPortError(AddressError):
    def __init__(self, address: str, port_str: str) -> None:
        super().__init__(address, f"Invalid port number in address {address}: {port_str}")
        self.port_str = port_str


class ErrorKind(str, Enum):
    ACCESS_DENIED = "access_denied"
    BUCKET_NOT_FOUND = "bucket_not_found"
    INVALID_ACCESS_KEY = "invalid_access_key"
    INVALID_SECRET = "invalid_secret"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    OTHER = "other"


class BackendError(StepstoneError):
    """A capability operation failed.

    ``kind`` is set when the underlying client exposed a structured error code
    that could be mapped; ``code`` keeps the raw vendor code for messages.
    """

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.code = code


class ObjectStoreError(BackendError):
    pass


class KvStoreError(BackendError):
    pass


class SqlStoreError(BackendError):
    pass


def _token(word: str) -> str:
    # A standalone token, not embedded in a longer name or path.
    return rf"(?<![\w./:-]){word}(?![\w/-])"


# Fallback text patterns, checked in order. Bucket/key existence comes before
# access-denied because some gateways wrap NoSuchBucket inside a 403 message.
_TEXT_PATTERNS: tuple[tuple[ErrorKind, re.Pattern[str]], ...] = tuple(
    (kind, re.compile("|".join(alternatives)))
    for kind, alternatives in (
        (
            ErrorKind.BUCKET_NOT_FOUND,
            (_token("nosuchbucket"), r"\bbucket not found\b", r"\bbucket does not exist\b"),
        ),
        (
            ErrorKind.INVALID_ACCESS_KEY,
            (_token("invalidaccesskeyid"), r"\binvalid access key\b", r"\baccess key id\b"),
        ),
        (
            ErrorKind.INVALID_SECRET,
            (_token("signaturedoesnotmatch"), r"\bsignature does not match\b", r"\binvalid secret\b"),
        ),
        (
            ErrorKind.ACCESS_DENIED,
            (
                _token("accessdenied"),
                r"\baccess denied\b",
                r"\bpermission denied\b",
                _token("forbidden"),
                _token("403"),
            ),
        ),
        (
            ErrorKind.NOT_FOUND,
            (_token("nosuchkey"), _token("notfound"), r"\bnot found\b", r"\bdoes not exist\b", _token("404")),
        ),
        (ErrorKind.TIMEOUT, (r"\btimed out\b", _token("timeout"))),
    )
)

_URL_RE = re.compile(r"""\b[a-z][a-z0-9+.-]*://[^\s'"]+""")


def classify_error_text(text: str) -> ErrorKind:
    """Classify free-form error text.

    URLs are removed first so a request URL that happens to contain "404" or
    "forbidden" never decides the outcome.
    """
    cleaned = _URL_RE.sub(" ", text.lower())
    for kind, pattern in _TEXT_PATTERNS:
        if pattern.search(cleaned):
            return kind
    return ErrorKind.OTHER


def classify_storage_error(exc: BaseException) -> ErrorKind:
    """Map an object-storage failure to an ErrorKind.

    Uses the structured kind when the adapter supplied one and falls back to
    matching the error text otherwise.
    """
    if isinstance(exc, TimeoutError):
        return ErrorKind.TIMEOUT
    kind = getattr(exc, "kind", None)
    if isinstance(kind, ErrorKind):
        return kind
    return classify_error_text(str(exc))
