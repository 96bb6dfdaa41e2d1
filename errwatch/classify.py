"""Error classification: taxonomy, severity and stack location.

Pattern rules are evaluated in declaration order and the first match wins.
A rule matches when any exception type name in the error's MRO fully matches
``name_pattern`` or the message contains ``message_pattern``.
"""

from __future__ import annotations

import re
import traceback
from dataclasses import dataclass
from typing import Any

from errwatch.models.errors import ErrorKind, RawError, Severity


@dataclass(frozen=True)
class ClassificationRule:
    kind: ErrorKind
    name_pattern: re.Pattern[str] | None = None
    message_pattern: re.Pattern[str] | None = None

    def matches(self, names: list[str], message: str) -> bool:
        if self.name_pattern is not None and any(self.name_pattern.fullmatch(n) for n in names):
            return True
        if self.message_pattern is not None and self.message_pattern.search(message):
            return True
        return False


def _rule(kind: ErrorKind, name: str | None = None, message: str | None = None) -> ClassificationRule:
    return ClassificationRule(
        kind=kind,
        name_pattern=re.compile(name) if name else None,
        message_pattern=re.compile(message, re.IGNORECASE) if message else None,
    )


CLASSIFICATION_RULES: tuple[ClassificationRule, ...] = (
    _rule(ErrorKind.CORS_ERROR, message=r"\bcors\b|cross-origin|access-control-allow-origin"),
    _rule(
        ErrorKind.NETWORK_ERROR,
        name=r"NetworkError|ConnectionError|ConnectError",
        message=r"networkerror|failed to fetch|network request failed|connection (refused|reset|aborted)",
    ),
    _rule(ErrorKind.TIMEOUT_ERROR, name=r"\w*Timeout\w*", message=r"timeout|timed out"),
    _rule(ErrorKind.AUTH_ERROR, name=r"AuthError|AuthenticationError", message=r"\b401\b|unauthori[sz]ed|authentication"),
    _rule(ErrorKind.FORBIDDEN_ERROR, message=r"\b403\b|forbidden"),
    _rule(ErrorKind.PERMISSION_DENIED, name=r"PermissionError|NotAllowedError", message=r"permission denied"),
    _rule(
        ErrorKind.RESOURCE_NOT_FOUND,
        name=r"FileNotFoundError|ModuleNotFoundError|NotFoundError",
        message=r"\b404\b|not found",
    ),
    _rule(
        ErrorKind.SERVER_ERROR,
        message=r"\b50[0-4]\b|internal server error|bad gateway|service unavailable",
    ),
    _rule(ErrorKind.TYPE_ERROR, name=r"TypeError|AttributeError"),
    _rule(ErrorKind.REFERENCE_ERROR, name=r"ReferenceError|NameError|UnboundLocalError"),
    _rule(ErrorKind.SYNTAX_ERROR, name=r"SyntaxError|IndentationError|JSONDecodeError"),
    _rule(ErrorKind.RANGE_ERROR, name=r"RangeError|IndexError|OverflowError|RecursionError"),
    _rule(ErrorKind.URI_ERROR, name=r"URIError|InvalidURL|UnsupportedProtocol"),
)

_HIGH_KINDS = frozenset(
    {
        ErrorKind.SERVER_ERROR,
        ErrorKind.AUTH_ERROR,
        ErrorKind.NETWORK_ERROR,
        ErrorKind.TIMEOUT_ERROR,
        ErrorKind.PERMISSION_DENIED,
        ErrorKind.FORBIDDEN_ERROR,
    }
)
_LOW_KINDS = frozenset(
    {
        ErrorKind.TYPE_ERROR,
        ErrorKind.REFERENCE_ERROR,
        ErrorKind.SYNTAX_ERROR,
        ErrorKind.URI_ERROR,
        ErrorKind.RANGE_ERROR,
    }
)


def severity_for(kind: str) -> Severity:
    """Map a taxonomy tag to its severity. Unknown and custom tags are medium."""
    if kind in _HIGH_KINDS:
        return Severity.HIGH
    if kind in _LOW_KINDS:
        return Severity.LOW
    return Severity.MEDIUM


# ---------------------------------------------------------------------------
# Friendly messages
# ---------------------------------------------------------------------------

ERROR_MESSAGES: dict[str, str] = {
    "NETWORK_ERROR": "Network connection failed. Check your network settings and try again.",
    "TIMEOUT_ERROR": "The request timed out. Check your connection and try again.",
    "SERVER_ERROR": "The server is temporarily unavailable. Please try again later.",
    "PERMISSION_DENIED": "You do not have permission to perform this action.",
    "AUTH_REQUIRED": "Please sign in to continue.",
    "AUTH_ERROR": "Your session is no longer valid. Please sign in again.",
    "FORBIDDEN_ERROR": "Access to this resource is forbidden.",
    "CORS_ERROR": "The request was blocked by the browser's cross-origin policy.",
    "RESOURCE_NOT_FOUND": "The requested resource could not be found.",
    "RESOURCE_LOAD_FAILED": "A resource failed to load. Check your network and try again.",
    "VALIDATION_ERROR": "Please check that the information you entered is correct.",
    "FIELD_REQUIRED": "{field} is required.",
    "MODEL_TIMEOUT": "The AI model took too long to respond. Try switching to another model.",
    "MODEL_ERROR": "The AI model failed to process the request. Please try again later.",
    "BROWSER_COMPAT_ERROR": "Your browser is out of date. Upgrade Chrome to version 90 or later for the best experience.",
    "DEFAULT_ERROR": "The operation failed. Please try again later.",
}

ERROR_FIX_SUGGESTIONS: dict[str, list[str]] = {
    "NETWORK_ERROR": [
        "Check that your network connection is working",
        "Refresh the page",
        "If you are on Wi-Fi, try switching to mobile data",
        "Clear the browser cache and try again",
    ],
    "BROWSER_COMPAT_ERROR": [
        "Upgrade Chrome to version 90 or later",
        "Use another modern browser such as Firefox or Edge",
        "Make sure JavaScript is enabled",
    ],
    "PERMISSION_DENIED": [
        "Confirm you have sufficient permissions for this action",
        "Contact an administrator for help",
        "Refresh the page and try again",
    ],
}

_DEFAULT_SUGGESTIONS = [
    "Refresh the page and try again",
    "If the problem persists, contact support",
]


def friendly_message(code: str, params: dict[str, str] | None = None) -> str:
    """Return the user-facing message for *code* with ``{placeholders}`` filled in."""
    message = ERROR_MESSAGES.get(code, ERROR_MESSAGES["DEFAULT_ERROR"])
    for key, value in (params or {}).items():
        message = message.replace(f"{{{key}}}", value)
    return message


def fix_suggestions(code: str) -> list[str]:
    return list(ERROR_FIX_SUGGESTIONS.get(code, _DEFAULT_SUGGESTIONS))


# ---------------------------------------------------------------------------
# Stack location
# ---------------------------------------------------------------------------

_LIBRARY_MARKERS = ("site-packages", "dist-packages", "node_modules", "<frozen", "/lib/python", "<string>")

_RE_PY_FRAME = re.compile(r'File "(?P<file>[^"]+)", line (?P<line>\d+)')
_RE_JS_FRAME = re.compile(r"(?P<file>[^\s(@]+):(?P<line>\d+):\d+\)?\s*$", re.MULTILINE)


def _is_app_frame(filename: str) -> bool:
    return not any(marker in filename for marker in _LIBRARY_MARKERS)


def extract_location(stack_trace: str | None) -> str | None:
    """Best-effort ``file:line`` of the frame nearest the throw in app code.

    Python tracebacks list the innermost frame last; browser stacks list it
    first. Library frames are skipped.
    """
    if not stack_trace:
        return None

    py_frames = [(m.group("file"), m.group("line")) for m in _RE_PY_FRAME.finditer(stack_trace)]
    if py_frames:
        frames = list(reversed(py_frames))
    else:
        frames = [(m.group("file"), m.group("line")) for m in _RE_JS_FRAME.finditer(stack_trace)]

    for filename, line in frames:
        if _is_app_frame(filename):
            return f"{filename}:{line}"
    return None


def _location_from_traceback(exc: BaseException) -> str | None:
    for frame in reversed(traceback.extract_tb(exc.__traceback__)):
        if _is_app_frame(frame.filename):
            return f"{frame.filename}:{frame.lineno}"
    return None


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Classification:
    """Result of classifying a raw error, before enrichment."""

    kind: str
    severity: Severity
    name: str
    message: str
    stack_trace: str | None
    location: str | None


def classify_text(names: list[str], message: str) -> str:
    for rule in CLASSIFICATION_RULES:
        if rule.matches(names, message):
            return rule.kind
    return ErrorKind.UNKNOWN_ERROR


def classify(raw: Any) -> Classification:
    """Classify an exception, a RawError, or a bare taxonomy code.

    Raises:
        TypeError: if *raw* is None or of an unsupported type.
    """
    if raw is None:
        raise TypeError("cannot classify None")

    if isinstance(raw, BaseException):
        names = [cls.__name__ for cls in type(raw).__mro__]
        message = str(raw) or type(raw).__name__
        kind = classify_text(names, message)
        stack = "".join(traceback.format_exception(raw)) if raw.__traceback__ is not None else None
        return Classification(
            kind=kind,
            severity=severity_for(kind),
            name=type(raw).__name__,
            message=message,
            stack_trace=stack,
            location=_location_from_traceback(raw),
        )

    if isinstance(raw, RawError):
        kind = classify_text([raw.name], raw.message)
        return Classification(
            kind=kind,
            severity=severity_for(kind),
            name=raw.name,
            message=raw.message,
            stack_trace=raw.stack_trace,
            location=extract_location(raw.stack_trace),
        )

    if isinstance(raw, str):
        code = raw.strip()
        if not code:
            raise ValueError("error code must not be empty")
        return Classification(
            kind=code,
            severity=severity_for(code),
            name=code,
            message=friendly_message(code),
            stack_trace=None,
            location=None,
        )

    raise TypeError(f"cannot classify {type(raw).__name__}")
