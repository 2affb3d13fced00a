"""Strip secret-shaped values from log text before it leaves the process.

Every chunk read from an upstream log source passes through :func:`redact`
before it is forwarded to a viewer, buffered for analysis, or sent to the
model.  Rules run in a fixed order, each pass operating on the output of the
previous one, so a broad late rule (generic base64) only ever sees text the
narrower rules have already rewritten.  The marker itself matches no rule,
which keeps ``redact(redact(text)) == redact(text)``.
"""

import re
from dataclasses import dataclass
from typing import Any, Callable, Union

REDACTION_MARKER = "[REDACTED]"

_SECRET_KEYS = (
    r"secret[_-]?access[_-]?key|access[_-]?key[_-]?id|access[_-]?key"
    r"|api[_-]?key|client[_-]?secret|private[_-]?key"
    r"|auth[_-]?token|access[_-]?token|refresh[_-]?token|session[_-]?token|id[_-]?token"
    r"|password|passwd|pwd|secret|token|bearer|auth|key"
)

_HEADER_NAMES = r"proxy-authorization|authorization|x-api-key|x-auth-token"


@dataclass(frozen=True)
class RedactionRule:
    name: str
    pattern: re.Pattern
    # Either a literal replacement or a callable taking the match.
    replacement: Union[str, Callable[[re.Match], str]] = REDACTION_MARKER

    def apply(self, text: str) -> str:
        return self.pattern.sub(self.replacement, text)


def _redact_value(match: re.Match) -> str:
    """Keep the key, separator and quoting; replace only the value."""
    value = match.group("value")
    for quote in ('\\"', '"', "'"):
        if value.startswith(quote):
            closed = len(value) >= 2 * len(quote) and value.endswith(quote)
            value = f"{quote}{REDACTION_MARKER}{quote if closed else ''}"
            break
    else:
        value = REDACTION_MARKER
    return f"{match.group('key')}{match.group('sep')}{value}"


def _redact_header(match: re.Match) -> str:
    scheme = match.group("scheme") or ""
    return f"{match.group('key')}{match.group('sep')}{scheme}{REDACTION_MARKER}"


# Order matters: narrow, key-anchored rules first; shape-only rules last.
REDACTION_RULES: tuple[RedactionRule, ...] = (
    # Authorization: Bearer abc / X-Api-Key: abc
    RedactionRule(
        "auth_header",
        re.compile(
            r"(?<![A-Za-z0-9-])(?P<key>" + _HEADER_NAMES + r")"
            r"(?P<sep>\s*:\s*)"
            r"(?P<scheme>(?:bearer|basic|token|digest)\s+)?"
            r"(?P<value>[^\s\"',;]+)",
            re.IGNORECASE,
        ),
        _redact_header,
    ),
    # Bearer eyJhbGciOi... outside a header
    RedactionRule(
        "bearer_token",
        re.compile(
            r"(?<![A-Za-z0-9])(?P<key>bearer)(?P<sep>\s+)(?P<scheme>)(?P<value>[A-Za-z0-9\-._~+/]{8,}=*)",
            re.IGNORECASE,
        ),
        _redact_header,
    ),
    # password=hunter2, "token": "abc", api_key: 'xyz', \"pwd\": \"x\"
    # Quoted values stay on one line; an unclosed quote runs to end of line.
    RedactionRule(
        "key_value",
        re.compile(
            r"(?<![A-Za-z0-9])(?P<key>" + _SECRET_KEYS + r")"
            r"(?P<sep>(?:\\?[\"'])?[ \t]*[:=][ \t]*)"
            r"(?P<value>"
            r"\\\"(?:(?!\\\")[^\n])*(?:\\\"|$)"
            r"|\"(?:[^\"\\\n]|\\[^\n])*(?:\"|$)"
            r"|'[^'\n]*(?:'|$)"
            r"|[^\s\"',;&]+)",
            re.IGNORECASE | re.MULTILINE,
        ),
        _redact_value,
    ),
    # AWS access key id
    RedactionRule("aws_access_key_id", re.compile(r"\b(?:AKIA|ASIA)[0-9A-Z]{16}\b")),
    # JWT: header.payload.signature
    RedactionRule(
        "jwt",
        re.compile(r"\beyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+"),
    ),
    # AWS secret access key shape
    RedactionRule(
        "aws_secret_access_key",
        re.compile(r"(?<![A-Za-z0-9/+=])[A-Za-z0-9/+=]{40}(?![A-Za-z0-9/+=])"),
    ),
    # Any other long base64-like run
    RedactionRule("base64_blob", re.compile(r"[A-Za-z0-9+/]{20,}={0,2}")),
)


def redact(text: str, rules: tuple[RedactionRule, ...] = REDACTION_RULES) -> str:
    """Return *text* with every secret-shaped span replaced by the marker.

    Total over arbitrary input: text that matches no rule is returned as-is.
    Line structure is preserved; only matched spans change.
    """
    for rule in rules:
        text = rule.apply(text)
    return text


_SECRET_KEY_NAMES = (
    "password", "passwd", "pwd", "secret", "key", "token", "auth",
    "apikey", "api_key", "bearer", "authorization", "x-api-key", "x-auth-token",
    "credential",
)


def is_secret_key(key: str) -> bool:
    """True when a mapping key name suggests its value is a credential."""
    lowered = key.lower()
    return any(name in lowered for name in _SECRET_KEY_NAMES)


def redact_mapping(obj: Any) -> Any:
    """Recursively redact a JSON-like structure.

    Values under secret-looking keys are replaced wholesale; other strings go
    through :func:`redact`.  Non-string scalars are returned unchanged.
    """
    if isinstance(obj, dict):
        redacted = {}
        for key, value in obj.items():
            if isinstance(key, str) and is_secret_key(key):
                redacted[key] = REDACTION_MARKER
            else:
                redacted[key] = redact_mapping(value)
        return redacted
    if isinstance(obj, (list, tuple)):
        return [redact_mapping(item) for item in obj]
    if isinstance(obj, str):
        return redact(obj)
    return obj
