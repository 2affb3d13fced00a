import re
from dataclasses import dataclass
from typing import NamedTuple, Optional

from log_advisor.errors import ConfigurationError

_DURATION_RE = re.compile(r"^(\d+)([smh])$")
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600}


class SessionKey(NamedTuple):
    namespace: str
    pod: str
    container: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.pod}/{self.container}"


def parse_duration(value: str) -> int:
    """Convert a lookback like "30s", "5m" or "2h" to seconds."""
    match = _DURATION_RE.match(value)
    if not match:
        raise ConfigurationError(
            f"Invalid duration format: {value!r} (expected digits followed by s, m or h)"
        )
    return int(match.group(1)) * _UNIT_SECONDS[match.group(2)]


@dataclass(frozen=True)
class StreamOptions:
    namespace: str
    pod: str
    container: str
    since: Optional[str] = None
    regex: Optional[str] = None
    follow: bool = True
    tail_lines: Optional[int] = None
    demo: bool = False
    scenario: str = "normal-startup"

    @property
    def key(self) -> SessionKey:
        return SessionKey(self.namespace, self.pod, self.container)

    @property
    def since_seconds(self) -> Optional[int]:
        return parse_duration(self.since) if self.since else None

    def validate(self) -> None:
        """Raise ConfigurationError for parameters a session cannot start with."""
        if not self.demo:
            missing = [
                name for name in ("namespace", "pod", "container") if not getattr(self, name)
            ]
            if missing:
                raise ConfigurationError(f"Missing required parameter(s): {', '.join(missing)}")
        if self.since:
            parse_duration(self.since)
        if self.tail_lines is not None and self.tail_lines < 0:
            raise ConfigurationError(f"tailLines must be non-negative, got {self.tail_lines}")
