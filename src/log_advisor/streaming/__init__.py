from log_advisor.streaming.options import SessionKey, StreamOptions, parse_duration
from log_advisor.streaming.registry import SessionRegistry
from log_advisor.streaming.session import LogSession, SessionState
from log_advisor.streaming.sources import DemoLogSource, KubeLogSource, LogSource, open_source

__all__ = [
    "SessionKey",
    "StreamOptions",
    "parse_duration",
    "SessionRegistry",
    "LogSession",
    "SessionState",
    "LogSource",
    "KubeLogSource",
    "DemoLogSource",
    "open_source",
]
