from pydantic import BaseModel, Field

from log_advisor.streaming.options import StreamOptions


class StreamParams(BaseModel):
    """Query parameters of the ``/ws/logs`` WebSocket."""

    namespace: str = Field("", alias="ns")
    pod: str = ""
    container: str = ""
    since: str | None = None       # lookback, e.g. "30s", "5m", "2h"
    regex: str | None = None       # server-side line filter
    follow: bool = True
    tail_lines: int | None = Field(None, alias="tailLines")
    demo: bool = False
    scenario: str = "normal-startup"

    model_config = {"populate_by_name": True}

    def to_options(self) -> StreamOptions:
        namespace, pod, container = self.namespace, self.pod, self.container
        if self.demo:
            # Demo streams need no real resource; key them by scenario.
            namespace = namespace or "demo"
            pod = pod or self.scenario
            container = container or "app"
        return StreamOptions(
            namespace=namespace,
            pod=pod,
            container=container,
            since=self.since or None,
            regex=self.regex or None,
            follow=self.follow,
            tail_lines=self.tail_lines,
            demo=self.demo,
            scenario=self.scenario,
        )
