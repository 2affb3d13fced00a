from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Server
    host: str = "0.0.0.0"
    port: int = 3001
    log_level: str = "info"
    allowed_origins: list[str] = ["http://localhost:5173"]

    # Anthropic
    anthropic_api_key: str = ""
    analysis_model: str = "claude-haiku-4-5-20251001"
    analysis_max_tokens: int = 400
    # Upper bound on the excerpt sent with a single analysis request.
    analysis_max_excerpt_chars: int = 12000
    # Testing: stream a canned diagnosis instead of calling the model.
    # Set MOCK_ANALYSIS=true to exercise the analysis path without an API key.
    mock_analysis: bool = False

    # Kubernetes API (pod log endpoint)
    # Base URL of the API server, e.g. "https://ABCD.gr7.us-east-1.eks.amazonaws.com".
    # When empty, only demo streams can be started.
    kube_api_server: str = ""
    kube_token: str = ""
    # Path to the cluster CA bundle. Empty means the system trust store.
    kube_ca_cert: str = ""
    kube_verify_ssl: bool = True
    kube_default_tail_lines: int = 100
    kube_request_timeout_secs: float = 10.0

    # Transport
    # Liveness probe interval for idle WebSocket connections.
    keepalive_interval_secs: float = 30.0

    # Analysis trigger
    trigger_buffer_capacity: int = 1000
    # Propose an analysis every N buffered lines...
    trigger_line_threshold: int = 10
    # ...but never more often than once per cooldown window.
    trigger_cooldown_secs: float = 5.0
    # Proposals with less new text than this are dropped.
    trigger_min_new_chars: int = 80
    trigger_tail_lines: int = 50

    # Demo mode replay timing
    demo_initial_delay_secs: float = 0.5
    demo_min_delay_secs: float = 1.0
    demo_max_delay_secs: float = 3.0

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
