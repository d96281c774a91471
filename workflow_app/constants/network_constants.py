"""Network configuration constants for the workflow API."""

DEFAULT_HOST: str = "0.0.0.0"
DEFAULT_PORT: int = 8000
ACTOR_HEADER: str = "X-User-Id"
