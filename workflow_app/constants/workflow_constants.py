"""Workflow constants shared across the engines and the API layer."""

CLASS_CODE_LENGTH: int = 7
DEFAULT_QUESTION_MARKS: int = 1
MAX_CAS_RETRIES: int = 1
SHUFFLE_DIGEST: str = "sha256"
EXPIRY_SWEEP_INTERVAL_SECONDS: float = 5.0
