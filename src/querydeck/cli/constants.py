"""Exit codes for the querydeck CLI (stable for scripts)."""

EXIT_SUCCESS = 0
EXIT_CONFIG_ERROR = 2
EXIT_RUNTIME_ERROR = 3
EXIT_ROUTING_BLOCKED = 4
EXIT_CANCELLED = 130
