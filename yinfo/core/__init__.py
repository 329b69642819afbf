"""Core: HTTP, client personas, transport, orchestration and the cipher engine."""
