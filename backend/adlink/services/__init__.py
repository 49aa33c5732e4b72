"""Service layer: state store, rate limiter, credential store, orchestration."""
