"""
Shared utilities for the feature-flag decision engine.

This package aggregates the ambient building blocks used by every
engine component:

- config: Engine configuration via pydantic-settings
- logging: Structured logging with evaluation correlation
- metrics: Prometheus collectors for evaluations and collaborator failures
- errors: Canonical error taxonomy (all recovered inside the engine)
- retry: Retry decorator for the HTTP collaborators
- circuit_breaker: Protection for blocking gateway calls

Do not import from decision_engine into shared/.
"""
