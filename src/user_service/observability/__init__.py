"""
user_service.observability

Observability package.

Responsibilities:
- Structured logging configuration.
- Request context propagation for consistent log enrichment.
- Trace-context propagation across the event bus and task queue.
"""

# Package marker.
