"""
user_service.services

Service-layer package.

Responsibilities:
- Own transaction boundaries and persistence decisions.
- Coordinate repositories, the response cache and asynchronous fan-out.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Services stay free of HTTP concerns so they can be exercised with fake
# cache/bus/queue doubles.
