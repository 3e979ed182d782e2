"""
user_service.api

API package for the user service.

Responsibilities:
- FastAPI app factory, composition root and router modules.
- API-layer dependency wiring and request/response models.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# The API layer stays thin: request validation + delegation to services.
