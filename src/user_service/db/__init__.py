"""
user_service.db

Persistence package (SQLAlchemy async).

Responsibilities:
- Provide ORM models, engine/session setup, the transaction coordinator and repositories.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Repositories never hold a session of their own; they ask the transaction
# coordinator for one per call (see `db.transaction`).
