"""
user_service.notifications

Outbound notification channels called from worker task handlers.
"""
