"""
user_service.worker

Background worker process.

Responsibilities:
- Consume task-queue jobs (Telegram notifications) on weighted named queues.
- Consume event-bus subscriptions (user created).
- Shut down cleanly on SIGINT/SIGTERM.
"""
