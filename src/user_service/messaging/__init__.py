"""
user_service.messaging

Asynchronous fan-out adapters.

Responsibilities:
- Event bus (topics + subscriptions) on Redis Streams: `bus`.
- Background task queue on arq: `tasks`.
- Event payload contracts shared by publishers and subscribers: `events`.
"""
