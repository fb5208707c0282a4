# app/core/dispatch/__init__.py
"""
Push Dispatch Layer — provider-independent delivery engine.

- ``payload``     — NotificationRequest builder + fixed platform delivery options
- ``batching``    — recipient filtering and provider-sized batches
- ``analyzer``    — per-recipient outcome classification (stale vs transient)
- ``coordinator`` — DispatchCoordinator, the entry point for event handlers
- ``ports``       — DeliveryClient protocol implemented in ``app.infra``

Dispatch code must NOT import provider SDKs.
"""
