# main.py
"""Cloud Functions entry point: the runtime discovers triggers in this module."""
from app.transport.firestore_triggers import (  # noqa: F401
    notify_collection_request,
    notify_new_item,
    notify_pickup_scheduled,
)
