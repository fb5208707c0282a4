# app/core/events/__init__.py
"""
Data-change event handlers.

Each handler turns one typed event into an audience + notification and
hands it to the DispatchCoordinator:

- ``schemas``  — typed projections of data-store documents, validated at the boundary
- ``messages`` — user-facing notification text
- ``handlers`` — EventNotifier (new item, collection request, pickup scheduled)
- ``ports``    — AudienceDirectory protocol implemented in ``app.infra``
"""
