"""
Kanban task board backend package.

The FastAPI application lives in ``kanban_api.main`` (``kanban_api.main:app``
for uvicorn, ``create_app()`` for a configured instance); ``kanban_api.client``
is a Python client for the same API.
"""

__version__ = "0.1.0"
