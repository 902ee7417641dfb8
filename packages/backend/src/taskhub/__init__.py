"""TaskHub — task-management backend with real-time project rooms.

REST CRUD over projects, tasks and notes, signed webhook ingestion,
and a WebSocket layer that fans CRUD events out to project members.
"""

__version__ = "0.1.0"
