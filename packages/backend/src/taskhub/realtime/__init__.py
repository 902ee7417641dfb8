"""Real-time infrastructure — WebSocket channels grouped into rooms.

Learn: Events flow through three pieces:
1. ConnectionRegistry — who is connected, and which rooms each channel joined
2. EventDispatcher — routes inbound client frames, re-checks membership,
   fans out through the registry
3. RealtimeNotifier — the port CRUD services call after a successful write

Rooms are `project:<id>` and `user:<id>`. Room membership lives only in
memory for the lifetime of a connection; nothing about it is persisted.
"""
