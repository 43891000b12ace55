"""
Messaging: admin/course direct messages and per-task chat threads.

REST handlers persist messages; `app.lms.realtime` relays them to connected sockets.
"""
