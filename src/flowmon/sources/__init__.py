"""Data sources.

Implementations of :class:`flowmon.sources.base.DataSource`: an in-memory
tree and a Realtime Database streaming client.
"""
