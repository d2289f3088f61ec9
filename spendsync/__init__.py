"""
spendsync - Source Package

Offline-first expense tracking with on-demand synchronization against a
remote service.

DESIGN PRINCIPLES:
1. Local first: every edit lands in the local store immediately
2. Sync is explicit: the user asks for it, it never runs on its own
3. The server is authoritative: a successful pull replaces local state
4. A failed sync changes nothing locally
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "spendsync Team"
