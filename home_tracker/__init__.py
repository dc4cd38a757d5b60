"""
Home Alone Tracker - Core Package

Household budgeting and move-planning tracker for a single person
preparing to live on their own.

DESIGN PRINCIPLES:
1. One state container, immutable snapshots
2. Derived numbers are always recomputed, never stored
3. The UI never waits on the network
4. Storage backend is swappable (local JSON or Supabase)
5. Notable changes land on the timeline, everything else stays quiet
"""

__version__ = "0.2.0"
__author__ = "Home Alone Tracker Team"
