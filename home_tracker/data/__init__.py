"""Seed data."""

from home_tracker.data.seed import seed_state

__all__ = ["seed_state"]
