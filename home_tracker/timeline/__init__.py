"""Timeline recording (policy application + structured logging)."""

from home_tracker.timeline.recorder import TimelineRecorder, configure_log_level

__all__ = ["TimelineRecorder", "configure_log_level"]
