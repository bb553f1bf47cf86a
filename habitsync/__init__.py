"""habitsync — offline-first habit tracking with multi-device sync."""

__version__ = "0.1.0"
