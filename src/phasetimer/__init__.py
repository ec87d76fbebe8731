"""phasetimer: a phase-cycle focus timer with local and synced state."""

__version__ = "0.1.0"
