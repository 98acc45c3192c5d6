"""
Longhaul: interruptible, resumable bulk maintenance tasks.

Runs long-lived iterations over large collections in checkpointed chunks,
persisting progress so a run can be paused, cancelled, interrupted and
resumed without losing or repeating work.
"""

__version__ = "0.1.0"
