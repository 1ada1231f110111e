"""Relay: keep a remote agent backend busy with development tasks.

Queues task descriptors, launches them as remote jobs with a bounded
retry policy, polls job status, and re-triggers work on timed loops.
"""

__version__ = "0.3.0"

__all__ = ["__version__"]
