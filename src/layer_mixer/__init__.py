"""
Layered transfer mixer package initializer.

Exposes the orchestrator, batch scheduler and reconciliation sweeper for
external usage.  Importing the package performs no I/O; drivers create
clients explicitly (see ``layer_mixer.data_sources._clients``).
"""

from .orchestrator import TransferOrchestrator  # noqa: F401
from .scheduler import BatchScheduler  # noqa: F401
from .sweeper import ReconciliationSweeper  # noqa: F401

__all__ = ["TransferOrchestrator", "BatchScheduler", "ReconciliationSweeper"]
