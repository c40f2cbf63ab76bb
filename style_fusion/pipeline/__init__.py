"""Run sequencing and state for the two-stage fusion pipeline."""

from .orchestrator import FusionOrchestrator, RunTicket
from .state import RunPhase, RunState

__all__ = ["FusionOrchestrator", "RunPhase", "RunState", "RunTicket"]
