"""
Run orchestration for GEO Tracker analyses.

Exports:
    RunOrchestrator: Submission guard, poll loop and terminal-state handling
    OrchestratorState: Literal type of the orchestrator states
"""

from .run_orchestrator import OrchestratorState, ProgressObserver, RunOrchestrator

__all__ = ["OrchestratorState", "ProgressObserver", "RunOrchestrator"]
