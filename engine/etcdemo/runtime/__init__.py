"""
Runtime utilities for the etcdemo harness.

Provides:
- Run ID management for test runs and offline checks
- Artefact directory conventions
"""

from etcdemo.runtime.artefacts import ArtefactManager
from etcdemo.runtime.run_context import RunContext, RunType, generate_run_id

__all__ = [
    # Artefacts
    "ArtefactManager",
    # Run context
    "RunContext",
    "RunType",
    "generate_run_id",
]
