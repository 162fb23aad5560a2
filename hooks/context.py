"""
Migration context shared by the engine and every hook.

The context is the running state of a migration and, once the run finishes,
its result. The engine owns the workflow, current_job, current_step, client
and layout fields and overwrites them as it walks the workflow. Hooks should
treat those as read-only and accumulate their own output in ``result``, or in
extra fields of a subclass.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Optional

from models import JobNode, StepConfig, Workflow

if TYPE_CHECKING:
    from anthill_client import AnthillClient
    from layout import JobLayout


@dataclass
class MigrationContext:
    """Mutable state carried through one migration run."""

    # engine-owned
    workflow: Optional[Workflow] = None
    current_job: Optional[JobNode] = None
    current_step: Optional[StepConfig] = None
    client: Optional['AnthillClient'] = None
    layout: Optional['JobLayout'] = None

    # hook-owned
    result: Dict[str, Any] = field(default_factory=dict)

    def location(self) -> str:
        """Human readable position of the traversal, for error messages."""
        parts = []
        if self.workflow is not None:
            parts.append(f"workflow '{self.workflow.name}'")
        if self.current_job is not None:
            parts.append(f"job '{self.current_job.name}'")
        if self.current_step is not None:
            parts.append(f"step '{self.current_step.name}'")
        return ", ".join(parts) if parts else "not started"


__all__ = ['MigrationContext']
