"""Abstract loader interface resolving hooks for workflows, jobs and steps."""

from abc import ABC, abstractmethod
from typing import Optional

from hooks.base import JobHook, StepHook, WorkflowHook


class BaseLoader(ABC):
    """
    Resolves the hooks a migration runs.

    Each migration target ships its own loader, since each needs its own step
    translations. The engine calls the loader once per run for the workflow
    hook, once per job for the job hook and once per step for the step hook.
    """

    @abstractmethod
    def load_workflow_hook(self) -> Optional[WorkflowHook]:
        """
        Resolve the workflow hook.

        Returns:
            WorkflowHook, or None when the migration needs no workflow hook

        Raises:
            UnsupportedKindError: If the hook cannot be built
        """
        pass

    @abstractmethod
    def load_job_hook(self) -> Optional[JobHook]:
        """
        Resolve a job hook for the job currently in the context.

        Implementations must return a fresh instance on every call.

        Returns:
            JobHook, or None when the migration needs no job hook

        Raises:
            UnsupportedKindError: If the hook cannot be built
        """
        pass

    @abstractmethod
    def load_step_hook(self, kind: str) -> StepHook:
        """
        Resolve the hook translating a step of the given kind.

        Never returns None.

        Args:
            kind: Native step kind identifier

        Returns:
            StepHook for the kind

        Raises:
            UnsupportedKindError: If the kind is not supported
        """
        pass
