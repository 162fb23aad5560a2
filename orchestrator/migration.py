"""
Migration engine for a single Anthill Pro workflow.

A Migration walks one workflow's jobs in layout order and hands every job and
active step to hooks resolved by a loader. It is single use: configure it,
call run() once (directly or on a thread), then poll status, progress, error
and context. run() never raises; failures become engine state.
"""

import logging
import threading
from typing import Any, Dict, Optional

from anthill_client import AnthillClient, UnitOfWork
from exceptions import (
    AlreadyUsedError,
    GenericMigrationError,
    MigrationError,
    NotConfiguredError,
    SkipSignal,
)
from hooks.base import JobHook, WorkflowHook
from hooks.context import MigrationContext
from layout import build_layout
from loaders.base_loader import BaseLoader
from models import JobNode, MigrationStatus, ProgressCounter, Workflow


class Migration:
    """Migrates one Anthill Pro workflow by driving hooks over its jobs and steps."""

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        keystore_path: Optional[str] = None,
        keystore_password: Optional[str] = None,
        client: Optional[AnthillClient] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Connect to the Anthill server and prepare an unconfigured migration.

        Args:
            host: Anthill server host name
            port: Anthill server port
            username: Anthill user name
            password: Anthill password
            keystore_path: Optional PEM keystore for TLS
            keystore_password: Optional password of the client key in the keystore
            client: Already connected client; skips connecting when given
            logger: Optional logger instance

        Raises:
            ConnectError: If the server cannot be reached or rejects the credentials
        """
        self.logger = logger or logging.getLogger('anthill_migrator.migration')

        if client is None:
            client = AnthillClient.connect(
                host, port, username, password,
                keystore_path=keystore_path,
                keystore_password=keystore_password
            )
        self.client = client

        self._lock = threading.Lock()
        self._status = MigrationStatus.NEED_SETUP
        self._error: Optional[MigrationError] = None
        self._workflow_id: Optional[int] = None
        self._workflow: Optional[Workflow] = None
        self._loader: Optional[BaseLoader] = None
        self._context = MigrationContext()
        self._counter = ProgressCounter()

    # Configuration

    @property
    def workflow_id(self) -> Optional[int]:
        return self._workflow_id

    @workflow_id.setter
    def workflow_id(self, workflow_id: Optional[int]) -> None:
        with self._lock:
            if self._status is MigrationStatus.NEED_SETUP:
                self._workflow_id = workflow_id
                if workflow_id is not None:
                    self._status = MigrationStatus.READY
            elif self._status is MigrationStatus.READY:
                if workflow_id is None:
                    raise ValueError("A configured migration needs a workflow id")
                self._workflow_id = workflow_id
            else:
                raise MigrationError(
                    f"Cannot change the workflow of a migration in state {self._status.name}"
                )

    def set_loader(self, loader: BaseLoader) -> None:
        """Set the loader resolving workflow, job and step hooks."""
        self._loader = loader

    def set_context(self, context: MigrationContext) -> None:
        """Set the context shared with hooks. It stays valid after close()."""
        self._context = context

    # State

    @property
    def status(self) -> MigrationStatus:
        with self._lock:
            return self._status

    @property
    def error(self) -> Optional[MigrationError]:
        with self._lock:
            return self._error

    @property
    def context(self) -> MigrationContext:
        return self._context

    @property
    def workflow_name(self) -> Optional[str]:
        return self._workflow.name if self._workflow is not None else None

    @property
    def completed_jobs(self) -> int:
        return self._counter.completed

    @property
    def total_jobs(self) -> int:
        return self._counter.total

    @property
    def progress(self) -> int:
        """Percent done: 100 once stopped, at most 99 while running."""
        with self._lock:
            return self._counter.percent(self._status.is_terminal)

    def set_error(self, error: MigrationError) -> None:
        """
        Record a failure and move to ERROR.

        Used internally and by supervisors of the thread running the migration.
        A closed migration keeps its CLOSED status.
        """
        with self._lock:
            self._error = error
            if self._status is not MigrationStatus.CLOSED:
                self._status = MigrationStatus.ERROR

    def _set_status(self, status: MigrationStatus) -> None:
        with self._lock:
            self._status = status

    # Execution

    def run(self) -> None:
        """
        Run the migration. Never raises: check status and error afterwards.

        Only a READY migration runs. Any other state records a NotConfiguredError
        or AlreadyUsedError without contacting the server.
        """
        with self._lock:
            status = self._status
            if status is MigrationStatus.READY:
                self._status = MigrationStatus.RUNNING

        if status is not MigrationStatus.READY:
            error = NotConfiguredError() if status is MigrationStatus.NEED_SETUP else AlreadyUsedError()
            self.logger.error(str(error))
            self.set_error(error)
            return

        self.logger.info(f"Starting migration of workflow {self._workflow_id}")

        bound = False
        uow: Optional[UnitOfWork] = None
        try:
            self.client.bind()
            bound = True
            uow = self.client.create_unit_of_work()

            self._migrate()

            self._set_status(MigrationStatus.SUCCESS)
            self.logger.info(
                f"Migration of workflow '{self.workflow_name}' finished: "
                f"{self._counter.completed}/{self._counter.total} jobs"
            )
        except MigrationError as e:
            self.logger.error(f"Migration failed at {self._context.location()}: {e}", exc_info=True)
            self.set_error(e)
        except Exception as e:
            self.logger.error(f"Migration failed at {self._context.location()}: {e}", exc_info=True)
            self.set_error(GenericMigrationError.from_exception(e))
        finally:
            self._release(uow, bound)

    def _migrate(self) -> None:
        loader = self._loader
        if loader is None:
            raise MigrationError("No loader set: call set_loader() before run()")

        workflow = self.client.restore_workflow(self._workflow_id)
        if workflow is None:
            raise MigrationError(f"Workflow {self._workflow_id} not found")
        self._workflow = workflow

        graph = workflow.definition.graph if workflow.definition is not None else None
        layout = build_layout(graph)
        self._counter.total = len(layout.all_jobs)

        context = self._context
        context.workflow = workflow
        context.client = self.client
        context.layout = layout

        self.logger.info(
            f"Workflow '{workflow.name}' has {len(layout.all_jobs)} jobs "
            f"in {len(layout.groups)} parallel groups"
        )

        workflow_hook: Optional[WorkflowHook] = loader.load_workflow_hook()
        if workflow_hook is not None:
            workflow_hook.pre_run(context)

        for job in layout.all_jobs:
            self._migrate_job(loader, job, context)
            self._counter.completed += 1

        if workflow_hook is not None:
            workflow_hook.post_run(context)

    def _migrate_job(self, loader: BaseLoader, job: JobNode, context: MigrationContext) -> None:
        context.current_job = job
        context.current_step = None
        self.logger.debug(f"Migrating job '{job.name}' (depth {job.depth})")

        # A loader that cannot build the job hook fails the whole run.
        job_hook: Optional[JobHook] = loader.load_job_hook()

        try:
            if job_hook is not None:
                job_hook.pre_run(context)

            for step in job.active_steps():
                context.current_step = step
                self.logger.debug(f"Migrating step '{step.name}' of kind {step.kind}")

                step_hook = loader.load_step_hook(step.kind)
                try:
                    step_hook.run(context)
                except SkipSignal as e:
                    self.logger.warning(f"Skipped step '{step.name}' of job '{job.name}': {e}")

            if job_hook is not None:
                job_hook.post_run(context)
        except SkipSignal as e:
            self.logger.warning(f"Skipped rest of job '{job.name}': {e}")

    def _release(self, uow: Optional[UnitOfWork], bound: bool) -> None:
        if uow is not None:
            try:
                uow.cancel()
            except MigrationError as e:
                self.logger.warning(f"Failed to cancel unit of work: {e}")
            try:
                uow.close()
            except MigrationError as e:
                self.logger.warning(f"Failed to close unit of work: {e}")

        if bound:
            self.client.unbind()

    # Queries

    def fetch_workflows_for_project_name(self, project: str, limit: int = 0) -> Dict[str, Dict[str, Any]]:
        """
        List originating workflows of projects matching a name.

        Args:
            project: Project name pattern
            limit: Maximum number of matching projects; 0 means unlimited

        Returns:
            {project name: {workflow name: workflow id}}, both levels sorted by name

        Raises:
            MigrationError: If more than ``limit`` projects match
            ConnectError: If the user may not query projects
            DataAccessError: If the query fails
        """
        uow = self.client.create_unit_of_work()
        try:
            projects = self.client.restore_projects_like_name(project)

            if limit > 0 and len(projects) > limit:
                raise MigrationError(
                    f"Query returned too many results: {len(projects)} projects match "
                    f"'{project}', limit is {limit}"
                )

            result: Dict[str, Dict[str, Any]] = {}
            for summary in sorted(projects, key=lambda p: p.name):
                result[summary.name] = dict(sorted(summary.workflows.items()))
            return result
        finally:
            try:
                uow.cancel()
            except MigrationError as e:
                self.logger.warning(f"Failed to cancel unit of work: {e}")
            uow.close()

    # Disposal

    def close(self) -> None:
        """Release the server session. The context stays usable."""
        try:
            self.client.unbind()
        except Exception as e:
            self.logger.warning(f"Error while unbinding session: {e}")

        try:
            self.client.disconnect()
        except Exception as e:
            self.logger.warning(f"Error while disconnecting: {e}")

        self._set_status(MigrationStatus.CLOSED)
        self.logger.debug("Migration closed")


__all__ = ['Migration']
