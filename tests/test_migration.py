import threading
import unittest
from unittest.mock import MagicMock, patch

from anthill_client import AnthillClient, UnitOfWork
from exceptions import (
    AlreadyUsedError,
    ConnectError,
    DataAccessError,
    GenericMigrationError,
    MigrationError,
    NotConfiguredError,
    SkipSignal,
    UnsupportedKindError,
)
from hooks.context import MigrationContext
from loaders.base_loader import BaseLoader
from models import (
    DependencyGraph,
    JobNode,
    MigrationStatus,
    ProjectSummary,
    StepConfig,
    Workflow,
    WorkflowDefinition,
)
from orchestrator.migration import Migration

ANT = 'com.urbancode.anthill3.domain.builder.ant.AntBuildStepConfig'
SHELL = 'com.urbancode.anthill3.domain.builder.shell.ShellBuilderConfig'


class ScriptedLoader(BaseLoader):
    """Loader whose hooks record every call and raise scripted errors."""

    def __init__(self, failures=None, unsupported=(), with_workflow_hook=True, with_job_hook=True):
        self.events = []
        self.failures = failures or {}
        self.unsupported = set(unsupported)
        self.with_workflow_hook = with_workflow_hook
        self.with_job_hook = with_job_hook
        self.job_hooks_built = 0
        self.observer = None

    def fire(self, event, name, context):
        self.events.append((event, name))
        if self.observer is not None:
            self.observer(event, name, context)
        error = self.failures.get((event, name))
        if error is not None:
            raise error

    def load_workflow_hook(self):
        if not self.with_workflow_hook:
            return None
        return _Hook(self, 'workflow', lambda c: c.workflow.name)

    def load_job_hook(self):
        if not self.with_job_hook:
            return None
        self.job_hooks_built += 1
        return _Hook(self, 'job', lambda c: c.current_job.name)

    def load_step_hook(self, kind):
        if kind in self.unsupported:
            raise UnsupportedKindError(kind)
        return _Hook(self, 'step', lambda c: c.current_step.name)


class _Hook:

    def __init__(self, loader, level, name_of):
        self.loader = loader
        self.level = level
        self.name_of = name_of

    def pre_run(self, context):
        self.loader.fire(f'{self.level}.pre', self.name_of(context), context)

    def post_run(self, context):
        self.loader.fire(f'{self.level}.post', self.name_of(context), context)

    def run(self, context):
        self.loader.fire('step.run', self.name_of(context), context)


def make_workflow(*jobs):
    """jobs: (name, depth, [(step name, kind, active)...])"""
    nodes = []
    step_id = 1
    for job_id, (name, depth, steps) in enumerate(jobs, 1):
        configs = []
        for step_name, kind, active in steps:
            configs.append(StepConfig(id=step_id, name=step_name, kind=kind, active=active))
            step_id += 1
        nodes.append(JobNode(id=job_id, name=name, depth=depth, steps=configs))
    return Workflow(id=42, name='Release', project_name='Billing',
                    definition=WorkflowDefinition(DependencyGraph(nodes)))


def make_client(workflow=None):
    client = MagicMock(spec=AnthillClient)
    client.restore_workflow.return_value = workflow
    client.create_unit_of_work.return_value = MagicMock(spec=UnitOfWork)
    return client


def two_job_workflow():
    return make_workflow(
        ('build', 1, [('checkout', SHELL, True), ('compile', ANT, True)]),
        ('test', 2, [('unit', ANT, True), ('disabled', ANT, False)]),
    )


class TestMigrationSetup(unittest.TestCase):

    def test_starts_unconfigured(self):
        migration = Migration(client=make_client())

        self.assertEqual(migration.status, MigrationStatus.NEED_SETUP)
        self.assertEqual(migration.progress, 0)
        self.assertIsNone(migration.error)
        self.assertIsNone(migration.workflow_name)
        self.assertIsInstance(migration.context, MigrationContext)

    def test_setting_workflow_id_makes_ready(self):
        migration = Migration(client=make_client())
        migration.workflow_id = None
        self.assertEqual(migration.status, MigrationStatus.NEED_SETUP)

        migration.workflow_id = 42
        self.assertEqual(migration.status, MigrationStatus.READY)

        migration.workflow_id = 43
        self.assertEqual(migration.workflow_id, 43)

    def test_ready_cannot_go_back(self):
        migration = Migration(client=make_client())
        migration.workflow_id = 42

        with self.assertRaises(ValueError):
            migration.workflow_id = None
        self.assertEqual(migration.status, MigrationStatus.READY)

    def test_workflow_id_fixed_after_run(self):
        migration = Migration(client=make_client(two_job_workflow()))
        migration.workflow_id = 42
        migration.set_loader(ScriptedLoader())
        migration.run()

        with self.assertRaises(MigrationError):
            migration.workflow_id = 7

    @patch('orchestrator.migration.AnthillClient')
    def test_connects_when_no_client_given(self, client_cls):
        migration = Migration('anthill.example.com', 8443, 'admin', 'secret',
                              keystore_path='/etc/anthill.pem')

        client_cls.connect.assert_called_once_with(
            'anthill.example.com', 8443, 'admin', 'secret',
            keystore_path='/etc/anthill.pem', keystore_password=None
        )
        self.assertIs(migration.client, client_cls.connect.return_value)

    @patch('orchestrator.migration.AnthillClient')
    def test_connect_failure_propagates(self, client_cls):
        client_cls.connect.side_effect = ConnectError("bad password")

        with self.assertRaises(ConnectError):
            Migration('anthill.example.com', 8443, 'admin', 'wrong')


class TestMigrationRun(unittest.TestCase):

    def setUp(self):
        self.workflow = two_job_workflow()
        self.client = make_client(self.workflow)
        self.loader = ScriptedLoader()
        self.migration = Migration(client=self.client)
        self.migration.workflow_id = 42
        self.migration.set_loader(self.loader)

    def test_run_without_workflow_id_touches_nothing(self):
        client = make_client()
        migration = Migration(client=client)
        migration.set_loader(self.loader)

        migration.run()

        self.assertEqual(migration.status, MigrationStatus.ERROR)
        self.assertIsInstance(migration.error, NotConfiguredError)
        self.assertIn("not configured", str(migration.error).lower())
        self.assertEqual(client.mock_calls, [])
        self.assertEqual(self.loader.events, [])
        self.assertEqual(migration.progress, 100)

    def test_second_run_is_rejected(self):
        self.migration.run()
        self.assertEqual(self.migration.status, MigrationStatus.SUCCESS)
        self.client.reset_mock()
        events = list(self.loader.events)

        self.migration.run()

        self.assertEqual(self.migration.status, MigrationStatus.ERROR)
        self.assertIsInstance(self.migration.error, AlreadyUsedError)
        self.assertIn("already used", str(self.migration.error).lower())
        self.assertEqual(self.client.mock_calls, [])
        self.assertEqual(self.loader.events, events)

    def test_successful_run_calls_hooks_in_order(self):
        self.migration.run()

        self.assertEqual(self.migration.status, MigrationStatus.SUCCESS)
        self.assertIsNone(self.migration.error)
        self.assertEqual(self.loader.events, [
            ('workflow.pre', 'Release'),
            ('job.pre', 'build'),
            ('step.run', 'checkout'),
            ('step.run', 'compile'),
            ('job.post', 'build'),
            ('job.pre', 'test'),
            ('step.run', 'unit'),
            ('job.post', 'test'),
            ('workflow.post', 'Release'),
        ])
        self.assertEqual(self.loader.job_hooks_built, 2)
        self.assertEqual(self.migration.completed_jobs, 2)
        self.assertEqual(self.migration.total_jobs, 2)
        self.assertEqual(self.migration.progress, 100)
        self.assertEqual(self.migration.workflow_name, 'Release')

    def test_run_populates_context(self):
        context = MigrationContext()
        self.migration.set_context(context)

        self.migration.run()

        self.assertIs(context.workflow, self.workflow)
        self.assertIs(context.client, self.client)
        self.assertEqual([j.name for j in context.layout.all_jobs], ['build', 'test'])
        self.assertEqual(context.current_job.name, 'test')

    def test_current_step_cleared_when_job_starts(self):
        seen = []
        self.loader.observer = lambda event, name, context: (
            seen.append(context.current_step) if event == 'job.pre' else None
        )

        self.migration.run()

        self.assertEqual(seen, [None, None])

    def test_resources_released_after_success(self):
        self.migration.run()

        self.client.bind.assert_called_once_with()
        self.client.unbind.assert_called_once_with()
        uow = self.client.create_unit_of_work.return_value
        uow.cancel.assert_called_once_with()
        uow.close.assert_called_once_with()
        self.client.restore_workflow.assert_called_once_with(42)

    def test_runs_without_optional_hooks(self):
        loader = ScriptedLoader(with_workflow_hook=False, with_job_hook=False)
        self.migration.set_loader(loader)

        self.migration.run()

        self.assertEqual(self.migration.status, MigrationStatus.SUCCESS)
        self.assertEqual([e[0] for e in loader.events], ['step.run'] * 3)

    def test_step_skip_continues_with_next_step(self):
        self.loader.failures[('step.run', 'checkout')] = SkipSignal("not needed")

        self.migration.run()

        self.assertEqual(self.migration.status, MigrationStatus.SUCCESS)
        self.assertIn(('step.run', 'compile'), self.loader.events)
        self.assertIn(('job.post', 'build'), self.loader.events)
        self.assertEqual(self.migration.completed_jobs, 2)

    def test_job_pre_run_skip_skips_rest_of_job_only(self):
        self.loader.failures[('job.pre', 'build')] = SkipSignal("skip build")

        self.migration.run()

        self.assertEqual(self.migration.status, MigrationStatus.SUCCESS)
        self.assertNotIn(('step.run', 'checkout'), self.loader.events)
        self.assertNotIn(('job.post', 'build'), self.loader.events)
        self.assertIn(('step.run', 'unit'), self.loader.events)
        self.assertEqual(self.migration.completed_jobs, 2)

    def test_job_post_run_skip_continues(self):
        self.loader.failures[('job.post', 'build')] = SkipSignal("nothing to finish")

        self.migration.run()

        self.assertEqual(self.migration.status, MigrationStatus.SUCCESS)
        self.assertIn(('job.pre', 'test'), self.loader.events)

    def test_workflow_pre_run_skip_aborts(self):
        self.loader.failures[('workflow.pre', 'Release')] = SkipSignal("not this one")

        self.migration.run()

        self.assertEqual(self.migration.status, MigrationStatus.ERROR)
        self.assertIsInstance(self.migration.error, SkipSignal)
        self.assertEqual(self.loader.events, [('workflow.pre', 'Release')])
        self.client.unbind.assert_called_once_with()

    def test_skip_while_loading_job_hook_aborts(self):
        with patch.object(self.loader, 'load_job_hook', side_effect=SkipSignal("no job hook")):
            self.migration.run()

        self.assertEqual(self.migration.status, MigrationStatus.ERROR)
        self.assertIsInstance(self.migration.error, SkipSignal)
        self.assertEqual(self.migration.completed_jobs, 0)
        self.assertEqual(self.loader.events, [('workflow.pre', 'Release')])
        self.client.unbind.assert_called_once_with()

    def test_unsupported_kind_aborts(self):
        loader = ScriptedLoader(unsupported={ANT})
        self.migration.set_loader(loader)

        self.migration.run()

        self.assertEqual(self.migration.status, MigrationStatus.ERROR)
        self.assertIsInstance(self.migration.error, UnsupportedKindError)
        self.assertEqual(self.migration.error.kind, ANT)
        self.assertEqual(self.migration.completed_jobs, 0)
        self.assertNotIn(('job.post', 'build'), loader.events)
        self.assertEqual(self.migration.progress, 100)

    def test_failure_in_second_job_counts_first(self):
        self.loader.failures[('step.run', 'unit')] = DataAccessError("lost connection")

        self.migration.run()

        self.assertEqual(self.migration.status, MigrationStatus.ERROR)
        self.assertIsInstance(self.migration.error, DataAccessError)
        self.assertEqual(self.migration.completed_jobs, 1)
        self.assertNotIn(('workflow.post', 'Release'), self.loader.events)
        uow = self.client.create_unit_of_work.return_value
        uow.cancel.assert_called_once_with()
        uow.close.assert_called_once_with()
        self.client.unbind.assert_called_once_with()

    def test_foreign_error_is_wrapped(self):
        failure = RuntimeError("boom")
        self.loader.failures[('step.run', 'compile')] = failure

        self.migration.run()

        error = self.migration.error
        self.assertIsInstance(error, GenericMigrationError)
        self.assertEqual(str(error), "General error: boom")
        self.assertIs(error.__cause__, failure)

    def test_foreign_error_without_message_uses_type_name(self):
        self.loader.failures[('job.pre', 'build')] = KeyError()

        self.migration.run()

        self.assertEqual(str(self.migration.error), "General error: KeyError")

    def test_workflow_not_found(self):
        self.client.restore_workflow.return_value = None

        self.migration.run()

        self.assertEqual(self.migration.status, MigrationStatus.ERROR)
        self.assertIn("not found", str(self.migration.error))
        self.assertEqual(self.loader.events, [])
        self.client.create_unit_of_work.return_value.close.assert_called_once_with()
        self.client.unbind.assert_called_once_with()

    def test_missing_loader(self):
        migration = Migration(client=self.client)
        migration.workflow_id = 42

        migration.run()

        self.assertEqual(migration.status, MigrationStatus.ERROR)
        self.assertIsInstance(migration.error, MigrationError)
        self.client.unbind.assert_called_once_with()

    def test_unit_of_work_failure(self):
        self.client.create_unit_of_work.side_effect = DataAccessError("no transactions today")

        self.migration.run()

        self.assertEqual(self.migration.status, MigrationStatus.ERROR)
        self.assertIsInstance(self.migration.error, DataAccessError)
        self.client.unbind.assert_called_once_with()
        self.client.restore_workflow.assert_not_called()

    def test_cancel_failure_still_closes(self):
        uow = self.client.create_unit_of_work.return_value
        uow.cancel.side_effect = DataAccessError("cancel failed")

        self.migration.run()

        self.assertEqual(self.migration.status, MigrationStatus.SUCCESS)
        uow.close.assert_called_once_with()

    def test_empty_workflow_succeeds(self):
        self.client.restore_workflow.return_value = Workflow(id=42, name='Empty')

        self.migration.run()

        self.assertEqual(self.migration.status, MigrationStatus.SUCCESS)
        self.assertEqual(self.migration.total_jobs, 0)
        self.assertEqual(self.loader.events, [('workflow.pre', 'Empty'), ('workflow.post', 'Empty')])

    def test_progress_while_running(self):
        workflow = make_workflow(
            ('a', 1, [('s1', ANT, True)]),
            ('b', 2, [('s2', ANT, True)]),
            ('c', 3, [('s3', ANT, True)]),
        )
        self.client.restore_workflow.return_value = workflow
        seen = []
        self.loader.observer = lambda event, name, context: (
            seen.append((event, self.migration.status, self.migration.progress))
            if event in ('job.pre', 'workflow.post') else None
        )

        self.migration.run()

        self.assertEqual(seen, [
            ('job.pre', MigrationStatus.RUNNING, 0),
            ('job.pre', MigrationStatus.RUNNING, 33),
            ('job.pre', MigrationStatus.RUNNING, 67),
            ('workflow.post', MigrationStatus.RUNNING, 99),
        ])
        self.assertEqual(self.migration.progress, 100)

    def test_run_on_thread(self):
        worker = threading.Thread(target=self.migration.run)
        worker.start()
        worker.join(timeout=5)

        self.assertFalse(worker.is_alive())
        self.assertEqual(self.migration.status, MigrationStatus.SUCCESS)

    def test_set_error_from_supervisor(self):
        error = MigrationError("worker died")

        self.migration.set_error(error)

        self.assertEqual(self.migration.status, MigrationStatus.ERROR)
        self.assertIs(self.migration.error, error)


class TestMigrationClose(unittest.TestCase):

    def test_close_releases_session(self):
        client = make_client(two_job_workflow())
        migration = Migration(client=client)
        migration.workflow_id = 42
        migration.set_loader(ScriptedLoader())
        migration.run()
        client.reset_mock()

        migration.close()

        client.unbind.assert_called_once_with()
        client.disconnect.assert_called_once_with()
        self.assertEqual(migration.status, MigrationStatus.CLOSED)
        self.assertEqual(migration.progress, 100)
        self.assertEqual(migration.context.workflow.name, 'Release')

    def test_close_swallows_release_errors(self):
        client = make_client()
        client.unbind.side_effect = RuntimeError("not bound")
        client.disconnect.side_effect = ConnectError("already gone")
        migration = Migration(client=client)

        migration.close()

        client.disconnect.assert_called_once_with()
        self.assertEqual(migration.status, MigrationStatus.CLOSED)

    def test_run_after_close_is_rejected(self):
        client = make_client(two_job_workflow())
        migration = Migration(client=client)
        migration.workflow_id = 42
        migration.close()
        client.reset_mock()

        migration.run()

        self.assertIsInstance(migration.error, AlreadyUsedError)
        self.assertEqual(migration.status, MigrationStatus.CLOSED)
        self.assertEqual(client.mock_calls, [])


class TestFetchWorkflows(unittest.TestCase):

    def setUp(self):
        self.client = make_client()
        self.uow = self.client.create_unit_of_work.return_value
        self.migration = Migration(client=self.client)

    def test_returns_sorted_mapping(self):
        self.client.restore_projects_like_name.return_value = [
            ProjectSummary(id=2, name='Payments', workflows={'Deploy': 9, 'Build': 8}),
            ProjectSummary(id=1, name='Billing', workflows={'Release': 3}),
        ]

        result = self.migration.fetch_workflows_for_project_name('a')

        self.assertEqual(list(result), ['Billing', 'Payments'])
        self.assertEqual(list(result['Payments'].items()), [('Build', 8), ('Deploy', 9)])
        self.client.restore_projects_like_name.assert_called_once_with('a')
        self.uow.cancel.assert_called_once_with()
        self.uow.close.assert_called_once_with()

    def test_too_many_results(self):
        self.client.restore_projects_like_name.return_value = [
            ProjectSummary(id=i, name=f"P{i}") for i in range(3)
        ]

        with self.assertRaises(MigrationError) as ctx:
            self.migration.fetch_workflows_for_project_name('P', limit=2)

        self.assertIn("too many results", str(ctx.exception))
        self.uow.close.assert_called_once_with()

    def test_limit_not_exceeded(self):
        self.client.restore_projects_like_name.return_value = [
            ProjectSummary(id=i, name=f"P{i}") for i in range(2)
        ]

        result = self.migration.fetch_workflows_for_project_name('P', limit=2)

        self.assertEqual(len(result), 2)

    def test_query_errors_propagate_after_release(self):
        self.client.restore_projects_like_name.side_effect = ConnectError("forbidden")

        with self.assertRaises(ConnectError):
            self.migration.fetch_workflows_for_project_name('P')

        self.uow.cancel.assert_called_once_with()
        self.uow.close.assert_called_once_with()


if __name__ == '__main__':
    unittest.main()
