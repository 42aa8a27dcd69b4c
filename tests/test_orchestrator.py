"""
End-to-end runs of the contribution pipeline against the in-memory host.
"""
import re
import threading
import unittest

from fake_host import FakeGitHubHost
from pipeline import (
    ContributionPipeline,
    ContributionRequest,
    Credentials,
    FileChange,
    PRDetails,
    PipelineRun,
    Stage,
    handle_contribution_request,
)
from pipeline.config import PipelineConfig
from pipeline.errors import (
    AuthenticationMissing,
    BranchCreateConflict,
    FileCommitFailed,
    ForkFailed,
    ForkTimeout,
    InvalidRequest,
    PersistFailed,
    PipelineCancelled,
    PullRequestRejected,
)
from storage.contributions import ContributionStore

PR_URL = re.compile(r'^https://[^/]+/acme/widgets/pull/\d+$')


class BrokenStore:
    def add(self, contribution):
        raise RuntimeError('disk full')


class OrchestratorTestCase(unittest.TestCase):
    def setUp(self):
        self.host = FakeGitHubHost(login='devuser')
        self.host.add_repo('acme', 'widgets', files={'README.md': '# old\n'})
        self.store = ContributionStore()
        self.sleeps = []
        self.config = PipelineConfig(fork_poll_attempts=3, fork_poll_interval=0.5, branch_prefix='contrib')
        self.pipeline = ContributionPipeline(self.store, config=self.config, client_factory=lambda creds: self.host, sleep=self.sleeps.append)
        self.creds = Credentials('tok', 'profile-1')

    def tearDown(self):
        self.store.close()

    def _request(self, changes=None, **kwargs):
        changes = changes if changes is not None else [FileChange('README.md', '# Widgets\n')]
        return ContributionRequest('acme', 'widgets', changes, **kwargs)


class TestSuccessfulRun(OrchestratorTestCase):
    def test_readme_scenario_reaches_persisted(self):
        run = PipelineRun('acme', 'widgets')
        result = self.pipeline.run(self._request(), self.creds, run=run)

        self.assertEqual(run.stage, Stage.PERSISTED)
        self.assertEqual(
            run.stages(),
            [Stage.INIT, Stage.FORKING, Stage.AWAITING_FORK, Stage.BRANCHING, Stage.COMMITTING, Stage.OPENING_PR, Stage.PERSISTING, Stage.PERSISTED],
        )
        self.assertRegex(result.pr_url, PR_URL)
        self.assertEqual(result.fork_owner, 'devuser')
        self.assertTrue(result.branch_name.startswith('contrib/fix-'))

        records = self.store.list()
        self.assertEqual(len(records), 1)
        record = records[0]
        self.assertEqual(record.id, result.contribution_id)
        self.assertEqual(record.pr_url, result.pr_url)
        self.assertEqual(record.pr_number, result.pr_number)
        self.assertEqual(record.fork_owner, 'devuser')
        self.assertEqual(record.branch_name, result.branch_name)
        self.assertEqual(record.status, 'open')
        self.assertEqual(record.profile_id, 'profile-1')
        self.assertEqual((record.owner, record.repo), ('acme', 'widgets'))
        self.assertEqual(record.pr_title, 'Update README.md')
        self.assertIn('`README.md`', record.pr_body)

    def test_branch_name_used_for_every_commit_and_pr_head(self):
        changes = [FileChange('a.txt', '1'), FileChange('b.txt', '2')]
        result = self.pipeline.run(self._request(changes), self.creds)
        puts = [c for c in self.host.calls if c[0] == 'put_contents']
        self.assertEqual({c[6] for c in puts}, {result.branch_name})
        pr_call = [c for c in self.host.calls if c[0] == 'create_pull'][0]
        self.assertEqual(pr_call[5], f'devuser:{result.branch_name}')
        self.assertEqual(pr_call[6], 'main')

    def test_n_changes_produce_n_commits_on_branch(self):
        changes = [FileChange(f'docs/{i}.md', str(i)) for i in range(4)]
        result = self.pipeline.run(self._request(changes), self.creds)
        base = self.host.history('devuser', 'widgets', 'main')
        history = self.host.history('devuser', 'widgets', result.branch_name)
        self.assertEqual(len(history) - len(base), 4)
        self.assertEqual(history[:len(base)], base)

    def test_fork_conflict_uses_authenticated_login(self):
        self.host.fork_status = 409
        self.host.add_repo('devuser', 'widgets')
        result = self.pipeline.run(self._request(), self.creds)
        self.assertEqual(result.fork_owner, 'devuser')
        self.assertEqual(self.store.get(result.contribution_id).fork_owner, 'devuser')

    def test_caller_supplied_title_body_and_description(self):
        details = PRDetails(title='docs: refresh readme', body='Custom body', description='Closes #4')
        result = self.pipeline.run(self._request(pr_details=details, challenge_id='ch-9'), self.creds)
        record = self.store.get(result.contribution_id)
        self.assertEqual(record.pr_title, 'docs: refresh readme')
        self.assertEqual(record.pr_body, 'Custom body\n\nCloses #4')
        self.assertEqual(record.challenge_id, 'ch-9')
        pull = self.host.pulls[('acme', 'widgets', result.pr_number)]
        self.assertEqual(pull['body'], 'Custom body\n\nCloses #4')

    def test_repeated_runs_get_distinct_branches(self):
        first = self.pipeline.run(self._request(), self.creds)
        second = self.pipeline.run(self._request([FileChange('README.md', '# Widgets v2\n')]), self.creds)
        self.assertNotEqual(first.branch_name, second.branch_name)
        self.assertEqual(len(self.store.list()), 2)

    def test_slow_fork_is_polled_with_configured_interval(self):
        self.host.fork_not_ready_reads = 2
        self.pipeline.run(self._request(), self.creds)
        self.assertEqual(self.sleeps, [0.5, 0.5])


class TestFailedRuns(OrchestratorTestCase):
    def _assert_failed(self, error_cls, stage, request=None, creds=None, cancel_event=None):
        run = PipelineRun('acme', 'widgets')
        with self.assertRaises(error_cls) as ctx:
            self.pipeline.run(request or self._request(), creds or self.creds, run=run, cancel_event=cancel_event)
        self.assertEqual(run.stage, Stage.FAILED)
        self.assertEqual(run.failed_stage, stage)
        self.assertEqual(ctx.exception.stage, stage)
        self.assertIs(run.error, ctx.exception)
        self.assertEqual(self.store.list(), [])
        return ctx.exception

    def test_missing_token(self):
        self._assert_failed(AuthenticationMissing, Stage.INIT, creds=Credentials('', 'profile-1'))
        self.assertEqual(self.host.calls, [])

    def test_no_changes(self):
        self._assert_failed(InvalidRequest, Stage.INIT, request=self._request([]))

    def test_fork_failure(self):
        self.host.fail('create_fork', 403, {'message': 'forking disabled'})
        err = self._assert_failed(ForkFailed, Stage.FORKING)
        self.assertEqual(err.host_message, 'forking disabled')

    def test_fork_timeout(self):
        self.host.fork_not_ready_reads = 10
        self.host.fork_not_ready_status = 200
        self._assert_failed(ForkTimeout, Stage.AWAITING_FORK)
        self.assertEqual(self.host.call_names().count('get_repo'), 3)
        self.assertNotIn('create_ref', self.host.call_names())

    def test_branch_failure_persists_nothing(self):
        self.host.fail('create_ref', 422, {'message': 'Reference already exists'})
        self._assert_failed(BranchCreateConflict, Stage.BRANCHING)
        self.assertNotIn('put_contents', self.host.call_names())
        # fork is left in place; nothing is rolled back
        self.assertIn('devuser/widgets', self.host.repos)

    def test_second_change_with_empty_path(self):
        changes = [FileChange('README.md', '# Widgets\n'), FileChange('', 'oops')]
        err = self._assert_failed(FileCommitFailed, Stage.COMMITTING, request=self._request(changes))
        self.assertEqual(err.index, 2)
        puts = [c for c in self.host.calls if c[0] == 'put_contents']
        self.assertEqual(len(puts), 1)
        self.assertEqual(puts[0][3], 'README.md')
        self.assertNotIn('create_pull', self.host.call_names())

    def test_pull_request_rejected(self):
        self.host.fail('create_pull', 422, {'message': 'Validation Failed', 'errors': [{'message': 'No commits between main and x'}]})
        err = self._assert_failed(PullRequestRejected, Stage.OPENING_PR)
        self.assertIn('No commits between', err.host_message)

    def test_store_failure_reports_open_pull_request(self):
        pipeline = ContributionPipeline(BrokenStore(), config=self.config, client_factory=lambda creds: self.host, sleep=self.sleeps.append)
        run = PipelineRun('acme', 'widgets')
        with self.assertRaises(PersistFailed) as ctx:
            pipeline.run(self._request(), self.creds, run=run)
        self.assertEqual(run.failed_stage, Stage.PERSISTING)
        self.assertRegex(ctx.exception.pr_url, PR_URL)

    def test_cancel_before_start(self):
        cancel = threading.Event()
        cancel.set()
        self._assert_failed(PipelineCancelled, Stage.INIT, cancel_event=cancel)
        self.assertEqual(self.host.calls, [])

    def test_cancel_is_honoured_at_next_stage_boundary(self):
        cancel = threading.Event()
        original = self.host.create_ref

        def create_ref_then_cancel(*args):
            res = original(*args)
            cancel.set()
            return res

        self.host.create_ref = create_ref_then_cancel
        run = PipelineRun('acme', 'widgets')
        with self.assertRaises(PipelineCancelled):
            self.pipeline.run(self._request(), self.creds, run=run, cancel_event=cancel)
        self.assertEqual(run.failed_stage, Stage.BRANCHING)
        self.assertNotIn('put_contents', self.host.call_names())
        self.assertEqual(self.store.list(), [])


class TestCallerContract(OrchestratorTestCase):
    def test_success_payload(self):
        payload = {'owner': 'acme', 'repo': 'widgets', 'changes': [{'path': 'README.md', 'content': '# Widgets\n'}], 'challengeId': 'c1'}
        out = handle_contribution_request(self.pipeline, payload, self.creds)
        self.assertTrue(out['success'])
        self.assertRegex(out['prUrl'], PR_URL)
        self.assertEqual(out['forkOwner'], 'devuser')
        self.assertIn('branchName', out)
        self.assertIsInstance(out['prNumber'], int)

    def test_failure_payload_is_stage_labelled(self):
        self.host.fail('create_pull', 403, {'message': 'Must have push access'})
        payload = {'owner': 'acme', 'repo': 'widgets', 'changes': [{'path': 'README.md', 'content': 'x'}]}
        out = handle_contribution_request(self.pipeline, payload, self.creds)
        self.assertFalse(out['success'])
        self.assertEqual(out['error']['error'], 'PULL_REQUEST_REJECTED')
        self.assertEqual(out['error']['stage'], Stage.OPENING_PR)
        self.assertEqual(out['error']['host_message'], 'Must have push access')


    def _assert_rejected_at_init(self, payload):
        out = handle_contribution_request(self.pipeline, payload, self.creds)
        self.assertFalse(out['success'])
        self.assertEqual(out['error']['error'], 'INVALID_REQUEST')
        self.assertEqual(out['error']['stage'], Stage.INIT)
        self.assertEqual(self.host.calls, [])
        self.assertEqual(self.store.list(), [])
        return out

    def test_non_string_content_is_rejected_before_forking(self):
        out = self._assert_rejected_at_init({'owner': 'acme', 'repo': 'widgets', 'changes': [{'path': 'README.md', 'content': 123}]})
        self.assertIn('Change 1', out['error']['message'])

    def test_change_that_is_not_an_object(self):
        self._assert_rejected_at_init({'owner': 'acme', 'repo': 'widgets', 'changes': ['README.md']})

    def test_changes_not_a_list(self):
        self._assert_rejected_at_init({'owner': 'acme', 'repo': 'widgets', 'changes': {'path': 'README.md', 'content': 'x'}})

    def test_pr_details_not_an_object(self):
        self._assert_rejected_at_init({'owner': 'acme', 'repo': 'widgets', 'changes': [{'path': 'a', 'content': 'x'}], 'prDetails': 'title'})

    def test_payload_not_an_object(self):
        self._assert_rejected_at_init(['acme', 'widgets'])

    def test_second_change_with_bad_content_stops_run_before_any_commit(self):
        changes = [FileChange('README.md', 'ok'), FileChange('docs/a.md', b'bytes')]
        run = PipelineRun('acme', 'widgets')
        with self.assertRaises(InvalidRequest) as ctx:
            self.pipeline.run(self._request(changes), self.creds, run=run)
        self.assertIn('Change 2', ctx.exception.message)
        self.assertEqual(run.failed_stage, Stage.INIT)
        self.assertEqual(self.host.calls, [])
        self.assertIn('bytes=', repr(changes[1]))


if __name__ == '__main__':
    unittest.main()
