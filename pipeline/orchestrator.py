"""
Pipeline orchestrator: fork -> wait -> branch -> commit (each change) -> open PR -> persist.

Progress is strictly forward. A failure at any stage ends the run in FAILED; nothing
already created on the host (fork, branch, commits) is rolled back, and no contribution
record is written unless a pull request was opened.
"""
import logging
import threading
import time
from typing import Callable, Optional, Dict, Any

from github_client import GitHubClient
from report.renderer import compose_pr_body, default_pr_title
from .branch import make_branch_name, provision_branch
from .commit import commit_changes
from .config import PipelineConfig
from .credentials import Credentials
from .errors import PipelineError, InvalidRequest, PipelineCancelled, PersistFailed
from .fork import ensure_fork, wait_for_fork
from .models import Contribution, ContributionRequest, ContributionResult, FileChange
from .paths import normalize_repo_path
from .pull_request import open_pull_request
from .stages import PipelineRun, Stage

logger = logging.getLogger(__name__)


def _default_client_factory(config: PipelineConfig):
    def factory(credentials: Credentials):
        return GitHubClient(credentials.token, base_url=config.api_url, timeout=config.request_timeout, user_agent=config.user_agent)
    return factory


class ContributionPipeline:
    """
    Runs contribution requests against the host. Holds only immutable collaborators
    (config, client factory, store), so one instance can serve concurrent runs.
    """

    def __init__(
        self,
        store,
        config: Optional[PipelineConfig] = None,
        client_factory: Optional[Callable[[Credentials], Any]] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.store = store
        self.config = config or PipelineConfig()
        self.client_factory = client_factory or _default_client_factory(self.config)
        self.sleep = sleep or time.sleep

    @staticmethod
    def _validate(request: ContributionRequest, credentials: Credentials):
        credentials.require_token()
        if not request.owner or not request.repo:
            raise InvalidRequest("Missing required parameters: owner and repo")
        if not request.changes:
            raise InvalidRequest("At least one file change is required")
        # every change is checked before the first host call
        for i, change in enumerate(request.changes, start=1):
            if not isinstance(change, FileChange):
                raise InvalidRequest(f"Change {i} is not a file change: {type(change).__name__}")
            if not isinstance(change.path, str) or not isinstance(change.content, str):
                raise InvalidRequest(f"Change {i} must have a string path and string content")
            if change.message is not None and not isinstance(change.message, str):
                raise InvalidRequest(f"Change {i} has a non-string commit message")

    @staticmethod
    def _checkpoint(run: PipelineRun, cancel_event: Optional[threading.Event]):
        # cancellation is only honoured between stages
        if cancel_event is not None and cancel_event.is_set():
            raise PipelineCancelled(f"Run cancelled before leaving {run.stage}", stage=run.stage)

    def run(
        self,
        request: ContributionRequest,
        credentials: Credentials,
        run: Optional[PipelineRun] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ContributionResult:
        """
        Execute one run. Returns the result on success; raises a PipelineError carrying the
        failed stage otherwise. Pass ``run`` to observe the state machine from outside.
        """
        run = run or PipelineRun(request.owner, request.repo)
        try:
            return self._execute(request, credentials, run, cancel_event)
        except PipelineError as ex:
            run.fail(ex)
            raise
        except Exception as ex:
            run.fail(ex, stage=run.stage)
            raise

    def _execute(self, request: ContributionRequest, credentials: Credentials, run: PipelineRun, cancel_event) -> ContributionResult:
        self._validate(request, credentials)
        client = self.client_factory(credentials)
        owner, repo = request.owner, request.repo

        self._checkpoint(run, cancel_event)
        run.advance(Stage.FORKING)
        fork = ensure_fork(client, owner, repo)

        self._checkpoint(run, cancel_event)
        run.advance(Stage.AWAITING_FORK)
        wait_for_fork(client, fork.owner, repo, max_attempts=self.config.fork_poll_attempts, interval=self.config.fork_poll_interval, sleep=self.sleep)

        self._checkpoint(run, cancel_event)
        run.advance(Stage.BRANCHING)
        # chosen once; every commit and the PR head use exactly this name
        branch_name = make_branch_name(self.config.branch_prefix)
        branch = provision_branch(client, owner, repo, fork.owner, branch_name)

        self._checkpoint(run, cancel_event)
        run.advance(Stage.COMMITTING)
        commit_changes(client, fork.owner, repo, branch_name, request.changes, on_commit=run.mark_commit)

        self._checkpoint(run, cancel_event)
        run.advance(Stage.OPENING_PR)
        paths = [normalize_repo_path(c.path) for c in request.changes]
        details = request.pr_details
        title = details.title or default_pr_title(paths)
        body = compose_pr_body(details.body, paths, fork.owner, repo, branch_name, details.description)
        pr = open_pull_request(client, owner, repo, fork.owner, branch_name, branch.base_branch, title, body)

        run.advance(Stage.PERSISTING)
        contribution = Contribution(
            profile_id=credentials.actor_id,
            owner=owner,
            repo=repo,
            fork_owner=fork.owner,
            branch_name=branch_name,
            pr_url=pr.url,
            pr_number=pr.number,
            pr_title=title,
            pr_body=body,
            status="open",
            challenge_id=request.challenge_id,
        )
        try:
            contribution_id = self.store.add(contribution)
        except Exception as ex:
            raise PersistFailed(f"Pull request opened but the record was not saved: {ex}", pr_url=pr.url, pr_number=pr.number) from ex
        run.advance(Stage.PERSISTED)

        return ContributionResult(pr.url, pr.number, branch_name, fork.owner, contribution_id)


def handle_contribution_request(pipeline: ContributionPipeline, payload: Dict[str, Any], credentials: Credentials) -> Dict[str, Any]:
    """
    Caller-facing wrapper: takes ``{owner, repo, changes, prDetails?, challengeId?}`` and returns
    ``{'success': True, prUrl, prNumber, branchName, forkOwner, contributionId}`` or
    ``{'success': False, 'error': {...stage-labelled error...}}``.
    """
    try:
        request = ContributionRequest.from_dict(payload)
    except ValueError as ex:
        return {'success': False, 'error': InvalidRequest(str(ex)).to_dict()}
    try:
        result = pipeline.run(request, credentials)
    except PipelineError as ex:
        return {'success': False, 'error': ex.to_dict()}
    data = result.to_dict()
    data['success'] = True
    return data
