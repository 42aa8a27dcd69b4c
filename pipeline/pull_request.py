"""
Pull request opener: fork branch -> upstream default branch.
"""
import logging

from github_client import host_message, is_success
from .errors import PullRequestRejected
from .stages import Stage

logger = logging.getLogger(__name__)


class PullRequestInfo:
    def __init__(self, url: str, number: int, head: str, base: str):
        self.url = url
        self.number = number
        self.head = head
        self.base = base


def open_pull_request(client, owner: str, repo: str, fork_owner: str, branch_name: str, base_branch: str, title: str, body: str) -> PullRequestInfo:
    """
    Open a pull request on ``owner/repo`` from ``fork_owner:branch_name``.
    Any rejection (no diff, permissions, validation) raises PullRequestRejected.
    """
    head = f"{fork_owner}:{branch_name}"
    res = client.create_pull(owner, repo, title, body, head, base_branch)
    status = res.get('status')
    if not is_success(res):
        raise PullRequestRejected(f"Create PR failed: {status}", stage=Stage.OPENING_PR, status=status, host_message=host_message(res))
    data = res.get('response')
    url = data.get('html_url') if isinstance(data, dict) else None
    number = data.get('number') if isinstance(data, dict) else None
    if not url or number is None:
        raise PullRequestRejected("Pull request response did not include a URL and number", stage=Stage.OPENING_PR, status=status)
    logger.info("opened %s (%s -> %s)", url, head, base_branch)
    return PullRequestInfo(url, int(number), head, base_branch)
