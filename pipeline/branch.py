"""
Branch provisioning on the fork, and branch name minting.
"""
import logging
import threading
import time

from github_client import host_message, is_success
from .errors import BranchResolutionFailed, BranchCreateConflict, BranchCreateFailed
from .stages import Stage

logger = logging.getLogger(__name__)

FALLBACK_DEFAULT_BRANCH = "main"

_name_lock = threading.Lock()
_last_millis = 0


def _next_millis() -> int:
    """Wall-clock milliseconds, forced strictly increasing within this process."""
    global _last_millis
    with _name_lock:
        now = int(time.time() * 1000)
        if now <= _last_millis:
            now = _last_millis + 1
        _last_millis = now
        return now


def make_branch_name(prefix: str = "contrib") -> str:
    """Mint a time-seeded branch name, e.g. ``contrib/fix-1735689600123``."""
    return f"{prefix.strip('/')}/fix-{_next_millis()}"


def resolve_default_branch(client, owner: str, repo: str) -> str:
    res = client.get_repo(owner, repo)
    if not is_success(res):
        raise BranchResolutionFailed(
            f"Get repo failed for {owner}/{repo}: {res.get('status')}",
            stage=Stage.BRANCHING,
            status=res.get('status'),
            host_message=host_message(res),
        )
    data = res.get('response')
    branch = data.get('default_branch') if isinstance(data, dict) else None
    if not branch:
        logger.warning("%s/%s reported no default branch; assuming %s", owner, repo, FALLBACK_DEFAULT_BRANCH)
        return FALLBACK_DEFAULT_BRANCH
    return branch


def resolve_head_sha(client, owner: str, repo: str, branch: str) -> str:
    res = client.get_branch_ref(owner, repo, branch)
    data = res.get('response')
    sha = (data.get('object') or {}).get('sha') if isinstance(data, dict) else None
    if not is_success(res) or not sha:
        raise BranchResolutionFailed(
            f"Get branch SHA failed for {owner}/{repo}@{branch}: {res.get('status')}",
            stage=Stage.BRANCHING,
            status=res.get('status'),
            host_message=host_message(res),
        )
    return sha


def create_branch(client, owner: str, repo: str, branch_name: str, sha: str):
    res = client.create_ref(owner, repo, f"refs/heads/{branch_name}", sha)
    if is_success(res):
        return
    status = res.get('status')
    message = host_message(res)
    if status == 422 and 'already exists' in message.lower():
        raise BranchCreateConflict(
            f"Branch {branch_name} already exists on {owner}/{repo}", stage=Stage.BRANCHING, status=status, host_message=message
        )
    raise BranchCreateFailed(f"Create branch failed: {status}", stage=Stage.BRANCHING, status=status, host_message=message)


class BranchInfo:
    def __init__(self, name: str, base_branch: str, base_sha: str):
        self.name = name
        self.base_branch = base_branch
        self.base_sha = base_sha


def provision_branch(client, owner: str, repo: str, fork_owner: str, branch_name: str) -> BranchInfo:
    """
    Create ``branch_name`` on the fork, starting from the fork's copy of the upstream
    default branch. The upstream is read for the branch name, the fork for the commit.
    """
    base_branch = resolve_default_branch(client, owner, repo)
    base_sha = resolve_head_sha(client, fork_owner, repo, base_branch)
    create_branch(client, fork_owner, repo, branch_name, base_sha)
    logger.info("created %s on %s/%s from %s@%s", branch_name, fork_owner, repo, base_branch, base_sha[:7])
    return BranchInfo(branch_name, base_branch, base_sha)
