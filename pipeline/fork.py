"""
Fork coordination: make sure a fork of the upstream repository exists under the caller's
account, then wait until the host has finished creating it.
"""
import logging
import time
from typing import Callable, Optional

from github_client import host_message, is_success
from .errors import ForkFailed, ForkTimeout
from .stages import Stage

logger = logging.getLogger(__name__)

FORK_EXISTS_STATUS = 409


class ForkInfo:
    def __init__(self, owner: str, full_name: str, created: bool):
        self.owner = owner
        self.full_name = full_name
        self.created = created

    def __repr__(self):
        return f"ForkInfo(owner={self.owner!r}, full_name={self.full_name!r}, created={self.created})"


def _resolve_login(client) -> str:
    res = client.get_authenticated_user()
    data = res.get('response')
    login = data.get('login') if isinstance(data, dict) else None
    if not is_success(res) or not login:
        raise ForkFailed(
            "Fork already exists but the authenticated account could not be resolved",
            stage=Stage.FORKING,
            status=res.get('status'),
            host_message=host_message(res),
        )
    return login


def ensure_fork(client, owner: str, repo: str) -> ForkInfo:
    """
    Request a fork of ``owner/repo``. A conflict means the fork already exists; the host
    does not say where, so it is assumed to live under the authenticated account.
    """
    res = client.create_fork(owner, repo)
    status = res.get('status')
    if status == FORK_EXISTS_STATUS:
        login = _resolve_login(client)
        logger.info("fork of %s/%s already exists under %s", owner, repo, login)
        return ForkInfo(login, f"{login}/{repo}", created=False)

    if not is_success(res):
        raise ForkFailed(f"Fork failed: {status}", stage=Stage.FORKING, status=status, host_message=host_message(res))

    data = res.get('response') or {}
    fork_owner = ((data.get('owner') or {}).get('login')) if isinstance(data, dict) else None
    if not fork_owner:
        raise ForkFailed("Fork response did not include an owner", stage=Stage.FORKING, status=status)
    full_name = data.get('full_name') or f"{fork_owner}/{data.get('name') or repo}"
    logger.info("fork requested: %s", full_name)
    return ForkInfo(fork_owner, full_name, created=True)


def wait_for_fork(
    client,
    fork_owner: str,
    repo: str,
    max_attempts: int = 15,
    interval: float = 2.0,
    sleep: Optional[Callable[[float], None]] = None,
) -> str:
    """
    Poll the fork until it is readable and reports a default branch. Returns that branch.

    Raises ForkTimeout once ``max_attempts`` reads have been made without success.
    """
    sleep = sleep or time.sleep
    last_status = None
    for attempt in range(1, max_attempts + 1):
        res = client.get_repo(fork_owner, repo)
        last_status = res.get('status')
        data = res.get('response')
        default_branch = data.get('default_branch') if isinstance(data, dict) else None
        if is_success(res) and default_branch:
            logger.debug("fork %s/%s ready after %d attempt(s)", fork_owner, repo, attempt)
            return default_branch
        logger.debug("fork %s/%s not ready (attempt %d/%d, status %s)", fork_owner, repo, attempt, max_attempts, last_status)
        if attempt < max_attempts:
            sleep(interval)
    raise ForkTimeout(
        f"Fork {fork_owner}/{repo} was not ready after {max_attempts} attempts",
        attempts=max_attempts,
        stage=Stage.AWAITING_FORK,
        status=last_status,
    )
