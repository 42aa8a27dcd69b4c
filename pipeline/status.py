"""
Status check for persisted contributions: re-read the pull request on the host and
record whether it is still open, merged or closed.
"""
import logging
import re
from typing import Tuple, Dict, Any

from github_client import host_message, is_success
from .errors import ContributionNotFound, StatusCheckFailed

logger = logging.getLogger(__name__)

PR_URL_RE = re.compile(r'^https?://[^/]+/([^/]+)/([^/]+)/pull/(\d+)/?$')


def parse_pr_url(pr_url: str) -> Tuple[str, str, int]:
    """Split ``https://<host>/<owner>/<repo>/pull/<n>`` into (owner, repo, n)."""
    match = PR_URL_RE.match((pr_url or '').strip())
    if not match:
        raise ValueError(f"Invalid PR URL: {pr_url!r}")
    pr_owner, pr_repo, pr_number = match.groups()
    return pr_owner, pr_repo, int(pr_number)


def resolve_pr_status(pull: Dict[str, Any]) -> str:
    if pull.get('merged'):
        return 'merged'
    if pull.get('state') == 'closed':
        return 'closed'
    return 'open'


def refresh_contribution_status(client, store, contribution_id: int) -> Dict[str, Any]:
    """Update the stored status of one contribution from its pull request."""
    contribution = store.get(contribution_id)
    if contribution is None or not contribution.pr_url:
        raise ContributionNotFound(f"Contribution not found: {contribution_id}")

    pr_owner, pr_repo, pr_number = parse_pr_url(contribution.pr_url)
    res = client.get_pull(pr_owner, pr_repo, pr_number)
    if not is_success(res) or not isinstance(res.get('response'), dict):
        raise StatusCheckFailed(f"Failed to check PR status: {res.get('status')} {host_message(res)}".strip(), status=res.get('status'))

    pull = res['response']
    status = resolve_pr_status(pull)
    if status != contribution.status:
        store.update_status(contribution_id, status)
        logger.info("contribution %s: %s -> %s", contribution_id, contribution.status, status)
    return {'status': status, 'merged_at': pull.get('merged_at'), 'pr_number': pull.get('number', pr_number)}
