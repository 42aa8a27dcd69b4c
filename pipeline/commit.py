"""
File committer: create-or-update one file on a branch through the contents API.
"""
import base64
import logging
from typing import Optional, List

from github_client import host_message, is_success
from .errors import FileCommitConflict, FileCommitFailed
from .models import FileChange
from .paths import normalize_repo_path
from .stages import Stage

logger = logging.getLogger(__name__)


def default_commit_message(path: str) -> str:
    return f"Update {path}"


def _is_sha_conflict(status: int, message: str) -> bool:
    # 409: the supplied sha is stale. 422 mentioning sha: it was missing for an existing file.
    if status == 409:
        return True
    return status == 422 and 'sha' in (message or '').lower()


def existing_blob_sha(client, owner: str, repo: str, path: str, branch: str) -> Optional[str]:
    """
    Blob sha of ``path`` on ``branch``, or None when the file does not exist yet.
    Any other read failure is a commit failure.
    """
    res = client.get_contents(owner, repo, path, ref=branch)
    status = res.get('status')
    if status == 404:
        return None
    if not is_success(res):
        raise FileCommitFailed(
            f"Reading {path} failed: {status}", path=path, stage=Stage.COMMITTING, status=status, host_message=host_message(res)
        )
    data = res.get('response')
    if isinstance(data, list):
        raise FileCommitFailed(f"{path} is a directory", path=path, stage=Stage.COMMITTING, status=status)
    return data.get('sha') if isinstance(data, dict) else None


def commit_file(client, owner: str, repo: str, branch: str, change: FileChange, index: Optional[int] = None) -> str:
    """
    Write ``change`` to ``branch`` and return the new commit sha (or '' if the host omitted it).

    Conflicts are reported, never retried: a blind retry could overwrite an intervening change.
    """
    try:
        path = normalize_repo_path(change.path)
    except ValueError as ex:
        raise FileCommitFailed(str(ex), path=change.path, index=index, stage=Stage.COMMITTING)
    if not path:
        raise FileCommitFailed("File path is empty", path=change.path, index=index, stage=Stage.COMMITTING, status=422)

    try:
        sha = existing_blob_sha(client, owner, repo, path, branch)
    except FileCommitFailed as ex:
        ex.index = index
        raise

    content_b64 = base64.b64encode(change.content.encode('utf-8')).decode('ascii')
    message = change.message or default_commit_message(path)
    res = client.put_contents(owner, repo, path, content_b64, message, branch, sha=sha)
    if not is_success(res):
        status = res.get('status')
        text = host_message(res)
        if _is_sha_conflict(status, text):
            raise FileCommitConflict(
                f"Commit of {path} conflicted with the current branch state",
                path=path, index=index, stage=Stage.COMMITTING, status=status, host_message=text,
            )
        raise FileCommitFailed(f"Commit file failed: {status}", path=path, index=index, stage=Stage.COMMITTING, status=status, host_message=text)

    data = res.get('response')
    commit = (data.get('commit') or {}) if isinstance(data, dict) else {}
    logger.info("committed %s to %s/%s@%s (%s)", path, owner, repo, branch, "update" if sha else "new")
    return commit.get('sha') or ''


def commit_changes(client, owner: str, repo: str, branch: str, changes: List[FileChange], on_commit=None) -> List[str]:
    """
    Apply ``changes`` one after another; each commit builds on the head the previous one produced.
    ``on_commit(index, total)`` is called after every successful commit (1-based).
    """
    shas = []
    total = len(changes)
    for i, change in enumerate(changes, start=1):
        shas.append(commit_file(client, owner, repo, branch, change, index=i))
        if on_commit:
            on_commit(i, total)
    return shas
