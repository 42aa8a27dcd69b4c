"""
Data models for pipeline inputs, results and the persisted contribution record.
"""
from typing import List, Optional, Dict, Any

CONTRIBUTION_STATUSES = ("open", "merged", "closed")


class FileChange:
    """
    Full desired content for one repository file (not a diff).
    """
    def __init__(self, path: str, content: str, message: Optional[str] = None):
        self.path = path
        self.content = content
        self.message = message

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileChange":
        if not isinstance(data, dict):
            raise ValueError(f"Each change must be an object with path and content, got {type(data).__name__}")
        return cls(path=data.get('path') or '', content=data.get('content') or '', message=data.get('message'))

    def __repr__(self):
        content = self.content if isinstance(self.content, str) else str(self.content)
        return f"FileChange(path={self.path!r}, bytes={len(content.encode('utf-8'))})"


class PRDetails:
    """
    Pull request title/body. ``description`` is appended to the default body template.
    """
    def __init__(self, title: Optional[str] = None, body: Optional[str] = None, description: Optional[str] = None):
        self.title = title
        self.body = body
        self.description = description

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "PRDetails":
        data = data or {}
        if not isinstance(data, dict):
            raise ValueError("prDetails must be an object")
        return cls(title=data.get('title'), body=data.get('body'), description=data.get('description'))


class ContributionRequest:
    """
    Caller-facing input: the upstream repository plus the ordered list of changes.
    """
    def __init__(
        self,
        owner: str,
        repo: str,
        changes: List[FileChange],
        pr_details: Optional[PRDetails] = None,
        challenge_id: Optional[str] = None,
    ):
        self.owner = owner
        self.repo = repo
        self.changes = list(changes or [])
        self.pr_details = pr_details or PRDetails()
        self.challenge_id = challenge_id

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContributionRequest":
        """Build a request from caller JSON. Raises ValueError when the payload is not shaped like one."""
        if not isinstance(data, dict):
            raise ValueError("Request must be an object")
        raw_changes = data.get('changes') or []
        if not isinstance(raw_changes, list):
            raise ValueError("changes must be a list")
        changes = [c if isinstance(c, FileChange) else FileChange.from_dict(c) for c in raw_changes]
        return cls(
            owner=data.get('owner') or '',
            repo=data.get('repo') or '',
            changes=changes,
            pr_details=PRDetails.from_dict(data.get('prDetails') or data.get('pr_details')),
            challenge_id=data.get('challengeId') or data.get('challenge_id'),
        )


class ContributionResult:
    """
    Successful outcome of a run.
    """
    def __init__(self, pr_url: str, pr_number: int, branch_name: str, fork_owner: str, contribution_id: Optional[int] = None):
        self.pr_url = pr_url
        self.pr_number = pr_number
        self.branch_name = branch_name
        self.fork_owner = fork_owner
        self.contribution_id = contribution_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            'prUrl': self.pr_url,
            'prNumber': self.pr_number,
            'branchName': self.branch_name,
            'forkOwner': self.fork_owner,
            'contributionId': self.contribution_id,
        }


class Contribution:
    """
    Durable record of one completed run, keyed to the resulting pull request.
    """
    def __init__(
        self,
        profile_id: str,
        owner: str,
        repo: str,
        fork_owner: str,
        branch_name: str,
        pr_url: Optional[str] = None,
        pr_number: Optional[int] = None,
        pr_title: Optional[str] = None,
        pr_body: Optional[str] = None,
        status: str = "open",
        challenge_id: Optional[str] = None,
        id: Optional[int] = None,
        created_at: Optional[float] = None,
        updated_at: Optional[float] = None,
    ):
        if status not in CONTRIBUTION_STATUSES:
            raise ValueError(f"Invalid contribution status: {status}")
        self.id = id
        self.profile_id = profile_id
        self.owner = owner
        self.repo = repo
        self.fork_owner = fork_owner
        self.branch_name = branch_name
        self.pr_url = pr_url
        self.pr_number = pr_number
        self.pr_title = pr_title
        self.pr_body = pr_body
        self.status = status
        self.challenge_id = challenge_id
        self.created_at = created_at
        self.updated_at = updated_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'profile_id': self.profile_id,
            'owner': self.owner,
            'repo': self.repo,
            'fork_owner': self.fork_owner,
            'branch_name': self.branch_name,
            'pr_url': self.pr_url,
            'pr_number': self.pr_number,
            'pr_title': self.pr_title,
            'pr_body': self.pr_body,
            'status': self.status,
            'challenge_id': self.challenge_id,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
        }
