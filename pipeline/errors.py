"""
Error taxonomy for the contribution pipeline.

Every stage failure is a PipelineError subclass carrying the stage it happened in and,
when the host rejected a call, the HTTP status and the host's own message.
"""
from typing import Optional, Dict, Any

from .stages import Stage


class PipelineError(Exception):
    """Base class for stage-labelled pipeline failures."""

    code = "PIPELINE_ERROR"
    default_stage = Stage.INIT

    def __init__(self, message: str, stage: str = None, status: Optional[int] = None, host_message: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.stage = stage or self.default_stage
        self.status = status
        self.host_message = host_message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "stage": self.stage,
            "message": self.message,
            "status": self.status,
            "host_message": self.host_message,
        }

    def __str__(self):
        if self.host_message and self.host_message not in self.message:
            return f"[{self.stage}] {self.message} ({self.host_message})"
        return f"[{self.stage}] {self.message}"


class AuthenticationMissing(PipelineError):
    code = "AUTHENTICATION_MISSING"
    default_stage = Stage.INIT


class InvalidRequest(PipelineError):
    code = "INVALID_REQUEST"
    default_stage = Stage.INIT


class ForkFailed(PipelineError):
    code = "FORK_FAILED"
    default_stage = Stage.FORKING


class ForkTimeout(PipelineError):
    code = "FORK_TIMEOUT"
    default_stage = Stage.AWAITING_FORK

    def __init__(self, message: str, attempts: int = 0, **kwargs):
        super().__init__(message, **kwargs)
        self.attempts = attempts


class BranchResolutionFailed(PipelineError):
    code = "BRANCH_RESOLUTION_FAILED"
    default_stage = Stage.BRANCHING


class BranchCreateConflict(PipelineError):
    code = "BRANCH_CREATE_CONFLICT"
    default_stage = Stage.BRANCHING


class BranchCreateFailed(PipelineError):
    code = "BRANCH_CREATE_FAILED"
    default_stage = Stage.BRANCHING


class FileCommitError(PipelineError):
    """Common parent of the per-file commit failures."""

    default_stage = Stage.COMMITTING

    def __init__(self, message: str, path: str = None, index: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.path = path
        self.index = index

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["path"] = self.path
        data["index"] = self.index
        return data


class FileCommitConflict(FileCommitError):
    code = "FILE_COMMIT_CONFLICT"


class FileCommitFailed(FileCommitError):
    code = "FILE_COMMIT_FAILED"


class PullRequestRejected(PipelineError):
    code = "PULL_REQUEST_REJECTED"
    default_stage = Stage.OPENING_PR


class PersistFailed(PipelineError):
    """The pull request is open but the contribution record could not be written."""

    code = "PERSIST_FAILED"
    default_stage = Stage.PERSISTING

    def __init__(self, message: str, pr_url: str = None, pr_number: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.pr_url = pr_url
        self.pr_number = pr_number

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["pr_url"] = self.pr_url
        data["pr_number"] = self.pr_number
        return data


class PipelineCancelled(PipelineError):
    code = "CANCELLED"


class ConfigError(ValueError):
    """Invalid pipeline configuration value."""


class ContributionNotFound(LookupError):
    pass


class StatusCheckFailed(Exception):
    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status
