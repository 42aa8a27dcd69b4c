"""
Contribution pipeline: turn a set of file changes into a pull request from a fork.
"""

from .credentials import Credentials, credentials_from_env
from .models import FileChange, PRDetails, ContributionRequest, ContributionResult, Contribution
from .orchestrator import ContributionPipeline, handle_contribution_request
from .stages import Stage, PipelineRun

__all__ = [
    "Credentials",
    "credentials_from_env",
    "FileChange",
    "PRDetails",
    "ContributionRequest",
    "ContributionResult",
    "Contribution",
    "ContributionPipeline",
    "handle_contribution_request",
    "Stage",
    "PipelineRun",
]
