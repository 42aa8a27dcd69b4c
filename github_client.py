"""
GitHub REST client for the contribution pipeline.

Each method maps to exactly one API call and returns the transport result dict
(``{'response', 'status', 'headers', 'timestamp'}``). HTTP errors are not raised here;
the pipeline stages decide what a given status means for them.
"""
from typing import Dict, Any, Optional
from urllib.parse import quote

from storage.retry import perform_request_with_retries

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_USER_AGENT = "contrib-pipeline"
API_VERSION = "2022-11-28"


def host_message(result: Dict[str, Any]) -> str:
    """Best-effort human readable message from a failed host response."""
    body = result.get('response')
    if isinstance(body, dict):
        message = body.get('message') or ''
        errors = body.get('errors') or []
        details = []
        for err in errors:
            if isinstance(err, dict):
                details.append(err.get('message') or err.get('code') or '')
            else:
                details.append(str(err))
        details = [d for d in details if d]
        if details:
            return f"{message}: {'; '.join(details)}" if message else '; '.join(details)
        return message
    if body is None:
        return ''
    return str(body)


def is_success(result: Dict[str, Any]) -> bool:
    return 200 <= int(result.get('status') or 0) < 300


class GitHubClient:
    """Authenticated client for the handful of endpoints the pipeline touches."""

    def __init__(self, token: str, base_url: str = None, timeout: Optional[float] = 30.0, user_agent: str = None):
        self.token = token
        self.base_url = (base_url or DEFAULT_API_URL).rstrip('/')
        self.timeout = timeout
        self.headers = {
            "Authorization": f"Bearer {self.token}" if self.token else "",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": API_VERSION,
            "User-Agent": user_agent or DEFAULT_USER_AGENT,
        }

    def _request(self, method: str, path: str, params: Dict[str, Any] = None, json_body: Any = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        return perform_request_with_retries(method, url, headers=self.headers, params=params, json_body=json_body, timeout=self.timeout)

    @staticmethod
    def _repo_path(owner: str, repo: str) -> str:
        return f"/repos/{quote(owner, safe='')}/{quote(repo, safe='')}"

    def create_fork(self, owner: str, repo: str, default_branch_only: bool = True) -> Dict[str, Any]:
        return self._request("POST", f"{self._repo_path(owner, repo)}/forks", json_body={"default_branch_only": default_branch_only})

    def get_authenticated_user(self) -> Dict[str, Any]:
        return self._request("GET", "/user")

    def get_repo(self, owner: str, repo: str) -> Dict[str, Any]:
        return self._request("GET", self._repo_path(owner, repo))

    def get_branch_ref(self, owner: str, repo: str, branch: str) -> Dict[str, Any]:
        return self._request("GET", f"{self._repo_path(owner, repo)}/git/ref/heads/{quote(branch, safe='/')}")

    def create_ref(self, owner: str, repo: str, ref: str, sha: str) -> Dict[str, Any]:
        return self._request("POST", f"{self._repo_path(owner, repo)}/git/refs", json_body={"ref": ref, "sha": sha})

    def get_contents(self, owner: str, repo: str, path: str, ref: str = None) -> Dict[str, Any]:
        params = {"ref": ref} if ref else None
        return self._request("GET", f"{self._repo_path(owner, repo)}/contents/{quote(path, safe='/')}", params=params)

    def put_contents(self, owner: str, repo: str, path: str, content_b64: str, message: str, branch: str, sha: str = None) -> Dict[str, Any]:
        body = {"message": message, "content": content_b64, "branch": branch}
        if sha:
            body["sha"] = sha
        return self._request("PUT", f"{self._repo_path(owner, repo)}/contents/{quote(path, safe='/')}", json_body=body)

    def create_pull(self, owner: str, repo: str, title: str, body: str, head: str, base: str) -> Dict[str, Any]:
        payload = {"title": title, "body": body, "head": head, "base": base}
        return self._request("POST", f"{self._repo_path(owner, repo)}/pulls", json_body=payload)

    def get_pull(self, owner: str, repo: str, number: int) -> Dict[str, Any]:
        return self._request("GET", f"{self._repo_path(owner, repo)}/pulls/{int(number)}")
