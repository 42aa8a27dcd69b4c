"""
Credential context supplied by the caller for every host call.
"""
import os
from typing import Optional

from .errors import AuthenticationMissing


class Credentials:
    """
    Bearer token plus the acting identity (``actor_id``) that owns any record the run creates.
    ``login`` is the host account name when the caller already knows it.
    """
    def __init__(self, token: str, actor_id: str, login: Optional[str] = None):
        self.token = token
        self.actor_id = actor_id
        self.login = login

    def require_token(self) -> str:
        if not self.token or not str(self.token).strip():
            raise AuthenticationMissing("No GitHub access token available; sign in again.")
        return self.token

    def __repr__(self):
        # never echo the token
        return f"Credentials(actor_id={self.actor_id!r}, login={self.login!r})"


def credentials_from_env(actor_id: str = None, token: str = None) -> Credentials:
    """Resolve a token from the argument or GITHUB_TOKEN / GH_TOKEN."""
    resolved = token or os.getenv('GITHUB_TOKEN') or os.getenv('GH_TOKEN') or ''
    actor = actor_id or os.getenv('CONTRIB_PROFILE_ID') or os.getenv('USER') or 'local'
    return Credentials(resolved.strip(), actor)
