"""
Repository-relative path normalization.
"""


def normalize_repo_path(raw_path: str) -> str:
    """
    Normalize a repository path: backslashes become '/', repeated slashes collapse,
    leading/trailing slashes and '.' segments are dropped and '..' is resolved.

    Returns '' for an empty path. Raises ValueError if the path climbs above the
    repository root.
    """
    if not raw_path:
        return ''
    resolved = []
    for seg in raw_path.replace('\\', '/').split('/'):
        if seg in ('', '.'):
            continue
        if seg == '..':
            if not resolved:
                raise ValueError(f"path escapes the repository root: {raw_path!r}")
            resolved.pop()
        else:
            resolved.append(seg)
    return '/'.join(resolved)
