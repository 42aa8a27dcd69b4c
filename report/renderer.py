"""
Renderer for pull request bodies and contribution reports.
Markdown output is produced from Jinja2 templates in report/templates.
"""

from typing import Optional, List, Dict, Any
import os
import io
import csv
import json

from jinja2 import Environment, FileSystemLoader

TEMPLATE_DIR = os.path.join(os.path.dirname(__file__), 'templates')

CSV_FIELDS = ('id', 'owner', 'repo', 'fork_owner', 'branch_name', 'pr_number', 'pr_url', 'pr_title', 'status', 'challenge_id', 'created_at')

_env: Optional[Environment] = None


def _environment() -> Environment:
    global _env
    if _env is None:
        # markdown output: no HTML autoescaping
        _env = Environment(loader=FileSystemLoader(TEMPLATE_DIR), autoescape=False, trim_blocks=True, lstrip_blocks=True)
    return _env


def default_pr_title(paths: List[str]) -> str:
    if len(paths) == 1:
        return f"Update {paths[0]}"
    return f"Update {len(paths)} files"


def render_pr_body(paths: List[str], fork_owner: str, repo: str, branch_name: str, description: Optional[str] = None) -> str:
    """Render the default pull request body listing the changed files."""
    tmpl = _environment().get_template('pr_body.md.j2')
    return tmpl.render(paths=paths, fork_owner=fork_owner, repo=repo, branch_name=branch_name, description=(description or '').strip())


def compose_pr_body(
    body: Optional[str], paths: List[str], fork_owner: str, repo: str, branch_name: str, description: Optional[str] = None
) -> str:
    """A caller-supplied body replaces the template; a description is appended either way."""
    if not body:
        return render_pr_body(paths, fork_owner, repo, branch_name, description)
    if description and description.strip():
        return f"{body.rstrip()}\n\n{description.strip()}"
    return body


def _as_dict(record: Any) -> Dict[str, Any]:
    if isinstance(record, dict):
        return record
    return record.to_dict()


def render_contributions_text(records: List[Any], stats: Dict[str, Any]) -> str:
    lines = [
        f"Total: {stats.get('total', 0)}  Open: {stats.get('open', 0)}  Merged: {stats.get('merged', 0)}  "
        f"Closed: {stats.get('closed', 0)}  Merge rate: {stats.get('merge_rate', 0)}%"
    ]
    for r in map(_as_dict, records):
        lines.append(f"#{r.get('id')} {r.get('owner')}/{r.get('repo')} [{r.get('status')}] {r.get('pr_url') or ''}")
    return "\n".join(lines)


def render_contributions_markdown(records: List[Any], stats: Dict[str, Any]) -> str:
    tmpl = _environment().get_template('contributions.md.j2')
    return tmpl.render(records=[_as_dict(r) for r in records], stats=stats)


def render_contributions_csv(records: List[Any]) -> str:
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=CSV_FIELDS, extrasaction='ignore', lineterminator='\n')
    writer.writeheader()
    for r in records:
        writer.writerow(_as_dict(r))
    return buf.getvalue()


def render_contributions(records: List[Any], stats: Dict[str, Any], fmt: str = 'text') -> str:
    """Render contribution records in text, md, csv or json."""
    fmt = (fmt or 'text').lower()
    if fmt in ('md', 'markdown'):
        return render_contributions_markdown(records, stats)
    if fmt == 'csv':
        return render_contributions_csv(records)
    if fmt == 'json':
        return json.dumps({'stats': stats, 'contributions': [_as_dict(r) for r in records]}, indent=2, default=str)
    if fmt == 'text':
        return render_contributions_text(records, stats)
    raise ValueError(f"Unsupported output format: {fmt}")


__all__ = ["default_pr_title", "render_pr_body", "compose_pr_body", "render_contributions"]
