"""
CLI entry point for contrib_pipeline. Wires credentials, config, the GitHub client and the
contribution store, then runs one of: create, check-status, list.
"""

import argparse
import json
import logging
import sys

from github_client import GitHubClient
from pipeline.config import load_config
from pipeline.credentials import Credentials, credentials_from_env
from pipeline.errors import AuthenticationMissing, ConfigError, ContributionNotFound, StatusCheckFailed
from pipeline.orchestrator import ContributionPipeline, handle_contribution_request
from pipeline.status import refresh_contribution_status
from report.renderer import render_contributions
from storage.contributions import ContributionStore
from storage.retry import configure_retry


def _print_json(obj):
    print(json.dumps(obj, indent=2, default=str))


def _load_json_file(path: str, description: str):
    """Load a JSON file; returns None (after printing why) on failure."""
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        print(f"Failed to read {description} {path}: {e}")
        return None


def _build_payload(args, doc) -> dict:
    """The changes file is either a list of {path, content} or {"changes": [...], "pr": {...}}."""
    if isinstance(doc, dict):
        changes = doc.get('changes') or []
        pr = dict(doc.get('pr') or doc.get('prDetails') or {})
        challenge_id = doc.get('challengeId') or doc.get('challenge_id')
    else:
        changes = doc or []
        pr = {}
        challenge_id = None
    # flags win over the file
    for key in ('title', 'body', 'description'):
        if getattr(args, key, ''):
            pr[key] = getattr(args, key)
    return {
        'owner': args.owner,
        'repo': args.repo,
        'changes': changes,
        'prDetails': pr,
        'challengeId': args.challenge_id or challenge_id,
    }


def _resolve_credentials(args) -> Credentials:
    return credentials_from_env(getattr(args, 'profile_id', '') or None, args.github_token or None)


def _cmd_create(args, config, store) -> int:
    doc = _load_json_file(args.changes, 'changes file')
    if doc is None:
        return 1
    payload = _build_payload(args, doc)
    pipeline = ContributionPipeline(store, config=config)
    result = handle_contribution_request(pipeline, payload, _resolve_credentials(args))
    _print_json(result)
    return 0 if result.get('success') else 1


def _cmd_check_status(args, config, store) -> int:
    credentials = _resolve_credentials(args)
    try:
        credentials.require_token()
    except AuthenticationMissing as ex:
        _print_json(ex.to_dict())
        return 1
    client = GitHubClient(credentials.token, base_url=config.api_url, timeout=config.request_timeout, user_agent=config.user_agent)
    try:
        result = refresh_contribution_status(client, store, args.id)
    except ContributionNotFound as ex:
        print(str(ex))
        return 1
    except (StatusCheckFailed, ValueError) as ex:
        print(f"Status check failed: {ex}")
        return 1
    _print_json(result)
    return 0


def _cmd_list(args, config, store) -> int:
    records = store.list(profile_id=args.profile_id or None, status=args.status or None, limit=args.limit)
    stats = store.stats(profile_id=args.profile_id or None)
    print(render_contributions(records, stats, fmt=args.output))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Open pull requests from a fork and track their status")
    parser.add_argument("--config", type=str, default="", help="Path to a pipeline YAML config (default: config/pipeline.yaml if present)")
    parser.add_argument("--db", type=str, default="", help="Path to the SQLite contribution store (overrides CONTRIB_DB_PATH)")
    parser.add_argument("--api-url", type=str, default="", help="GitHub API base URL (overrides GITHUB_API_URL)")
    parser.add_argument("--github-token", type=str, default="", help="GitHub token (or set GITHUB_TOKEN / GH_TOKEN env var)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log every stage and poll attempt")
    # retry/backoff knobs for reads; CONTRIB_MAX_RETRIES, CONTRIB_BACKOFF_BASE, CONTRIB_BACKOFF_JITTER and
    # CONTRIB_MAX_BACKOFF may also be used to set defaults.
    parser.add_argument("--max-retries", type=int, default=None, help="Maximum attempts for rate-limited reads (overrides CONTRIB_MAX_RETRIES env)")
    parser.add_argument("--backoff-base", type=float, default=None, help="Base backoff seconds (overrides CONTRIB_BACKOFF_BASE env)")
    parser.add_argument("--backoff-jitter", type=float, default=None, help="Jitter seconds added to backoff (overrides CONTRIB_BACKOFF_JITTER env)")
    parser.add_argument("--max-backoff", type=float, default=None, help="Maximum backoff cap in seconds (overrides CONTRIB_MAX_BACKOFF env)")

    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create", help="Fork, commit the changes and open a pull request")
    create.add_argument("--owner", type=str, required=True, help="Upstream repository owner")
    create.add_argument("--repo", type=str, required=True, help="Upstream repository name")
    create.add_argument("--changes", type=str, required=True, help="JSON file with the file changes")
    create.add_argument("--title", type=str, default="", help="Pull request title")
    create.add_argument("--body", type=str, default="", help="Pull request body (replaces the default template)")
    create.add_argument("--description", type=str, default="", help="Text appended to the pull request body")
    create.add_argument("--challenge-id", type=str, default="", help="Challenge/task identifier to link")
    create.add_argument("--profile-id", type=str, default="", help="Identity recorded as the contribution owner")
    create.add_argument("--poll-attempts", type=int, default=None, help="Fork readiness attempts")
    create.add_argument("--poll-interval", type=float, default=None, help="Seconds between fork readiness attempts")

    status = sub.add_parser("check-status", help="Refresh the status of a recorded contribution")
    status.add_argument("id", type=int, help="Contribution id")

    listing = sub.add_parser("list", help="List recorded contributions")
    listing.add_argument("--status", type=str, default="", choices=["", "open", "merged", "closed"])
    listing.add_argument("--profile-id", type=str, default="")
    listing.add_argument("--limit", type=int, default=100)
    listing.add_argument("--output", type=str, default="text", help="Output format (text, md, csv, json)")
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    configure_retry(max_retries=args.max_retries, backoff_base=args.backoff_base, backoff_jitter=args.backoff_jitter, max_backoff=args.max_backoff)

    try:
        config = load_config(
            args.config or None,
            api_url=args.api_url or None,
            db_path=args.db or None,
            fork_poll_attempts=getattr(args, 'poll_attempts', None),
            fork_poll_interval=getattr(args, 'poll_interval', None),
        )
    except ConfigError as ex:
        parser.error(str(ex))

    handlers = {
        'create': _cmd_create,
        'check-status': _cmd_check_status,
        'list': _cmd_list,
    }
    store = ContributionStore(config.db_path)
    try:
        return handlers[args.command](args, config, store)
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
