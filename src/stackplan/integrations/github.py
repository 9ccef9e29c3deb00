"""Publish plans as GitHub pull request comments."""

import logging
import re

import requests

logger = logging.getLogger(__name__)

REPO_PATTERN = re.compile(r"^[a-zA-Z0-9._-]+/[a-zA-Z0-9._-]+$")
API_ROOT = "https://api.github.com"
PLAN_MARKER = "<!-- stackplan:plan -->"


def _headers(token: str) -> dict[str, str]:
    return {
        "Authorization": f"token {token}",
        "Accept": "application/vnd.github.v3+json",
    }


def _find_plan_comment(repo: str, pr_number: int, token: str, timeout: int) -> int | None:
    url = f"{API_ROOT}/repos/{repo}/issues/{pr_number}/comments"
    params = {"per_page": 100, "page": 1}
    while True:
        response = requests.get(url, headers=_headers(token), params=params, timeout=timeout)
        response.raise_for_status()
        comments = response.json()
        for comment in comments:
            if PLAN_MARKER in comment.get("body", ""):
                return comment["id"]
        if len(comments) < params["per_page"]:
            return None
        params["page"] += 1


def post_plan_comment(
    body: str,
    repo: str,
    pr_number: int,
    token: str,
    timeout: int = 30,
) -> None:
    """Post a plan on a pull request, replacing the previous plan comment if present."""
    if not REPO_PATTERN.match(repo):
        raise ValueError(f"Invalid GitHub repo format: {repo!r} (expected 'owner/repo')")

    payload = {"body": f"{PLAN_MARKER}\n{body}"}
    existing = _find_plan_comment(repo, pr_number, token, timeout)
    if existing is None:
        response = requests.post(
            f"{API_ROOT}/repos/{repo}/issues/{pr_number}/comments",
            json=payload,
            headers=_headers(token),
            timeout=timeout,
        )
    else:
        logger.debug("Updating plan comment %s on %s#%s", existing, repo, pr_number)
        response = requests.patch(
            f"{API_ROOT}/repos/{repo}/issues/comments/{existing}",
            json=payload,
            headers=_headers(token),
            timeout=timeout,
        )
    response.raise_for_status()
