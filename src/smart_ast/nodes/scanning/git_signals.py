"""Git activity signals for the scanned project."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from pathlib import Path  # noqa: TC003
from typing import Any

from git import InvalidGitRepositoryError, NoSuchPathError, Repo

logger = logging.getLogger(__name__)

MAX_COMMITS = 500


def extract_repo_signals(project_path: Path) -> dict[str, Any]:
    """Summarize recent git activity for the repository containing ``project_path``.

    Returns an empty dict when the path is not inside a git work tree or the
    repository has no commits yet.
    """
    try:
        repo = Repo(project_path, search_parent_directories=True)
    except (InvalidGitRepositoryError, NoSuchPathError):
        logger.debug("Not a git repository: %s", project_path)
        return {}

    try:
        commits = list(repo.iter_commits(max_count=MAX_COMMITS))
    except ValueError:
        # Fresh repository, HEAD points at an unborn branch
        return {}

    if not commits:
        return {}

    thirty_days_ago = datetime.now(tz=UTC).timestamp() - (30 * 24 * 60 * 60)
    recent = sum(1 for c in commits if c.committed_date >= thirty_days_ago)

    try:
        branch = repo.active_branch.name
    except TypeError:
        branch = None  # detached HEAD

    return {
        "branch": branch,
        "head": commits[0].hexsha,
        "last_commit_at": commits[0].committed_datetime.isoformat(),
        "commit_count": len(commits),
        "commit_frequency_30d": round(recent / 30.0, 2),
        "authors": len({c.author.email for c in commits}),
        "dirty": repo.is_dirty(untracked_files=False),
    }
