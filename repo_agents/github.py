"""
repo-agents GitHub client

Thin wrapper over `gh api`. Every platform read and write the pipeline
performs goes through here, so stages can be tested against an in-memory
fake with the same method names.

Calls are synchronous and never retried.
"""

from __future__ import annotations

import json
import subprocess
from datetime import datetime
from typing import Any

from loguru import logger


class GitHubError(RuntimeError):
    """A `gh api` call failed."""

    def __init__(self, message: str, stderr: str = ""):
        super().__init__(message)
        self.stderr = stderr

    @property
    def not_found(self) -> bool:
        return "HTTP 404" in self.stderr or "Not Found" in self.stderr


_CATEGORIES_QUERY = """
query($owner: String!, $name: String!) {
  repository(owner: $owner, name: $name) {
    discussionCategories(first: 50) {
      nodes { id name slug }
    }
  }
}
"""

_CONVERT_MUTATION = """
mutation($issueId: ID!, $categoryId: ID!) {
  convertIssueToDiscussion(input: {issueId: $issueId, categoryId: $categoryId}) {
    discussion { id url }
  }
}
"""


class GitHubClient:
    """
    Repository-scoped GitHub access through the gh CLI.

    Authentication is whatever gh picks up (GH_TOKEN / GITHUB_TOKEN).
    """

    def __init__(self, repository: str, timeout: int = 60):
        self.repository = repository
        self.owner, _, self.name = repository.partition("/")
        self.timeout = timeout

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def api(self, path: str, method: str = "GET", body: dict[str, Any] | None = None) -> Any:
        cmd = ["gh", "api", path, "-X", method, "-H", "Accept: application/vnd.github+json"]
        stdin = None
        if body is not None:
            cmd += ["--input", "-"]
            stdin = json.dumps(body)
        return self._run(cmd, stdin)

    def graphql(self, query: str, **variables: Any) -> Any:
        cmd = ["gh", "api", "graphql", "-f", f"query={query}"]
        for key, value in variables.items():
            flag = "-f" if isinstance(value, str) else "-F"
            cmd += [flag, f"{key}={value}"]
        result = self._run(cmd)
        if isinstance(result, dict) and result.get("errors"):
            raise GitHubError(f"GraphQL error: {result['errors'][0].get('message', 'unknown')}")
        return (result or {}).get("data", {})

    def _run(self, cmd: list[str], stdin: str | None = None) -> Any:
        logger.debug(f"[GITHUB] {' '.join(cmd[:5])}")
        try:
            result = subprocess.run(
                cmd, input=stdin, capture_output=True, text=True, timeout=self.timeout
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise GitHubError(f"gh invocation failed: {e}")
        if result.returncode != 0:
            stderr = result.stderr.strip()
            raise GitHubError(f"{' '.join(cmd[1:3])} failed: {stderr}", stderr=stderr)
        out = result.stdout.strip()
        return json.loads(out) if out else None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def permission_level(self, actor: str) -> str:
        data = self.api(f"repos/{self.repository}/collaborators/{actor}/permission")
        return (data or {}).get("permission", "none")

    def is_org_member(self, actor: str) -> bool:
        try:
            self.api(f"orgs/{self.owner}/members/{actor}")
        except GitHubError as e:
            if e.not_found:
                return False
            raise
        return True

    def is_team_member(self, team: str, actor: str) -> bool:
        try:
            data = self.api(f"orgs/{self.owner}/teams/{team}/memberships/{actor}")
        except GitHubError as e:
            if e.not_found:
                return False
            raise
        return (data or {}).get("state") == "active"

    def repo_labels(self) -> list[str]:
        data = self.api(f"repos/{self.repository}/labels?per_page=100")
        return [label["name"] for label in data or []]

    def issue(self, number: int) -> dict[str, Any]:
        return self.api(f"repos/{self.repository}/issues/{number}") or {}

    def issue_labels(self, number: int) -> list[str]:
        return [label["name"] for label in self.issue(number).get("labels", [])]

    def pull(self, number: int) -> dict[str, Any]:
        return self.api(f"repos/{self.repository}/pulls/{number}") or {}

    def branch_exists(self, branch: str) -> bool:
        try:
            self.api(f"repos/{self.repository}/git/ref/heads/{branch}")
        except GitHubError as e:
            if e.not_found:
                return False
            raise
        return True

    def ref_sha(self, ref: str) -> str | None:
        """Resolve a branch, then a tag, to a commit sha."""
        for kind in ("heads", "tags"):
            try:
                data = self.api(f"repos/{self.repository}/git/ref/{kind}/{ref}")
            except GitHubError as e:
                if e.not_found:
                    continue
                raise
            sha = (data or {}).get("object", {}).get("sha")
            if sha:
                return sha
        return None

    def discussion_categories(self) -> list[dict[str, str]]:
        data = self.graphql(_CATEGORIES_QUERY, owner=self.owner, name=self.name)
        return data.get("repository", {}).get("discussionCategories", {}).get("nodes", [])

    def recent_successful_runs(self, workflow: str, limit: int = 5) -> list[datetime]:
        """
        Completion times of the most recent successful runs of a workflow.

        `workflow` is a workflow file name (`triage.yml`) or numeric id, which
        the workflow runs endpoint accepts directly. Anything else is taken as
        the display name and matched against the repository's runs.
        """
        if workflow.endswith((".yml", ".yaml")) or workflow.isdigit():
            data = self.api(
                f"repos/{self.repository}/actions/workflows/{workflow}/runs"
                f"?status=success&per_page={limit}"
            )
            runs = (data or {}).get("workflow_runs", [])
        else:
            data = self.api(f"repos/{self.repository}/actions/runs?status=success&per_page=100")
            runs = [r for r in (data or {}).get("workflow_runs", []) if r.get("name") == workflow]

        times = []
        for run in runs[:limit]:
            stamp = run.get("updated_at") or run.get("created_at")
            if stamp:
                times.append(datetime.fromisoformat(stamp.replace("Z", "+00:00")))
        return times

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add_comment(self, number: int, body: str) -> dict[str, Any]:
        return self.api(f"repos/{self.repository}/issues/{number}/comments", "POST", {"body": body})

    def add_labels(self, number: int, labels: list[str]) -> None:
        """Append labels; anything already on the subject is left alone."""
        self.api(f"repos/{self.repository}/issues/{number}/labels", "POST", {"labels": labels})

    def remove_label(self, number: int, label: str) -> None:
        self.api(f"repos/{self.repository}/issues/{number}/labels/{label}", "DELETE")

    def create_issue(
        self, title: str, body: str, labels: list[str] | None = None, assignees: list[str] | None = None
    ) -> dict[str, Any]:
        payload = {"title": title, "body": body, "labels": labels or [], "assignees": assignees or []}
        return self.api(f"repos/{self.repository}/issues", "POST", payload)

    def create_pull(self, title: str, body: str, head: str, base: str, draft: bool = False) -> dict[str, Any]:
        payload = {"title": title, "body": body, "head": head, "base": base, "draft": draft}
        return self.api(f"repos/{self.repository}/pulls", "POST", payload)

    def set_issue_state(self, number: int, state: str, state_reason: str | None = None) -> None:
        payload = {"state": state}
        if state_reason:
            payload["state_reason"] = state_reason
        self.api(f"repos/{self.repository}/issues/{number}", "PATCH", payload)

    def add_reaction(self, content: str, issue_number: int | None = None, comment_id: int | None = None) -> None:
        if issue_number is not None:
            path = f"repos/{self.repository}/issues/{issue_number}/reactions"
        else:
            path = f"repos/{self.repository}/issues/comments/{comment_id}/reactions"
        self.api(path, "POST", {"content": content})

    def create_ref(self, branch: str, sha: str) -> None:
        self.api(f"repos/{self.repository}/git/refs", "POST", {"ref": f"refs/heads/{branch}", "sha": sha})

    def delete_ref(self, branch: str) -> None:
        self.api(f"repos/{self.repository}/git/refs/heads/{branch}", "DELETE")

    def merge_pull(
        self, number: int, method: str, title: str | None = None, message: str | None = None
    ) -> None:
        payload = {"merge_method": method}
        if title:
            payload["commit_title"] = title
        if message:
            payload["commit_message"] = message
        self.api(f"repos/{self.repository}/pulls/{number}/merge", "PUT", payload)

    def create_review(self, number: int, body: str, event: str = "APPROVE") -> None:
        self.api(f"repos/{self.repository}/pulls/{number}/reviews", "POST", {"body": body, "event": event})

    def convert_to_discussion(self, issue_number: int, category_id: str) -> str | None:
        node_id = self.issue(issue_number).get("node_id")
        if not node_id:
            raise GitHubError(f"Failed to get node ID for issue #{issue_number}")
        data = self.graphql(_CONVERT_MUTATION, issueId=node_id, categoryId=category_id)
        return data.get("convertIssueToDiscussion", {}).get("discussion", {}).get("url")
