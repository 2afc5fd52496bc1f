import re
import requests
from typing import Any, Dict, List, Optional
from loguru import logger
from review_gateway.config import GITHUB_API_URL, GITHUB_TOKEN, HTTP_CONNECT_TIMEOUT_S, HTTP_READ_TIMEOUT_S
from review_gateway.models.pull_request import ChangedFile, LinkedIssue, PullRequestData


class PRAnalysisError(RuntimeError):
    def __init__(self, pr_number: int, repository_name: str, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.pr_number = pr_number
        self.repository_name = repository_name
        self.details = details


class PRNotEligibleError(PRAnalysisError):
    """Raised when a PR is skipped on purpose; not a failure."""

    def __init__(self, pr_number: int, repository_name: str, reason: str):
        super().__init__(pr_number, repository_name, f"PR #{pr_number} is not eligible for analysis: {reason}")
        self.reason = reason


class GitHubAPIError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


ISSUE_REF_PATTERNS = [
    # "closes #123", "fixes #456"
    re.compile(r"\b(closes|resolves|fixes|close|resolve|fix)\s+#(\d+)", re.IGNORECASE),
    # "closes https://github.com/owner/repo/issues/123"
    re.compile(r"\b(closes|resolves|fixes|close|resolve|fix)\s+https://github\.com/([^/\s]+)/([^/\s]+)/issues/(\d+)", re.IGNORECASE),
]

LINK_TYPES = {"close": "closes", "resolve": "resolves", "fix": "fixes"}


class GitHubFilesClient:
    def __init__(self, base_url: str = GITHUB_API_URL, token: str = GITHUB_TOKEN):
        self.base_url = base_url.rstrip("/")
        self.token = token

    def _headers(self) -> Dict[str, str]:
        h = {"Accept": "application/vnd.github+json"}
        if self.token:
            h["Authorization"] = f"Bearer {self.token}"
        return h

    def get_pr_files(self, repository_name: str, pr_number: int) -> List[Dict[str, Any]]:
        files: List[Dict[str, Any]] = []
        page = 1
        while True:
            try:
                resp = requests.get(
                    f"{self.base_url}/repos/{repository_name}/pulls/{pr_number}/files",
                    params={"per_page": 100, "page": page},
                    headers=self._headers(),
                    timeout=(HTTP_CONNECT_TIMEOUT_S, HTTP_READ_TIMEOUT_S),
                )
                resp.raise_for_status()
            except requests.HTTPError as e:
                raise GitHubAPIError(f"Failed to fetch changed files for PR #{pr_number}: {e}", resp.status_code)
            except requests.RequestException as e:
                raise GitHubAPIError(f"Failed to fetch changed files for PR #{pr_number}: {e}")

            batch = resp.json()
            files.extend(batch)
            if len(batch) < 100:
                return files
            page += 1


class PRAnalysisService:
    def __init__(self, github: Optional[GitHubFilesClient] = None):
        self.github = github or GitHubFilesClient()

    @staticmethod
    def should_analyze_pr(pr_data: PullRequestData, manual_trigger: bool = False) -> bool:
        if pr_data.is_draft:
            return False
        # Manual triggers skip the linked-issue rule
        if not manual_trigger and not pr_data.linked_issues:
            return False
        return True

    @staticmethod
    def extract_linked_issues(body: str, repository_name: str) -> List[LinkedIssue]:
        issues: List[LinkedIssue] = []
        seen = set()
        for pattern in ISSUE_REF_PATTERNS:
            for match in pattern.finditer(body or ""):
                groups = match.groups()
                keyword = groups[0].lower()
                link_type = LINK_TYPES.get(keyword, keyword)
                if len(groups) == 2:
                    number = int(groups[1])
                    url = f"https://github.com/{repository_name}/issues/{number}"
                else:
                    number = int(groups[3])
                    url = f"https://github.com/{groups[1]}/{groups[2]}/issues/{number}"

                if (number, url) in seen:
                    continue
                seen.add((number, url))
                issues.append(LinkedIssue(number=number, url=url, link_type=link_type))
        return issues

    def extract_pr_data_from_webhook(self, payload: Dict[str, Any]) -> PullRequestData:
        pull_request = payload.get("pull_request")
        repository = payload.get("repository")
        installation = payload.get("installation")

        if not pull_request or not repository or not installation:
            raise PRAnalysisError(
                (pull_request or {}).get("number", 0),
                (repository or {}).get("full_name", "unknown"),
                "Invalid webhook payload: missing required fields",
            )

        repository_name = repository["full_name"]
        body = pull_request.get("body") or ""
        return PullRequestData(
            installation_id=str(installation["id"]),
            repository_name=repository_name,
            pr_number=pull_request["number"],
            pr_url=pull_request.get("html_url", ""),
            title=pull_request.get("title", ""),
            body=body,
            linked_issues=self.extract_linked_issues(body, repository_name),
            author=(pull_request.get("user") or {}).get("login", "unknown"),
            is_draft=bool(pull_request.get("draft", False)),
        )

    def fetch_changed_files(self, repository_name: str, pr_number: int) -> List[ChangedFile]:
        files = self.github.get_pr_files(repository_name, pr_number)
        return [
            ChangedFile(
                filename=f["filename"],
                status=self.normalize_file_status(f.get("status", "")),
                additions=f.get("additions", 0),
                deletions=f.get("deletions", 0),
                patch=f.get("patch") or "",
                previous_filename=f.get("previous_filename"),
            )
            for f in files
        ]

    def create_complete_pr_data(self, payload: Dict[str, Any]) -> PullRequestData:
        pr_data = self.extract_pr_data_from_webhook(payload)
        manual = bool(payload.get("manualTrigger", False))

        if not self.should_analyze_pr(pr_data, manual_trigger=manual):
            reason = "PR is in draft status" if pr_data.is_draft else "PR does not link to any issues"
            raise PRNotEligibleError(pr_data.pr_number, pr_data.repository_name, reason)

        try:
            pr_data.changed_files = self.fetch_changed_files(pr_data.repository_name, pr_data.pr_number)
        except GitHubAPIError as e:
            raise PRAnalysisError(pr_data.pr_number, pr_data.repository_name,
                                  "Failed to create complete PR data", {"original_error": str(e)})

        pr_data.formatted_pull_request = self.format_pull_request(pr_data)
        return pr_data

    @staticmethod
    def format_pull_request(pr_data: PullRequestData) -> str:
        files_info = "\n".join(
            f"{f.filename} ({f.status}, +{f.additions}/-{f.deletions})" for f in pr_data.changed_files
        )
        changes = "\n".join(f"\n--- {f.filename} ({f.status}) ---\n{f.patch}" for f in pr_data.changed_files)
        issues = "\n".join(f"- #{i.number}: {i.title}" for i in pr_data.linked_issues)
        return (
            f"Repository: {pr_data.repository_name}\n"
            f"PR #{pr_data.pr_number}: {pr_data.title}\n"
            f"Author: {pr_data.author}\n\n"
            f"Body:\n{pr_data.body or 'No body provided'}\n\n"
            f"Linked Issues:\n{issues}\n\n"
            f"CHANGED FILES:\n{files_info}\n\n"
            f"CODE CHANGES PREVIEW:\n{changes}"
        )

    @staticmethod
    def normalize_file_status(status: str) -> str:
        if status in ("added", "removed"):
            return status
        return "modified"

    @staticmethod
    def log_analysis_decision(pr_data: PullRequestData, should_analyze: bool, reason: str = ""):
        logger.info(
            f"PR analysis decision: repository={pr_data.repository_name} pr={pr_data.pr_number} "
            f"analyze={should_analyze} linked_issues={len(pr_data.linked_issues)} "
            f"draft={pr_data.is_draft} reason={reason or '-'}"
        )
