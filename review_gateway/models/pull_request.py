from typing import List, Literal, Optional
from pydantic import BaseModel, Field


class ChangedFile(BaseModel):
    filename: str
    status: Literal["added", "modified", "removed"] = "modified"
    additions: int = 0
    deletions: int = 0
    patch: str = ""
    previous_filename: Optional[str] = None


class LinkedIssue(BaseModel):
    number: int
    title: str = ""
    body: str = ""
    url: str
    link_type: Literal["closes", "resolves", "fixes"] = "closes"


class PullRequestData(BaseModel):
    installation_id: str
    repository_name: str
    pr_number: int
    pr_url: str
    title: str
    body: str = ""
    changed_files: List[ChangedFile] = Field(default_factory=list)
    linked_issues: List[LinkedIssue] = Field(default_factory=list)
    author: str
    is_draft: bool = False
    formatted_pull_request: str = ""

    @property
    def dedup_key(self):
        return (self.installation_id, self.repository_name, self.pr_number)
