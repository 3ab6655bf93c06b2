"""
Validated views of the GitHub REST payloads the bot reads.

Only the fields the bot relies on are declared; everything else GitHub
sends is ignored.
"""

from datetime import datetime
from typing import Any, Iterable, List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError

from concierge.errors import DataIntegrityError


class GitHubRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")


class UserRef(GitHubRecord):
    login: str


class PullRequestRecord(GitHubRecord):
    id: int
    number: Optional[int] = None
    url: Optional[str] = None
    comments_url: str
    commits_url: str
    updated_at: datetime
    user: UserRef
    state: str = "open"


class CommentRecord(GitHubRecord):
    body: str = ""
    user: UserRef
    updated_at: datetime


class CommitAuthor(GitHubRecord):
    date: datetime


class CommitDetail(GitHubRecord):
    author: CommitAuthor


class CommitRecord(GitHubRecord):
    commit: CommitDetail

    @property
    def authored_at(self) -> datetime:
        return self.commit.author.date


class PullRequestFile(GitHubRecord):
    filename: str


class ContributorRecord(GitHubRecord):
    login: str


Record = TypeVar("Record", bound=GitHubRecord)


def parse_record(model: Type[Record], data: Any) -> Record:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise DataIntegrityError(
            f"Malformed {model.__name__}: {exc.error_count()} invalid field(s)"
        ) from exc


def parse_records(model: Type[Record], items: Iterable[Any]) -> List[Record]:
    return [parse_record(model, item) for item in items]


# =========================================================
# Webhook payload views
# =========================================================

class RepoRef(GitHubRecord):
    url: Optional[str] = None
    html_url: Optional[str] = None


class BranchRef(GitHubRecord):
    ref: str
    repo: Optional[RepoRef] = None


class EventPullRequest(GitHubRecord):
    url: str
    comments_url: str
    user: UserRef
    base: BranchRef
    head: BranchRef


class EventRepository(GitHubRecord):
    full_name: str
    html_url: Optional[str] = None
    contributors_url: Optional[str] = None
