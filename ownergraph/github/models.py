"""Domain records produced by the organization scan."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

MAX_PAGE_SIZE = 100


class Repository(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    full_name: str = ""
    default_branch: str = "main"
    has_codeowners_file: bool = False
    codeowners_content: str = ""
    codeowners_paths: tuple[str, ...] = ()


class Team(BaseModel):
    id: int = 0
    node_id: str = ""
    name: str
    slug: str = ""
    description: str = ""
    privacy: str = ""
    member_count: int = 0


class CodeownersEntry(BaseModel):
    pattern: str
    owners: list[str] = Field(min_length=1)
    line: int = 0


class BatchRequest(BaseModel):
    organization: str
    repositories: list[str] = Field(default_factory=list)
    teams: list[str] = Field(default_factory=list)
    max_repos: int = 0  # 0 = unlimited
    max_teams: int = 0
    repos_page_size: int = MAX_PAGE_SIZE
    teams_page_size: int = MAX_PAGE_SIZE

    def repo_page_limit(self) -> int:
        limit = min(max(self.repos_page_size, 1), MAX_PAGE_SIZE)
        if 0 < self.max_repos < limit:
            return self.max_repos
        return limit

    def team_page_limit(self) -> int:
        limit = min(max(self.teams_page_size, 1), MAX_PAGE_SIZE)
        if 0 < self.max_teams < limit:
            return self.max_teams
        return limit


class PageInfo(BaseModel):
    has_next_page: bool = False
    end_cursor: str | None = None


class OrgData(BaseModel):
    organization: str
    repos: list[Repository] = Field(default_factory=list)
    teams: list[Team] = Field(default_factory=list)
    api_call_count: int = 0
    truncated: bool = False


class ScanSummary(BaseModel):
    total_repos: int = 0
    repos_with_codeowners: int = 0
    total_teams: int = 0
    unique_owners: list[str] = Field(default_factory=list)
    api_calls_used: int = 0
    truncated: bool = False
    pattern_coverage: dict[str, int] = Field(default_factory=dict)
