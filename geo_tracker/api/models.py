"""
Wire models for the GEO Tracker backend API.

Every response body the client consumes is validated into one of these
Pydantic models. Field names follow the backend's snake_case keys, so
responses validate directly with model_validate(); the only renamed fields
live in the request payload built by api.client.build_run_payload().

Nullable list/dict fields are normalized to empty containers so callers never
have to guard against None.

Models:
    HealthResponse: /health
    RunHandle: Accepted submission (/api/runs)
    RunProgress: Job status snapshot (/api/runs/{job_id}/status)
    Source, QueryResult, RunSummary, RunResults: Completed job data
    GeneratedQueries: /api/queries/generate
    SheetFetchResponse, SheetValidateResponse: Google Sheets import
    VisibilityReport: AI-written visibility report
    Brand, BrandRun, BrandListResponse, BrandDetailResponse, BrandSearchResponse:
        Brand history
    UserPermissions, AuthUser, AuthVerifyResponse: Session verification
    Lead, LeadListResponse, LeadStats: Admin lead records
"""

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from geo_tracker.config.constants import TERMINAL_STATUSES
from geo_tracker.config.schema import Query

RunStatus = Literal["pending", "running", "completed", "failed", "cancelled"]


def _none_to_list(v: Any) -> Any:
    return [] if v is None else v


def _none_to_dict(v: Any) -> Any:
    return {} if v is None else v


class HealthResponse(BaseModel):
    """Backend health check."""

    status: str
    version: str = ""
    providers_available: list[str] = Field(default_factory=list)

    @field_validator("providers_available", mode="before")
    @classmethod
    def normalize_providers(cls, v: Any) -> Any:
        return _none_to_list(v)


class RunHandle(BaseModel):
    """
    Accepted run submission.

    Attributes:
        job_id: Identifier used for status, results and cancel calls
        run_id: Backend run identifier
        status: Initial job status (normally "pending")
        message: Human-readable acknowledgement
        estimated_duration_seconds: Backend's estimate, if provided
    """

    job_id: str
    run_id: str
    status: str = "pending"
    message: str = ""
    estimated_duration_seconds: float | None = None


class RunProgress(BaseModel):
    """
    Snapshot of a job's progress, as reported by the status endpoint.

    The server is authoritative: completed_tasks + failed_tasks is expected
    to stay within total_tasks but that is not enforced here.
    """

    run_id: str | None = None
    status: str
    total_tasks: int = 0
    completed_tasks: int = 0
    failed_tasks: int = 0
    progress_percent: float = 0.0
    current_provider: str | None = None
    current_query: str | None = None
    estimated_remaining_seconds: float | None = None
    started_at: str | None = None
    updated_at: str | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        """True once the backend will no longer change this job."""
        return self.status in TERMINAL_STATUSES

    @property
    def error_headline(self) -> str | None:
        """First line of the error detail, or None."""
        if not self.error:
            return None
        return self.error.split("\n")[0]


class Source(BaseModel):
    """A URL cited by a provider response."""

    url: str
    title: str | None = None


class QueryResult(BaseModel):
    """Outcome of one provider answering one query."""

    run_id: str | int | None = None
    prompt_id: str | None = None
    category: str | None = None
    question: str
    provider: str
    model: str = ""
    mode: str = ""
    response_text: str = ""
    latency_ms: float | None = None
    tokens_in: int | None = None
    tokens_out: int | None = None
    presence: float | None = None
    sentiment: float | None = None
    trust_authority: float | None = None
    brand_mentioned: bool = False
    other_brands_detected: list[str] = Field(default_factory=list)
    sources: list[Source] = Field(default_factory=list)
    timestamp: str | None = None

    @field_validator("other_brands_detected", "sources", mode="before")
    @classmethod
    def normalize_lists(cls, v: Any) -> Any:
        return _none_to_list(v)


class RunSummary(BaseModel):
    """Aggregate numbers for a completed run."""

    run_id: str | int | None = None
    company_id: str | None = None
    brand_name: str = ""
    status: str = "completed"
    total_queries: int = 0
    total_responses: int = 0
    overall_visibility: float = 0.0
    avg_sentiment: float | None = None
    avg_trust_authority: float | None = None
    provider_visibility: dict[str, float] = Field(default_factory=dict)
    competitor_visibility: dict[str, float] = Field(default_factory=dict)
    started_at: str | None = None
    completed_at: str | None = None
    duration_seconds: float | None = None

    @field_validator("provider_visibility", "competitor_visibility", mode="before")
    @classmethod
    def normalize_dicts(cls, v: Any) -> Any:
        return _none_to_dict(v)


class RunResults(BaseModel):
    """Summary plus per-query results of a completed run."""

    summary: RunSummary
    results: list[QueryResult] = Field(default_factory=list)

    @field_validator("results", mode="before")
    @classmethod
    def normalize_results(cls, v: Any) -> Any:
        return _none_to_list(v)


class GeneratedQueries(BaseModel):
    """Questions proposed by the backend query generator."""

    queries: list[Query] = Field(default_factory=list)
    generated_by: str | None = None

    @field_validator("queries", mode="before")
    @classmethod
    def normalize_queries(cls, v: Any) -> Any:
        return _none_to_list(v)


class ColumnsDetected(BaseModel):
    """Sheet columns the backend mapped to question and category."""

    question: str | None = None
    category: str | None = None


class SheetFetchResponse(BaseModel):
    """Prompts imported from a Google Sheet."""

    prompts: list[Query] = Field(default_factory=list)
    total_count: int = 0
    columns_detected: ColumnsDetected = Field(default_factory=ColumnsDetected)
    all_columns: list[str] = Field(default_factory=list)
    cached: bool = False
    sheet_title: str = ""
    sheet_id: str = ""

    @field_validator("prompts", "all_columns", mode="before")
    @classmethod
    def normalize_lists(cls, v: Any) -> Any:
        return _none_to_list(v)

    @field_validator("columns_detected", mode="before")
    @classmethod
    def normalize_columns_detected(cls, v: Any) -> Any:
        return _none_to_dict(v)


class SheetValidateResponse(BaseModel):
    """Result of checking a sheet URL before import."""

    valid: bool
    sheet_id: str | None = None
    sheet_title: str | None = None
    total_prompts: int | None = None
    columns: list[str] = Field(default_factory=list)
    columns_detected: ColumnsDetected | None = None
    error: str | None = None

    @field_validator("columns", mode="before")
    @classmethod
    def normalize_columns(cls, v: Any) -> Any:
        return _none_to_list(v)


class VisibilityReport(BaseModel):
    """AI-written narrative report for a run."""

    report: str = ""
    generated_at: str | None = None
    provider: str | None = None
    model: str | None = None
    tokens_used: int | None = None
    brand_name: str | None = None
    saved: bool | None = None
    from_cache: bool = False
    error: str | None = None


class Brand(BaseModel):
    """A tracked brand and its aggregate history."""

    id: int
    brand_name: str
    industry: str | None = None
    market: str | None = None
    company_id: str | None = None
    total_runs: int = 0
    total_queries: int = 0
    avg_visibility: float | None = None
    created_at: str | None = None
    last_run_at: str | None = None


class BrandRun(BaseModel):
    """One historical run of a brand."""

    id: int
    brand_id: int
    job_id: str | None = None
    providers: list[str] = Field(default_factory=list)
    mode: str | None = None
    total_queries: int = 0
    visibility_pct: float | None = None
    avg_sentiment: float | None = None
    avg_trust: float | None = None
    competitor_summary: dict[str, float] = Field(default_factory=dict)
    created_at: str | None = None

    @field_validator("providers", mode="before")
    @classmethod
    def normalize_providers(cls, v: Any) -> Any:
        return _none_to_list(v)

    @field_validator("competitor_summary", mode="before")
    @classmethod
    def normalize_summary(cls, v: Any) -> Any:
        return _none_to_dict(v)


class BrandListResponse(BaseModel):
    brands: list[Brand] = Field(default_factory=list)
    count: int = 0


class BrandDetailResponse(BaseModel):
    brand: Brand
    history: list[BrandRun] = Field(default_factory=list)


class BrandSearchResponse(BaseModel):
    brand: Brand | None = None


class UserPermissions(BaseModel):
    """Fine-grained permissions attached to a session user."""

    can_access_admin: bool = False
    can_view_leads: bool = False
    can_view_emails: bool = False
    can_update_leads: bool = False
    can_delete_leads: bool = False
    can_view_stats: bool = False
    can_manage_users: bool = False


class AuthUser(BaseModel):
    """The user a bearer token belongs to."""

    email: str
    name: str | None = None
    company: str | None = None
    role: str = "user"
    permissions: UserPermissions = Field(default_factory=UserPermissions)

    @field_validator("permissions", mode="before")
    @classmethod
    def normalize_permissions(cls, v: Any) -> Any:
        return _none_to_dict(v)

    @property
    def has_admin_access(self) -> bool:
        """Admin surface is open to explicit permission or admin/demo roles."""
        return self.permissions.can_access_admin or self.role in ("admin", "demo")


class AuthVerifyResponse(BaseModel):
    valid: bool
    user: AuthUser | None = None


class Lead(BaseModel):
    """A contact-form lead."""

    id: int
    company: str
    email: str
    website: str | None = None
    industry: str | None = None
    service: str = ""
    contact_name: str | None = None
    status: str = "new"
    email_sent: int = 0
    email_id: str | None = None
    notes: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class LeadListResponse(BaseModel):
    """Leads returned by the admin list endpoint."""

    leads: list[Lead] = Field(default_factory=list)

    @field_validator("leads", mode="before")
    @classmethod
    def normalize_leads(cls, v: Any) -> Any:
        return _none_to_list(v)


class LeadStats(BaseModel):
    """Aggregate lead counters for the admin surface."""

    total: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)
    by_service: dict[str, int] = Field(default_factory=dict)
    recent_7_days: int = 0
    emails_sent: int = 0
    email_success_rate: float = 0.0


LEAD_STATUSES = ("new", "contacted", "qualified", "converted", "lost")
