"""
HTTP client for the GEO Tracker backend API.

Provides an asynchronous client over httpx for every backend endpoint the
dashboard consumes: run lifecycle, query generation, sheet import, AI
reports, brand history, session verification and admin leads.

Key features:
- Async HTTP (httpx.AsyncClient), one short-lived client per request
- snake_case request payloads built explicitly; responses validated into
  api.models Pydantic models
- Uniform error convention: non-2xx responses raise TransportError carrying
  the body's "detail", else its "error", else "API error: <status>"
- Bearer token sent when the client was built with one
- Retry with exponential backoff on idempotent reads only
- Security: NEVER logs the bearer token

Example:
    >>> client = GeoTrackerClient("http://localhost:8000")
    >>> handle = await client.start_run(config)
    >>> progress = await client.get_run_status(handle.job_id)
"""

import logging
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from geo_tracker.config.constants import DEFAULT_API_URL, SUPPORTED_PROVIDERS
from geo_tracker.config.schema import RunConfig
from geo_tracker.config.settings import ClientSettings
from geo_tracker.exceptions import TransportError

from .models import (
    AuthVerifyResponse,
    Brand,
    BrandDetailResponse,
    BrandListResponse,
    BrandSearchResponse,
    GeneratedQueries,
    HealthResponse,
    Lead,
    LeadListResponse,
    LeadStats,
    RunHandle,
    RunProgress,
    RunResults,
    SheetFetchResponse,
    SheetValidateResponse,
    VisibilityReport,
)
from .retry_config import REQUEST_TIMEOUT, create_retry_decorator

# Suppress HTTPX request logging (URLs would otherwise flood the JSON log)
httpx_logger = logging.getLogger("httpx")
httpx_logger.setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


def build_run_payload(config: RunConfig) -> dict[str, Any]:
    """
    Translate a RunConfig into the POST /api/runs body.

    Every supported provider gets a "<provider>_model" key (selected or not)
    so the backend never has to guess a default.

    Args:
        config: Run configuration (validated for submission by the caller)

    Returns:
        JSON-serializable payload with the backend's snake_case keys
    """
    payload: dict[str, Any] = {
        "company_id": config.company_id,
        "brand_name": config.brand_name,
        "industry": config.industry or "",
        "providers": list(config.providers),
    }
    for provider in SUPPORTED_PROVIDERS:
        payload[f"{provider}_model"] = config.model_for(provider)

    payload.update(
        {
            "mode": config.mode,
            "queries": [
                {
                    "question": q.question,
                    "category": q.category or None,
                    "prompt_id": q.prompt_id or None,
                }
                for q in config.queries
            ],
            "market": config.market,
            "lang": config.language,
            "raw": config.raw,
            "request_timeout": config.timeout_seconds,
            "max_retries": config.max_retries,
            "sleep_ms": config.inter_query_delay_ms,
        }
    )
    return payload


def extract_error_message(response: httpx.Response) -> str:
    """
    Build the user-facing message for a non-2xx response.

    Uses "detail", then "error", then "API error: <status>".
    """
    try:
        data = response.json()
    except ValueError:
        data = {}
    if not isinstance(data, dict):
        data = {}

    message = data.get("detail") or data.get("error")
    if not message:
        return f"API error: {response.status_code}"
    return message if isinstance(message, str) else str(message)


def describe_validation_error(error: PydanticValidationError) -> str:
    """Summarize a response validation failure as "<count> error(s), first: <loc>: <msg>"."""
    first = error.errors()[0]
    location = ".".join(str(part) for part in first["loc"]) or "body"
    return f"{error.error_count()} validation error(s), first: {location}: {first['msg']}"


class GeoTrackerClient:
    """
    Async client for the GEO Tracker backend.

    Attributes:
        base_url: Backend base URL without trailing slash
        token: Optional bearer token for authenticated endpoints (NEVER logged)
        timeout: Per-request timeout in seconds

    Retry behavior:
        - Reads marked with @create_retry_decorator() retry on connection
          failures, 429 and 5xx (3 attempts, exponential backoff)
        - start_run, get_run_status, cancel_run and all writes never retry
    """

    def __init__(
        self,
        base_url: str = DEFAULT_API_URL,
        token: str | None = None,
        timeout: float = REQUEST_TIMEOUT,
    ):
        if not base_url or base_url.isspace():
            raise ValueError("base_url cannot be empty")

        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout

        logger.debug(f"Initialized GEO Tracker client for {self.base_url}")

    @classmethod
    def from_settings(
        cls, settings: ClientSettings, token: str | None = None
    ) -> "GeoTrackerClient":
        """Build a client from resolved ClientSettings."""
        return cls(
            base_url=settings.api_url,
            token=token,
            timeout=settings.request_timeout_seconds,
        )

    def with_token(self, token: str | None) -> "GeoTrackerClient":
        """Return a client for the same backend using another bearer token."""
        return GeoTrackerClient(self.base_url, token=token, timeout=self.timeout)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        model: type[BaseModel] | None = None,
    ) -> Any:
        """
        Send one request and return the decoded JSON body.

        With model set, the body is validated into that model instead. A body
        of the wrong shape is a transport failure like any other, so callers
        only ever handle TransportError.

        Raises:
            TransportError: On connection failure, non-2xx status, invalid JSON
                or a body that does not match model
        """
        url = f"{self.base_url}{path}"
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        if params:
            params = {k: v for k, v in params.items() if v is not None}

        logger.debug(f"{method} {path}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(
                    method, url, json=json, params=params or None, headers=headers
                )
        except httpx.HTTPError as e:
            logger.error(f"GEO Tracker API connection error: {method} {path}: {e}")
            raise TransportError(f"Failed to reach GEO Tracker API: {e}") from e

        if response.is_error:
            message = extract_error_message(response)
            logger.warning(
                f"GEO Tracker API error: {method} {path} "
                f"status={response.status_code} detail={message}"
            )
            raise TransportError(message, status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise TransportError(
                f"Invalid JSON from GEO Tracker API ({method} {path}): {e}",
                status_code=response.status_code,
            ) from e

        if model is None:
            return data

        try:
            return model.model_validate(data)
        except PydanticValidationError as e:
            summary = describe_validation_error(e)
            logger.warning(f"GEO Tracker API response rejected: {method} {path}: {summary}")
            raise TransportError(
                f"Invalid response from GEO Tracker API ({method} {path}): {summary}",
                status_code=response.status_code,
            ) from e

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    @create_retry_decorator()
    async def check_health(self) -> HealthResponse:
        """GET /health."""
        return await self._request("GET", "/health", model=HealthResponse)

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    async def start_run(self, config: RunConfig) -> RunHandle:
        """
        POST /api/runs.

        Never retried: a retry after a lost response could start a second job.
        """
        payload = build_run_payload(config)
        logger.info(
            f"Starting run for {config.brand_name} with "
            f"{len(payload['queries'])} queries on {', '.join(config.providers)}"
        )
        return await self._request("POST", "/api/runs", json=payload, model=RunHandle)

    async def get_run_status(self, job_id: str) -> RunProgress:
        """GET /api/runs/{job_id}/status."""
        return await self._request("GET", f"/api/runs/{job_id}/status", model=RunProgress)

    async def get_run_results(self, job_id: str) -> RunResults:
        """GET /api/runs/{job_id}/results."""
        return await self._request("GET", f"/api/runs/{job_id}/results", model=RunResults)

    async def cancel_run(self, job_id: str) -> str:
        """POST /api/runs/{job_id}/cancel and return the backend's message."""
        data = await self._request("POST", f"/api/runs/{job_id}/cancel")
        return (data or {}).get("message", "")

    @create_retry_decorator()
    async def list_runs(self, limit: int = 20) -> list[dict[str, Any]]:
        """GET /api/runs?limit=N (recent runs, raw records)."""
        data = await self._request("GET", "/api/runs", params={"limit": limit})
        return list(data or [])

    # ------------------------------------------------------------------
    # Query sources
    # ------------------------------------------------------------------

    async def generate_queries(
        self,
        company_name: str,
        industry: str,
        description: str = "",
        language: str = "en",
        count: int = 15,
        target_market: str = "Germany",
        provider: str = "auto",
    ) -> GeneratedQueries:
        """POST /api/queries/generate."""
        return await self._request(
            "POST",
            "/api/queries/generate",
            json={
                "company_name": company_name,
                "industry": industry,
                "description": description,
                "language": language,
                "count": count,
                "target_market": target_market,
                "provider": provider,
            },
            model=GeneratedQueries,
        )

    async def fetch_sheet_prompts(
        self,
        sheet_url: str,
        worksheet_name: str | None = None,
        force_refresh: bool = False,
    ) -> SheetFetchResponse:
        """POST /api/sheets/prompts."""
        return await self._request(
            "POST",
            "/api/sheets/prompts",
            json={
                "sheet_url": sheet_url,
                "worksheet_name": worksheet_name,
                "force_refresh": force_refresh,
            },
            model=SheetFetchResponse,
        )

    @create_retry_decorator()
    async def validate_sheet_url(self, url: str) -> SheetValidateResponse:
        """GET /api/sheets/validate?url=..."""
        return await self._request(
            "GET", "/api/sheets/validate", params={"url": url}, model=SheetValidateResponse
        )

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    async def generate_visibility_report(
        self,
        brand_name: str,
        results_summary: dict[str, Any],
        detailed_results: list[dict[str, Any]],
        job_id: str | None = None,
        provider: str = "openai",
        model: str = "gpt-4.1",
        force_regenerate: bool = False,
    ) -> VisibilityReport:
        """POST /api/reports/visibility."""
        return await self._request(
            "POST",
            "/api/reports/visibility",
            json={
                "job_id": job_id,
                "brand_name": brand_name,
                "results_summary": results_summary,
                "detailed_results": detailed_results,
                "provider": provider,
                "model": model,
                "force_regenerate": force_regenerate,
            },
            model=VisibilityReport,
        )

    async def get_cached_report(self, job_id: str) -> VisibilityReport | None:
        """GET /api/reports/{job_id}; None when no report was generated yet."""
        try:
            report = await self._request(
                "GET", f"/api/reports/{job_id}", model=VisibilityReport
            )
        except TransportError as e:
            if e.status_code == 404:
                return None
            raise
        return report.model_copy(update={"from_cache": True})

    # ------------------------------------------------------------------
    # Brand history
    # ------------------------------------------------------------------

    @create_retry_decorator()
    async def get_brands(
        self, company_id: str | None = None, limit: int = 50
    ) -> BrandListResponse:
        """GET /api/brands."""
        return await self._request(
            "GET",
            "/api/brands",
            params={"limit": limit, "company_id": company_id},
            model=BrandListResponse,
        )

    @create_retry_decorator()
    async def get_brand(self, brand_id: int) -> BrandDetailResponse:
        """GET /api/brands/{brand_id}."""
        return await self._request("GET", f"/api/brands/{brand_id}", model=BrandDetailResponse)

    async def search_brand(
        self, brand_name: str, company_id: str | None = None
    ) -> Brand | None:
        """GET /api/brands/search/{name}; None when the brand is unknown."""
        try:
            found = await self._request(
                "GET",
                f"/api/brands/search/{quote(brand_name, safe='')}",
                params={"company_id": company_id},
                model=BrandSearchResponse,
            )
        except TransportError as e:
            if e.status_code == 404:
                return None
            raise
        return found.brand

    async def delete_brand(self, brand_id: int) -> dict[str, Any]:
        """DELETE /api/brands/{brand_id}; removes the brand and its run history."""
        logger.info(f"Deleting brand {brand_id}")
        data = await self._request("DELETE", f"/api/brands/{brand_id}")
        return data or {}

    # ------------------------------------------------------------------
    # Session and admin
    # ------------------------------------------------------------------

    @create_retry_decorator()
    async def verify_token(self) -> AuthVerifyResponse:
        """GET /api/auth/verify using the client's bearer token."""
        return await self._request("GET", "/api/auth/verify", model=AuthVerifyResponse)

    async def list_leads(self, status: str | None = None) -> list[Lead]:
        """GET /api/admin/leads, optionally filtered by status."""
        listing = await self._request(
            "GET",
            "/api/admin/leads",
            params={"status": status or None},
            model=LeadListResponse,
        )
        return listing.leads

    async def get_lead_stats(self) -> LeadStats:
        """GET /api/admin/leads/stats."""
        return await self._request("GET", "/api/admin/leads/stats", model=LeadStats)

    async def update_lead(
        self, lead_id: int, status: str, notes: str | None = None
    ) -> dict[str, Any]:
        """PATCH /api/admin/leads/{lead_id}."""
        data = await self._request(
            "PATCH",
            f"/api/admin/leads/{lead_id}",
            json={"status": status, "notes": notes or None},
        )
        return data or {}
