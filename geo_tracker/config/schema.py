"""
Configuration schema models for the GEO Tracker client.

This module defines the Pydantic models for the run configuration value
object that gets submitted to the backend, and for the run.config.yaml file
the CLI reads it from. All models use Pydantic v2 field validators.

Models:
    Query: One natural-language question sent to every selected provider
    RunConfig: Immutable description of one analysis request
    BrandSettings: Brand identity section of run.config.yaml
    RequestSettings: Backend execution knobs section of run.config.yaml
    RunFileConfig: Root model of run.config.yaml
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from geo_tracker.exceptions import ValidationError

from .constants import (
    DEFAULT_INTER_QUERY_DELAY_MS,
    DEFAULT_LANGUAGE,
    DEFAULT_MARKET,
    DEFAULT_MAX_RETRIES,
    DEFAULT_PROVIDER_MODELS,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
)

Provider = Literal["openai", "gemini", "perplexity", "anthropic"]
Mode = Literal["internal", "provider_web"]


class Query(BaseModel):
    """
    A single question to ask each selected provider.

    Attributes:
        question: Question text (non-empty)
        category: Optional free-form tag ("custom" for hand-typed queries)
        prompt_id: Stable identifier within one run (e.g. "q_1")
    """

    model_config = ConfigDict(frozen=True)

    question: str
    category: str | None = None
    prompt_id: str | None = None

    @field_validator("question")
    @classmethod
    def validate_question(cls, v: str) -> str:
        """Validate question is non-empty."""
        if not v or v.isspace():
            raise ValueError("question cannot be empty")
        return v


class RunConfig(BaseModel):
    """
    Immutable description of one analysis request.

    Built incrementally by the caller and checked with
    validate_for_submission() right before it is sent. The provider set can
    never become empty; the query list may be empty while the caller is
    still collecting questions, but a run cannot be submitted without any.

    Attributes:
        company_id: Tenant identifier sent with the run
        brand_name: Brand being tracked
        industry: Industry context used by the backend for competitor detection
        providers: Selected providers, in selection order, without duplicates
        provider_models: Model override per provider (defaults applied on send)
        mode: "provider_web" (web-augmented answers) or "internal" (model knowledge only)
        queries: Questions to ask
        market: Region code (e.g. "DE")
        language: Locale code (e.g. "de")
        raw: Ask the backend to keep raw provider payloads
        timeout_seconds: Per-request timeout the backend applies to providers
        max_retries: Retries the backend applies to provider calls
        inter_query_delay_ms: Sleep between queries on the backend

    Example:
        >>> config = RunConfig(brand_name="Acme", providers=["openai"])
        >>> config.model_for("openai")
        'gpt-4.1-mini'
    """

    model_config = ConfigDict(frozen=True)

    company_id: str = "demo-company"
    brand_name: str = ""
    industry: str = ""
    providers: tuple[Provider, ...]
    provider_models: dict[Provider, str] = Field(default_factory=dict)
    mode: Mode = "provider_web"
    queries: tuple[Query, ...] = ()
    market: str = DEFAULT_MARKET
    language: str = DEFAULT_LANGUAGE
    raw: bool = False
    timeout_seconds: int = DEFAULT_REQUEST_TIMEOUT_SECONDS
    max_retries: int = DEFAULT_MAX_RETRIES
    inter_query_delay_ms: int = DEFAULT_INTER_QUERY_DELAY_MS

    @field_validator("providers")
    @classmethod
    def validate_providers(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """Validate at least one provider is selected and drop duplicates."""
        if not v:
            raise ValueError("at least one provider must be selected")
        return tuple(dict.fromkeys(v))

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: int) -> int:
        """Validate timeout is positive."""
        if v <= 0:
            raise ValueError(f"timeout_seconds must be positive, got: {v}")
        return v

    @field_validator("max_retries", "inter_query_delay_ms")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        """Validate retry count and delay are not negative."""
        if v < 0:
            raise ValueError(f"value cannot be negative, got: {v}")
        return v

    def model_for(self, provider: str) -> str:
        """Return the model id used for provider, falling back to the default."""
        return self.provider_models.get(provider) or DEFAULT_PROVIDER_MODELS[provider]

    def without_provider(self, provider: Provider) -> "RunConfig":
        """
        Return a copy with provider removed from the selection.

        Raises:
            ValidationError: If provider is the only one selected
        """
        remaining = tuple(p for p in self.providers if p != provider)
        if not remaining:
            raise ValidationError("At least one provider must stay selected.")
        return self.model_copy(update={"providers": remaining})

    def with_queries(self, queries: list[Query] | tuple[Query, ...]) -> "RunConfig":
        """Return a copy whose query list is fully replaced by queries."""
        return self.model_copy(update={"queries": tuple(queries)})

    def validate_for_submission(self) -> None:
        """
        Check the configuration can be submitted.

        Raises:
            ValidationError: If the brand name is blank or there are no queries
        """
        if not self.brand_name or self.brand_name.isspace():
            raise ValidationError("Brand name is required before starting an analysis.")
        if not self.providers:
            raise ValidationError("At least one provider must be selected.")
        if not self.queries:
            raise ValidationError(
                "No queries to analyze. Please add at least one question."
            )


# ============================================================================
# run.config.yaml
# ============================================================================


class BrandSettings(BaseModel):
    """
    Brand identity section of run.config.yaml.

    Attributes:
        name: Brand name to track
        industry: Industry context (also picks the sample-query bucket)
        description: Business context passed to the query generator
    """

    name: str
    industry: str = ""
    description: str = ""

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate brand name is non-empty."""
        if not v or v.isspace():
            raise ValueError("brand name cannot be empty")
        return v.strip()


class RequestSettings(BaseModel):
    """Backend execution knobs, named as they appear on the wire."""

    request_timeout: int = DEFAULT_REQUEST_TIMEOUT_SECONDS
    max_retries: int = DEFAULT_MAX_RETRIES
    sleep_ms: int = DEFAULT_INTER_QUERY_DELAY_MS
    raw: bool = False


class RunFileConfig(BaseModel):
    """
    Root model of run.config.yaml.

    Queries come from the inline list, from queries_file (one question per
    line, resolved relative to the YAML file), or both; inline queries come
    first.

    Example:
        company_id: acme
        brand:
          name: Acme Vitamins
          industry: supplements
        providers: [openai, perplexity]
        models:
          openai: gpt-4.1-mini
        mode: provider_web
        market: DE
        language: de
        queries_file: queries.txt
    """

    company_id: str = "demo-company"
    brand: BrandSettings
    providers: list[Provider]
    models: dict[Provider, str] = Field(default_factory=dict)
    mode: Mode = "provider_web"
    market: str = DEFAULT_MARKET
    language: str = DEFAULT_LANGUAGE
    queries: list[str] = Field(default_factory=list)
    queries_file: str | None = None
    settings: RequestSettings = Field(default_factory=RequestSettings)

    @field_validator("providers")
    @classmethod
    def validate_providers(cls, v: list[str]) -> list[str]:
        """Validate providers list is non-empty."""
        if not v:
            raise ValueError("at least one provider must be listed")
        return v

    @model_validator(mode="after")
    def validate_models_selected(self) -> "RunFileConfig":
        """Validate model overrides only name selected providers."""
        unknown = set(self.models) - set(self.providers)
        if unknown:
            raise ValueError(
                f"models configured for unselected providers: {', '.join(sorted(unknown))}"
            )
        return self
