"""
Run configuration loader for the GEO Tracker client.

This module loads run.config.yaml files, validates them with Pydantic models,
resolves the optional queries file, and builds the immutable RunConfig that
gets submitted to the backend.

Functions:
    load_run_config: Main entrypoint to load and validate run.config.yaml
    build_run_config: Turn a validated RunFileConfig into a RunConfig
"""

from pathlib import Path

import yaml
from pydantic import ValidationError as PydanticValidationError

from geo_tracker.exceptions import ConfigFileNotFoundError, ConfigValidationError
from geo_tracker.queries.builder import parse_queries

from .schema import RunConfig, RunFileConfig


def load_run_config(config_path: str | Path) -> RunConfig:
    """
    Load run.config.yaml and build a RunConfig from it.

    This function:
    1. Loads YAML from the specified path
    2. Validates structure using the RunFileConfig Pydantic model
    3. Reads queries_file (relative to the YAML file) when present
    4. Returns the RunConfig ready for submission checks

    Args:
        config_path: Path to run.config.yaml (relative or absolute)

    Returns:
        RunConfig built from the file. It may still have no queries; the
        orchestrator rejects that at submission time.

    Raises:
        ConfigFileNotFoundError: If the config file or its queries_file is missing
        ConfigValidationError: If YAML is invalid or validation fails

    Example:
        >>> config = load_run_config("examples/run.config.yaml")
        >>> config.providers
        ('openai', 'perplexity')
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise ConfigFileNotFoundError(f"Configuration file not found: {config_path}")

    try:
        with config_path.open(encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigValidationError(f"Invalid YAML syntax in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigValidationError(
            f"Failed to read configuration file {config_path}: {e}"
        ) from e

    if raw_config is None:
        raise ConfigValidationError(f"Configuration file is empty: {config_path}")

    try:
        file_config = RunFileConfig.model_validate(raw_config)
    except PydanticValidationError as e:
        error_messages = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            msg = error["msg"]
            error_messages.append(f"  - {loc}: {msg}")

        raise ConfigValidationError(
            f"Configuration validation failed in {config_path}:\n"
            + "\n".join(error_messages)
        ) from e

    return build_run_config(file_config, base_dir=config_path.parent)


def build_run_config(file_config: RunFileConfig, base_dir: Path | None = None) -> RunConfig:
    """
    Build a RunConfig from a validated RunFileConfig.

    Inline queries come first, followed by the lines of queries_file. The
    combined text goes through parse_queries, so prompt ids run q_1..q_n
    across both sources.

    Args:
        file_config: Validated run file
        base_dir: Directory queries_file is resolved against

    Raises:
        ConfigFileNotFoundError: If queries_file does not exist
        ConfigValidationError: If the resulting RunConfig is invalid
    """
    lines = list(file_config.queries)

    if file_config.queries_file:
        queries_path = Path(file_config.queries_file)
        if not queries_path.is_absolute() and base_dir is not None:
            queries_path = base_dir / queries_path
        if not queries_path.exists():
            raise ConfigFileNotFoundError(f"Queries file not found: {queries_path}")
        lines.append(queries_path.read_text(encoding="utf-8"))

    try:
        return RunConfig(
            company_id=file_config.company_id,
            brand_name=file_config.brand.name,
            industry=file_config.brand.industry,
            providers=file_config.providers,
            provider_models=file_config.models,
            mode=file_config.mode,
            queries=parse_queries("\n".join(lines)),
            market=file_config.market,
            language=file_config.language,
            raw=file_config.settings.raw,
            timeout_seconds=file_config.settings.request_timeout,
            max_retries=file_config.settings.max_retries,
            inter_query_delay_ms=file_config.settings.sleep_ms,
        )
    except PydanticValidationError as e:
        error_messages = [
            f"  - {'.'.join(str(x) for x in error['loc'])}: {error['msg']}"
            for error in e.errors()
        ]
        raise ConfigValidationError(
            "Run configuration is invalid:\n" + "\n".join(error_messages)
        ) from e
