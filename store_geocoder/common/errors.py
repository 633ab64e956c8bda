"""Domain errors and failure typing."""


class PipelineError(Exception):
    """Base class for pipeline failures."""

    error_code = "PIPELINE_ERROR"


class ConfigError(PipelineError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class InputError(PipelineError):
    """Raised when an input path or NDJSON file cannot be read."""

    error_code = "INPUT_ERROR"


class StageError(PipelineError):
    """Raised for stage failures that halt the run."""

    error_code = "STAGE_ERROR"


class WarehouseError(StageError):
    """Raised when a warehouse load, merge or drop step fails."""

    error_code = "WAREHOUSE_ERROR"
