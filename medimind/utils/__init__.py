"""Cross-cutting helpers shared by the CLI, the SDK and the pipelines."""

from .logging import (
    get_current_log_file,
    get_logger,
    get_session_id,
    log_extraction_complete,
    log_extraction_start,
    log_llm_response,
    log_prompt,
    setup_logging,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "get_current_log_file",
    "get_session_id",
    "log_extraction_start",
    "log_prompt",
    "log_llm_response",
    "log_extraction_complete",
]
