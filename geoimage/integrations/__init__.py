"""Integration check helpers."""

from .checks import (
    IntegrationCheckResult,
    check_metno,
    check_nominatim,
    check_openai_chat,
    check_replicate,
    run_all_checks,
)

__all__ = [
    "IntegrationCheckResult",
    "check_metno",
    "check_nominatim",
    "check_openai_chat",
    "check_replicate",
    "run_all_checks",
]
