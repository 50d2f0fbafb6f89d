"""Utility modules for the estimator."""

from utils.workflow_logger import (
    configure_logging,
    log_workflow_start,
    log_workflow_complete,
    log_workflow_failed,
    log_stage_start,
)

__all__ = [
    "configure_logging",
    "log_workflow_start",
    "log_workflow_complete",
    "log_workflow_failed",
    "log_stage_start",
]
