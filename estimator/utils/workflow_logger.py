"""Workflow logger for the estimate provisioning run.

Prints visible banners at workflow boundaries so a run can be followed in a
terminal, alongside the structured events.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

import structlog

logger = structlog.get_logger(__name__)

BANNER_WIDTH = 80
WORKFLOW_BANNER_CHAR = "█"
STAGE_BANNER_CHAR = "═"


def _create_banner(char: str, text: str, width: int = BANNER_WIDTH) -> str:
    """Create a centered banner with given character."""
    text_with_spaces = f" {text} "
    padding = (width - len(text_with_spaces)) // 2
    return char * padding + text_with_spaces + char * (width - padding - len(text_with_spaces))


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def configure_logging(level: str = "INFO") -> None:
    """Console structlog output filtered at `level`."""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
    )


def log_workflow_start(project_name: str, client_name: str) -> None:
    """Log workflow start with prominent banner."""
    print("\n")
    print(WORKFLOW_BANNER_CHAR * BANNER_WIDTH)
    print(_create_banner(WORKFLOW_BANNER_CHAR, "ESTIMATE WORKFLOW STARTED"))
    print(WORKFLOW_BANNER_CHAR * BANNER_WIDTH)
    print(f"║ Project   : {project_name}")
    print(f"║ Client    : {client_name}")
    print(f"║ Timestamp : {_timestamp()}")
    print(WORKFLOW_BANNER_CHAR * BANNER_WIDTH)

    logger.info("workflow_start_logged", project_name=project_name, client_name=client_name)


def log_stage_start(stage: str, project_id: Optional[str] = None) -> None:
    """Log a stage boundary."""
    print(_create_banner(STAGE_BANNER_CHAR, f"▶ {stage.upper()}"))
    if project_id:
        print(f"║ Project ID : {project_id}")

    logger.info("stage_start_logged", stage=stage, project_id=project_id)


def log_workflow_complete(
    project_id: Optional[str],
    completed_stages: List[str],
    duration_ms: int,
    document_url: Optional[str] = None,
) -> None:
    """Log successful workflow completion."""
    print("\n")
    print(WORKFLOW_BANNER_CHAR * BANNER_WIDTH)
    print(_create_banner(WORKFLOW_BANNER_CHAR, "✓ ESTIMATE COMPLETE"))
    print(WORKFLOW_BANNER_CHAR * BANNER_WIDTH)
    print(f"║ Project ID       : {project_id}")
    print(f"║ Duration         : {duration_ms:,} ms ({duration_ms / 1000:.2f}s)")
    print(f"║ Document         : {document_url or 'n/a'}")
    print(f"║ Completed Stages : {', '.join(completed_stages)}")
    print(WORKFLOW_BANNER_CHAR * BANNER_WIDTH)

    logger.info(
        "workflow_complete_logged",
        project_id=project_id,
        duration_ms=duration_ms,
        completed_stages=completed_stages,
    )


def log_workflow_failed(
    failed_stage: Optional[str],
    error: str,
    completed_stages: List[str],
    project_id: Optional[str] = None,
) -> None:
    """Log workflow failure with error details."""
    print("\n")
    print("!" * BANNER_WIDTH)
    print(_create_banner("!", "✗ ESTIMATE FAILED"))
    print("!" * BANNER_WIDTH)
    print(f"║ Project ID       : {project_id or 'not created'}")
    print(f"║ Failed Stage     : {failed_stage}")
    print(f"║ Error            : {error}")
    print(f"║ Completed Before : {', '.join(completed_stages) if completed_stages else 'None'}")
    print("!" * BANNER_WIDTH)

    logger.error(
        "workflow_failed_logged",
        project_id=project_id,
        failed_stage=failed_stage,
        error=error,
        completed_stages=completed_stages,
    )
