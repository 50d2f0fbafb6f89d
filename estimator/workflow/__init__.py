"""Estimate provisioning workflow."""

from workflow.orchestrator import EstimateWorkflow

__all__ = ["EstimateWorkflow"]
