"""Pricing and services reads for a provisioned project."""

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import structlog

from models.scopestack import Pricing, ProjectService
from services.scopestack_client import ScopeStackClient

logger = structlog.get_logger(__name__)

MISSING_VALUE = "—"


class PricingService:
    """Reads contract financials and service line items for a project."""

    def __init__(self, api: ScopeStackClient):
        self.api = api

    async def fetch_pricing(self, project_id: str) -> Pricing:
        """Contract revenue, cost and margin, passed through unchanged."""
        data = await self.api.get(f"/v1/projects/{project_id}", stage="pricing")
        pricing = Pricing.from_resource(data or {})
        logger.info(
            "pricing_fetched",
            project_id=project_id,
            revenue=pricing.revenue,
            cost=pricing.cost,
            margin=pricing.margin,
        )
        return pricing

    async def fetch_services(self, project_id: str) -> List[ProjectService]:
        """Every active service on the project, across all pages. May be empty."""
        result = await self.api.list_all(
            "/v1/project-services",
            stage="services",
            params={"filter[project]": str(project_id), "filter[active]": "true"},
        )
        services = [ProjectService.from_resource(item) for item in result["data"]]
        logger.info("services_fetched", project_id=project_id, count=len(services))
        return services


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def format_currency(value: Any) -> str:
    """USD display string, e.g. 12500 -> "$12,500.00"."""
    amount = _to_decimal(value)
    if amount is None:
        return MISSING_VALUE
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"


def format_percent(value: Any) -> str:
    """Margin display string, e.g. 32.5 -> "32.5%"."""
    amount = _to_decimal(value)
    if amount is None:
        return MISSING_VALUE
    return f"{amount.normalize():f}%"


def format_pricing(pricing: Pricing) -> Dict[str, str]:
    """Display strings for revenue, cost and margin."""
    return {
        "revenue": format_currency(pricing.revenue),
        "cost": format_currency(pricing.cost),
        "margin": format_percent(pricing.margin),
    }
