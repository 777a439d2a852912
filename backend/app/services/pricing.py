"""
Pricing API client.

Request:
    {"categoryExternalId", "productExternalId", "materialExternalId",
     "finishes": [{"id", "value"}], "quantities": [int], "dimensions": [number]}
Response:
    {"qty": [int], "unit_cost": [number]}   parallel arrays, one entry per tier

Missing inputs are a validation failure (QuoteValidationError) BEFORE any
HTTP call; there are no default ids. Non-2xx, timeouts and malformed
bodies raise PricingError. Nothing is retried.
"""
import logging
from typing import Any, Dict, Optional

import httpx

from app.core.config import settings
from app.core.exceptions import PricingError, QuoteValidationError
from app.schemas.order import OrderData, PricingResult, PricingTier
from app.services.quote_validator import validate_quote

logger = logging.getLogger(__name__)


def build_pricing_request(order: OrderData) -> Dict[str, Any]:
    """Build the pricing payload, refusing to guess any missing id."""
    validation = validate_quote(order)
    if not validation.is_valid:
        raise QuoteValidationError(validation.missing_fields)

    return {
        "categoryExternalId": order.selected_category.external_id,
        "productExternalId": order.selected_product.external_id,
        "materialExternalId": order.selected_material.external_id,
        "finishes": [{"id": f.external_id, "value": f.name} for f in order.selected_finish],
        "quantities": list(order.quantity),
        "dimensions": order.dimension_values(),
    }


def parse_pricing_response(data: Any) -> PricingResult:
    if not isinstance(data, dict):
        raise PricingError("Pricing response is not an object")
    quantities = data.get("qty")
    unit_costs = data.get("unit_cost")
    if not isinstance(quantities, list) or not isinstance(unit_costs, list):
        raise PricingError("Pricing response is missing qty/unit_cost arrays")
    if not quantities or len(quantities) != len(unit_costs):
        raise PricingError(
            f"Pricing response arrays are empty or mismatched ({len(quantities)} vs {len(unit_costs)})"
        )
    tiers = []
    try:
        for qty, unit_cost in zip(quantities, unit_costs):
            quantity = int(qty)
            cost = float(unit_cost)
            tiers.append(PricingTier(quantity=quantity, unit_cost=cost, total=int(round(quantity * cost))))
    except (TypeError, ValueError) as e:
        raise PricingError(f"Pricing response has non-numeric values: {e}") from e
    return PricingResult(tiers=tiers)


class PricingClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = base_url if base_url is not None else settings.PRICING_API_URL
        self.api_key = api_key if api_key is not None else settings.PRICING_API_KEY
        self.timeout = timeout or settings.PRICING_TIMEOUT_SECONDS
        self._client = http_client

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def get_pricing(self, order: OrderData) -> PricingResult:
        payload = build_pricing_request(order)
        if not self.url:
            raise PricingError("PRICING_API_URL is not configured")

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        logger.info(
            f"[Pricing] Requesting product={payload['productExternalId']} "
            f"material={payload['materialExternalId']} quantities={payload['quantities']}"
        )
        try:
            response = await self._http().post(self.url, json=payload, headers=headers, timeout=self.timeout)
        except httpx.TimeoutException as e:
            raise PricingError("Pricing API timed out") from e
        except httpx.HTTPError as e:
            raise PricingError(f"Pricing API unreachable: {type(e).__name__}") from e

        if not response.is_success:
            raise PricingError(f"Pricing API returned {response.status_code}", status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise PricingError("Pricing API returned invalid JSON", status_code=response.status_code) from e

        result = parse_pricing_response(data)
        logger.info(f"[Pricing] Received {len(result.tiers)} tiers")
        return result
