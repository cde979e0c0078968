"""Payment gateway HTTP client for issuing boleto/PIX charges"""

import httpx
from settlement_engine.domain.models import ChargeRequest, GatewayCharge
from settlement_engine.domain.exceptions import GatewayError
from settlement_engine.config import settings
from settlement_engine.infrastructure.observability.metrics import gateway_latency_histogram


class PaymentGatewayClient:
    """Client for the external payment gateway"""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = base_url or settings.payment_gateway_base
        self.timeout = timeout or settings.http_timeout_seconds

    async def create_charge(self, charge: ChargeRequest) -> GatewayCharge:
        """
        Issue payment codes for one deferred instrument.

        The gateway deduplicates on `reference`, so retrying the same
        instrument returns the charge created the first time.

        Raises:
            GatewayError: On timeout, HTTP errors, or invalid response
        """
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                with gateway_latency_histogram.time():
                    response = await client.post(
                        f"{self.base_url}/charges",
                        json={
                            "reference": charge.reference,
                            "amount": str(charge.amount),
                            "due_date": charge.due_date.isoformat(),
                            "payer": {"name": charge.payer_name, "tax_id": charge.payer_tax_id},
                            "description": charge.description,
                        },
                    )
                    response.raise_for_status()
                data = response.json()

                return GatewayCharge(
                    charge_id=str(data["id"]),
                    pix_code=data.get("pix_code"),
                    digitable_line=data.get("digitable_line"),
                    barcode=data.get("barcode"),
                )

            except httpx.TimeoutException as e:
                raise GatewayError(f"Payment gateway timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                raise GatewayError(f"Payment gateway error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise GatewayError(f"Payment gateway unreachable: {e.__class__.__name__}") from e
            except (KeyError, ValueError, TypeError) as e:
                raise GatewayError(f"Invalid charge data from gateway: {e}") from e
