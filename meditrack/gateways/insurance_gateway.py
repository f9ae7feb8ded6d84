"""
Insurance Validation Gateway.

Asks the insurer whether a service is covered for a patient and on what terms:
- Live: POST {INSURANCE_SERVICE_URL}/api/insurance/validate over httpx
- Demo: deterministic local verdict from the affiliation and service tables

Every upstream failure (connect/read timeout, transport error, non-2xx status,
empty or malformed body) surfaces as ``ExternalServiceError`` with the cause
attached.
"""

from abc import ABC, abstractmethod
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional
from uuid import uuid4

import httpx

from meditrack.core.config import Settings, get_settings
from meditrack.core.enums import AffiliationType, IntegrationMode, ServiceType
from meditrack.gateways.base import GatewayConfig, GatewayError, with_retry
from meditrack.models.authorization import MINIMUM_COVERAGE
from meditrack.models.patient import MAX_COPAY_PERCENTAGE
from meditrack.schemas.insurance import InsuranceValidationRequest, InsuranceVerdict
from meditrack.utils.errors import ExternalServiceError
from meditrack.utils.logging import get_logger, mask_document

logger = get_logger(__name__)

SERVICE_NAME = "Insurance Validation Service"
VALIDATE_PATH = "/api/insurance/validate"
CENTS = Decimal("0.01")


def gateway_config_from_settings(settings: Settings) -> GatewayConfig:
    return GatewayConfig(
        base_url=settings.INSURANCE_SERVICE_URL,
        connect_timeout_seconds=settings.INSURANCE_CONNECT_TIMEOUT,
        read_timeout_seconds=settings.INSURANCE_READ_TIMEOUT,
        retry_attempts=settings.INSURANCE_RETRY_ATTEMPTS,
    )


class InsuranceGateway(ABC):
    """Coverage validation collaborator used by the evaluation engine."""

    @abstractmethod
    async def validate_coverage(
        self,
        document_number: str,
        affiliation_type: AffiliationType,
        service_type: ServiceType,
        estimated_cost: Decimal,
    ) -> InsuranceVerdict:
        """Return the insurer's verdict or raise ``ExternalServiceError``."""

    async def close(self) -> None:
        """Release gateway resources."""


class HttpInsuranceGateway(InsuranceGateway):
    """
    Insurance gateway backed by the external validation service.

    The call holds no lock and performs no writes; callers read their state
    before calling and commit after.
    """

    def __init__(
        self,
        config: Optional[GatewayConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or gateway_config_from_settings(get_settings())
        self._client = client
        self._owns_client = client is None

    @property
    def timeout(self) -> httpx.Timeout:
        return httpx.Timeout(
            self.config.read_timeout_seconds,
            connect=self.config.connect_timeout_seconds,
        )

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.config.base_url, timeout=self.timeout)
        return self._client

    async def _post(self, payload: dict) -> httpx.Response:
        response = await self._get_client().post(VALIDATE_PATH, json=payload, timeout=self.timeout)
        response.raise_for_status()
        return response

    async def validate_coverage(
        self,
        document_number: str,
        affiliation_type: AffiliationType,
        service_type: ServiceType,
        estimated_cost: Decimal,
    ) -> InsuranceVerdict:
        url = f"{self.config.base_url}{VALIDATE_PATH}"
        logger.info(f"Calling {SERVICE_NAME}: {url} ({service_type.value}, {affiliation_type.value})")

        try:
            request = InsuranceValidationRequest(
                patient_document_number=document_number,
                affiliation_type=affiliation_type,
                service_type=service_type,
                estimated_cost=estimated_cost,
            )
            # Only transport failures are worth re-sending
            post = with_retry(
                max_attempts=self.config.retry_attempts,
                delay=self.config.retry_delay_seconds,
                exceptions=(httpx.TransportError,),
            )(self._post)
            response = await post(request.model_dump(mode="json", by_alias=True))

            body = response.json()
            if not body:
                raise GatewayError("Empty response body", provider=SERVICE_NAME)
            verdict = InsuranceVerdict.model_validate(body)
        except Exception as e:
            logger.warning(f"{SERVICE_NAME} call failed: {type(e).__name__}: {e}")
            raise ExternalServiceError(SERVICE_NAME, e) from e

        logger.info(
            f"{SERVICE_NAME} answered: approved={verdict.approved}, "
            f"coverage={verdict.coverage_percentage}%"
        )
        return verdict

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None


class DemoInsuranceGateway(InsuranceGateway):
    """
    Local insurer for demo mode.

    Coverage is the complement of the affiliation's maximum copay; the request
    is approved when that coverage reaches the service's minimum.
    """

    async def validate_coverage(
        self,
        document_number: str,
        affiliation_type: AffiliationType,
        service_type: ServiceType,
        estimated_cost: Decimal,
    ) -> InsuranceVerdict:
        cost = Decimal(str(estimated_cost))
        coverage = 100 - MAX_COPAY_PERCENTAGE[affiliation_type]
        minimum = MINIMUM_COVERAGE[service_type]
        approved = coverage >= minimum

        covered = (cost * coverage / 100).quantize(CENTS, rounding=ROUND_HALF_UP)
        copay = (cost - covered).quantize(CENTS, rounding=ROUND_HALF_UP)

        if approved:
            message = f"Coverage of {coverage}% meets the {minimum}% minimum for {service_type.value}"
            code = f"DEMO-{uuid4().hex[:8].upper()}"
        else:
            message = f"Coverage of {coverage}% is below the {minimum}% minimum for {service_type.value}"
            code = None

        logger.debug(f"Demo verdict for {mask_document(document_number)}: approved={approved}, coverage={coverage}%")
        return InsuranceVerdict(
            approved=approved,
            coverage_percentage=coverage,
            copay_amount=copay,
            covered_amount=covered,
            total_cost=cost,
            authorization_code=code,
            message=message,
        )


# =============================================================================
# Factory Functions
# =============================================================================


_insurance_gateway: Optional[InsuranceGateway] = None


def create_insurance_gateway(
    mode: Optional[IntegrationMode] = None,
    settings: Optional[Settings] = None,
) -> InsuranceGateway:
    """Create a new gateway for the given (or configured) integration mode."""
    settings = settings or get_settings()
    if mode is None:
        mode = settings.INTEGRATION_MODE
    if mode == IntegrationMode.LIVE:
        return HttpInsuranceGateway(gateway_config_from_settings(settings))
    return DemoInsuranceGateway()


def get_insurance_gateway() -> InsuranceGateway:
    """Get singleton insurance gateway instance."""
    global _insurance_gateway
    if _insurance_gateway is None:
        _insurance_gateway = create_insurance_gateway()
    return _insurance_gateway


async def close_insurance_gateway() -> None:
    global _insurance_gateway
    if _insurance_gateway is not None:
        await _insurance_gateway.close()
        _insurance_gateway = None
