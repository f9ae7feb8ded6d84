"""External service gateways."""

from meditrack.gateways.base import GatewayConfig, GatewayError, with_retry
from meditrack.gateways.insurance_gateway import (
    DemoInsuranceGateway,
    HttpInsuranceGateway,
    InsuranceGateway,
    close_insurance_gateway,
    create_insurance_gateway,
    get_insurance_gateway,
)

__all__ = [
    "GatewayConfig",
    "GatewayError",
    "with_retry",
    "InsuranceGateway",
    "HttpInsuranceGateway",
    "DemoInsuranceGateway",
    "create_insurance_gateway",
    "get_insurance_gateway",
    "close_insurance_gateway",
]
