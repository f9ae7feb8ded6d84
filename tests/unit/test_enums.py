"""
Unit tests for core enumerations.
"""

from meditrack.core.enums import (
    AffiliationStatus,
    AffiliationType,
    AuthorizationStatus,
    IntegrationMode,
    Permission,
    ServiceType,
    UserRole,
)


class TestWireEnums:
    """Tests for values shared with the insurance service."""

    def test_affiliation_type_values(self):
        """Test affiliation type enum values."""
        assert AffiliationType.CONTRIBUTIVO == "CONTRIBUTIVO"
        assert AffiliationType.SUBSIDIADO == "SUBSIDIADO"
        assert AffiliationType.ESPECIAL == "ESPECIAL"

    def test_service_type_values(self):
        """Test service type enum values."""
        assert [s.value for s in ServiceType] == ["CONSULTA", "PROCEDIMIENTO", "CIRUGIA"]


class TestStatusEnums:
    """Tests for lifecycle status enums."""

    def test_authorization_status_values(self):
        assert [s.value for s in AuthorizationStatus] == ["PENDIENTE", "EN_REVISION", "APROBADA", "RECHAZADA"]

    def test_affiliation_status_values(self):
        assert AffiliationStatus.ACTIVE == "ACTIVE"
        assert AffiliationStatus.SUSPENDED == "SUSPENDED"


class TestAccessEnums:
    """Tests for identity and access enums."""

    def test_roles(self):
        assert {r.value for r in UserRole} == {"ROLE_PACIENTE", "ROLE_MEDICO", "ROLE_ADMIN"}

    def test_permission_format(self):
        """Permissions follow the resource:action format."""
        for permission in Permission:
            resource, action = permission.value.split(":")
            assert resource in {"authorizations", "patients", "users", "reports"}
            assert action


class TestIntegrationModeEnum:
    """Tests for integration mode enum."""

    def test_demo_mode(self):
        """Test demo mode value."""
        assert IntegrationMode.DEMO == "demo"

    def test_live_mode(self):
        """Test live mode value."""
        assert IntegrationMode.LIVE == "live"
