"""
Coverage Evaluation Service.

Evaluates an authorization against the insurer and records the verdict:

    1. actor may evaluate (administrators and doctors)
    2. authorization exists and is not deleted
    3. authorization has not been evaluated yet
    4. estimated cost is positive
    5. patient exists and is not deleted
    6. insurer is asked for a verdict, with no unit of work open
    7. steps 2-3 are checked again, then the evaluation is recorded and the
       authorization approved or rejected in one unit of work

Nothing is written before step 7, so any failure, the insurer's included,
leaves no evaluation behind and the authorization untouched.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional, Union
from uuid import UUID

from meditrack.core.enums import Permission
from meditrack.gateways.insurance_gateway import InsuranceGateway, get_insurance_gateway
from meditrack.models import CoverageEvaluation, User
from meditrack.services.access_policy import AccessPolicy, get_access_policy
from meditrack.services.adapters.base import UnitOfWorkFactory
from meditrack.services.authorization_state_machine import (
    AuthorizationStateMachine,
    TransitionEvent,
    get_authorization_state_machine,
)
from meditrack.utils.errors import ConflictError, NotFoundError, ValidationError
from meditrack.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class CoverageStatistics:
    approved: int
    rejected: int
    average_coverage: Optional[float]

    @property
    def total(self) -> int:
        return self.approved + self.rejected

    @property
    def approval_rate(self) -> Optional[float]:
        if self.total == 0:
            return None
        return self.approved / self.total


def parse_estimated_cost(estimated_cost: Union[Decimal, int, float, str, None]) -> Decimal:
    if estimated_cost is None:
        raise ValidationError("estimated cost is required")
    try:
        cost = Decimal(str(estimated_cost))
    except InvalidOperation as e:
        raise ValidationError(f"estimated cost is not a number: {estimated_cost}") from e
    if not cost.is_finite() or cost <= 0:
        raise ValidationError(f"estimated cost must be greater than zero: {estimated_cost}")
    return cost


class CoverageEvaluationService:
    """Service that turns an insurer verdict into an evaluation and a final status."""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        insurance_gateway: Optional[InsuranceGateway] = None,
        access_policy: Optional[AccessPolicy] = None,
        state_machine: Optional[AuthorizationStateMachine] = None,
    ):
        self.uow_factory = uow_factory
        self.insurance_gateway = insurance_gateway or get_insurance_gateway()
        self.access_policy = access_policy or get_access_policy()
        self.state_machine = state_machine or get_authorization_state_machine()

    async def evaluate(
        self,
        actor: User,
        authorization_id: UUID,
        estimated_cost: Union[Decimal, int, float, str],
    ) -> CoverageEvaluation:
        """
        Evaluate one authorization.

        Raises:
            UnauthorizedError: actor may not evaluate
            NotFoundError: authorization or patient absent or deleted
            ConflictError: authorization already evaluated or already final
            ValidationError: estimated cost missing or not positive
            ExternalServiceError: insurer unreachable or answered badly
        """
        self.access_policy.require(
            actor,
            Permission.AUTHORIZATIONS_EVALUATE,
            "Only administrators and doctors can evaluate authorizations",
        )

        async with self.uow_factory() as uow:
            authorization = await uow.authorizations.get(authorization_id)
            if authorization is None:
                raise NotFoundError("Authorization", authorization_id)
            if await uow.evaluations.exists_by_authorization_id(authorization.id):
                raise ConflictError(f"Authorization has already been evaluated: {authorization.id}")

            cost = parse_estimated_cost(estimated_cost)

            patient = await uow.patients.get(authorization.patient_id)
            if patient is None:
                raise NotFoundError("Patient", authorization.patient_id)

        verdict = await self.insurance_gateway.validate_coverage(
            document_number=patient.document_number,
            affiliation_type=patient.affiliation_type,
            service_type=authorization.service_type,
            estimated_cost=cost,
        )

        async with self.uow_factory() as uow:
            # Another request may have evaluated or deleted it during the insurer call
            authorization = await uow.authorizations.get(authorization_id)
            if authorization is None:
                raise NotFoundError("Authorization", authorization_id)
            if await uow.evaluations.exists_by_authorization_id(authorization.id):
                raise ConflictError(f"Authorization has already been evaluated: {authorization.id}")

            evaluation = CoverageEvaluation.record(
                authorization_id=authorization.id,
                coverage_percentage=verdict.coverage_percentage,
                copay_amount=verdict.copay_amount,
                is_approved=verdict.approved,
                insurance_response=verdict.audit_payload(),
            )
            await uow.evaluations.save(evaluation)

            # The insurer's verdict decides; the minimum coverage is advisory only
            event = TransitionEvent.APPROVE if verdict.approved else TransitionEvent.REJECT
            self.state_machine.apply(authorization, event)
            await uow.authorizations.save(authorization)

        if verdict.approved and not evaluation.meets_coverage_requirement(
            authorization.minimum_coverage_required()
        ):
            logger.warning(
                f"Authorization {authorization.id} approved below the "
                f"{authorization.minimum_coverage_required()}% minimum for {authorization.service_type.value}"
            )
        if evaluation.exceeds_max_copay(patient.max_copay_percentage()):
            logger.warning(
                f"Copay of {evaluation.copay_percentage()}% exceeds the "
                f"{patient.max_copay_percentage()}% cap for {patient.affiliation_type.value}"
            )

        logger.info(
            f"Evaluation {evaluation.id} completed for authorization {authorization.id}: "
            f"{evaluation.summary()}, code={verdict.authorization_code or 'N/A'}"
        )
        return evaluation

    async def get_evaluation_for_authorization(
        self,
        actor: User,
        authorization_id: UUID,
    ) -> CoverageEvaluation:
        async with self.uow_factory() as uow:
            authorization = await uow.authorizations.get(authorization_id)
            if authorization is None:
                raise NotFoundError("Authorization", authorization_id)
            self.access_policy.require_authorization_read(actor, authorization)

            evaluation = await uow.evaluations.get_by_authorization_id(authorization.id)
            if evaluation is None:
                raise NotFoundError("Coverage evaluation for authorization", authorization_id)
        return evaluation

    async def coverage_statistics(self, actor: User) -> CoverageStatistics:
        self.access_policy.require(actor, Permission.REPORTS_READ)

        async with self.uow_factory() as uow:
            return CoverageStatistics(
                approved=await uow.evaluations.count_by_outcome(True),
                rejected=await uow.evaluations.count_by_outcome(False),
                average_coverage=await uow.evaluations.average_coverage(),
            )
