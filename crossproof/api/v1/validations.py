"""
Validation endpoints - submit a statement set and inspect engine status.
"""

from fastapi import APIRouter, status

from crossproof.api.deps import Orchestrator
from crossproof.schemas.common import ErrorResponse
from crossproof.schemas.requests import OrchestratorStatusResponse, ValidationRequest
from crossproof.schemas.results import ProofValidationResult

router = APIRouter()


@router.post(
    "",
    response_model=ProofValidationResult,
    responses={status.HTTP_422_UNPROCESSABLE_ENTITY: {"model": ErrorResponse}},
)
async def create_validation(body: ValidationRequest, orchestrator: Orchestrator):
    """
    Verify every statement with the primary backend, cross-check with the
    fallbacks and report consistency, complexity and the acceptance verdict.

    Malformed input is answered with 422 and the list of issues; a negative
    verdict is a normal 200 response with `accepted` set to false.
    """
    if not body.statements and body.claims:
        return await orchestrator.validate_claims(
            body.claims,
            body.config,
            sketches=body.sketches,
            context=body.context,
        )
    return await orchestrator.validate(
        body.statements,
        body.config,
        claims=body.claims,
        sketches=body.sketches,
        context=body.context,
    )


@router.get("/status", response_model=OrchestratorStatusResponse)
async def get_validation_status(orchestrator: Orchestrator):
    """Engine status, per-backend statistics and cache statistics."""
    return orchestrator.get_status()
