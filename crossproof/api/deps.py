"""
FastAPI dependencies.
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from crossproof.orchestration.orchestrator import ValidationOrchestrator


def get_orchestrator(request: Request) -> ValidationOrchestrator:
    """The orchestrator created by the application lifespan."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Validation engine is not running",
        )
    return orchestrator


Orchestrator = Annotated[ValidationOrchestrator, Depends(get_orchestrator)]
