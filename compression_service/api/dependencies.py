"""
FastAPI Dependency Injection
============================

The orchestrator is created once in the application lifespan and stored on
``app.state``. Route handlers receive it through ``OrchestratorDep`` so tests
can hand a prepared instance to ``create_app()`` instead.
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from compression_service.services.compression_orchestrator import CompressionOrchestrator


def get_orchestrator(request: Request) -> CompressionOrchestrator:
    """
    Retrieve the CompressionOrchestrator from application state.

    Raises:
        HTTPException: 503 when the lifespan has not run yet
    """
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Compression service not initialized",
        )
    return orchestrator


OrchestratorDep = Annotated[CompressionOrchestrator, Depends(get_orchestrator)]
