"""
Main FastAPI application for the policy migration service.

Exposes the policy collection under ``/shared/TrustedASMPolicies``. The
target and policy id may be given as query parameters or as trailing
path segments.
"""

import json
import logging
import os
import sys
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response

from policy_migration import __version__
from policy_migration.core.error_handler import ErrorHandler
from policy_migration.core.exceptions import PolicyMigrationError, ValidationError
from policy_migration.models.config import load_settings
from policy_migration.orchestrator.facade import PolicyService
from policy_migration.orchestrator.orchestrator import MigrationOrchestrator
from policy_migration.utils.helpers import pick

logger = logging.getLogger(__name__)

POLICIES_ROUTE = "/shared/TrustedASMPolicies"
CONFIG_ENV = "POLICY_MIGRATION_CONFIG"

# Global instances
orchestrator: Optional[MigrationOrchestrator] = None
policy_service: Optional[PolicyService] = None
error_handler = ErrorHandler(logger)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global orchestrator, policy_service

    logger.info(f"Starting policy migration API v{__version__}")
    settings = load_settings(os.environ.get(CONFIG_ENV))
    orchestrator = MigrationOrchestrator.from_settings(settings)
    policy_service = PolicyService(orchestrator)
    logger.info("API components initialized successfully")

    yield

    logger.info("Shutting down policy migration API")
    await orchestrator.close()
    orchestrator = None
    policy_service = None


app = FastAPI(
    title="Trusted Policy Migration API",
    description="Migrate security policies between trusted appliances",
    version=__version__,
    lifespan=lifespan,
)


async def get_orchestrator() -> MigrationOrchestrator:
    """Get the migration orchestrator instance."""
    if orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Migration orchestrator not initialized"
        )
    return orchestrator


async def get_policy_service() -> PolicyService:
    """Get the policy query service instance."""
    if policy_service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Policy service not initialized"
        )
    return policy_service


async def _json_body(request: Request) -> Dict[str, Any]:
    raw = await request.body()
    if not raw:
        return {}
    try:
        body = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationError(f"request body is not valid JSON: {e}")
    if not isinstance(body, dict):
        raise ValidationError("request body must be a JSON object")
    return body


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": __version__,
        "active_migrations": orchestrator.active_migrations if orchestrator else 0,
        "tracked_migrations": len(orchestrator.registry) if orchestrator else 0,
    }


@app.get(POLICIES_ROUTE, tags=["Policies"])
@app.get(POLICIES_ROUTE + "/{target}", tags=["Policies"])
@app.get(POLICIES_ROUTE + "/{target}/{policy_id}", tags=["Policies"])
async def get_policies(
    request: Request,
    target: Optional[str] = None,
    policy_id: Optional[str] = None,
    service: PolicyService = Depends(get_policy_service)
):
    """
    List policies, fetch one policy, or export a policy's XML.

    With ``sourceHost``/``sourceUUID`` the named policy is exported from that
    device and returned as an XML attachment.
    """
    query = dict(request.query_params)
    source = pick(query, None, "sourceHost", "sourceUUID")
    target = pick(query, None, "targetHost", "targetUUID") or target
    policy_id = pick(query, None, "policyId") or policy_id
    policy_name = pick(query, None, "policyName")

    if source:
        if target:
            raise ValidationError("target device should not be defined when defining source device")
        policy, content = await service.export_policy_content(source, policy_id, policy_name)
        return Response(
            content=content,
            media_type="text/xml",
            headers={"Content-Disposition": f'attachment; filename="{policy.name}.xml"'},
        )

    if policy_id or policy_name:
        policy = await service.get_policy(target, policy_id, policy_name)
        return policy.to_api()

    return [policy.to_api() for policy in await service.list_policies(target)]


@app.post(POLICIES_ROUTE, status_code=status.HTTP_202_ACCEPTED, tags=["Policies"])
@app.post(POLICIES_ROUTE + "/{target}", status_code=status.HTTP_202_ACCEPTED, tags=["Policies"])
async def create_migration(
    request: Request,
    target: Optional[str] = None,
    migrations: MigrationOrchestrator = Depends(get_orchestrator)
):
    """
    Start a migration.

    Either ``url`` plus ``targetPolicyName``, or a source device with
    ``policyId``/``policyName``. JSON body parameters take precedence over
    query parameters.
    """
    query = dict(request.query_params)
    body = await _json_body(request)

    url = pick(query, body, "url")
    target = pick(query, body, "targetHost", "targetUUID") or target
    target_policy_name = pick(query, body, "targetPolicyName")

    if url:
        record = await migrations.migrate_from_url(url, target, target_policy_name)
    else:
        record = await migrations.migrate_between_devices(
            source=pick(query, body, "sourceHost", "sourceUUID"),
            target=target,
            policy_id=pick(query, body, "policyId"),
            policy_name=pick(query, body, "policyName"),
            target_policy_name=target_policy_name,
        )
    return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content=record.to_api())


@app.delete(POLICIES_ROUTE, tags=["Policies"])
@app.delete(POLICIES_ROUTE + "/{target}", tags=["Policies"])
@app.delete(POLICIES_ROUTE + "/{target}/{policy_id}", tags=["Policies"])
async def delete_policy(
    request: Request,
    target: Optional[str] = None,
    policy_id: Optional[str] = None,
    service: PolicyService = Depends(get_policy_service)
):
    """Delete a policy from a target and drop its in-flight migration entry."""
    query = dict(request.query_params)
    message = await service.delete_policy(
        target=pick(query, None, "targetHost", "targetUUID") or target,
        policy_id=pick(query, None, "policyId") or policy_id,
        policy_name=pick(query, None, "policyName"),
    )
    return {"msg": message}


@app.exception_handler(PolicyMigrationError)
async def migration_exception_handler(request, exc):
    """Map service errors to their HTTP status."""
    info = error_handler.handle(exc)
    return JSONResponse(status_code=info.http_status, content=jsonable_encoder({"error": info.to_dict()}))


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    """Handle HTTP exceptions with consistent error format."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "code": exc.status_code,
                "message": exc.detail,
                "type": "http_error"
            }
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    """Handle general exceptions with consistent error format."""
    logger.exception(f"unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "code": 500,
                "message": "Internal server error",
                "type": "server_error",
                "details": str(exc) if app.debug else None
            }
        }
    )


def start_server(host: str = "127.0.0.1", port: int = 8000, reload: bool = False):
    """Start the FastAPI server."""
    try:
        uvicorn.run(
            "policy_migration.api.main:app",
            host=host,
            port=port,
            reload=reload,
            log_level="info"
        )
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    start_server()
