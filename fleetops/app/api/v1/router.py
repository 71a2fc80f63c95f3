"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from fleetops.app.api.v1.endpoints import (
    deployments, deployment_history, maintenance, vehicles
)

router = APIRouter()

# Deployment lifecycle
router.include_router(deployments.router)
router.include_router(deployment_history.router)

# Maintenance windows
router.include_router(maintenance.router)

# Vehicle and pilot views
router.include_router(vehicles.router)
router.include_router(vehicles.pilot_router)
