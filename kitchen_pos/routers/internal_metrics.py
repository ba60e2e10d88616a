from __future__ import annotations

from fastapi import APIRouter, Depends

from kitchen_pos.core.metrics import request_metrics
from kitchen_pos.deps import require_roles
from kitchen_pos.services.access_control import SUPER_ADMIN, CallerContext

router = APIRouter(prefix="/api/internal/metrics", tags=["internal-metrics"])


@router.get("")
def metrics_snapshot(_caller: CallerContext = Depends(require_roles([SUPER_ADMIN]))):
    return request_metrics.snapshot()


@router.get("/tenants")
def tenant_metrics(_caller: CallerContext = Depends(require_roles([SUPER_ADMIN]))):
    return {"tenants": request_metrics.snapshot_per_tenant()}
