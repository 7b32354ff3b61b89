"""Call log routes."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from curabot.api.deps import get_scope
from curabot.patients.schemas import UpdateCallLogRequest
from curabot.patients.service import dump, list_call_logs, update_call_log
from curabot.storage.scoped import OwnerScope

router = APIRouter(tags=["call-logs"])


@router.get("/call-logs")
async def get_call_logs(
    patient_id: Optional[str] = Query(None, alias="patientId"),
    status: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=1, le=500),
    offset: Optional[int] = Query(None, ge=0),
    scope: OwnerScope = Depends(get_scope),
):
    logs = await list_call_logs(scope, patient_id=patient_id, status=status, limit=limit, offset=offset)
    return {"callLogs": dump(logs)}


@router.patch("/call-logs/{call_log_id}")
async def patch_call_log(call_log_id: str, body: UpdateCallLogRequest, scope: OwnerScope = Depends(get_scope)):
    return {"callLog": dump(await update_call_log(scope, call_log_id, body))}
