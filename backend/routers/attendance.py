import logging
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from backend.context import AppContext, get_context
from backend.errors import AuthError
from backend.payloads import text_field
from backend.realtime import NEW_SCAN_EVENT, LiveEvent
from backend.security import verify_device_secret
from database.db import UNKNOWN_DEVICE

logger = logging.getLogger(__name__)

# Read endpoints are open on purpose: dashboards run on a trusted network.
router = APIRouter(prefix="/api")


class ScanSubmission(BaseModel):
    barcode: Any = None
    device_id: Any = None
    secret: Any = None


@router.get("/attendance")
def attendance(
    date: str | None = None,
    device: str | None = None,
    ctx: AppContext = Depends(get_context),
):
    rows = ctx.store.query_attendance(date=date, device_id=device)
    return [r.to_dict() for r in rows]


@router.get("/attendance-range")
def attendance_range(
    start: str | None = None,
    end: str | None = None,
    device: str | None = None,
    ctx: AppContext = Depends(get_context),
):
    rows = ctx.store.query_attendance_range(start=start, end=end, device_id=device)
    return [r.to_dict() for r in rows]


@router.post("/attendance")
async def ingest_scan(
    payload: ScanSubmission | None = None,
    ctx: AppContext = Depends(get_context),
):
    payload = payload or ScanSubmission()
    device_id = text_field(payload.device_id) or UNKNOWN_DEVICE

    # The secret is checked before anything else about the submission.
    if not verify_device_secret(text_field(payload.secret), ctx.device_secret):
        logger.warning("Rejected scan from device %r: invalid device secret", device_id)
        raise AuthError("invalid", "Invalid device secret.", code="invalid_device_secret")

    barcode = text_field(payload.barcode, allow_number=True) or ""
    record = await run_in_threadpool(ctx.store.insert_attendance, barcode, device_id)
    logger.info("Scan %s accepted: barcode=%r device=%r", record.id, record.barcode, record.device_id)

    # Broadcast only once the row is committed.
    ctx.hub.publish(LiveEvent(NEW_SCAN_EVENT, record.to_dict()))
    return {"success": True, "record": record.to_dict()}


@router.get("/devices")
def devices(ctx: AppContext = Depends(get_context)):
    return ctx.store.list_devices()


@router.get("/stats")
def stats(ctx: AppContext = Depends(get_context)):
    return ctx.store.compute_stats().to_dict()


@router.get("/device-activity")
def device_activity(ctx: AppContext = Depends(get_context)):
    return [a.to_dict() for a in ctx.store.device_activity()]
