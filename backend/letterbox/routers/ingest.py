import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ..auth import AuthChecker
from ..deps import get_auth, get_processor
from ..errors import CorruptLog, InvalidReading, UnparseableTimestamp
from ..pipeline import UplinkProcessor
from ..schemas import parse_uplink

router = APIRouter(tags=["ingest"])

logger = logging.getLogger(__name__)


@router.post("/ingest")
def ingest(
    request: Request,
    payload: dict[str, Any],
    processor: UplinkProcessor = Depends(get_processor),
    auth: AuthChecker = Depends(get_auth),
):
    try:
        device_id = parse_uplink(payload).device_id or ""
    except InvalidReading as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    if not auth.check(device_id, request.headers):
        logger.warning("Rejected uplink for '%s': authentication failed", device_id)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="authentication failed")

    try:
        result = processor.process(payload)
    except InvalidReading as exc:
        logger.warning("Rejected uplink for '%s': %s", device_id, exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except (CorruptLog, UnparseableTimestamp) as exc:
        logger.error("History backfill failed for '%s': %s", device_id, exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"backfill failed: {exc}")

    logger.info("Stored uplink %s", json.dumps(result.to_payload()))
    return result.to_payload()
