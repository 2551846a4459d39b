import logging

from fastapi import APIRouter, Depends, Header, HTTPException, status
from fastapi.responses import Response

from ..errors import InvalidReading
from ..layout import LAYOUTS
from ..render import GraphicsProvider
from ..deps import get_graphics

router = APIRouter(prefix="/devices", tags=["graphics"])

logger = logging.getLogger(__name__)


@router.get("/{device_id}/graphics")
def device_graphics(
    device_id: str,
    graphics: GraphicsProvider = Depends(get_graphics),
    user_agent: str | None = Header(None),
):
    try:
        html = graphics.get_graphics(device_id, user_agent)
    except InvalidReading as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return {"device_id": device_id, "graphics": html}


@router.get("/{device_id}/graphics/{series_type}.png")
def device_graphic_png(
    device_id: str,
    series_type: str,
    graphics: GraphicsProvider = Depends(get_graphics),
    user_agent: str | None = Header(None),
):
    if series_type not in LAYOUTS:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown series type")
    try:
        png = graphics.get_png(device_id, series_type, user_agent)
    except InvalidReading as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except (OSError, ValueError):
        logger.exception("Cannot render %s graphic for %s", series_type, device_id)
        png = None
    if png is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="no graphic available")
    return Response(content=png, media_type="image/png")
