"""
Client API Endpoints
Layout selection for the app shell
"""

from typing import Literal, Optional

from fastapi import APIRouter, Query

from cropgenius.schemas.client import LayoutDecision
from cropgenius.services.layout_service import DEFAULT_BREAKPOINTS, layout_for_viewport

router = APIRouter()

LayoutChoice = Literal["auto", "mobile", "tablet", "desktop"]


@router.get("/layout", response_model=LayoutDecision)
async def get_layout(
    width: int = Query(..., description="Viewport width in CSS pixels"),
    height: int = Query(..., description="Viewport height in CSS pixels"),
    mode: LayoutChoice = Query("auto"),
    force: LayoutChoice = Query("auto"),
    tablet_breakpoint: Optional[int] = Query(None, gt=0),
    desktop_breakpoint: Optional[int] = Query(None, gt=0),
):
    breakpoints = dict(DEFAULT_BREAKPOINTS)
    if tablet_breakpoint:
        breakpoints["tablet"] = tablet_breakpoint
    if desktop_breakpoint:
        breakpoints["desktop"] = desktop_breakpoint
    return layout_for_viewport(width, height, mode=mode, force=force, breakpoints=breakpoints)
