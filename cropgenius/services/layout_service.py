"""
Responsive layout selection
Picks the mobile, tablet or desktop shell for a viewport
"""

from typing import Dict, Optional

DEFAULT_BREAKPOINTS = {
    "mobile": 768,
    "tablet": 1024,
    "desktop": 1440,
    "ultrawide": 1920,
}

LAYOUTS = ("mobile", "tablet", "desktop")


def detect_device(width: int, height: int = 0, breakpoints: Optional[Dict[str, int]] = None) -> str:
    bp = {**DEFAULT_BREAKPOINTS, **(breakpoints or {})}
    if width is None or width <= 0:
        return "mobile"
    if width >= bp["ultrawide"]:
        return "ultrawide"
    if width >= bp["desktop"]:
        return "desktop"
    if width >= bp["tablet"]:
        return "tablet"
    return "mobile"


def detect_orientation(width: int, height: int) -> str:
    return "landscape" if width > height else "portrait"


def auto_layout(device: str, orientation: str) -> str:
    if device == "tablet":
        return "desktop" if orientation == "landscape" else "tablet"
    if device in ("desktop", "ultrawide"):
        return "desktop"
    return "mobile"


def resolve_layout(device: str, orientation: str, mode: Optional[str] = None,
                   force: Optional[str] = None) -> Dict:
    """
    Choose the layout shell

    Args:
        device: Detected device type
        orientation: 'portrait' or 'landscape'
        mode: Layout the user picked, or 'auto'
        force: Layout pinned by the host page, or 'auto'

    Returns:
        {'layout', 'source'} where source is 'forced', 'mode' or 'auto'
    """
    if force and force != "auto":
        return {"layout": force, "source": "forced"}
    if mode and mode != "auto":
        return {"layout": mode, "source": "mode"}
    return {"layout": auto_layout(device, orientation), "source": "auto"}


def layout_for_viewport(width: int, height: int, mode: Optional[str] = None,
                        force: Optional[str] = None,
                        breakpoints: Optional[Dict[str, int]] = None) -> Dict:
    bp = {**DEFAULT_BREAKPOINTS, **(breakpoints or {})}
    device = detect_device(width, height, bp)
    orientation = detect_orientation(width or 0, height or 0)
    return {
        "device_type": device,
        "orientation": orientation,
        **resolve_layout(device, orientation, mode, force),
        "breakpoints": bp,
    }
