"""Display detection for plots: headless runs render off-screen with Agg."""

from __future__ import annotations

import logging
import os
import sys

from kestrel.backend.backend import env_flag

logger = logging.getLogger(__name__)

HEADLESS_ENV = "KESTREL_HEADLESS"
HEADLESS_MATPLOTLIB_BACKEND = "Agg"


def _has_display() -> bool:
    if not sys.platform.startswith("linux"):
        return True
    return bool(os.environ.get("DISPLAY") or os.environ.get("WAYLAND_DISPLAY"))


def is_headless() -> bool:
    """True if plots can't be shown on screen.

    That is: KESTREL_HEADLESS is set, MPLBACKEND is already Agg, or on Linux
    neither DISPLAY nor WAYLAND_DISPLAY is set.
    """
    if env_flag(HEADLESS_ENV):
        return True
    if os.environ.get("MPLBACKEND", "").lower() == HEADLESS_MATPLOTLIB_BACKEND.lower():
        return True
    return not _has_display()


def configure_matplotlib_backend(headless: bool | None = None) -> str:
    """Pick the matplotlib backend before plotting.

    Args:
        headless: Force (True) or forbid (False) off-screen rendering. None
            keeps an explicit MPLBACKEND, otherwise uses :func:`is_headless`.

    Returns:
        The configured backend name, or "default" if left to matplotlib
    """
    if headless is None:
        if "MPLBACKEND" in os.environ:
            return os.environ["MPLBACKEND"]
        headless = is_headless()

    if not headless:
        return "default"

    os.environ["MPLBACKEND"] = HEADLESS_MATPLOTLIB_BACKEND
    if "matplotlib" in sys.modules:
        # MPLBACKEND is only read when pyplot is first imported.
        import matplotlib

        matplotlib.use(HEADLESS_MATPLOTLIB_BACKEND)
    logger.debug("Rendering plots off-screen with %s", HEADLESS_MATPLOTLIB_BACKEND)
    return HEADLESS_MATPLOTLIB_BACKEND
