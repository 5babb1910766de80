import logging

from nodriver import cdp, Tab

from ..addon import Addon

logger = logging.getLogger("tabwarden.ViewportPatch")


class ViewportPatch(Addon):
    """stock addon for setting viewport metrics via emulation domain.

    mirrors width/height to screen metrics so pages comparing
    inner/outer sizes see consistent values.
    """

    name = "ViewportPatch"
    description = "apply a fixed viewport to every page"

    def __init__(self, width: int, height: int, device_scale_factor: float = 1.0):
        self.width = width
        self.height = height
        self.device_scale_factor = device_scale_factor

    async def register(self, tab: Tab):
        try:
            await tab.send(cdp.emulation.set_device_metrics_override(
                self.width,
                self.height,
                self.device_scale_factor,
                False,
                screen_width=self.width,
                screen_height=self.height,
            ))
        except Exception:
            logger.exception("failed patching viewport for tab <%s>:", tab.target_id)
        else:
            logger.debug(
                "successfully patched viewport for tab <%s> (width=%d height=%d)",
                tab.target_id,
                self.width,
                self.height,
            )


__all__ = [
    "ViewportPatch",
]
