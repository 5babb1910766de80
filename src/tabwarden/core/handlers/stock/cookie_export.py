import json
import logging
import os

from nodriver import cdp, Tab

from ..addon import Addon

logger = logging.getLogger("tabwarden.CookieExport")


class CookieExport(Addon):
    """dump every browser cookie to a json file when a page registers.

    :param path: output file; parent dirs are created.
    :param url_prefix: only export for pages whose url starts with this.
    """

    name = "CookieExport"
    description = "export browser cookies to a json file"

    def __init__(self, path: str | None, url_prefix: str | None = None):
        if not path:
            raise ValueError("cookie file path is required")
        self.path = path
        self.url_prefix = url_prefix

    async def register(self, tab: Tab):
        url = tab.url or ""
        if self.url_prefix and not url.startswith(self.url_prefix):
            logger.debug("skipping cookie export for <%s>", url)
            return
        try:
            cookies = await tab.send(cdp.storage.get_cookies())
        except Exception:
            logger.exception("failed to read cookies for <%s>", url)
            return
        data = [c.to_json() for c in cookies]
        parent = os.path.dirname(self.path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        logger.info("exported %d cookies to %s", len(data), self.path)


__all__ = [
    "CookieExport",
]
