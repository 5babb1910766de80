import asyncio
import logging
import time

import nodriver

logger = logging.getLogger("tabwarden.browser")

NAVIGATION_TIMEOUT = 30


async def open_with_timeout(
    base: nodriver.Tab | nodriver.Browser,
    url: str,
    *,
    new_tab: bool = False,
    navigation_timeout: float = NAVIGATION_TIMEOUT,
) -> nodriver.Tab | None:
    """navigate `base` (or a new tab off it) to `url` with a bounded wait.

    :param base: tab to navigate, or browser root to open a new tab from.
    :param url: target url.
    :param new_tab: open the url in a new tab.
    :param navigation_timeout: seconds for the navigation phase.
    :return: the tab, or `None` if navigation timed out.
    :rtype: Tab | None
    """
    start = time.monotonic()
    if isinstance(base, nodriver.Browser) and not new_tab:
        base = base.main_tab
    nav_task = asyncio.create_task(base.get(url, new_tab=new_tab))
    try:
        # cancelling nav_task will cause throw an InvalidStateError
        # if the Transaction hasn't finished yet
        tab = await asyncio.wait_for(asyncio.shield(nav_task), timeout=navigation_timeout)
    except asyncio.TimeoutError:
        logger.warning(
            "timed out opening %s (elapsed=%.2fs)", url, time.monotonic() - start
        )
        return None
    logger.info("successfully opened %s (elapsed=%.2fs)", url, time.monotonic() - start)
    return tab


async def stop(browser: nodriver.Browser, graceful=True, timeout: float = 10):
    """stop browser process (optionally wait for graceful exit).

    :param graceful: wait for underlying process to exit.
    :param timeout: seconds to wait for the process.
    """
    logger.info("stopping browser")
    res = browser.stop()
    if asyncio.iscoroutine(res):
        await res
    process = getattr(browser, "_process", None)
    if graceful and process is not None:
        logger.info("waiting for graceful shutdown")
        await asyncio.wait_for(process.wait(), timeout)
    logger.info("successfully shutdown browser")


__all__ = [
    "open_with_timeout",
    "stop",
    "NAVIGATION_TIMEOUT",
]
