"""the small slice of page control the login flow needs.

`PageDriver` is the capability the state machine is written against, so it can be
exercised without a browser. `NodriverPageDriver` is the real thing on top of a
`nodriver.Tab`.
"""

import asyncio
import logging
from typing import Any

import nodriver
from nodriver import cdp

from .errors import DriverTimeout

logger = logging.getLogger("tabwarden.PageDriver")

# opaque handle to a located element; only ever passed back to the driver
Control = Any

CONTROL_TIMEOUT = 3.0
TYPE_DELAY = 0.1


class PageDriver:
    """base class for a page driver used by `LoginStateMachine`

    override every method. none of them may raise for "not found":
    `wait_for_control()` returns `None` instead.
    """

    async def current_url(self) -> str:
        """return the url the page is currently showing"""
        raise NotImplementedError

    async def wait_for_control(
        self, selector: str, timeout: float = CONTROL_TIMEOUT
    ) -> Control | None:
        """wait up to `timeout` seconds for `selector`.

        :return: the control, or `None` if it never showed up.
        """
        raise NotImplementedError

    async def type_into(self, control: Control, text: str, delay: float = TYPE_DELAY):
        """clear `control` (select-all + delete) then type `text` one character
        at a time with `delay` seconds between characters.
        """
        raise NotImplementedError

    async def click(self, control: Control):
        raise NotImplementedError


class NodriverPageDriver(PageDriver):
    """`PageDriver` backed by a `nodriver.Tab`"""

    def __init__(self, tab: nodriver.Tab):
        self.tab = tab

    def __repr__(self):
        return f"<NodriverPageDriver {getattr(self.tab, 'target_id', None)}>"

    async def current_url(self) -> str:
        return self.tab.url or ""

    async def _select(self, selector: str, timeout: float):
        try:
            return await self.tab.select(selector, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise DriverTimeout(selector, timeout) from e

    async def wait_for_control(self, selector, timeout=CONTROL_TIMEOUT):
        try:
            return await self._select(selector, timeout)
        except DriverTimeout:
            logger.debug("no control for %s within %.1fs on %s", selector, timeout, self.tab)
            return None

    async def _press(self, key: str, code: str, key_code: int):
        for type_ in ("keyDown", "keyUp"):
            await self.tab.send(cdp.input_.dispatch_key_event(
                type_,
                key=key,
                code=code,
                windows_virtual_key_code=key_code,
            ))

    async def type_into(self, control, text, delay=TYPE_DELAY):
        # triple-click + backspace equivalent
        await control.click()
        await control.apply("(el) => el.select && el.select()")
        await self._press("Backspace", "Backspace", 8)
        await control.focus()
        for i, char in enumerate(text):
            await control.send_keys(char)
            if delay and i < len(text) - 1:
                await asyncio.sleep(delay)

    async def click(self, control):
        await control.click()


__all__ = [
    "Control",
    "PageDriver",
    "NodriverPageDriver",
    "CONTROL_TIMEOUT",
    "TYPE_DELAY",
]
