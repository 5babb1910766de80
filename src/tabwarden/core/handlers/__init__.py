from .observer import (
    PAGE_EVENTS,
    PAGE_OBSERVER_HOOKS,
    PageObserver,
)
from .addon import Addon
from .stock import (
    ResponseCapture,
    ConsoleLogging,
    LoginAddon,
    CookieExport,
    ViewportPatch,
)

__all__ = [
    "PAGE_EVENTS",
    "PAGE_OBSERVER_HOOKS",
    "PageObserver",
    "Addon",
    "ResponseCapture",
    "ConsoleLogging",
    "LoginAddon",
    "CookieExport",
    "ViewportPatch",
]
