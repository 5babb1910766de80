from .response_capture import ResponseCapture
from .console_logging import ConsoleLogging
from .login_addon import LoginAddon
from .cookie_export import CookieExport
from .viewport_patch import ViewportPatch

__all__ = [
    "ResponseCapture",
    "ConsoleLogging",
    "LoginAddon",
    "CookieExport",
    "ViewportPatch",
]
