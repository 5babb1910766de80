from . import utils
import nodriver
from nodriver import cdp
from .config import Settings
from .core.errors import (
    InvalidSecret,
    LoginOperationError,
    MissingRequiredField,
    ControlNotFound,
    DriverTimeout,
    CleanupFailure,
)
from .core.otp import generate_otp
from .core.driver import (
    PageDriver,
    NodriverPageDriver,
)
from .core.login import (
    LoginState,
    StepOutcome,
    Credentials,
    LoginStep,
    LoginUrlSet,
    LoginResult,
    LoginStateMachine,
    X_LOGIN_STEPS,
    X_LOGIN_URLS,
)
from .core.watcher import PageWatcher
from .core.lifecycle import (
    Subscription,
    subscribe,
    ObserverRegistry,
    ObserverLifecycleManager,
)
from .core.handlers import (
    PageObserver,
    Addon,
    ResponseCapture,
    ConsoleLogging,
    LoginAddon,
    CookieExport,
    ViewportPatch,
)
from .core.browser import (
    open_with_timeout,
    stop,
)
from .core.runner import (
    Tabwarden,
    ShutdownReason,
    RestartTimer,
)

__all__ = [
    "utils",
    "nodriver",
    "cdp",
    "Settings",
    "InvalidSecret",
    "LoginOperationError",
    "MissingRequiredField",
    "ControlNotFound",
    "DriverTimeout",
    "CleanupFailure",
    "generate_otp",
    "PageDriver",
    "NodriverPageDriver",
    "LoginState",
    "StepOutcome",
    "Credentials",
    "LoginStep",
    "LoginUrlSet",
    "LoginResult",
    "LoginStateMachine",
    "X_LOGIN_STEPS",
    "X_LOGIN_URLS",
    "PageWatcher",
    "Subscription",
    "subscribe",
    "ObserverRegistry",
    "ObserverLifecycleManager",
    "PageObserver",
    "Addon",
    "ResponseCapture",
    "ConsoleLogging",
    "LoginAddon",
    "CookieExport",
    "ViewportPatch",
    "open_with_timeout",
    "stop",
    "Tabwarden",
    "ShutdownReason",
    "RestartTimer",
]
