"""error taxonomy shared by the login flow and the cleanup paths.

- `InvalidSecret`: otp secret could not be decoded
- `LoginOperationError`: base for a login attempt that has to be aborted
  - `MissingRequiredField`: a step's input is on the page but we have no value for it
  - `ControlNotFound`: the input was filled but its continue button never showed up
- `DriverTimeout`: a bounded wait expired (only an error on continue buttons)
- `CleanupFailure`: something failed to detach/close during teardown (logged, never raised)
"""

import asyncio


class InvalidSecret(ValueError):
    """the otp secret is empty or not valid base32"""


class LoginOperationError(Exception):
    """a login step failed and the current attempt was aborted.

    :param state: the `LoginState` the failure happened in.
    :param message: human readable reason.
    """

    def __init__(self, state, message: str | None = None):
        self.state = state
        self.step = getattr(state, "value", str(state))
        super().__init__(message or f"login step {self.step!r} failed")


class MissingRequiredField(LoginOperationError):
    """the control for a step is present but the credential is absent or empty"""


class ControlNotFound(LoginOperationError):
    """the continue control for a filled step could not be located in time"""

    def __init__(self, state, selector: str, message: str | None = None):
        self.selector = selector
        super().__init__(state, message or f"continue control not found: {selector}")


class DriverTimeout(asyncio.TimeoutError):
    """a bounded driver wait expired.

    :param selector: what we were waiting for.
    :param timeout: seconds we waited.
    """

    def __init__(self, selector: str, timeout: float):
        self.selector = selector
        self.timeout = timeout
        super().__init__(f"timed out after {timeout:.1f}s waiting for {selector}")


class CleanupFailure(Exception):
    """a detach callback, observer or the browser failed to shut down cleanly.

    :param stage: shutdown stage name (e.g. "timers", "pages", "browser").
    :param target: what was being cleaned up.
    """

    def __init__(self, stage: str, target: object, cause: BaseException | None = None):
        self.stage = stage
        self.target = target
        self.cause = cause
        msg = f"cleanup failed during {stage} for {target}"
        if cause is not None:
            msg += f": {cause!r}"
        super().__init__(msg)


__all__ = [
    "InvalidSecret",
    "LoginOperationError",
    "MissingRequiredField",
    "ControlNotFound",
    "DriverTimeout",
    "CleanupFailure",
]
