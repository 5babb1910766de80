"""multi-step login flow driven over a `PageDriver`.

the site conditionally skips steps (a recognized browser never sees the email
challenge, accounts without 2fa never see the code prompt), so every step is a
presence probe rather than a fixed page sequence:

1. probe the step's input with a bounded wait
2. absent -> the site elided this step, move on
3. present but no credential for it -> `MissingRequiredField`, abort
4. present -> clear, type, find the continue button (`ControlNotFound` if it
   never shows up), click
5. next step

there is no positive "logged in" signal; reaching `DONE` without raising is success.
"""

import enum
import logging
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, Iterable

from .driver import PageDriver, CONTROL_TIMEOUT, TYPE_DELAY
from .errors import MissingRequiredField, ControlNotFound
from .otp import generate_otp
from ..utils import fix_url, origin_path

logger = logging.getLogger("tabwarden.LoginStateMachine")


class LoginState(enum.Enum):
    USERNAME = "username"
    EMAIL_CHALLENGE = "email_challenge"
    PASSWORD = "password"
    OTP_CHALLENGE = "otp_challenge"
    DONE = "done"


# ordering used to validate step tables
_STATE_ORDER = list(LoginState)


class StepOutcome(enum.Enum):
    NOT_APPLICABLE = "not_applicable"
    COMPLETED = "completed"


@dataclass(frozen=True)
class Credentials:
    """values typed into the login form. any of them may be missing;
    that only matters if the page actually asks for it.
    """
    username: str | None = None
    password: str | None = None
    email_address: str | None = None
    otp_secret: str | None = None

    @classmethod
    def from_settings(cls, settings) -> "Credentials":
        return cls(
            username=settings.login_username,
            password=settings.login_password,
            email_address=settings.login_email_address,
            otp_secret=settings.login_otp_secret,
        )

    def __repr__(self):
        # never leak secrets into logs
        present = [k for k, v in self.__dict__.items() if v]
        return f"Credentials(present={present})"


@dataclass(frozen=True)
class LoginStep:
    """one phase of the login ui.

    :param state: which `LoginState` this step is.
    :param input_selector: css selector of the text input.
    :param continue_selector: css selector of the button that submits it.
    :param credential: `Credentials` attribute typed into the input.
    :param label: used in log + error messages.
    :param one_time_code: treat the credential as an otp secret and type the
    current code instead, generated right before typing.
    """
    state: LoginState
    input_selector: str
    continue_selector: str
    credential: str
    label: str
    one_time_code: bool = False


# selectors as of the current x.com login flow
X_LOGIN_STEPS: tuple[LoginStep, ...] = (
    LoginStep(
        LoginState.USERNAME,
        'input[autocomplete="username"]',
        "div.css-175oi2r button.r-13qz1uu",
        "username",
        "username",
    ),
    LoginStep(
        LoginState.EMAIL_CHALLENGE,
        'input[data-testid="ocfEnterTextTextInput"][inputmode="text"]',
        'button[role="button"][data-testid="ocfEnterTextNextButton"]',
        "email_address",
        "email address",
    ),
    LoginStep(
        LoginState.PASSWORD,
        'input[autocomplete="current-password"]',
        'button[role="button"][data-testid="LoginForm_Login_Button"]',
        "password",
        "password",
    ),
    LoginStep(
        LoginState.OTP_CHALLENGE,
        'input[data-testid="ocfEnterTextTextInput"][inputmode="numeric"]',
        'button[role="button"][data-testid="ocfEnterTextNextButton"]',
        "otp_secret",
        "otp secret",
        one_time_code=True,
    ),
)

X_LOGIN_URLS: tuple[str, ...] = ("https://x.com/i/flow/login",)


class LoginUrlSet:
    """ordered, immutable set of urls that mean "the login flow is on screen".

    a sampled url matches when its full href or its origin+path equals a member.
    both sides are canonicalized first.
    """

    def __init__(self, urls: Iterable[str]):
        canonical: list[str] = []
        for url in urls:
            fixed = fix_url(url)
            if fixed not in canonical:
                canonical.append(fixed)
        self._urls = tuple(canonical)

    def __iter__(self):
        return iter(self._urls)

    def __len__(self):
        return len(self._urls)

    def __repr__(self):
        return f"LoginUrlSet({list(self._urls)!r})"

    def matches(self, url: str | None) -> bool:
        if not url:
            return False
        try:
            href = fix_url(url)
        except Exception:
            logger.debug("could not canonicalize %r", url)
            return False
        return href in self._urls or origin_path(href) in self._urls

    __contains__ = matches


@dataclass
class LoginResult:
    """what happened during one login attempt.

    :param state: last state reached (`DONE` on success).
    :param trace: `(state, outcome)` for every step that ran.
    :param elapsed: wall time of the attempt.
    """
    state: LoginState = LoginState.USERNAME
    trace: list[tuple[LoginState, StepOutcome]] = field(default_factory=list)
    elapsed: timedelta = timedelta(0)

    @property
    def completed_steps(self) -> list[LoginState]:
        return [s for s, o in self.trace if o is StepOutcome.COMPLETED]


class LoginStateMachine:
    """drive a `PageDriver` through the ordered login steps.

    stateless between runs, so one instance can serve many pages.
    """

    def __init__(
        self,
        credentials: Credentials,
        steps: Iterable[LoginStep] = X_LOGIN_STEPS,
        *,
        control_timeout: float = CONTROL_TIMEOUT,
        type_delay: float = TYPE_DELAY,
        clock: Callable[[], float] = time.time,
    ):
        """
        :param credentials: values to type.
        :param steps: step table, must be in `LoginState` order.
        :param control_timeout: seconds to wait for each input/continue control.
        :param type_delay: seconds between typed characters.
        :param clock: wall clock handed to the otp generator.
        """
        self.credentials = credentials
        self.steps = tuple(steps)
        indexes = [_STATE_ORDER.index(s.state) for s in self.steps]
        if indexes != sorted(set(indexes)) or LoginState.DONE in (s.state for s in self.steps):
            raise ValueError("login steps must be unique and in LoginState order")
        self.control_timeout = control_timeout
        self.type_delay = type_delay
        self.clock = clock

    async def run(self, driver: PageDriver) -> LoginResult:
        """run every step in order against `driver`.

        :raises MissingRequiredField: a step's input is present but its credential isn't.
        :raises ControlNotFound: a step's continue control never showed up.
        """
        result = LoginResult()
        start = time.monotonic()
        for step in self.steps:
            result.state = step.state
            outcome = await self.run_step(driver, step)
            result.trace.append((step.state, outcome))
        result.state = LoginState.DONE
        result.elapsed = timedelta(seconds=time.monotonic() - start)
        logger.info(
            "login process completed (steps=%s elapsed=%.2fs)",
            [s.value for s in result.completed_steps],
            result.elapsed.total_seconds(),
        )
        return result

    async def run_step(self, driver: PageDriver, step: LoginStep) -> StepOutcome:
        control = await driver.wait_for_control(step.input_selector, self.control_timeout)
        if control is None:
            logger.debug("%s input not present, skipping", step.label)
            return StepOutcome.NOT_APPLICABLE

        value = getattr(self.credentials, step.credential)
        # empty counts as missing; never submit a blank field
        if not value:
            raise MissingRequiredField(step.state, f"{step.label} required.")

        if step.one_time_code:
            # as late as possible so a slow previous step can't expire the code
            value = generate_otp(value, clock=self.clock)

        logger.debug("entering %s", step.label)
        await driver.type_into(control, value, self.type_delay)

        button = await driver.wait_for_control(step.continue_selector, self.control_timeout)
        if button is None:
            raise ControlNotFound(
                step.state,
                step.continue_selector,
                f"{step.label} continue button not found.",
            )
        await driver.click(button)
        logger.debug("submitted %s", step.label)
        return StepOutcome.COMPLETED


__all__ = [
    "LoginState",
    "StepOutcome",
    "Credentials",
    "LoginStep",
    "LoginUrlSet",
    "LoginResult",
    "LoginStateMachine",
    "X_LOGIN_STEPS",
    "X_LOGIN_URLS",
]
