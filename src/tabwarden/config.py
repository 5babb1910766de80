import re

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_SCREEN_SIZE = re.compile(r"^\s*(\d+)\s*x\s*(\d+)\s*$")


def _split(value: str, seps: str) -> list[str]:
    return [v.strip() for v in re.split(f"[{seps}]", value or "") if v.strip()]


class Settings(BaseSettings):
    """process configuration, read from the environment (and `.env` when given).

    empty environment values count as unset.
    """

    model_config = SettingsConfigDict(
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="ignore",
        populate_by_name=True,
    )

    # browser
    vnc_screen_size: str = "1024x768"
    chromium_path: str = "/usr/bin/chromium-browser"
    user_data_dir: str = Field(
        default="/userdata",
        validation_alias=AliasChoices("VNC_USER_DATA_DIR", "user_data_dir"),
    )
    browser_user_agent: str | None = None
    browser_lang: str = "ja"
    headless: bool = False
    open_devtools: bool = False
    viewport_width: int | None = Field(default=None, gt=0)
    viewport_height: int | None = Field(default=None, gt=0)
    startup_urls: str = ""
    restart_interval_seconds: int = Field(default=0, ge=0)

    # capture
    target_url_regexs: str = ""
    responses_dir: str = "/responses"
    console_log_dir: str | None = None
    cookie_file_path: str | None = None
    cookie_url_prefix: str | None = None

    # login
    login_enabled: bool = False
    login_username: str | None = None
    login_password: str | None = None
    login_email_address: str | None = None
    login_otp_secret: str | None = None

    log_level: str = "INFO"

    @field_validator("vnc_screen_size")
    @classmethod
    def _check_screen_size(cls, v: str) -> str:
        if not _SCREEN_SIZE.match(v):
            raise ValueError(f"screen size must look like 1024x768, got {v!r}")
        return v.strip()

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, v: str) -> str:
        return v.strip().upper()

    @property
    def screen_size(self) -> tuple[int, int]:
        m = _SCREEN_SIZE.match(self.vnc_screen_size)
        return int(m.group(1)), int(m.group(2))

    @property
    def viewport(self) -> tuple[int, int]:
        width, height = self.screen_size
        return self.viewport_width or width, self.viewport_height or height

    @property
    def target_url_patterns(self) -> list[re.Pattern]:
        """`TARGET_URL_REGEXS` split on commas/newlines and compiled."""
        return [re.compile(p) for p in _split(self.target_url_regexs, ",\n")]

    @property
    def startup_url_list(self) -> list[str]:
        return _split(self.startup_urls, ",")


__all__ = [
    "Settings",
]
