from __future__ import annotations

import json
import os
from pathlib import Path

from pydantic import BaseModel, Field, PositiveInt
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_CONFIG_FILENAME = ".patchright-daemon.json"


class ViewportSize(BaseModel):
    width: PositiveInt
    height: PositiveInt


def _default_launch_options() -> dict:
    # Chrome (not the bundled Chromium) ships proprietary codecs such as H.264.
    return {
        "channel": "chrome",
        "headless": False,
        "args": ["--start-maximized"],
    }


class BrowserConfig(BaseModel):
    launch_options: dict = Field(default_factory=_default_launch_options)
    viewport: ViewportSize | None = None


class TimeoutsConfig(BaseModel):
    navigation: int = 30000
    restore: int = 30000
    response: float = 30.0
    startup: float = 30.0


class PollConfig(BaseModel):
    daemon_interval: float = 0.1
    client_interval: float = 0.05


class ConsoleConfig(BaseModel):
    max_entries: PositiveInt | None = None


class DaemonConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="PATCHRIGHT_DAEMON_",
        env_nested_delimiter="__",
    )

    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    timeouts: TimeoutsConfig = Field(default_factory=TimeoutsConfig)
    poll: PollConfig = Field(default_factory=PollConfig)
    console: ConsoleConfig = Field(default_factory=ConsoleConfig)
    work_dir: str | None = None
    log_level: str = "DEBUG"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Environment wins over values loaded from a config file
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    def resolve_work_dir(self) -> Path:
        """Return the directory holding the channel files, defaulting to cwd."""
        if self.work_dir:
            return Path(self.work_dir).expanduser()
        return Path.cwd()


def _parse_viewport_size(value: str) -> dict[str, int]:
    """Parse a 'WxH' string into a viewport size dict."""
    parts = value.lower().split("x")
    if len(parts) != 2:
        raise ValueError(
            f"PATCHRIGHT_DAEMON_VIEWPORT_SIZE must be in 'WxH' format, got '{value}'"
        )
    return {"width": int(parts[0]), "height": int(parts[1])}


def apply_env_overrides(config: DaemonConfig) -> DaemonConfig:
    """Apply the short-hand PATCHRIGHT_DAEMON_* env vars.

    These don't map onto pydantic-settings' nested delimiter convention, so
    they are read by hand.
    """

    # PATCHRIGHT_DAEMON_CHANNEL -> browser.launch_options.channel
    channel = os.environ.get("PATCHRIGHT_DAEMON_CHANNEL")
    if channel is not None:
        if channel.strip():
            config.browser.launch_options["channel"] = channel.strip()
        else:
            # Empty value selects patchright's bundled chromium
            config.browser.launch_options.pop("channel", None)

    # PATCHRIGHT_DAEMON_HEADLESS -> browser.launch_options.headless
    headless = os.environ.get("PATCHRIGHT_DAEMON_HEADLESS")
    if headless is not None:
        config.browser.launch_options["headless"] = headless.lower() in (
            "1",
            "true",
            "yes",
        )

    # PATCHRIGHT_DAEMON_VIEWPORT_SIZE -> browser.viewport
    viewport_size = os.environ.get("PATCHRIGHT_DAEMON_VIEWPORT_SIZE")
    if viewport_size is not None:
        config.browser.viewport = ViewportSize(**_parse_viewport_size(viewport_size))

    return config


def get_version() -> str:
    """Return the package version string."""
    try:
        from importlib.metadata import version

        return version("patchright-daemon")
    except Exception:
        return "0.1.0"


def load_config(config_path: str | None = None) -> DaemonConfig:
    """Load daemon configuration from a JSON file and/or environment variables.

    Priority (highest to lowest):
        1. PATCHRIGHT_DAEMON_* environment variables
        2. Explicitly provided config_path JSON file
        3. ``.patchright-daemon.json`` in cwd
        4. Built-in defaults
    """
    file_values: dict = {}

    if config_path is not None:
        config_file = Path(config_path)
        if config_file.is_file():
            file_values = json.loads(config_file.read_text(encoding="utf-8"))
    else:
        default_config = Path.cwd() / _DEFAULT_CONFIG_FILENAME
        if default_config.is_file():
            file_values = json.loads(default_config.read_text(encoding="utf-8"))

    # pydantic-settings layers env vars on top of these values
    config = DaemonConfig(**file_values)

    return apply_env_overrides(config)
