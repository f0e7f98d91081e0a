"""Application configuration using Pydantic Settings.

This project loads configuration from environment variables.

Optionally, you may point `ENV_FILE` at a local env file (for development);
pydantic-settings reads it directly, environment variables still win.
"""

import os
from enum import Enum

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppEnvironment(str, Enum):
    """Application environment values."""

    LOCAL = "local"
    TEST = "test"
    PROD = "prod"


class Settings(BaseSettings):
    """
    Application settings with type validation.

    All geometry is expressed in inches. Every field has a default so the
    library works without any environment configured.
    """

    model_config = SettingsConfigDict(
        env_file=os.getenv("ENV_FILE") or None, env_prefix="", extra="ignore"
    )

    # Application
    app_env: AppEnvironment = AppEnvironment.LOCAL
    app_name: str = "rdlgen"
    app_log_level: str = "INFO"

    # Observability
    observability_structured_logs: bool = True
    metrics_enabled: bool = True

    # Report page geometry (inches)
    report_page_width_in: float = 8.5
    report_page_height_in: float = 11.0
    report_margin_top_in: float = 0.5
    report_margin_bottom_in: float = 0.5
    report_margin_left_in: float = 0.75
    report_margin_right_in: float = 0.75
    report_body_min_height_in: float = 6.0
    report_default_data_set_name: str = "ReportData"

    # Compiler
    max_conditional_depth: int = 32
    optimizer_enabled: bool = True

    # Sandbox
    # When strict, any sandbox error aborts translation of the field code.
    sandbox_strict: bool = False
    sandbox_reject_unknown_functions: bool = False

    @field_validator("app_env", mode="before")
    @classmethod
    def parse_app_env(cls, v: AppEnvironment | str) -> AppEnvironment | str:
        """Accept environment names in any case."""
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator(
        "report_margin_top_in",
        "report_margin_bottom_in",
        "report_margin_left_in",
        "report_margin_right_in",
    )
    @classmethod
    def validate_margin(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Margins cannot be negative")
        return v

    @field_validator("report_page_width_in", "report_page_height_in", "report_body_min_height_in")
    @classmethod
    def validate_positive_size(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Page and body sizes must be positive")
        return v

    @field_validator("max_conditional_depth")
    @classmethod
    def validate_max_depth(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_conditional_depth must be at least 1")
        return v

    @model_validator(mode="after")
    def validate_printable_area(self) -> "Settings":
        """Margins must leave a printable area on the page."""
        if self.printable_width_in <= 0:
            raise ValueError(
                "Left and right margins leave no printable width "
                f"on a {self.report_page_width_in}in page"
            )
        if self.report_margin_top_in + self.report_margin_bottom_in >= self.report_page_height_in:
            raise ValueError(
                "Top and bottom margins leave no printable height "
                f"on a {self.report_page_height_in}in page"
            )
        return self

    @property
    def printable_width_in(self) -> float:
        """Page width minus the left and right margins."""
        return self.report_page_width_in - self.report_margin_left_in - self.report_margin_right_in

    @property
    def is_production(self) -> bool:
        return self.app_env == AppEnvironment.PROD


settings = Settings()
