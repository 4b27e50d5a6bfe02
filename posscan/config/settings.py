"""
==============================================================================
Application Settings Module
==============================================================================

Configuration management using Pydantic Settings.

This module implements the Singleton pattern to ensure a single global
configuration instance throughout the application lifecycle.

Features:
---------
- Environment variable loading with type validation
- .env file support for local development
- Camera scanner tuning (frame rate, decode region, aspect ratio)
- Keyboard-wedge scanner tuning (timing thresholds, prefixes, suffixes)

Configuration Priority (highest to lowest):
------------------------------------------
1. Environment variables
2. .env file
3. Default values

==============================================================================
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from posscan.scanner.models import DecodeRegion, ScanConfig


# Module logger
logger = logging.getLogger(__name__)


def _parse_json_list(raw: str, field_name: str, default: List[str]) -> List[str]:
    """Parse a JSON array string, falling back to ``default`` when invalid."""
    try:
        values = json.loads(raw)
        if isinstance(values, list):
            return [str(value) for value in values]
        return default
    except json.JSONDecodeError:
        logger.warning(f"Invalid {field_name} JSON: {raw}, defaulting to {default}")
        return default


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        app_name: Display name for the application
        app_env: Environment mode (development/staging/production)
        debug: Enable debug mode for verbose logging
        host: Server bind address
        port: Server port number
        cors_origins: Allowed CORS origins (JSON array string)
        scanner_fps: Frames per second fed to the decoder
        scanner_box_width: Decode region width in pixels
        scanner_box_height: Decode region height in pixels
        scanner_aspect_ratio: Viewfinder aspect ratio (width / height)
        camera_backend: Capture backend implementation name
        camera_index_count: Indices tried when no /dev/video nodes exist
        camera_max_devices: Upper bound on enumerated devices
        camera_stop_timeout_seconds: Max wait for a capture thread to exit
        wedge_min_length: Minimum barcode length from a keyboard wedge
        wedge_max_delay_ms: Max gap between scanner keystrokes
        wedge_idle_timeout_ms: Idle time before a buffer without Enter is flushed
        wedge_prefixes: Prefixes stripped from wedge input (JSON array string)
        wedge_suffixes: Suffixes stripped from wedge input (JSON array string)

    Example:
        >>> settings = Settings()
        >>> settings.scan_config.fps
        10
    """

    # =========================================================================
    # PYDANTIC SETTINGS CONFIGURATION
    # =========================================================================
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_default=True,
    )

    # =========================================================================
    # APPLICATION SETTINGS
    # =========================================================================
    app_name: str = Field(
        default="POS Scanner Service",
        description="Display name for the application"
    )

    app_env: str = Field(
        default="development",
        description="Environment mode: development, staging, production"
    )

    debug: bool = Field(
        default=True,
        description="Enable debug mode for verbose logging"
    )

    # =========================================================================
    # SERVER SETTINGS
    # =========================================================================
    host: str = Field(
        default="0.0.0.0",
        description="Server bind address"
    )

    port: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Server port number"
    )

    cors_origins: str = Field(
        default='["*"]',
        description="Allowed CORS origins as JSON array string"
    )

    # =========================================================================
    # CAMERA SCANNER SETTINGS
    # =========================================================================
    scanner_fps: int = Field(
        default=10,
        ge=1,
        le=60,
        description="Frames per second fed to the decoder"
    )

    scanner_box_width: int = Field(
        default=250,
        ge=50,
        le=4096,
        description="Decode region width in pixels"
    )

    scanner_box_height: int = Field(
        default=150,
        ge=50,
        le=4096,
        description="Decode region height in pixels"
    )

    scanner_aspect_ratio: float = Field(
        default=1.5,
        gt=0,
        le=4.0,
        description="Viewfinder aspect ratio (width / height)"
    )

    camera_backend: str = Field(
        default="opencv",
        description="Capture backend implementation"
    )

    camera_index_count: int = Field(
        default=2,
        ge=0,
        le=16,
        description="Capture indices tried when no device nodes are present"
    )

    camera_max_devices: int = Field(
        default=16,
        ge=1,
        le=64,
        description="Upper bound on enumerated capture devices"
    )

    camera_stop_timeout_seconds: float = Field(
        default=2.0,
        gt=0,
        le=30.0,
        description="Max wait for a capture thread to exit on stop"
    )

    # =========================================================================
    # KEYBOARD WEDGE SETTINGS
    # =========================================================================
    wedge_min_length: int = Field(
        default=4,
        ge=1,
        le=128,
        description="Minimum accepted barcode length"
    )

    wedge_max_delay_ms: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Max delay between scanner keystrokes in milliseconds"
    )

    wedge_idle_timeout_ms: int = Field(
        default=200,
        ge=10,
        le=5000,
        description="Idle time before an unterminated buffer is flushed"
    )

    wedge_prefixes: str = Field(
        default="[]",
        description="Barcode prefixes to strip as JSON array string"
    )

    wedge_suffixes: str = Field(
        default="[]",
        description="Barcode suffixes to strip as JSON array string"
    )

    # =========================================================================
    # VALIDATORS
    # =========================================================================
    @field_validator("app_env")
    @classmethod
    def validate_app_env(cls, value: str) -> str:
        """
        Validate and normalize application environment.

        Args:
            value: Raw environment value

        Returns:
            Lowercase normalized environment name
        """
        valid_envs = {"development", "staging", "production"}
        normalized = value.lower().strip()

        if normalized not in valid_envs:
            logger.warning(
                f"Unknown environment '{value}', defaulting to 'development'"
            )
            return "development"

        return normalized

    @field_validator("camera_backend")
    @classmethod
    def validate_camera_backend(cls, value: str) -> str:
        """
        Validate the capture backend name.

        Raises:
            ValueError: If the backend is not supported
        """
        supported = {"opencv"}
        normalized = value.lower().strip()

        if normalized not in supported:
            raise ValueError(
                f"Unsupported camera backend: {value}. "
                f"Supported: {', '.join(sorted(supported))}"
            )

        return normalized

    # =========================================================================
    # COMPUTED PROPERTIES
    # =========================================================================
    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_staging(self) -> bool:
        """Check if running in staging mode."""
        return self.app_env == "staging"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"

    @property
    def scan_config(self) -> ScanConfig:
        """
        Build the capture configuration handed to camera backends.

        Returns:
            ScanConfig with frame rate, decode region and aspect ratio
        """
        return ScanConfig(
            fps=self.scanner_fps,
            decode_region=DecodeRegion(
                width=self.scanner_box_width,
                height=self.scanner_box_height,
            ),
            aspect_ratio=self.scanner_aspect_ratio,
        )

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from JSON string to list."""
        return _parse_json_list(self.cors_origins, "CORS origins", ["*"])

    @property
    def wedge_prefixes_list(self) -> List[str]:
        """Parse wedge prefixes from JSON string to list."""
        return _parse_json_list(self.wedge_prefixes, "wedge prefixes", [])

    @property
    def wedge_suffixes_list(self) -> List[str]:
        """Parse wedge suffixes from JSON string to list."""
        return _parse_json_list(self.wedge_suffixes, "wedge suffixes", [])

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"Settings(app_name={self.app_name!r}, "
            f"app_env={self.app_env!r}, "
            f"camera_backend={self.camera_backend!r}, "
            f"debug={self.debug})"
        )


# =============================================================================
# SINGLETON INSTANCE MANAGEMENT
# =============================================================================

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get the global Settings instance (singleton pattern).

    Returns:
        Global Settings instance
    """
    settings = Settings()

    if settings.debug:
        logger.info(f"Configuration loaded: {settings}")

    return settings
