"""
==============================================================================
Settings Tests
==============================================================================
"""

import pytest
from pydantic import ValidationError

from posscan.config import Settings
from posscan.core import dependencies
from posscan.core.dependencies import get_camera_backend
from posscan.core.exceptions import AppException


class TestSettings:
    """Tests for environment-driven configuration."""

    def test_default_scan_config(self):
        config = Settings(_env_file=None).scan_config

        assert config.fps == 10
        assert config.decode_region.width == 250
        assert config.decode_region.height == 150
        assert config.aspect_ratio == 1.5

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("SCANNER_FPS", "15")
        monkeypatch.setenv("SCANNER_BOX_WIDTH", "300")

        config = Settings(_env_file=None).scan_config

        assert config.fps == 15
        assert config.decode_region.width == 300

    def test_unsupported_camera_backend(self, monkeypatch):
        monkeypatch.setenv("CAMERA_BACKEND", "gstreamer")

        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_unknown_environment_defaults_to_development(self, monkeypatch):
        monkeypatch.setenv("APP_ENV", "qa")

        settings = Settings(_env_file=None)

        assert settings.app_env == "development"
        assert settings.is_development

    def test_wedge_affixes(self, monkeypatch):
        monkeypatch.setenv("WEDGE_PREFIXES", '["]E0", "]C1"]')
        monkeypatch.setenv("WEDGE_SUFFIXES", "not json")

        settings = Settings(_env_file=None)

        assert settings.wedge_prefixes_list == ["]E0", "]C1"]
        assert settings.wedge_suffixes_list == []


class TestCameraBackendSelection:
    """Tests for choosing the backend from settings."""

    @pytest.fixture(autouse=True)
    def clear_backend_cache(self):
        get_camera_backend.cache_clear()
        yield
        get_camera_backend.cache_clear()

    def test_unsupported_backend_rejected(self, monkeypatch):
        settings = Settings.model_construct(camera_backend="gstreamer")
        monkeypatch.setattr(dependencies, "get_settings", lambda: settings)

        with pytest.raises(AppException) as exc_info:
            get_camera_backend()

        assert exc_info.value.code == "INTERNAL_ERROR"
        assert "gstreamer" in exc_info.value.message
