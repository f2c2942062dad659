"""Tests for configuration loading."""

from pathlib import Path
from unittest.mock import patch

import pytest

from contract_harness.config import load_settings


def _load(env: dict[str, str]):
    with patch.dict("os.environ", env, clear=True):
        with patch("contract_harness.config.load_dotenv"):
            return load_settings()


class TestLoadSettings:
    """Tests for load_settings."""

    def test_defaults(self):
        settings = _load({})
        assert settings.receive_protocol is None
        assert settings.overlay_strategy == "overlay_document"
        assert settings.spec_path == Path("./spec/spec.yaml")
        assert settings.verifier_mode == "docker"
        assert settings.verifier_image == "specmatic/specmatic-async"
        assert settings.verifier_startup_timeout_seconds == 300.0
        assert settings.verifier_completion_timeout_seconds == 180.0
        assert settings.verifier_settle_seconds == 2.0
        assert settings.verifier_stop_grace_seconds == 10.0
        assert settings.infra_enabled is True
        assert settings.infra_settle_seconds == 20.0
        assert settings.descriptor_timeout_seconds == 10
        assert settings.missing_passed_count_policy == "indeterminate"

    def test_protocols_from_environment(self):
        settings = _load({"RECEIVE_PROTOCOL": "jms", "SEND_PROTOCOL": "mqtt"})
        assert (settings.receive_protocol, settings.send_protocol) == ("jms", "mqtt")

    def test_protocols_must_be_set_together(self):
        with pytest.raises(ValueError, match="set together"):
            _load({"RECEIVE_PROTOCOL": "jms"})

    def test_verifier_env_prefix(self):
        settings = _load({"VERIFIER_ENV_KAFKA_HOST": "broker", "VERIFIER_ENV_": "ignored"})
        assert settings.verifier_env == {"KAFKA_HOST": "broker"}

    def test_bool_parsing(self):
        assert _load({"INFRA_ENABLED": "false"}).infra_enabled is False
        assert _load({"INFRA_ENABLED": "Yes"}).infra_enabled is True

    @pytest.mark.parametrize(
        "env,message",
        [
            ({"OVERLAY_STRATEGY": "magic"}, "OVERLAY_STRATEGY"),
            ({"VERIFIER_MODE": "podman"}, "VERIFIER_MODE"),
            ({"VERIFIER_COMPLETION_TIMEOUT_SECONDS": "0"}, "> 0"),
            ({"VERIFIER_STARTUP_TIMEOUT_SECONDS": "soon"}, "must be a number"),
            ({"VERIFIER_SETTLE_SECONDS": "-1"}, ">= 0"),
            ({"DESCRIPTOR_TIMEOUT_SECONDS": "0"}, ">= 1"),
            ({"ORDER_SERVICE_URL": "localhost:8080"}, "http"),
            ({"MISSING_PASSED_COUNT_POLICY": "maybe"}, "MISSING_PASSED_COUNT_POLICY"),
        ],
    )
    def test_invalid_values_raise(self, env, message):
        with pytest.raises(ValueError, match=message):
            _load(env)

    def test_with_overrides_ignores_none(self):
        settings = _load({})
        changed = settings.with_overrides(overlay_strategy="in_place", spec_path=None)
        assert changed.overlay_strategy == "in_place"
        assert changed.spec_path == settings.spec_path
