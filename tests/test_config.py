"""Tests for environment configuration."""

from pathlib import Path

import pytest

from vc_refresh.claims import MerklizedRootPosition
from vc_refresh.config import Settings, parse_bool, parse_mapping


class TestParseMapping:
    """Tests for key=value list parsing."""

    def test_pairs(self):
        value = "did:iden3:a=https://a.example.com, *=https://default.example.com"
        assert parse_mapping(value) == {
            "did:iden3:a": "https://a.example.com",
            "*": "https://default.example.com",
        }

    def test_value_may_contain_equals(self):
        assert parse_mapping("*=user:pa=ss") == {"*": "user:pa=ss"}

    def test_empty(self):
        assert parse_mapping("") == {}

    @pytest.mark.parametrize("value", ["no-separator", "=value"])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_mapping(value)


class TestSettings:
    """Tests for Settings.from_env."""

    def test_defaults(self):
        settings = Settings.from_env({})
        assert settings.supported_issuers == {}
        assert settings.http_timeout == 30.0
        assert settings.verify_ssl is True
        assert settings.merklized_root_position == MerklizedRootPosition.INDEX
        assert settings.providers_dir == Path("providers")

    def test_from_env(self):
        settings = Settings.from_env({
            "VC_REFRESH_SUPPORTED_ISSUERS": "*=https://issuer.example.com",
            "VC_REFRESH_ISSUERS_BASIC_AUTH": "*=user:pass",
            "VC_REFRESH_PROVIDERS_DIR": "/etc/vc-refresh/providers",
            "VC_REFRESH_HTTP_TIMEOUT": "5",
            "VC_REFRESH_VERIFY_SSL": "false",
            "VC_REFRESH_MERKLIZED_ROOT_POSITION": "Value",
            "VC_REFRESH_LOG_LEVEL": "debug",
        })
        assert settings.supported_issuers == {"*": "https://issuer.example.com"}
        assert settings.issuers_basic_auth == {"*": "user:pass"}
        assert settings.providers_dir == Path("/etc/vc-refresh/providers")
        assert settings.http_timeout == 5.0
        assert settings.verify_ssl is False
        assert settings.merklized_root_position == MerklizedRootPosition.VALUE
        assert settings.log_level == "DEBUG"

    @pytest.mark.parametrize("name,value", [
        ("VC_REFRESH_HTTP_TIMEOUT", "soon"),
        ("VC_REFRESH_HTTP_TIMEOUT", "-1"),
        ("VC_REFRESH_VERIFY_SSL", "maybe"),
        ("VC_REFRESH_MERKLIZED_ROOT_POSITION", "none"),
        ("VC_REFRESH_MERKLIZED_ROOT_POSITION", "middle"),
    ])
    def test_invalid(self, name, value):
        with pytest.raises(ValueError):
            Settings.from_env({name: value})


def test_parse_bool():
    assert parse_bool("Yes") is True
    assert parse_bool("0") is False
