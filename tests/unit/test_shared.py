"""
Unit tests for shared settings and exceptions.
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from tlsrpt_ingest.shared.config import Settings, get_settings
from tlsrpt_ingest.shared.exceptions import (
    DecodeError,
    MailboxError,
    ParseError,
    StructureError,
    TlsRptError,
    WriteError,
)


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self):
        """Test default values."""
        settings = Settings()

        assert settings.imap_port == 993
        assert settings.imap_folder == "INBOX"
        assert settings.imap_readonly is True
        assert settings.reports_dir == Path("./reports")
        assert settings.write_mode == "stream"
        assert settings.chunk_size == 64 * 1024
        assert settings.has_imap_credentials is False
        assert settings.changes_ownership is False

    def test_environment_overrides(self, monkeypatch, tmp_path):
        """Test that TLSRPT_ variables are read."""
        monkeypatch.setenv("TLSRPT_REPORTS_DIR", str(tmp_path))
        monkeypatch.setenv("TLSRPT_IMAP_HOST", "imap.example.net")
        monkeypatch.setenv("TLSRPT_IMAP_USER", "reports")
        monkeypatch.setenv("TLSRPT_IMAP_PASSWORD", "hunter2")
        monkeypatch.setenv("TLSRPT_OWNER_GID", "998")
        monkeypatch.setenv("TLSRPT_WRITE_MODE", "batch")

        settings = Settings()

        assert settings.reports_dir == tmp_path
        assert settings.has_imap_credentials is True
        assert settings.imap_password.get_secret_value() == "hunter2"
        assert settings.owner_gid == 998
        assert settings.changes_ownership is True
        assert settings.write_mode == "batch"

    def test_password_is_not_rendered(self, settings):
        """Test that the password never appears in the settings repr."""
        assert "secret" not in repr(settings)

    def test_invalid_write_mode_rejected(self):
        """Test that only stream and batch are accepted."""
        with pytest.raises(ValidationError):
            Settings(write_mode="eventually")

    def test_chunk_size_must_be_positive(self):
        """Test that a zero chunk size is rejected."""
        with pytest.raises(ValidationError):
            Settings(chunk_size=0)

    def test_imap_config(self, settings):
        """Test IMAPClient constructor arguments."""
        assert settings.imap_config == {
            "host": "imap.example.com",
            "port": 993,
            "ssl": True,
            "timeout": 30.0,
        }

    def test_get_settings_is_cached(self):
        """Test that get_settings returns the same instance."""
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()


class TestExceptions:
    """Tests for the exception hierarchy."""

    @pytest.mark.parametrize(
        "error",
        [
            StructureError("2", "no filename in disposition"),
            DecodeError("gzip", "truncated gzip stream", "report.json.gz"),
            ParseError("report-id: Field required"),
            WriteError("/var/log/tlsrpt/report-0.json", "disk full"),
            MailboxError("login", "imap.example.com", "authentication failed"),
        ],
    )
    def test_all_derive_from_base(self, error):
        """Test that every pipeline error is a TlsRptError."""
        assert isinstance(error, TlsRptError)

    def test_str_includes_context(self):
        """Test that context is rendered after the message."""
        error = DecodeError("base64", "Incorrect padding", "report.json.gz")

        assert str(error) == (
            "Decoding failed in stage 'base64': Incorrect padding "
            "(stage='base64', filename='report.json.gz')"
        )

    def test_attributes(self):
        """Test that fields are available as attributes."""
        error = MailboxError("select", "imap.example.com", "no such folder")

        assert error.operation == "select"
        assert error.host == "imap.example.com"
        assert "no such folder" in error.message

    def test_plain_base_error(self):
        """Test a base error without context."""
        assert str(TlsRptError("boom")) == "boom"
