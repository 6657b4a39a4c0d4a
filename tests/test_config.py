"""Tests for settings."""

from virtwrap.config import Settings


class TestSettings:
    """Test environment driven configuration."""

    def test_defaults(self, monkeypatch):
        for name in ("LIBVIRT_URI", "LIBVIRT_USER", "LIBVIRT_PASS", "WATCHDOG_INTERVAL"):
            monkeypatch.delenv(name, raising=False)

        config = Settings(_env_file=None)

        assert config.libvirt_uri == "qemu:///system"
        assert config.libvirt_user == ""
        assert config.watchdog_interval == 10.0

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("LIBVIRT_URI", "qemu+tls://node2/system")
        monkeypatch.setenv("LIBVIRT_USER", "virt")
        monkeypatch.setenv("LIBVIRT_PASS", "pw")
        monkeypatch.setenv("WATCHDOG_INTERVAL", "2.5")

        config = Settings(_env_file=None)

        assert config.libvirt_uri == "qemu+tls://node2/system"
        assert config.libvirt_user == "virt"
        assert config.libvirt_pass == "pw"
        assert config.watchdog_interval == 2.5
