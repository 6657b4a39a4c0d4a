"""Configuration for virtwrap."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Daemon endpoint
    libvirt_uri: str = "qemu:///system"
    libvirt_user: str = ""
    libvirt_pass: str = ""

    # Watchdog
    watchdog_interval: float = 10.0  # Seconds between liveness checks

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
