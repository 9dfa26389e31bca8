"""wagate configuration management."""

import logging
import os

from pydantic import Field
from pydantic_settings import BaseSettings

logger = logging.getLogger("wagate.config")


class GatewaySettings(BaseSettings):
    """Settings loaded from environment variables or .env file."""

    # Storage: directory.json and greetings.json live here
    data_dir: str = Field(default="./data", description="Directory for persisted state")
    contacts_file: str = Field(default="./contacts.csv", description="CSV export of the contact list")
    catalogue_dir: str = Field(default="./catalogue", description="Directory holding catalogue PDFs")

    # Transport
    wacli_path: str = Field(default="wacli", description="wacli binary (name or full path)")

    # Admin
    admin_ids: list[str] = Field(default_factory=list, description="JIDs allowed to run admin commands")
    broadcast_prefix: str = Field(default="!broadcast", description="Admin in-chat broadcast command")

    # Conversation
    business_name: str = Field(default="Trinity Switchgear", description="Name used in canned replies")
    greeting_cooldown_hours: float = Field(default=8, description="Minimum gap between two greetings")
    dedup_ttl_seconds: float = Field(default=120, description="Retention of processed event ids")
    bundle_interval: float = Field(default=1.0, description="Delay between documents of one bundle")

    # Delivery
    broadcast_interval: float = Field(default=1.5, description="Delay between two broadcast targets")
    admin_broadcast_interval: float = Field(default=1.5, description="Delay between admin broadcast sends")
    retry_attempts: int = Field(default=2, description="Send attempts before a recipient is pruned")
    retry_backoff: float = Field(default=2.0, description="Delay between two send attempts")

    # Scheduler
    health_sweep_at: str = Field(default="03:00", description="Daily health sweep time (HH:MM, local)")

    # Logging
    log_file: str = Field(default="~/wagate.log", description="Log file path")

    model_config = {"env_prefix": "WAGATE_", "env_file": ".env", "extra": "ignore"}

    @property
    def directory_path(self) -> str:
        return os.path.join(os.path.expanduser(self.data_dir), "directory.json")

    @property
    def greetings_path(self) -> str:
        return os.path.join(os.path.expanduser(self.data_dir), "greetings.json")


def load_settings() -> GatewaySettings:
    """Load settings from environment."""
    settings = GatewaySettings()

    if not settings.admin_ids:
        logger.warning(
            "No WAGATE_ADMIN_IDS configured — only the linked phone itself "
            f"can use the {settings.broadcast_prefix} command."
        )
    if not os.path.isfile(os.path.expanduser(settings.contacts_file)):
        logger.warning(
            f"Contacts file not found: {settings.contacts_file} — "
            "broadcasts will resolve to an empty target list."
        )

    return settings
