"""
settings.py — Studio configuration and logging setup.

Values come from Streamlit secrets (``.streamlit/secrets.toml``)::

    anthropic_api_key = "sk-ant-..."
    ai_model = "claude-sonnet-4-5-20250929"     # optional
    sheet_url = "https://docs.google.com/..."   # or sheet_id / sheet_name
    profiles = ["Alyssa", "Ted"]
    log_level = "INFO"

    # Google credentials, either as one JSON string...
    gcp_service_account_json = '{...entire JSON key...}'
    # ...or as a table
    [gcp_service_account]
    type = "service_account"
"""

import json
import sys
from dataclasses import dataclass, field
from typing import Mapping, Optional

from loguru import logger

DEFAULT_AI_MODEL = "claude-sonnet-4-5-20250929"
DEFAULT_SHEET_NAME = "Vibe Gym Studio"


@dataclass
class StudioSettings:
    anthropic_api_key: str = ""
    ai_model: str = DEFAULT_AI_MODEL
    service_account_info: Optional[dict] = None
    sheet_url: str = ""
    sheet_id: str = ""
    sheet_name: str = DEFAULT_SHEET_NAME
    profiles: list[str] = field(default_factory=list)
    log_level: str = "INFO"

    @property
    def ai_enabled(self) -> bool:
        return bool(self.anthropic_api_key)

    @property
    def sheets_enabled(self) -> bool:
        return self.service_account_info is not None

    @classmethod
    def from_secrets(cls, secrets: Mapping) -> "StudioSettings":
        """Read settings from a secrets mapping such as ``st.secrets``.

        Google credentials are accepted in two formats:
        1. Simple: gcp_service_account_json = '{...entire JSON key...}'
        2. Traditional: [gcp_service_account] section with individual fields
        A malformed JSON key is logged and treated as absent.
        """
        creds = None
        if "gcp_service_account_json" in secrets:
            try:
                creds = json.loads(secrets["gcp_service_account_json"])
            except json.JSONDecodeError as e:
                logger.error(f"Invalid JSON in gcp_service_account_json: {e}")
        elif "gcp_service_account" in secrets:
            creds = dict(secrets["gcp_service_account"])

        return cls(
            anthropic_api_key=secrets.get("anthropic_api_key", ""),
            ai_model=secrets.get("ai_model", DEFAULT_AI_MODEL),
            service_account_info=creds,
            sheet_url=secrets.get("sheet_url", ""),
            sheet_id=secrets.get("sheet_id", ""),
            sheet_name=secrets.get("sheet_name", DEFAULT_SHEET_NAME),
            profiles=list(secrets.get("profiles", [])),
            log_level=str(secrets.get("log_level", "INFO")).upper(),
        )


def setup_logger(level: str = "INFO") -> None:
    """Replace loguru's default handler with a coloured stderr sink."""
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level=level,
        colorize=True,
    )
    logger.info(f"Logger initialized with level={level}")
