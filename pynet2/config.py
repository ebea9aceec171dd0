"""
Configuration Management for pyNet2

Settings are read from environment variables (and a .env file if present). The
site list is either given inline as JSON in NET2_SITES or read from the JSON file
named by NET2_CONFIG.

Environment Variables:

    Net2 Connection:
        NET2_CLIENT_ID       - Net2 API client ID (required when sites are configured)
        NET2_SITES           - JSON list of site configurations (takes precedence)
        NET2_CONFIG          - Path to a JSON file holding {"clientID": ..., "sites": [...]}
        NET2_TIMEOUT         - HTTP timeout in seconds (default: 10)
        NET2_POLL_INTERVAL   - Seconds between site refreshes (default: 60)
        NET2_STALE_AFTER     - Seconds after which a site is reported out of date (default: 180)

    Server Settings:
        NET2_BIND_ADDRESS    - Server bind address (default: "0.0.0.0")
        NET2_PORT            - Server port (default: 8000)
        NET2_DEBUG           - Enable debug logging (default: no)
        NET2_CORS_ORIGINS    - JSON list of allowed CORS origins (default: ["*"])

Site Configuration:

    NET2_SITES='[
      {
        "id": 1,
        "name": "Head Office",
        "ip": "10.0.0.5",
        "port": 8080,
        "https": true,
        "verifySsl": false,
        "username": "System engineer",
        "password": "secret",
        "localIDField": "Payroll number",
        "staffDepartmentPrefix": "Staff",
        "visitorDepartmentPrefix": "Visitor",
        "monitoredDoors": [{"id": 1234, "doorName": "Front", "zoneName": "Reception"}],
        "openableDoors": [{"name": "Airlock", "sequence": [{"id": 1234, "duration": "5s"}, {"id": 5678}]}]
      }
    ]'

Accessing Configuration:

    from pynet2.config import Settings

    settings = Settings()
    for site in settings.sites:
        print(site.name, site.base_url)
"""
import json
import logging
import os
import re
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from pynet2.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_SITE_PORT = 8080

_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {"ns": 1e-9, "us": 1e-6, "µs": 1e-6, "ms": 1e-3, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: Any) -> float:
    """Convert a duration ("1m30s", "500ms", 5, "5") to seconds."""
    if value is None or value == "":
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    try:
        return float(text)
    except ValueError:
        pass
    parts = _DURATION_RE.findall(text)
    if not parts or "".join(n + u for n, u in parts) != text:
        raise ValueError(f"invalid duration: {value}")
    return sum(float(n) * _DURATION_UNITS[u] for n, u in parts)


class MonitoredDoor(BaseModel):
    id: int
    name: str = Field(default="", alias="doorName")
    zone: str = Field(default="", alias="zoneName")

    model_config = {"frozen": True, "populate_by_name": True}


class DoorSequence(BaseModel):
    id: int
    duration: float = 0.0  # seconds

    model_config = {"frozen": True}

    @field_validator("duration", mode="before")
    @classmethod
    def _parse_duration(cls, value):
        return parse_duration(value)


class OpenableDoor(BaseModel):
    name: str
    sequence: List[DoorSequence] = Field(default_factory=list)

    model_config = {"frozen": True}


class SiteConfig(BaseModel):
    """Configuration for one Net2 site (one server installation)."""
    id: int
    name: str = ""
    ip: str
    port: int = DEFAULT_SITE_PORT
    https: bool = False
    verify_ssl: bool = Field(default=True, alias="verifySsl")
    username: str
    password: str
    local_id_field: str = Field(alias="localIDField")
    staff_prefix: Optional[str] = Field(default=None, alias="staffDepartmentPrefix")
    visitor_prefix: Optional[str] = Field(default=None, alias="visitorDepartmentPrefix")
    contractor_prefix: Optional[str] = Field(default=None, alias="contractorDepartmentsPrefix")
    cleaner_prefix: Optional[str] = Field(default=None, alias="cleaningDepartmentPrefix")
    customer_prefix: Optional[str] = Field(default=None, alias="customerDepartmentPrefix")
    cancelled_prefix: Optional[str] = Field(default=None, alias="cancelledDepartmentPrefix")
    monitored_doors: List[MonitoredDoor] = Field(default_factory=list, alias="monitoredDoors")
    openable_doors: List[OpenableDoor] = Field(default_factory=list, alias="openableDoors")

    model_config = {"frozen": True, "populate_by_name": True}

    @field_validator("ip", "username", "password", "local_id_field")
    @classmethod
    def _required(cls, value: str, info):
        if not value:
            raise ValueError(f"{info.field_name} is required")
        return value

    @field_validator("port", mode="before")
    @classmethod
    def _default_port(cls, value):
        return value or DEFAULT_SITE_PORT

    @property
    def base_url(self) -> str:
        scheme = "https" if self.https else "http"
        return f"{scheme}://{self.ip}:{self.port}"


class Settings(BaseSettings):
    """Application settings."""

    server_host: str = Field(default="0.0.0.0", alias="NET2_BIND_ADDRESS")
    server_port: int = Field(default=8000, alias="NET2_PORT")
    debug: bool = Field(default=False, alias="NET2_DEBUG")
    cors_origins: List[str] = Field(default=["*"], alias="NET2_CORS_ORIGINS")

    client_id: Optional[str] = Field(default=None, alias="NET2_CLIENT_ID")
    config_file: Optional[str] = Field(default=None, alias="NET2_CONFIG")
    timeout: float = Field(default=10, alias="NET2_TIMEOUT")
    poll_interval: float = Field(default=60, alias="NET2_POLL_INTERVAL")
    stale_after: float = Field(default=180, alias="NET2_STALE_AFTER")

    sites: List[SiteConfig] = Field(default_factory=list, alias="NET2_SITES")

    model_config = {
        "env_prefix": "",
        "case_sensitive": False,
        "env_file": ".env",
        "extra": "ignore",
        "populate_by_name": True,
    }

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._initialize_sites()

    def _initialize_sites(self):
        """Load sites from NET2_CONFIG when none were given inline."""
        if self.sites or not self.config_file:
            return
        path = os.path.expanduser(self.config_file)
        try:
            with open(path, "r") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Unable to load config {path}: {e}") from e
        if isinstance(data, list):
            data = {"sites": data}
        if not self.client_id:
            self.client_id = data.get("clientID") or data.get("clientId")
        try:
            self.sites = [SiteConfig(**site) for site in data.get("sites", [])]
        except ValueError as e:
            raise ConfigurationError(f"Invalid site configuration in {path}: {e}") from e
        logger.debug(f"Loaded {len(self.sites)} site(s) from {path}")

    def validate_sites(self):
        """Raise ConfigurationError for settings that cannot be used to build sites."""
        if self.sites and not self.client_id:
            raise ConfigurationError("clientid is required")
        seen = set()
        for site in self.sites:
            if site.id in seen:
                raise ConfigurationError(f"duplicate site id: {site.id}")
            seen.add(site.id)
