"""Pydantic models for the cached Net2 entities.

Net2 is inconsistent about key casing ("Id" for departments, "id" for doors,
"userID" in custom queries), so every ``from_api`` constructor matches keys
case-insensitively.
"""
import logging
from datetime import datetime
from enum import IntFlag
from typing import Any, Dict, List, Optional

from dateutil import parser as date_parser
from dateutil import tz
from pydantic import BaseModel, Field

log = logging.getLogger(__name__)

# Areas share the access level table, offset into their own ID range
AREA_ID_OFFSET = 10000
AREA_NAME_PREFIX = "Idv: "
INDIVIDUAL_ACCESS_PREFIX = "Individual: "


class DoorStatus(IntFlag):
    """Bits of the device statusFlag column."""
    NO_FLAG = 0
    INTRUDER_ALARM = 0x01
    PSU_OK = 0x02
    TAMPER_OK = 0x04
    CONTACT_CLOSED = 0x08
    ALARM_TRIPPED = 0x10
    DOOR_OPEN = 0x20


def lower_keys(row: Dict[str, Any]) -> Dict[str, Any]:
    return {str(k).lower(): v for k, v in (row or {}).items()}


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a Net2 timestamp into a naive local datetime, None if absent or invalid."""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = date_parser.isoparse(value)
    except (ValueError, OverflowError):
        log.debug(f"Unable to parse timestamp '{value}'")
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(tz.tzlocal()).replace(tzinfo=None)
    if parsed.year <= 1:
        # Zero time used by Net2 for "never"
        return None
    return parsed


class Department(BaseModel):
    id: int
    name: str = ""

    @classmethod
    def from_api(cls, row: Dict[str, Any]) -> "Department":
        row = lower_keys(row)
        return cls(id=int(row["id"]), name=row.get("name") or "")


class AccessLevel(BaseModel):
    id: int
    name: str = ""

    @classmethod
    def from_api(cls, row: Dict[str, Any]) -> "AccessLevel":
        row = lower_keys(row)
        return cls(id=int(row["id"]), name=row.get("name") or "")

    @classmethod
    def from_area(cls, row: Dict[str, Any]) -> "AccessLevel":
        row = lower_keys(row)
        area_id = int(row.get("areaid", row.get("id")))
        return cls(id=AREA_ID_OFFSET + area_id, name=AREA_NAME_PREFIX + (row.get("name") or ""))

    @property
    def is_area(self) -> bool:
        return self.id >= AREA_ID_OFFSET


class Door(BaseModel):
    id: int
    name: str = ""
    status_flag: int = 0
    alarm_status: int = 0
    alarm_zone: Optional[str] = None

    @classmethod
    def from_api(cls, row: Dict[str, Any], statuses: Optional[Dict[int, int]] = None) -> "Door":
        """Build a door, joining its device statusFlag by address."""
        row = lower_keys(row)
        door_id = int(row["id"])
        status_flag = int((statuses or {}).get(door_id, 0))
        return cls(id=door_id, name=row.get("name") or "", status_flag=status_flag,
                   alarm_status=status_flag & DoorStatus.INTRUDER_ALARM)

    @property
    def flags(self) -> List[str]:
        return [flag.name for flag in DoorStatus if flag and self.status_flag & flag]


class User(BaseModel):
    id: int
    guid: str = ""
    first_name: str = ""
    surname: str = ""
    pin: str = ""
    departments: List[Department] = Field(default_factory=list)
    activated: Optional[datetime] = None
    expiry: Optional[datetime] = None
    last_access: Optional[datetime] = None
    last_known_location: str = ""
    access_levels: List[str] = Field(default_factory=list)
    local_id: str = ""

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "User":
        """Build a user from a UsersEx custom query row, access levels left unresolved."""
        row = lower_keys(row)
        departments = []
        if row.get("departmentid") is not None:
            departments.append(Department(id=int(row["departmentid"]), name=row.get("departmentname") or ""))
        access_level = row.get("accesslevelname")
        return cls(
            id=int(row["userid"]),
            guid=row.get("userguid") or "",
            first_name=row.get("firstname") or "",
            surname=row.get("surname") or "",
            pin=str(row.get("pin") or ""),
            departments=departments,
            activated=parse_timestamp(row.get("activatedate")),
            expiry=parse_timestamp(row.get("expirydate")),
            last_access=parse_timestamp(row.get("lastaccesstime")),
            last_known_location=row.get("lastknownlocation") or "",
            access_levels=[access_level] if access_level else [],
            local_id=str(row.get("localid") or ""),
        )

    @property
    def name(self) -> str:
        return f"{self.first_name} {self.surname}".strip()

    def is_active(self, now: datetime) -> bool:
        return self.expiry is None or self.expiry > now


class DoorSequenceItem(BaseModel):
    door: int
    time: float = 0.0  # seconds to wait after opening


class Event(BaseModel):
    date: datetime
    location: str = ""
    token: int
