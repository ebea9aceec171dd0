# pyNet2 - Site cache and commands
# -*- coding: utf-8 -*-
"""
 Net2 Site

 A Site mirrors one Net2 server: users, doors, departments and access levels
 are fetched through a Net2Client, kept in memory and refreshed by the site's
 own SiteScheduler. Commands (doors, expiry, departments, access levels) are
 relayed to Net2 and the affected user is refreshed straight away.

 Each collection is replaced by assigning a freshly built dict, so readers
 always see a whole collection. Refreshes and user commands are serialized by a
 per-site RLock.
"""
import logging
import threading
import time
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from datetime import time as dtime
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from pynet2.api_lock import acquire_with_exponential_backoff
from pynet2.client import Net2Client
from pynet2.config import SiteConfig
from pynet2.exceptions import (CommandError, DepartmentNotFoundError, DoorNotFoundError, Net2ApiError,
                               Net2Error, UserNotFoundError)
from pynet2.models import (AREA_ID_OFFSET, INDIVIDUAL_ACCESS_PREFIX, AccessLevel, Department, Door,
                           DoorSequenceItem, Event, User, lower_keys)
from pynet2.scheduler import DEFAULT_INTERVAL, SiteScheduler

log = logging.getLogger(__name__)

STATIC_PATH = Path(__file__).parent / "static"
PHOTO_NEEDED = "photoneeded.png"
BLANK_PICTURE = "blank.gif"

QUERY_PATH = "/api/v1/customquery/querydb"
USERS_QUERY = "SELECT *, {column} as LocalID FROM UsersEx WHERE Active=1"
DEVICES_QUERY = "SELECT Address, statusFlag FROM devices"
LOCK_TIMEOUT = 30  # seconds a user command waits for a running refresh

UserMatch = Callable[[User], bool]
DepartmentMatch = Callable[[Department], bool]


@lru_cache(maxsize=None)
def static_file(name: str) -> bytes:
    return (STATIC_PATH / name).read_bytes()


def end_of_day(day: date) -> datetime:
    return datetime.combine(day, dtime(23, 59, 59))


def custom_field_column(field_id: int) -> str:
    """Map a Net2 custom field number to its UsersEx column name."""
    if field_id in (1, 2):
        suffix = "100"
    elif field_id in (6, 7):
        suffix = "60"
    elif field_id == 13:
        suffix = "Memo"
    else:
        suffix = "50"
    return f"Field{field_id}_{suffix}"


def prefix_match(prefix: Optional[str]) -> DepartmentMatch:
    """Department matcher for a configured prefix; an unset prefix matches nothing."""
    if not prefix:
        return lambda department: False
    return lambda department: department.name.startswith(prefix)


class Site:
    def __init__(self, config: SiteConfig, client: Net2Client, logger: Optional[logging.Logger] = None,
                 clock: Optional[Callable[[], datetime]] = None, poll_interval: float = DEFAULT_INTERVAL,
                 lock_timeout: float = LOCK_TIMEOUT):
        self.config = config
        self.client = client
        self.id = config.id
        self.name = config.name
        self.base_url = config.base_url
        self.log = logger or log
        self.clock = clock or datetime.now
        self.lock_timeout = lock_timeout

        self.users: Dict[int, User] = {}
        self.doors: Dict[int, Door] = {}
        self.departments: Dict[int, Department] = {}
        self.access_levels: Dict[int, AccessLevel] = {}
        self.unknown_tokens: List[Event] = []
        self.last_successful_refresh: Optional[datetime] = None

        self.local_id_column: Optional[str] = None  # resolved on first user refresh
        self._lock = threading.RLock()
        self._scheduler = SiteScheduler(poll_interval, self.refresh_all, name=self.name or str(self.id),
                                        logger=self.log)

    def __repr__(self):
        return f"Site(id={self.id}, name={self.name!r}, base_url={self.base_url!r})"

    # Lifecycle

    def start(self):
        if self._scheduler.running:
            raise Net2Error(f"site {self.name} already started")
        self._scheduler.start()
        self.log.info(f"[{self.name}] Started polling {self.base_url}")

    def stop(self):
        self._scheduler.stop()
        self.log.info(f"[{self.name}] Stopped")

    @property
    def running(self) -> bool:
        return self._scheduler.running

    # Refresh

    def _query(self, sql: str) -> List[Dict[str, Any]]:
        rows = self.client.get_json(QUERY_PATH, params={"query": sql})
        if not isinstance(rows, list):
            raise Net2ApiError(f"Unexpected query result from {self.name}")
        return rows

    def _get_list(self, path: str) -> List[Dict[str, Any]]:
        rows = self.client.get_json(path)
        if not isinstance(rows, list):
            raise Net2ApiError(f"Unexpected payload from {path}")
        return rows

    def _decode(self, rows: Iterable[Dict[str, Any]], decoder: Callable[[Dict[str, Any]], Any], label: str) -> list:
        items = []
        for row in rows:
            try:
                items.append(decoder(row))
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                self.log.warning(f"[{self.name}] Skipping undecodable {label} row: {e}")
        return items

    def _resolve_local_id_column(self) -> str:
        if self.local_id_column is not None:
            return self.local_id_column
        try:
            fields = self._get_list("/api/v1/users/customfieldnames")
        except Net2Error as e:
            # Retried on the next refresh
            self.log.error(f"[{self.name}] Unable to read custom field names: {e}")
            return "''"
        wanted = self.config.local_id_field
        for field in fields:
            if not isinstance(field, dict):
                continue
            field = lower_keys(field)
            if field.get("name") == wanted:
                try:
                    self.local_id_column = custom_field_column(int(field.get("id")))
                except (TypeError, ValueError):
                    break
                self.log.debug(f"[{self.name}] Local ID field '{wanted}' is {self.local_id_column}")
                return self.local_id_column
        self.log.warning(f"[{self.name}] Custom field '{wanted}' not found, local IDs will be empty")
        self.local_id_column = "''"
        return self.local_id_column

    def _users_query(self, user_id: Optional[int] = None) -> str:
        sql = USERS_QUERY.format(column=self._resolve_local_id_column())
        if user_id is not None:
            sql += f" AND userID={int(user_id)}"
        return sql

    def _decode_user(self, row: Dict[str, Any]) -> User:
        user = User.from_row(row)
        if user.access_levels and user.access_levels[0].startswith(INDIVIDUAL_ACCESS_PREFIX):
            user.access_levels = self._get_exact_access_levels(user, user.access_levels[0])
        return user

    def _get_exact_access_levels(self, user: User, fallback: str) -> List[str]:
        """Resolve an individually assigned user's levels and areas to names."""
        try:
            permissions = self.client.get_json(f"/api/v1/users/{user.id}/doorpermissionset")
        except Net2Error as e:
            self.log.error(f"[{self.name}] Unable to get permissions for {user.name}: {e}")
            return [fallback]
        if not isinstance(permissions, dict):
            return [fallback]
        permissions = lower_keys(permissions)
        try:
            level_ids = [int(i) for i in permissions.get("accesslevels") or []]
            for permission in permissions.get("individualpermissions") or []:
                if isinstance(permission, dict):
                    permission = lower_keys(permission)
                    permission = permission.get("areaid", permission.get("id"))
                level_ids.append(AREA_ID_OFFSET + int(permission))
        except (TypeError, ValueError) as e:
            self.log.error(f"[{self.name}] Unable to decode permissions for {user.name}: {e}")
            return [fallback]
        names = []
        for level_id in level_ids:
            level = self.access_levels.get(level_id)
            if level is None:
                self.log.debug(f"[{self.name}] Discarding invalid access level {level_id} for {user.name}")
                continue
            names.append(level.name)
        return names

    def refresh_users(self):
        with self._lock:
            rows = self._query(self._users_query())
            users = dict(self.users)
            for user in self._decode(rows, self._decode_user, "user"):
                users[user.id] = user
            self.users = users
            self.log.debug(f"[{self.name}] Cached {len(rows)} users")

    def refresh_user(self, user_id: int):
        with self._lock:
            rows = self._query(self._users_query(user_id))
            users = dict(self.users)
            for user in self._decode(rows, self._decode_user, "user"):
                users[user.id] = user
            self.users = users

    def _get_door_status(self) -> Dict[int, int]:
        statuses = {}
        for row in self._query(DEVICES_QUERY):
            try:
                row = lower_keys(row)
                statuses[int(row["address"])] = int(row.get("statusflag") or 0)
            except (AttributeError, KeyError, TypeError, ValueError):
                continue
        return statuses

    def refresh_doors(self):
        with self._lock:
            rows = self._get_list("/api/v1/doors")
            statuses = self._get_door_status()
            doors = {door.id: door for door in self._decode(rows, lambda r: Door.from_api(r, statuses), "door")}
            for monitored in self.config.monitored_doors:
                if monitored.id in doors:
                    doors[monitored.id].alarm_zone = monitored.zone
            self.doors = doors

    def refresh_departments(self):
        with self._lock:
            rows = self._get_list("/api/v1/departments")
            self.departments = {d.id: d for d in self._decode(rows, Department.from_api, "department")}

    def refresh_access_levels(self):
        with self._lock:
            levels = self._get_list("/api/v1/accesslevels")
            areas = self._get_list("/api/v1/accesslevels/areas")
            merged = {level.id: level for level in self._decode(levels, AccessLevel.from_api, "access level")}
            for area in self._decode(areas, AccessLevel.from_area, "area"):
                merged[area.id] = area
            self.access_levels = merged

    def refresh_all(self) -> bool:
        """Refresh every collection; True when all four succeeded."""
        self.log.debug(f"[{self.name}] Starting full update")
        with self._lock:
            start = time.perf_counter()
            complete = True
            steps = (
                ("access levels", self.refresh_access_levels),
                ("doors", self.refresh_doors),
                ("departments", self.refresh_departments),
                ("users", self.refresh_users),
            )
            for label, refresh in steps:
                try:
                    refresh()
                except Net2Error as e:
                    complete = False
                    self.log.error(f"[{self.name}] Unable to update {label}: {e}")
            if complete:
                self.last_successful_refresh = self.clock()
                self.log.debug(f"[{self.name}] Full update took {time.perf_counter() - start:.2f}s")
            else:
                self.log.info(f"[{self.name}] Full update incomplete")
        return complete

    def is_up_to_date(self, max_age: float = 180) -> bool:
        if self.last_successful_refresh is None:
            return False
        return self.clock() - self.last_successful_refresh < timedelta(seconds=max_age)

    # Read accessors

    def get_user(self, user_id: int) -> Optional[User]:
        return self.users.get(user_id)

    def get_users(self) -> Dict[int, User]:
        return self.users

    def get_doors(self) -> Dict[int, Door]:
        return self.doors

    def get_door(self, door_id: int) -> Optional[Door]:
        return self.doors.get(door_id)

    def get_monitored_doors(self) -> Dict[int, Door]:
        doors = self.doors
        monitored = {}
        for door in self.config.monitored_doors:
            if door.id in doors:
                monitored[door.id] = doors[door.id].model_copy(update={"name": door.name or doors[door.id].name})
        return monitored

    def get_openable_doors(self) -> Dict[str, List[DoorSequenceItem]]:
        return {door.name: [DoorSequenceItem(door=step.id, time=step.duration) for step in door.sequence]
                for door in self.config.openable_doors}

    def get_departments(self) -> Dict[int, Department]:
        return self.departments

    def get_access_levels(self) -> Dict[int, AccessLevel]:
        return self.access_levels

    def get_unknown_tokens(self) -> List[Event]:
        return list(self.unknown_tokens)

    def add_unknown_token(self, event: Event):
        self.unknown_tokens.append(event)

    # Department views

    def get_users_in_department(self, department_match: Optional[DepartmentMatch],
                                user_match: Optional[UserMatch] = None) -> Dict[int, User]:
        """Users with a department matching department_match (None means any user)."""
        return {user_id: user for user_id, user in self.users.items()
                if (department_match is None or any(department_match(d) for d in user.departments))
                and (user_match is None or user_match(user))}

    def get_active_users_in_department(self, department_match: Optional[DepartmentMatch]) -> Dict[int, User]:
        now = self.clock()
        return self.get_users_in_department(department_match, lambda user: user.is_active(now))

    def get_todays_users_in_department(self, department_match: Optional[DepartmentMatch]) -> Dict[int, User]:
        midnight = self.clock().replace(hour=0, minute=0, second=0, microsecond=0)
        return self.get_users_in_department(
            department_match, lambda user: user.last_access is not None and user.last_access > midnight)

    def get_active_users(self) -> Dict[int, User]:
        return self.get_active_users_in_department(None)

    def get_active_users_today(self) -> Dict[int, User]:
        return self.get_todays_users_in_department(None)

    def get_active_non_staff(self) -> Dict[int, User]:
        staff = prefix_match(self.config.staff_prefix)
        return self.get_active_users_in_department(lambda department: not staff(department))

    def get_cancelled_users(self) -> Dict[int, User]:
        return self.get_users_in_department(prefix_match(self.config.cancelled_prefix))

    def get_staff(self) -> Dict[int, User]:
        return self.get_users_in_department(prefix_match(self.config.staff_prefix))

    def get_active_staff(self) -> Dict[int, User]:
        return self.get_active_users_in_department(prefix_match(self.config.staff_prefix))

    def get_active_staff_today(self) -> Dict[int, User]:
        return self.get_todays_users_in_department(prefix_match(self.config.staff_prefix))

    def get_visitors(self) -> Dict[int, User]:
        return self.get_users_in_department(prefix_match(self.config.visitor_prefix))

    def get_active_visitors(self) -> Dict[int, User]:
        return self.get_active_users_in_department(prefix_match(self.config.visitor_prefix))

    def get_active_visitors_today(self) -> Dict[int, User]:
        return self.get_todays_users_in_department(prefix_match(self.config.visitor_prefix))

    def get_contractors(self) -> Dict[int, User]:
        return self.get_users_in_department(prefix_match(self.config.contractor_prefix))

    def get_active_contractors(self) -> Dict[int, User]:
        return self.get_active_users_in_department(prefix_match(self.config.contractor_prefix))

    def get_active_contractors_today(self) -> Dict[int, User]:
        return self.get_todays_users_in_department(prefix_match(self.config.contractor_prefix))

    def get_cleaners(self) -> Dict[int, User]:
        return self.get_users_in_department(prefix_match(self.config.cleaner_prefix))

    def get_active_cleaners(self) -> Dict[int, User]:
        return self.get_active_users_in_department(prefix_match(self.config.cleaner_prefix))

    def get_active_cleaners_today(self) -> Dict[int, User]:
        return self.get_todays_users_in_department(prefix_match(self.config.cleaner_prefix))

    def get_customers(self) -> Dict[int, User]:
        return self.get_users_in_department(prefix_match(self.config.customer_prefix))

    def get_active_customers(self) -> Dict[int, User]:
        return self.get_active_users_in_department(prefix_match(self.config.customer_prefix))

    def get_active_customers_today(self) -> Dict[int, User]:
        return self.get_todays_users_in_department(prefix_match(self.config.customer_prefix))

    # Pictures

    def get_user_picture(self, user_id: int) -> bytes:
        r = self.client.get(f"/api/v1/users/{user_id}/image")
        if r.status_code == 404:
            return static_file(PHOTO_NEEDED)
        if r.status_code != 200:
            self.log.error(f"[{self.name}] Unable to get picture for user {user_id} - status {r.status_code}")
            raise UserNotFoundError("user not found")
        return r.content

    def get_user_picture_by_local_id(self, local_id: str) -> bytes:
        matches = [user for user in self.users.values() if user.local_id and user.local_id == str(local_id)]
        if len(matches) != 1:
            raise UserNotFoundError("user not found")
        return self.get_user_picture(matches[0].id)

    @staticmethod
    def get_blank_picture() -> bytes:
        return static_file(BLANK_PICTURE)

    # Door commands

    def _door_command(self, door_id: int, path: str, body: dict, action: str):
        if door_id not in self.doors:
            raise DoorNotFoundError(f"invalid door: {door_id}")
        try:
            r = self.client.post(path, body)
        except Net2Error as e:
            self.log.error(f"[{self.name}] Unable to {action} door {door_id}: {e}")
            raise CommandError(f"unable to {action} door") from e
        if r.status_code != 200:
            self.log.error(f"[{self.name}] Unable to {action} door {door_id} - status {r.status_code}")
            raise CommandError(f"unable to {action} door")
        self.log.info(f"[{self.name}] {action.capitalize()} door {door_id}")

    def open_door(self, door_id: int):
        self._door_command(door_id, "/api/v1/commands/door/open", {"doorId": door_id}, "open")

    def close_door(self, door_id: int):
        self._door_command(door_id, "/api/v1/commands/door/close", {"doorId": door_id}, "close")

    def open_door_with_relay(self, door_id: int, second_relay: bool = False):
        relay = "Relay2" if second_relay else "Relay1"
        body = {
            "DoorId": door_id,
            "RelayFunction": {"RelayId": relay, "RelayAction": "TimedOpen", "RelayOpenTime": 0},
            "LedFlash": 3,
        }
        self._door_command(door_id, "/api/v1/commands/door/control", body, "open")

    def sequence_door(self, items: Iterable[DoorSequenceItem]):
        """Open each door in order, waiting item.time seconds after each one."""
        for item in items:
            try:
                self.open_door(item.door)
            except Net2Error as e:
                self.log.warning(f"[{self.name}] Sequence step for door {item.door} failed: {e}")
            if item.time > 0:
                time.sleep(item.time)

    # User commands

    @contextmanager
    def _command_lock(self):
        if not acquire_with_exponential_backoff(self._lock, self.lock_timeout):
            self.log.error(f"[{self.name}] Timed out waiting for site lock")
            raise CommandError(f"site {self.name} is busy")
        try:
            yield
        finally:
            self._lock.release()

    def _require_user(self, user_id: int) -> User:
        user = self.users.get(user_id)
        if user is None:
            raise UserNotFoundError(f"invalid user: {user_id}")
        return user

    def _send(self, method: str, path: str, body: Any, ok: Iterable[int], action: str):
        try:
            r = self.client.request(method, path, body=body)
        except Net2Error as e:
            self.log.error(f"[{self.name}] Unable to {action}: {e}")
            raise CommandError(f"unable to {action}") from e
        if r.status_code not in ok:
            self.log.error(f"[{self.name}] Unable to {action} - status {r.status_code} from {path}")
            raise CommandError(f"unable to {action}")

    def _apply(self, user_id: int, **fields):
        """Write fields to the cached user, then re-fetch it from Net2."""
        users = dict(self.users)
        if user_id in users:
            users[user_id] = users[user_id].model_copy(update=fields)
            self.users = users
        try:
            self.refresh_user(user_id)
        except Net2Error as e:
            self.log.warning(f"[{self.name}] Unable to refresh user {user_id} after update: {e}")

    def tomorrow_end_of_day(self) -> datetime:
        return end_of_day(self.clock().date() + timedelta(days=1))

    def yesterday_end_of_day(self) -> datetime:
        return end_of_day(self.clock().date() - timedelta(days=1))

    def update_user_info(self, user_id: int, first_name: Optional[str] = None, surname: Optional[str] = None,
                         expiry: Optional[datetime] = None):
        """Update name and expiry; the cached expiry is kept when none is given."""
        with self._command_lock():
            user = self._require_user(user_id)
            if expiry is None:
                expiry = user.expiry
            info = {"Id": user_id, "ExpiryDate": expiry.isoformat() if expiry else None}
            changes = {"expiry": expiry}
            if first_name is not None:
                info["FirstName"] = first_name
                changes["first_name"] = first_name
            if surname is not None:
                info["LastName"] = surname
                changes["surname"] = surname
            self._send("PUT", f"/api/v1/users/{user_id}", info, (200,), "update user info")
            self.log.info(f"[{self.name}] Updated user {user_id} (expiry {expiry})")
            self._apply(user_id, **changes)

    def activate_user(self, user_id: int):
        self.update_user_info(user_id, expiry=self.tomorrow_end_of_day())

    def deactivate_user(self, user_id: int):
        self.update_user_info(user_id, expiry=self.yesterday_end_of_day())

    def update_user_name_and_expiry_and_access_level(self, user_id: int, first_name: str, surname: str,
                                                     expiry: datetime, level: int):
        with self._command_lock():
            self.update_user_info(user_id, first_name, surname, expiry)
            self.set_access_level(user_id, level)

    def change_department(self, user_id: int, department_id: int):
        with self._command_lock():
            self._require_user(user_id)
            department = self.departments.get(department_id)
            if department is None:
                raise DepartmentNotFoundError(f"invalid department: {department_id}")
            self._send("PUT", f"/api/v1/users/{user_id}/departments",
                       {"Id": department.id, "Name": department.name}, (204,), "change department")
            self.log.info(f"[{self.name}] Moved user {user_id} to {department.name}")
            self._apply(user_id, departments=[department])

    def update_user_access_levels(self, user_id: int, level_ids: List[int]):
        with self._command_lock():
            self._require_user(user_id)
            body = {"accessLevels": list(level_ids), "individualPermissions": []}
            self._send("PUT", f"/api/v1/users/{user_id}/doorpermissionset", body, (200, 204),
                       "update access levels")
            names = [self.access_levels[i].name for i in level_ids if i in self.access_levels]
            self._apply(user_id, access_levels=names)

    def set_access_level(self, user_id: int, level: int):
        """Replace the user's access levels with one level; -1 means none."""
        self.update_user_access_levels(user_id, [0] if level == -1 else [level])

    def _access_level_ids(self, user: User) -> List[int]:
        by_name = {level.name: level for level in self.access_levels.values()}
        ids = []
        for name in user.access_levels:
            level = by_name.get(name)
            if level is None:
                self.log.warning(f"[{self.name}] Access level '{name}' of {user.name} no longer exists")
            elif level.is_area:
                self.log.warning(f"[{self.name}] Individual area '{name}' of {user.name} cannot be kept")
            else:
                ids.append(level.id)
        return ids

    def add_access_level(self, user_id: int, level: int):
        with self._command_lock():
            ids = self._access_level_ids(self._require_user(user_id))
            if level not in ids:
                ids.append(level)
            self.update_user_access_levels(user_id, ids)

    def remove_access_level(self, user_id: int, level: int):
        with self._command_lock():
            ids = self._access_level_ids(self._require_user(user_id))
            self.update_user_access_levels(user_id, [i for i in ids if i != level])

    def reset_anti_passback(self, user_id: int):
        with self._command_lock():
            self._require_user(user_id)
            self._send("POST", "/api/v1/commands/antipassback/reset", {"userId": user_id}, (200,),
                       "reset anti-passback")
            self.log.info(f"[{self.name}] Reset anti-passback for user {user_id}")
            self._apply(user_id)
