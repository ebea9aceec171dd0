"""Pytest configuration and fixtures."""
import json
import threading
from datetime import datetime
from unittest.mock import patch

import pytest
import requests

from pynet2.client import Net2Client
from pynet2.config import SiteConfig
from pynet2.site import QUERY_PATH, Site
from pynet2.site_manager import SiteManager

FIXED_NOW = datetime(2024, 3, 14, 10, 30, 0)

ACCESS_LEVELS = [{"id": 1, "name": "All Hours"}, {"id": 5, "name": "Office"}]
AREAS = [{"areaID": 5, "name": "Server Room"}]
DOORS = [{"id": 1001, "name": "Front Door"}, {"id": 1002, "name": "Back Door"}]
DEVICES = [{"Address": 1001, "statusFlag": 0x0B}, {"Address": 1002, "statusFlag": 0x02}]
DEPARTMENTS = [{"Id": 1, "Name": "Staff-Eng"}, {"Id": 2, "Name": "Visitor"}, {"Id": 3, "Name": "Cancelled"}]
CUSTOM_FIELDS = [{"id": 3, "name": "Car registration"}, {"id": 9, "name": "Payroll"}]


def user_rows():
    return {
        1: {"userID": 1, "UserGUID": "guid-1", "FirstName": "Alice", "Surname": "Smith", "PIN": "1234",
            "DepartmentID": 1, "DepartmentName": "Staff-Eng", "ActivateDate": "2020-01-01T00:00:00",
            "ExpiryDate": "2030-01-01T00:00:00", "lastAccessTime": "2024-03-14T08:00:00",
            "lastKnownLocation": "Front Door", "AccessLevelName": "All Hours", "LocalID": "P001"},
        2: {"userID": 2, "UserGUID": "guid-2", "FirstName": "Bob", "Surname": "Jones", "PIN": "",
            "DepartmentID": 2, "DepartmentName": "Visitor", "ActivateDate": "2024-03-01T00:00:00",
            "ExpiryDate": "2024-03-13T23:59:59", "lastAccessTime": "2024-03-13T09:00:00",
            "lastKnownLocation": "Back Door", "AccessLevelName": "Office", "LocalID": "P002"},
        3: {"userID": 3, "UserGUID": "guid-3", "FirstName": "Carol", "Surname": "White", "PIN": "",
            "DepartmentID": 1, "DepartmentName": "Staff-Eng", "ActivateDate": "2021-06-01T00:00:00",
            "ExpiryDate": "0001-01-01T00:00:00", "lastAccessTime": "2024-03-14T09:15:00",
            "lastKnownLocation": "Front Door", "AccessLevelName": "Individual: Carol White", "LocalID": "P003"},
        4: {"userID": 4, "UserGUID": "guid-4", "FirstName": "Dan", "Surname": "Brown", "PIN": "",
            "DepartmentID": 3, "DepartmentName": "Cancelled", "ActivateDate": "2019-01-01T00:00:00",
            "ExpiryDate": None, "lastAccessTime": None,
            "lastKnownLocation": "", "AccessLevelName": "", "LocalID": ""},
    }


def make_response(status=200, payload=None, content=None, url=""):
    r = requests.Response()
    r.status_code = status
    if content is not None:
        r._content = content
    elif payload is not None:
        r._content = json.dumps(payload).encode("utf-8")
        r.headers["Content-Type"] = "application/json"
    else:
        r._content = b""
    r.url = url
    return r


class Clock:
    """Settable clock for Site."""

    def __init__(self, now=FIXED_NOW):
        self.now = now

    def __call__(self):
        return self.now


class StubClient(Net2Client):
    """Net2Client serving canned responses from an in-memory Net2 server.

    Routes are keyed by (method, path) and map to handlers taking (body, params).
    Users live in ``rows`` and are updated by the user PUT routes, so a
    re-fetch after a command sees the written values.
    """

    def __init__(self, rows=None):
        super().__init__("http://net2.test:8080", "client-id", "user", "pass")
        self.calls = []
        self.routes = {}
        self.queries = []
        self.rows = user_rows() if rows is None else rows
        self._calls_lock = threading.Lock()

        self.route("GET", "/api/v1/users/customfieldnames", CUSTOM_FIELDS)
        self.route("GET", "/api/v1/accesslevels", ACCESS_LEVELS)
        self.route("GET", "/api/v1/accesslevels/areas", AREAS)
        self.route("GET", "/api/v1/doors", DOORS)
        self.route("GET", "/api/v1/departments", DEPARTMENTS)
        self.route("GET", "/api/v1/users/3/doorpermissionset",
                   {"accessLevels": [1, 99], "individualPermissions": [{"areaID": 5}]})
        self.route("POST", "/api/v1/commands/door/open", {})
        self.route("POST", "/api/v1/commands/door/close", {})
        self.route("POST", "/api/v1/commands/door/control", {})
        self.route("POST", "/api/v1/commands/antipassback/reset", {})
        self.query("FROM devices", lambda sql: DEVICES)
        self.query("FROM UsersEx", self._users_query)
        for user_id in self.rows:
            self.handle("PUT", f"/api/v1/users/{user_id}", self._put_user)
            self.handle("PUT", f"/api/v1/users/{user_id}/departments", self._put_department(user_id))
            self.handle("PUT", f"/api/v1/users/{user_id}/doorpermissionset",
                        lambda body, params: make_response(200, {}))

    def handle(self, method, path, handler):
        self.routes[(method, path)] = handler

    def route(self, method, path, payload=None, status=200, content=None, error=None):
        def handler(body, params):
            if error is not None:
                raise error
            return make_response(status, payload, content, url=self.url(path))
        self.handle(method, path, handler)

    def fail(self, method, path, error):
        self.route(method, path, error=error)

    def query(self, match, rows_for_sql):
        self.queries.insert(0, (match, rows_for_sql))

    def _users_query(self, sql):
        if "userID=" in sql:
            user_id = int(sql.rsplit("userID=", 1)[1])
            return [self.rows[user_id]] if user_id in self.rows else []
        return list(self.rows.values())

    def _put_user(self, body, params):
        row = self.rows[body["Id"]]
        row["ExpiryDate"] = body.get("ExpiryDate")
        row["FirstName"] = body.get("FirstName", row["FirstName"])
        row["Surname"] = body.get("LastName", row["Surname"])
        return make_response(200, {})

    def _put_department(self, user_id):
        def handler(body, params):
            self.rows[user_id]["DepartmentID"] = body["Id"]
            self.rows[user_id]["DepartmentName"] = body["Name"]
            return make_response(204)
        return handler

    def request(self, method, path, body=None, params=None, recursive=False):
        with self._calls_lock:
            self.calls.append((method, path, body, params))
        if method == "GET" and path == QUERY_PATH:
            sql = (params or {}).get("query", "")
            for match, rows_for_sql in self.queries:
                if match in sql:
                    result = rows_for_sql(sql)
                    if isinstance(result, Exception):
                        raise result
                    return make_response(200, result, url=self.url(path))
            return make_response(500, url=self.url(path))
        handler = self.routes.get((method, path))
        if handler is None:
            return make_response(404, url=self.url(path))
        return handler(body, params)

    def calls_to(self, method, path):
        return [call for call in self.calls if call[0] == method and call[1] == path]


def make_config(**overrides):
    data = {
        "id": 1,
        "name": "Head Office",
        "ip": "10.0.0.5",
        "username": "user",
        "password": "pass",
        "localIDField": "Payroll",
        "staffDepartmentPrefix": "Staff",
        "visitorDepartmentPrefix": "Visitor",
        "contractorDepartmentsPrefix": "Contract",
        "cleaningDepartmentPrefix": "Clean",
        "customerDepartmentPrefix": "Customer",
        "cancelledDepartmentPrefix": "Cancelled",
        "monitoredDoors": [{"id": 1001, "doorName": "Main Entrance", "zoneName": "Reception"},
                           {"id": 4242, "doorName": "Gone", "zoneName": "Nowhere"}],
        "openableDoors": [{"name": "Airlock", "sequence": [{"id": 1001, "duration": "2s"}, {"id": 1002}]}],
    }
    data.update(overrides)
    return SiteConfig(**data)


@pytest.fixture
def site_config():
    return make_config()


@pytest.fixture
def stub():
    return StubClient()


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def site(site_config, stub, clock):
    return Site(site_config, stub, clock=clock, lock_timeout=1)


@pytest.fixture
def loaded_site(site):
    assert site.refresh_all() is True
    return site


@pytest.fixture
def manager(loaded_site):
    """Started manager holding loaded_site, without background schedulers."""
    manager = SiteManager(max_workers=2)
    with patch.object(Site, "start"):
        manager.start([loaded_site])
    yield manager
    manager.stop()
