import logging
import threading
from datetime import datetime

import pytest

from pynet2.exceptions import (CommandError, DepartmentNotFoundError, DoorNotFoundError, Net2ConnectionError,
                               UserNotFoundError)
from pynet2.models import DoorSequenceItem
from pynet2.site import PHOTO_NEEDED, static_file
from pynet2.tests.conftest import FIXED_NOW, make_response

OPEN_PATH = "/api/v1/commands/door/open"
PERMISSIONS_PATH = "/api/v1/users/{}/doorpermissionset"


def writes(stub):
    return [call for call in stub.calls if call[0] in ("PUT", "POST")]


# Doors

def test_open_door(loaded_site, stub):
    loaded_site.open_door(1001)
    assert stub.calls_to("POST", OPEN_PATH) == [("POST", OPEN_PATH, {"doorId": 1001}, None)]


def test_close_door(loaded_site, stub):
    loaded_site.close_door(1002)
    assert stub.calls_to("POST", "/api/v1/commands/door/close")[0][2] == {"doorId": 1002}


def test_open_door_with_relay(loaded_site, stub):
    loaded_site.open_door_with_relay(1001, second_relay=True)
    body = stub.calls_to("POST", "/api/v1/commands/door/control")[0][2]
    assert body["DoorId"] == 1001
    assert body["RelayFunction"]["RelayId"] == "Relay2"


@pytest.mark.parametrize("command", ["open_door", "close_door", "open_door_with_relay"])
def test_unknown_door_makes_no_remote_call(loaded_site, stub, command):
    with pytest.raises(DoorNotFoundError):
        getattr(loaded_site, command)(4242)
    assert writes(stub) == []


def test_open_door_failure(loaded_site, stub):
    stub.route("POST", OPEN_PATH, status=500)
    with pytest.raises(CommandError, match="unable to open door"):
        loaded_site.open_door(1001)


def test_open_door_transport_failure(loaded_site, stub):
    stub.fail("POST", OPEN_PATH, Net2ConnectionError("down"))
    with pytest.raises(CommandError):
        loaded_site.open_door(1001)


def test_sequence_opens_in_order_and_continues_after_failure(loaded_site, stub):
    def open_door(body, params):
        return make_response(500 if body["doorId"] == 1001 else 200)

    stub.handle("POST", OPEN_PATH, open_door)
    loaded_site.sequence_door([DoorSequenceItem(door=1001, time=0), DoorSequenceItem(door=1002, time=0)])
    assert [call[2]["doorId"] for call in stub.calls_to("POST", OPEN_PATH)] == [1001, 1002]


# Expiry

def test_activate_user(loaded_site, stub):
    loaded_site.activate_user(2)
    put = stub.calls_to("PUT", "/api/v1/users/2")[0]
    assert put[2] == {"Id": 2, "ExpiryDate": "2024-03-15T23:59:59"}
    user = loaded_site.get_user(2)
    assert user.expiry == datetime(2024, 3, 15, 23, 59, 59)
    assert user.is_active(FIXED_NOW)


def test_deactivate_user(loaded_site):
    loaded_site.deactivate_user(1)
    user = loaded_site.get_user(1)
    assert user.expiry == datetime(2024, 3, 13, 23, 59, 59)
    assert not user.is_active(FIXED_NOW)
    assert 1 not in loaded_site.get_active_staff()


def test_update_user_info_keeps_expiry(loaded_site, stub):
    loaded_site.update_user_info(1, first_name="Alicia")
    body = stub.calls_to("PUT", "/api/v1/users/1")[0][2]
    assert body == {"Id": 1, "ExpiryDate": "2030-01-01T00:00:00", "FirstName": "Alicia"}
    user = loaded_site.get_user(1)
    assert user.first_name == "Alicia"
    assert user.expiry == datetime(2030, 1, 1)


def test_update_user_info_failure_leaves_cache(loaded_site, stub):
    stub.route("PUT", "/api/v1/users/1", status=500)
    with pytest.raises(CommandError):
        loaded_site.deactivate_user(1)
    assert loaded_site.get_user(1).expiry == datetime(2030, 1, 1)


def test_refetch_failure_keeps_written_fields(loaded_site, stub):
    stub.query("FROM UsersEx", lambda sql: Net2ConnectionError("down"))
    loaded_site.deactivate_user(1)
    assert loaded_site.get_user(1).expiry == datetime(2024, 3, 13, 23, 59, 59)


def test_update_name_expiry_and_access_level(loaded_site, stub):
    expiry = datetime(2025, 1, 1, 23, 59, 59)
    loaded_site.update_user_name_and_expiry_and_access_level(1, "Alicia", "Smyth", expiry, -1)
    puts = [call for call in stub.calls if call[0] == "PUT"]
    assert [call[1] for call in puts] == ["/api/v1/users/1", PERMISSIONS_PATH.format(1)]
    assert puts[0][2] == {"Id": 1, "ExpiryDate": "2025-01-01T23:59:59", "FirstName": "Alicia", "LastName": "Smyth"}
    assert puts[1][2] == {"accessLevels": [0], "individualPermissions": []}
    assert loaded_site.get_user(1).name == "Alicia Smyth"


# Departments

def test_change_department(loaded_site, stub):
    loaded_site.change_department(2, 1)
    assert stub.calls_to("PUT", "/api/v1/users/2/departments")[0][2] == {"Id": 1, "Name": "Staff-Eng"}
    assert 2 in loaded_site.get_staff()


def test_change_department_unknown(loaded_site, stub):
    with pytest.raises(DepartmentNotFoundError):
        loaded_site.change_department(2, 99)
    assert writes(stub) == []


# Access levels

def test_set_access_level(loaded_site, stub):
    loaded_site.set_access_level(1, 5)
    assert stub.calls_to("PUT", PERMISSIONS_PATH.format(1))[0][2] == {"accessLevels": [5], "individualPermissions": []}


def test_set_no_access_level(loaded_site, stub):
    loaded_site.set_access_level(1, -1)
    assert stub.calls_to("PUT", PERMISSIONS_PATH.format(1))[0][2]["accessLevels"] == [0]


def test_add_access_level(loaded_site, stub):
    loaded_site.add_access_level(1, 5)
    assert stub.calls_to("PUT", PERMISSIONS_PATH.format(1))[0][2]["accessLevels"] == [1, 5]


def test_add_existing_access_level(loaded_site, stub):
    loaded_site.add_access_level(1, 1)
    assert stub.calls_to("PUT", PERMISSIONS_PATH.format(1))[0][2]["accessLevels"] == [1]


def test_add_access_level_drops_areas(loaded_site, stub, caplog):
    with caplog.at_level(logging.WARNING):
        loaded_site.add_access_level(3, 5)
    assert stub.calls_to("PUT", PERMISSIONS_PATH.format(3))[0][2]["accessLevels"] == [1, 5]
    assert "Server Room" in caplog.text


def test_remove_access_level(loaded_site, stub):
    loaded_site.remove_access_level(1, 1)
    assert stub.calls_to("PUT", PERMISSIONS_PATH.format(1))[0][2]["accessLevels"] == []


def test_access_level_failure(loaded_site, stub):
    stub.route("PUT", PERMISSIONS_PATH.format(1), status=400)
    with pytest.raises(CommandError):
        loaded_site.set_access_level(1, 5)


# Anti-passback

def test_reset_anti_passback(loaded_site, stub):
    loaded_site.reset_anti_passback(1)
    assert stub.calls_to("POST", "/api/v1/commands/antipassback/reset")[0][2] == {"userId": 1}


@pytest.mark.parametrize("command, args", [
    ("activate_user", ()),
    ("deactivate_user", ()),
    ("update_user_info", ("Name",)),
    ("set_access_level", (1,)),
    ("add_access_level", (1,)),
    ("remove_access_level", (1,)),
    ("change_department", (1,)),
    ("reset_anti_passback", ()),
])
def test_unknown_user_makes_no_remote_call(loaded_site, stub, command, args):
    with pytest.raises(UserNotFoundError):
        getattr(loaded_site, command)(99, *args)
    assert writes(stub) == []


def test_command_times_out_behind_refresh(loaded_site, stub):
    held = threading.Event()
    release = threading.Event()

    def hold_lock():
        with loaded_site._lock:
            held.set()
            release.wait(5)

    holder = threading.Thread(target=hold_lock)
    holder.start()
    assert held.wait(5)
    loaded_site.lock_timeout = 0.1
    try:
        with pytest.raises(CommandError, match="busy"):
            loaded_site.activate_user(1)
    finally:
        release.set()
        holder.join(5)
    assert writes(stub) == []


# Pictures

def test_picture(loaded_site, stub):
    stub.route("GET", "/api/v1/users/1/image", content=b"\xff\xd8jpeg")
    assert loaded_site.get_user_picture(1) == b"\xff\xd8jpeg"


def test_missing_picture_returns_placeholder(loaded_site):
    assert loaded_site.get_user_picture(2) == static_file(PHOTO_NEEDED)
    assert loaded_site.get_user_picture(2).startswith(b"\x89PNG")


def test_picture_error(loaded_site, stub):
    stub.route("GET", "/api/v1/users/1/image", status=500)
    with pytest.raises(UserNotFoundError):
        loaded_site.get_user_picture(1)


def test_picture_by_local_id(loaded_site, stub):
    stub.route("GET", "/api/v1/users/3/image", content=b"carol")
    assert loaded_site.get_user_picture_by_local_id("P003") == b"carol"
    with pytest.raises(UserNotFoundError):
        loaded_site.get_user_picture_by_local_id("nobody")


def test_blank_picture(loaded_site):
    assert loaded_site.get_blank_picture().startswith(b"GIF")
