"""Tests for the site manager."""
from datetime import timedelta
from unittest.mock import patch

import pytest

from pynet2.config import Settings
from pynet2.exceptions import Net2ConnectionError, Net2Error, SiteNotFoundError
from pynet2.models import DoorSequenceItem
from pynet2.site import Site
from pynet2.site_manager import SiteManager, build_sites, command_lock_timeout
from pynet2.tests.conftest import FIXED_NOW, StubClient, make_config


def make_site(site_id, clock):
    return Site(make_config(id=site_id, name=f"Site {site_id}"), StubClient(), clock=clock, lock_timeout=1)


@pytest.fixture
def two_sites(clock):
    return make_site(1, clock), make_site(2, clock)


@pytest.fixture
def started(two_sites):
    manager = SiteManager(max_workers=2)
    with patch.object(Site, "start"):
        manager.start(two_sites)
    yield manager
    manager.stop()


def test_not_started_manager_is_empty(two_sites):
    """Test that nothing is visible before start."""
    manager = SiteManager()
    assert manager.get_sites() == {}
    assert manager.get_site(1) is None
    assert manager.count() == 0
    assert manager.update_all() == {}


def test_start_registers_sites(started, two_sites):
    assert started.count() == 2
    assert started.get_site(2) is two_sites[1]
    assert started.get_site(3) is None


def test_second_start_is_a_no_op(started, two_sites, clock):
    """Test that starting again keeps the running pool and site set."""
    executor = started._executor
    with patch.object(Site, "start") as site_start:
        started.start([make_site(3, clock)])
    site_start.assert_not_called()
    assert started._executor is executor
    assert set(started.get_sites()) == {1, 2}
    started.stop()
    assert executor._shutdown


def test_start_failure_leaves_manager_not_started(two_sites):
    """Test that one failing site fails start without stopping the others."""
    manager = SiteManager()
    with patch.object(two_sites[0], "start", side_effect=Net2Error("boom")), \
            patch.object(two_sites[1], "start") as second_start:
        with pytest.raises(Net2Error, match="unable to start all sites"):
            manager.start(two_sites)
    second_start.assert_called_once()
    assert manager.get_sites() == {}
    executor = manager._executor
    with patch.object(Site, "start"):
        manager.start(two_sites)
    assert executor._shutdown
    assert manager.count() == 2
    manager.stop()


def test_update_all_isolates_site_failures(started, two_sites, clock):
    """Test that a failed door fetch on one site leaves the other site's refresh intact."""
    site_a, site_b = two_sites
    assert started.update_all() == {1: True, 2: True}
    doors_a = site_a.doors

    site_a.client.fail("GET", "/api/v1/doors", Net2ConnectionError("down"))
    site_b.client.route("GET", "/api/v1/departments", [{"Id": 7, "Name": "Staff-Ops"}])
    clock.now = FIXED_NOW + timedelta(minutes=1)

    assert started.update_all() == {1: False, 2: True}
    assert site_a.doors is doors_a
    assert site_a.last_successful_refresh == FIXED_NOW
    assert site_b.last_successful_refresh == FIXED_NOW + timedelta(minutes=1)
    assert set(site_b.departments) == {7}


def test_trigger_update_all_returns_future(started):
    future = started.trigger_update_all()
    assert future.result(timeout=5) == {1: True, 2: True}


def test_trigger_sequence(started, two_sites):
    site = two_sites[0]
    site.refresh_doors()
    future = started.trigger_sequence(1, [DoorSequenceItem(door=1001), DoorSequenceItem(door=1002)])
    future.result(timeout=5)
    opened = site.client.calls_to("POST", "/api/v1/commands/door/open")
    assert [call[2]["doorId"] for call in opened] == [1001, 1002]


def test_trigger_sequence_unknown_site(started):
    with pytest.raises(SiteNotFoundError):
        started.trigger_sequence(9, [])


def test_trigger_before_start_raises():
    with pytest.raises(Net2Error):
        SiteManager().trigger_update_all()


def test_stop_stops_sites(two_sites):
    manager = SiteManager()
    with patch.object(Site, "start"):
        manager.start(two_sites)
    with patch.object(Site, "stop") as stop:
        manager.stop()
    assert stop.call_count == 2
    assert manager.get_sites() == {}


def test_build_sites():
    """Test building clients and sites from settings."""
    settings = Settings(NET2_CLIENT_ID="client-id", NET2_POLL_INTERVAL=30, NET2_SITES=[
        {"id": 1, "name": "Head Office", "ip": "10.0.0.5", "https": True, "username": "u", "password": "p",
         "localIDField": "Payroll"},
    ])
    sites = build_sites(settings)
    assert len(sites) == 1
    site = sites[0]
    assert site.base_url == "https://10.0.0.5:8080"
    assert site.client.client_id == "client-id"
    assert site.client.verify_ssl is True
    assert site._scheduler.interval == 30
    assert site.lock_timeout == 30


@pytest.mark.parametrize("poll_interval, timeout, expected", [
    (10, 5, 30),
    (120, 10, 120),
    (60, 45, 135),
])
def test_command_lock_timeout_follows_settings(poll_interval, timeout, expected):
    settings = Settings(NET2_CLIENT_ID="client-id", NET2_POLL_INTERVAL=poll_interval, NET2_TIMEOUT=timeout,
                        NET2_SITES=[])
    assert command_lock_timeout(settings) == expected


def test_managed_site_starts_polling(clock):
    """Test that a managed site refuses a second start and stops with the manager."""
    site = make_site(1, clock)
    manager = SiteManager()
    manager.start([site])
    try:
        with pytest.raises(Net2Error):
            site.start()
    finally:
        manager.stop()
    assert not site.running
