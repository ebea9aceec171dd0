"""Request dependencies resolving the manager, site, door and user from the path."""
from fastapi import Depends, Request

from pynet2.config import Settings
from pynet2.exceptions import DoorNotFoundError, SiteNotFoundError, UserNotFoundError
from pynet2.models import Door, User
from pynet2.site import Site
from pynet2.site_manager import SiteManager


def get_manager(request: Request) -> SiteManager:
    return request.app.state.manager


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_site(site_id: int, manager: SiteManager = Depends(get_manager)) -> Site:
    site = manager.get_site(site_id)
    if site is None:
        raise SiteNotFoundError("siteID not found")
    return site


def get_door(door_id: int, site: Site = Depends(get_site)) -> Door:
    door = site.get_door(door_id)
    if door is None:
        raise DoorNotFoundError("doorID not found")
    return door


def get_user(user_id: int, site: Site = Depends(get_site)) -> User:
    user = site.get_user(user_id)
    if user is None:
        raise UserNotFoundError("userID not found")
    return user
