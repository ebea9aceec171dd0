# pyNet2 Module
# -*- coding: utf-8 -*-
"""
 Python module to mirror and control Paxton Net2 access-control sites

 For more information see README.md

 Features
    * Works with the Net2 local REST API (v1)
    * Keeps an in-memory copy of users, doors, departments and access levels
      for every configured site, refreshed every minute
    * Re-authenticates transparently when the Net2 bearer token expires
    * Relays door and user commands and refreshes the affected user straight away
    * Serves the cache and the commands over HTTP (see pynet2.server)

 Classes
    Net2Client(base_url, client_id, username, password, timeout, verify_ssl)
    Site(config, client, logger, clock)
    SiteScheduler(interval, callback, name)
    SiteManager(logger, max_workers)

 Site Functions
    refresh_all()             # Refresh access levels, doors, departments and users
    refresh_users()           # Refresh users (overwrites cached entries)
    refresh_user(user_id)     # Refresh one user
    refresh_doors()           # Refresh doors and their device status
    refresh_departments()     # Refresh departments
    refresh_access_levels()   # Refresh access levels and areas
    get_user(user_id)         # Return cached user or None
    get_users()               # Return all cached users
    get_active_staff()        # ... and the other department views
    get_doors() / get_door()  # Return cached doors
    open_door(door_id)        # Open a door
    close_door(door_id)       # Close a door
    sequence_door(items)      # Open doors in order with delays
    activate_user(user_id)    # Expire the user at the end of tomorrow
    deactivate_user(user_id)  # Expire the user at the end of yesterday
    add_access_level(user_id, level) / remove_access_level / set_access_level
    change_department(user_id, department_id)
    reset_anti_passback(user_id)

 Requirements
    This module requires the following modules: requests, python-dateutil, pydantic
    pip install requests python-dateutil pydantic
"""
import logging
import sys

version_tuple = (0, 3, 0)
version = __version__ = '%d.%d.%d' % version_tuple
__author__ = 'pynet2'

from pynet2.exceptions import (Net2Error, LoginError, Net2ConnectionError, Net2ApiError, CommandError,
                               NotFoundError, SiteNotFoundError, DoorNotFoundError, UserNotFoundError,
                               DepartmentNotFoundError, ConfigurationError)
from pynet2.models import User, Door, DoorStatus, Department, AccessLevel, DoorSequenceItem, Event
from pynet2.client import Net2Client
from pynet2.site import Site
from pynet2.scheduler import SiteScheduler
from pynet2.site_manager import SiteManager, build_sites

log = logging.getLogger(__name__)
log.debug('%s version %s', __name__, __version__)
log.debug('Python %s on %s', sys.version, sys.platform)


def set_debug(toggle=True, color=True):
    """Enable verbose logging"""
    if toggle:
        if color:
            logging.basicConfig(format='\x1b[31;1m%(levelname)s:%(message)s\x1b[0m', level=logging.DEBUG)
        else:
            logging.basicConfig(format='%(levelname)s:%(message)s', level=logging.DEBUG)
        log.setLevel(logging.DEBUG)
        log.debug("%s [%s]\n" % (__name__, __version__))
    else:
        log.setLevel(logging.NOTSET)
