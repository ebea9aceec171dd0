"""
Update API

Routes (prefix /api/v1/update):
    - GET /now      -> refresh every site and wait for completion
    - GET /trigger  -> refresh every site in the background
"""
from fastapi import APIRouter, Depends

from pynet2.server.api.deps import get_manager
from pynet2.server.models import MessageResponse
from pynet2.site_manager import SiteManager

router = APIRouter()


@router.get("/now", response_model=MessageResponse)
def update_now(manager: SiteManager = Depends(get_manager)):
    manager.update_all()
    return MessageResponse(message="Update complete")


@router.get("/trigger", response_model=MessageResponse)
def update_trigger(manager: SiteManager = Depends(get_manager)):
    manager.trigger_update_all()
    return MessageResponse(message="Update triggered")
