"""
Door API

Routes (prefix /api/v1/sites/{site_id}/doors):
    - GET  /                    -> all doors
    - GET  /monitored           -> configured alarm-zone doors
    - GET  /openable            -> configured door sequences by name
    - POST /sequence            -> open doors in order (runs in the background)
    - GET  /{door_id}           -> one door
    - POST /{door_id}/open      -> open a door
    - POST /{door_id}/close     -> close a door
"""
import logging
from typing import Dict, List

from fastapi import APIRouter, Depends

from pynet2.config import parse_duration
from pynet2.exceptions import CommandError
from pynet2.models import Door, DoorSequenceItem
from pynet2.server.api.deps import get_door, get_manager, get_site
from pynet2.server.models import MessageResponse, SequenceDoorData
from pynet2.site import Site
from pynet2.site_manager import SiteManager

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=Dict[int, Door])
def get_doors(site: Site = Depends(get_site)):
    return site.get_doors()


@router.get("/monitored", response_model=Dict[int, Door])
def get_monitored_doors(site: Site = Depends(get_site)):
    return site.get_monitored_doors()


@router.get("/openable", response_model=Dict[str, List[DoorSequenceItem]])
def get_openable_doors(site: Site = Depends(get_site)):
    return site.get_openable_doors()


@router.post("/sequence", response_model=MessageResponse)
def sequence_doors(data: List[SequenceDoorData], site: Site = Depends(get_site),
                   manager: SiteManager = Depends(get_manager)):
    items = []
    for step in data:
        try:
            items.append(DoorSequenceItem(door=int(step.door), time=parse_duration(step.time or "0s")))
        except ValueError as e:
            logger.error(f"Unable to decode door sequence step {step}: {e}")
            raise CommandError("Error sequencing doors") from e
    logger.debug(f"Door sequence for {site.name}: {items}")
    manager.trigger_sequence(site.id, items)
    return MessageResponse(message="Sequence triggered")


@router.get("/{door_id}", response_model=Door)
def get_door_status(door: Door = Depends(get_door)):
    return door


@router.post("/{door_id}/open", response_model=MessageResponse)
def open_door(door: Door = Depends(get_door), site: Site = Depends(get_site)):
    site.open_door(door.id)
    return MessageResponse(message="Door opened")


@router.post("/{door_id}/close", response_model=MessageResponse)
def close_door(door: Door = Depends(get_door), site: Site = Depends(get_site)):
    site.close_door(door.id)
    return MessageResponse(message="Door closed")
