"""
Site API

Routes (prefix /api/v1/sites):
    - GET /                             -> all sites
    - GET /{site_id}                    -> one site
    - GET /{site_id}/uptodate           -> true if refreshed within NET2_STALE_AFTER
    - GET /{site_id}/unknownTokens      -> unknown token events
    - GET /{site_id}/accesslevels       -> access levels and individual areas
    - GET /{site_id}/departments        -> departments
"""
from typing import Dict, List

from fastapi import APIRouter, Depends

from pynet2.config import Settings
from pynet2.models import AccessLevel, Department, Event
from pynet2.server.api.deps import get_manager, get_settings, get_site
from pynet2.server.models import SiteSummary
from pynet2.site import Site
from pynet2.site_manager import SiteManager

router = APIRouter()


def summarize(site: Site, settings: Settings) -> SiteSummary:
    return SiteSummary(
        id=site.id,
        name=site.name,
        base_url=site.base_url,
        last_polled=site.last_successful_refresh,
        up_to_date=site.is_up_to_date(settings.stale_after),
    )


@router.get("", response_model=Dict[int, SiteSummary])
def list_sites(manager: SiteManager = Depends(get_manager), settings: Settings = Depends(get_settings)):
    return {site_id: summarize(site, settings) for site_id, site in manager.get_sites().items()}


@router.get("/{site_id}", response_model=SiteSummary)
def get_site_summary(site: Site = Depends(get_site), settings: Settings = Depends(get_settings)):
    return summarize(site, settings)


@router.get("/{site_id}/uptodate", response_model=bool)
def get_up_to_date(site: Site = Depends(get_site), settings: Settings = Depends(get_settings)):
    return site.is_up_to_date(settings.stale_after)


@router.get("/{site_id}/unknownTokens", response_model=List[Event])
def get_unknown_tokens(site: Site = Depends(get_site)):
    return site.get_unknown_tokens()


@router.get("/{site_id}/accesslevels", response_model=Dict[int, AccessLevel])
def get_access_levels(site: Site = Depends(get_site)):
    return site.get_access_levels()


@router.get("/{site_id}/departments", response_model=Dict[int, Department])
def get_departments(site: Site = Depends(get_site)):
    return site.get_departments()
