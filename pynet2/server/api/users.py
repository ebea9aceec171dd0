"""
User API

Routes (prefix /api/v1/sites/{site_id}/users):
    - GET  /                             -> all users
    - GET  /active, /activetoday, /staff, /activestaff, ... -> department views
    - GET  /{user_id}                    -> one user
    - GET  /{user_id}/picture            -> user picture (placeholder when none)
    - POST /{user_id}/activate           -> expire at the end of tomorrow
    - POST /{user_id}/deactivate         -> expire at the end of yesterday
    - POST /{user_id}/activateAndUpdate  -> activate, rename and set access level
    - POST /{user_id}/deactivateAndUpdate
    - POST /{user_id}/extendexpiry
    - POST /{user_id}/resetantipassback
    - POST /{user_id}/setaccesslevel?level=N
    - POST /{user_id}/addaccesslevel?level=N
    - POST /{user_id}/removeaccesslevel?level=N
    - POST /{user_id}/changedepartment?department=N

Department views are registered before /{user_id} so their literal paths win.
"""
from typing import Callable, Dict

from fastapi import APIRouter, Depends, Response

from pynet2.models import User
from pynet2.server.api.deps import get_site, get_user
from pynet2.server.models import MessageResponse, UpdateUserData
from pynet2.site import Site

router = APIRouter()

PNG_SIGNATURE = b"\x89PNG"

# path -> Site view
USER_VIEWS: Dict[str, Callable[[Site], Dict[int, User]]] = {
    "active": Site.get_active_users,
    "activetoday": Site.get_active_users_today,
    "activestaff": Site.get_active_staff,
    "activestafftoday": Site.get_active_staff_today,
    "activevisitors": Site.get_active_visitors,
    "activevisitorstoday": Site.get_active_visitors_today,
    "activenonstaff": Site.get_active_non_staff,
    "cancelled": Site.get_cancelled_users,
    "visitors": Site.get_visitors,
    "contractors": Site.get_contractors,
    "cleaners": Site.get_cleaners,
    "customers": Site.get_customers,
    "staff": Site.get_staff,
}


@router.get("", response_model=Dict[int, User])
def get_users(site: Site = Depends(get_site)):
    return site.get_users()


def _view_endpoint(view: Callable[[Site], Dict[int, User]]):
    def endpoint(site: Site = Depends(get_site)):
        return view(site)
    endpoint.__doc__ = view.__doc__
    return endpoint


for _path, _view in USER_VIEWS.items():
    router.add_api_route(f"/{_path}", _view_endpoint(_view), methods=["GET"],
                         response_model=Dict[int, User], name=f"get_{_path}_users")


@router.get("/{user_id}", response_model=User)
def get_user_details(user: User = Depends(get_user)):
    return user


@router.get("/{user_id}/picture")
def get_user_picture(user: User = Depends(get_user), site: Site = Depends(get_site)):
    picture = site.get_user_picture(user.id)
    media_type = "image/png" if picture.startswith(PNG_SIGNATURE) else "image/jpeg"
    return Response(content=picture, media_type=media_type)


@router.post("/{user_id}/resetantipassback", response_model=MessageResponse)
def reset_anti_passback(user: User = Depends(get_user), site: Site = Depends(get_site)):
    site.reset_anti_passback(user.id)
    return MessageResponse(message="Anti passback reset")


@router.post("/{user_id}/activate", response_model=MessageResponse)
def activate_user(user: User = Depends(get_user), site: Site = Depends(get_site)):
    site.activate_user(user.id)
    return MessageResponse(message="User activated")


@router.post("/{user_id}/deactivate", response_model=MessageResponse)
def deactivate_user(user: User = Depends(get_user), site: Site = Depends(get_site)):
    site.deactivate_user(user.id)
    return MessageResponse(message="User deactivated")


@router.post("/{user_id}/activateAndUpdate", response_model=MessageResponse)
def activate_and_update(data: UpdateUserData, user: User = Depends(get_user), site: Site = Depends(get_site)):
    site.update_user_name_and_expiry_and_access_level(
        user.id, data.FirstName, data.LastName, site.tomorrow_end_of_day(), data.AccessLevel)
    return MessageResponse(message="User activated")


@router.post("/{user_id}/deactivateAndUpdate", response_model=MessageResponse)
def deactivate_and_update(data: UpdateUserData, user: User = Depends(get_user), site: Site = Depends(get_site)):
    site.update_user_name_and_expiry_and_access_level(
        user.id, data.FirstName, data.LastName, site.yesterday_end_of_day(), data.AccessLevel)
    return MessageResponse(message="User deactivated")


@router.post("/{user_id}/extendexpiry", response_model=MessageResponse)
def extend_expiry(user: User = Depends(get_user), site: Site = Depends(get_site)):
    site.update_user_info(user.id, expiry=site.tomorrow_end_of_day())
    return MessageResponse(message="User expiry extended")


@router.post("/{user_id}/setaccesslevel", response_model=MessageResponse)
def set_access_level(level: int, user: User = Depends(get_user), site: Site = Depends(get_site)):
    site.set_access_level(user.id, level)
    return MessageResponse(message="User access level set")


@router.post("/{user_id}/addaccesslevel", response_model=MessageResponse)
def add_access_level(level: int, user: User = Depends(get_user), site: Site = Depends(get_site)):
    site.add_access_level(user.id, level)
    return MessageResponse(message="User access level added")


@router.post("/{user_id}/removeaccesslevel", response_model=MessageResponse)
def remove_access_level(level: int, user: User = Depends(get_user), site: Site = Depends(get_site)):
    site.remove_access_level(user.id, level)
    return MessageResponse(message="User access level removed")


@router.post("/{user_id}/changedepartment", response_model=MessageResponse)
def change_department(department: int, user: User = Depends(get_user), site: Site = Depends(get_site)):
    site.change_department(user.id, department)
    return MessageResponse(message="User department set")
