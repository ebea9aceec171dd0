from typing import Optional


class Net2Error(Exception):
    pass


class LoginError(Net2Error):
    pass


class Net2ConnectionError(Net2Error):
    pass


class Net2ApiError(Net2Error):

    def __init__(self, message: str, status: Optional[int] = None, url: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.url = url


class CommandError(Net2Error):
    pass


class NotFoundError(Net2Error):
    pass


class SiteNotFoundError(NotFoundError):
    pass


class DoorNotFoundError(NotFoundError):
    pass


class UserNotFoundError(NotFoundError):
    pass


class DepartmentNotFoundError(NotFoundError):
    pass


class ConfigurationError(Net2Error):
    pass
