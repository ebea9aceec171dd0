# pyNet2 - Net2 REST API Client
# -*- coding: utf-8 -*-
"""
 Net2 REST API Client

 Thin wrapper around a requests.Session for one Net2 server. Authenticates with
 the OAuth2 password grant against /api/v1/authorization/tokens and keeps the
 bearer token on the session. A request rejected with 401 triggers one new token
 and one retry; a second 401 raises LoginError.

 Class:
    Net2Client - authenticated HTTP access to one Net2 site

 Functions:
    authenticate()                      - get a new bearer token
    request(method, path, body, params) - send a request, re-authenticating once on 401
    get(path, params) / post(path, body) / put(path, body)
    get_json(path, params)              - GET and decode JSON, raising Net2ApiError on failure
    close_session()                     - close the underlying http session
"""
import json
import logging
import threading
import time
from typing import Any, Optional

import requests
import urllib3
from requests import Response

from pynet2.exceptions import LoginError, Net2ApiError, Net2ConnectionError

# Defaults
JSON_CONTENT_TYPE = "application/json"
TOKEN_PATH = "/api/v1/authorization/tokens"
SCOPE = "offline_access"
API_TIMEOUT = 10          # Time in seconds to wait for a Net2 response
TOKEN_EXPIRY_MARGIN = 30  # Renew the token this many seconds before it expires

log = logging.getLogger(__name__)


class Net2Client:
    def __init__(self, base_url: str, client_id: str, username: str, password: str,
                 timeout: float = API_TIMEOUT, verify_ssl: bool = True,
                 logger: Optional[logging.Logger] = None, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.client_id = client_id
        self.username = username
        self.password = password
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self.log = logger or log
        self.session = session or requests.Session()
        self.access_token: Optional[str] = None
        self.refresh_token: Optional[str] = None
        self.token_expires: Optional[float] = None  # time.monotonic() deadline
        self._token_lock = threading.Lock()  # guards token renewal

        if not self.verify_ssl:
            # Self-signed appliance certificates - only when explicitly configured
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
            self.log.warning(f"TLS certificate verification disabled for {self.base_url}")

    def url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def authenticate(self):
        """Request a new bearer token using the password grant."""
        with self._token_lock:
            self._get_token()

    def _get_token(self):
        url = self.url(TOKEN_PATH)
        pload = {
            "username": self.username,
            "password": self.password,
            "grant_type": "password",
            "client_id": self.client_id,
            "scope": SCOPE,
        }
        self.log.debug(f"Requesting token from {url}")
        try:
            r = self.session.post(url, data=pload, verify=self.verify_ssl, timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            err = f"Unable to connect to Net2 at {self.base_url}: {exc}"
            self.log.debug(err)
            raise Net2ConnectionError(err) from exc
        if r.status_code != 200:
            self.log.error(f"Unable to get token from {url} - response code {r.status_code}")
            raise LoginError(f"Invalid Net2 login for {self.username}")
        try:
            payload = r.json()
            access = payload["access_token"]
        except (ValueError, KeyError, TypeError) as exc:
            self.log.error(f"Unable to parse token response from {url}: {exc}")
            raise LoginError("Invalid token response from Net2") from exc
        self.access_token = access
        self.refresh_token = payload.get("refresh_token")
        expires_in = payload.get("expires_in")
        self.token_expires = time.monotonic() + float(expires_in) if expires_in else None
        self.session.headers["Authorization"] = f"Bearer {self.access_token}"
        self.log.debug(f"Token refreshed for {self.base_url} (expires in {expires_in}s)")

    def _token_expired(self) -> bool:
        if not self.access_token:
            return True
        if self.token_expires is None:
            return False
        return time.monotonic() > self.token_expires - TOKEN_EXPIRY_MARGIN

    def _renew_token(self, stale_token: Optional[str]):
        # Another thread may already have replaced the token we were rejected with
        with self._token_lock:
            if self.access_token != stale_token and not self._token_expired():
                self.log.debug("Token already renewed by another request")
                return
            self._get_token()

    def request(self, method: str, path: str, body: Any = None, params: Optional[dict] = None,
                recursive: bool = False) -> Response:
        """
        Send a request to the Net2 API

        Args:
            method      = HTTP method (GET, POST, PUT)
            path        = API path, e.g. /api/v1/doors
            body        = Object sent as the JSON body
            params      = Query string parameters
            recursive   = If True, this is the retry after re-authenticating and no further retry is made
        """
        if self._token_expired():
            self._renew_token(self.access_token)
        token = self.access_token
        url = self.url(path)
        data = json.dumps(body, default=str) if body is not None else None
        headers = {"Content-Type": JSON_CONTENT_TYPE}
        try:
            r = self.session.request(method, url, data=data, params=params, headers=headers,
                                     verify=self.verify_ssl, timeout=self.timeout)
        except requests.exceptions.Timeout as exc:
            self.log.debug(f"ERROR Timeout waiting for Net2 API {url}")
            raise Net2ConnectionError(f"Timeout waiting for {url}") from exc
        except requests.exceptions.RequestException as exc:
            self.log.debug(f"ERROR Unable to connect to Net2 at {url}: {exc}")
            raise Net2ConnectionError(f"Unable to connect to {url}") from exc
        if r.status_code == 401:
            if recursive:
                self.log.error(f"Unable to establish session with Net2 at {url} - check credentials")
                raise LoginError(f"Unauthorized by Net2 API at {url}")
            # Token expired or revoked - get a new one and try once more
            self.log.debug("Session Expired - Trying to get a new one")
            self._renew_token(token)
            return self.request(method, path, body=body, params=params, recursive=True)
        return r

    def get(self, path: str, params: Optional[dict] = None) -> Response:
        return self.request("GET", path, params=params)

    def post(self, path: str, body: Any = None) -> Response:
        return self.request("POST", path, body=body)

    def put(self, path: str, body: Any = None) -> Response:
        return self.request("PUT", path, body=body)

    def get_json(self, path: str, params: Optional[dict] = None) -> Any:
        r = self.get(path, params=params)
        if r.status_code != 200:
            self.log.error(f"Unhandled HTTP response code {r.status_code} at {r.url or self.url(path)}")
            raise Net2ApiError(f"Unexpected response {r.status_code} from {path}", r.status_code, r.url)
        try:
            return r.json()
        except ValueError as exc:
            self.log.error(f"Unable to parse payload from {path} as JSON: {exc}")
            raise Net2ApiError(f"Invalid JSON from {path}", r.status_code, r.url) from exc

    def close_session(self):
        self.session.close()
        self.access_token = None
