"""
Site Manager - owns every configured Net2 site.

Architecture:
    - One Site (and one Net2Client) per configured Net2 server
    - Each Site polls on its own SiteScheduler thread
    - update_all() refreshes every site concurrently and waits for all of them
    - trigger_update_all() / trigger_sequence() submit background work to a
      bounded thread pool and return a Future so callers can wait if they want

Error Handling:
    - A site that fails to refresh is logged and keeps its previous cache
    - A site that fails to start leaves the manager not started; sites that
      did start keep running
"""
import logging
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Dict, Iterable, List, Optional

from pynet2.client import Net2Client
from pynet2.config import Settings
from pynet2.exceptions import Net2Error, SiteNotFoundError
from pynet2.models import DoorSequenceItem
from pynet2.site import LOCK_TIMEOUT, Site

log = logging.getLogger(__name__)


def command_lock_timeout(settings: Settings) -> float:
    """How long a user command waits on a running refresh.

    A refresh holds the site lock for several requests (one more per
    individually assigned user), so the wait grows with the HTTP timeout and
    is never shorter than a poll period.
    """
    return max(LOCK_TIMEOUT, settings.poll_interval, 3 * settings.timeout)


def build_sites(settings: Settings, logger: Optional[logging.Logger] = None) -> List[Site]:
    """Create a Net2Client and Site for every configured site."""
    site_log = logger or log
    settings.validate_sites()
    sites = []
    for config in settings.sites:
        client = Net2Client(config.base_url, settings.client_id, config.username, config.password,
                            timeout=settings.timeout, verify_ssl=config.verify_ssl, logger=site_log)
        sites.append(Site(config, client, logger=site_log, poll_interval=settings.poll_interval,
                          lock_timeout=command_lock_timeout(settings)))
        site_log.debug(f"Configured site {config.id} ({config.name}) at {config.base_url}")
    return sites


class SiteManager:
    """Manages the set of Net2 sites."""

    def __init__(self, logger: Optional[logging.Logger] = None, max_workers: Optional[int] = None):
        self.log = logger or log
        self.max_workers = max_workers
        self.sites: Dict[int, Site] = {}
        self.started = False
        self._executor: Optional[ThreadPoolExecutor] = None

    def start(self, sites: Iterable[Site]):
        if self.started:
            self.log.debug("Site manager already started")
            return
        sites = list(sites)
        self.sites = {site.id: site for site in sites}
        # Formula: max(4, num_sites * 2) for background updates and sequences
        pool_size = self.max_workers or max(4, len(sites) * 2)
        if self._executor is not None:
            # Left over from a failed start
            self._executor.shutdown(wait=False)
        self._executor = ThreadPoolExecutor(max_workers=pool_size, thread_name_prefix="net2-task")
        failed = False
        for site in sites:
            try:
                site.start()
            except (Net2Error, RuntimeError) as e:
                self.log.error(f"Unable to start site {site.name}: {e}")
                failed = True
        if failed:
            raise Net2Error("unable to start all sites")
        self.started = True
        self.log.info(f"Site manager started with {len(sites)} site(s)")

    def stop(self):
        for site in self.sites.values():
            site.stop()
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
        self.started = False
        self.log.info("Site manager stopped")

    def get_site(self, site_id: int) -> Optional[Site]:
        if not self.started:
            return None
        return self.sites.get(site_id)

    def get_sites(self) -> Dict[int, Site]:
        if not self.started:
            return {}
        return self.sites

    def count(self) -> int:
        return len(self.get_sites())

    def update_all(self) -> Dict[int, bool]:
        """Refresh every site concurrently; returns site id -> refresh complete."""
        sites = self.get_sites()
        if not sites:
            return {}
        self.log.debug(f"Updating {len(sites)} site(s)")
        with ThreadPoolExecutor(max_workers=len(sites), thread_name_prefix="net2-update") as executor:
            futures = {site_id: executor.submit(site.refresh_all) for site_id, site in sites.items()}
            wait(futures.values())
        results = {}
        for site_id, future in futures.items():
            error = future.exception()
            if error is not None:
                self.log.error(f"Update of site {site_id} failed: {error}")
            results[site_id] = error is None and bool(future.result())
        return results

    def _submit(self, fn, *args) -> Future:
        if self._executor is None:
            raise Net2Error("site manager not started")
        return self._executor.submit(fn, *args)

    def trigger_update_all(self) -> Future:
        return self._submit(self.update_all)

    def trigger_sequence(self, site_id: int, items: Iterable[DoorSequenceItem]) -> Future:
        site = self.get_site(site_id)
        if site is None:
            raise SiteNotFoundError(f"invalid site: {site_id}")
        return self._submit(site.sequence_door, list(items))
