"""
browser_session.py
Browsing backends used by the compliance crawler. The auditor only needs three
capabilities from a session:

    navigate(url) -> bool        load a page, False on timeout/network error
    extract_links() -> [Link]    anchors on the current page (raw text, absolute href)
    extract_body_text() -> str   text content of the current page body

PlaywrightSession drives a single headless Chromium page (the default).
StaticSession fetches pages with requests + BeautifulSoup, for sites that
render without JavaScript.
"""
import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional
from urllib import robotparser
from urllib.parse import urljoin, urlparse

import requests
from bs4 import BeautifulSoup
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright

# ----------------------------- Config ----------------------------------

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0 Safari/537.36"
)
NAV_TIMEOUT = 45           # seconds per navigation
REQUEST_DELAY = 0.75       # seconds between static requests to the same host
MAX_BYTES = 2_000_000      # don't download pages larger than 2MB

LINKS_SCRIPT = """
as => as.map(a => ({
    text: a.innerText || "",
    href: a.href || ""
}))
"""

# -----------------------------------------------------------------------


@dataclass(frozen=True)
class Link:
    text: str
    href: str


class BrowsingSession:
    """One navigable browsing context shared by every pass of an audit."""

    def navigate(self, url: str) -> bool:
        raise NotImplementedError

    def extract_links(self) -> List[Link]:
        raise NotImplementedError

    def extract_body_text(self) -> str:
        raise NotImplementedError

    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class PlaywrightSession(BrowsingSession):
    """Headless Chromium with one reusable page."""

    def __init__(self, timeout: float = NAV_TIMEOUT, headless: bool = True):
        self.timeout = timeout
        self._playwright = sync_playwright().start()
        self._browser = self._playwright.chromium.launch(
            headless=headless,
            args=["--disable-gpu", "--no-sandbox", "--disable-dev-shm-usage"],
        )
        context = self._browser.new_context(user_agent=USER_AGENT)
        self._page = context.new_page()

    def navigate(self, url: str) -> bool:
        try:
            # DOM ready is enough; full load stalls on trackers and widgets
            self._page.goto(url, wait_until="domcontentloaded", timeout=self.timeout * 1000)
            return True
        except PlaywrightError as e:
            logging.info("Navigation failed %s: %s", url, e)
            return False

    def extract_links(self) -> List[Link]:
        raw = self._page.eval_on_selector_all("a", LINKS_SCRIPT)
        return [Link(r.get("text") or "", r.get("href") or "") for r in raw]

    def extract_body_text(self) -> str:
        return self._page.text_content("body") or ""

    def close(self):
        try:
            self._browser.close()
        finally:
            self._playwright.stop()


class StaticSession(BrowsingSession):
    """Plain HTTP fetching with robots.txt checks and per-host politeness."""

    def __init__(self, timeout: float = NAV_TIMEOUT, request_delay: float = REQUEST_DELAY):
        self.timeout = timeout
        self.request_delay = request_delay
        self._robots: Dict[str, Optional[robotparser.RobotFileParser]] = {}
        self._last_hit: Dict[str, float] = {}
        self._url: Optional[str] = None
        self._soup: Optional[BeautifulSoup] = None

    def _robots_for(self, url: str) -> Optional[robotparser.RobotFileParser]:
        parsed = urlparse(url)
        base = f"{parsed.scheme}://{parsed.netloc}"
        if base not in self._robots:
            self._robots[base] = load_robots(base)
        return self._robots[base]

    def polite_get(self, url: str) -> Optional[requests.Response]:
        """GET with robots.txt check, per-host delay and a body size cap."""
        try:
            parsed = urlparse(url)
            base = f"{parsed.scheme}://{parsed.netloc}"
            rp = self._robots_for(url)
            if rp and not rp.can_fetch(USER_AGENT, url):
                logging.info("Blocked by robots.txt: %s", url)
                return None
            sleep_for = self.request_delay - (time.time() - self._last_hit.get(base, 0))
            if sleep_for > 0:
                time.sleep(sleep_for)
            r = requests.get(
                url,
                headers={"User-Agent": USER_AGENT},
                timeout=self.timeout,
                allow_redirects=True,
                stream=True,
            )
            self._last_hit[base] = time.time()
            content = b""
            for chunk in r.iter_content(chunk_size=16384):
                content += chunk
                if len(content) >= MAX_BYTES:
                    break
            r._content = content
            return r
        except requests.RequestException as e:
            logging.info("GET failed %s: %s", url, e)
            return None

    def navigate(self, url: str) -> bool:
        resp = self.polite_get(url)
        if resp is None or resp.status_code >= 400:
            return False
        self._url = resp.url or url
        self._soup = BeautifulSoup(resp.text, "lxml")
        return True

    def extract_links(self) -> List[Link]:
        if self._soup is None:
            return []
        links = []
        for a in self._soup.find_all("a", href=True):
            links.append(Link(a.get_text(" "), urljoin(self._url, a["href"])))
        return links

    def extract_body_text(self) -> str:
        if self._soup is None:
            return ""
        body = self._soup.body or self._soup
        return body.get_text(" ")


def load_robots(base_url: str) -> Optional[robotparser.RobotFileParser]:
    try:
        rp = robotparser.RobotFileParser()
        rp.set_url(f"{base_url}/robots.txt")
        rp.read()
        return rp
    except Exception:
        return None
