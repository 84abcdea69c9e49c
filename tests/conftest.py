"""
Shared pytest fixtures for the compliance crawler tests.

FakeSession stands in for the headless browser: pages are keyed by URL and
hold body text plus (anchor text, href) links. A page's text may be a list, in
which case successive visits return successive entries (the last one repeats).
"""
from __future__ import annotations

import sys
from collections import Counter
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from browser_session import BrowsingSession, Link  # noqa: E402

PageText = Union[str, List[str]]


class FakeSession(BrowsingSession):
    def __init__(
        self,
        pages: Dict[str, Tuple[PageText, Iterable[Tuple[str, str]]]],
        failing: Optional[Iterable[str]] = None,
        broken: Optional[Iterable[str]] = None,
    ):
        self.pages = pages
        self.failing = set(failing or ())
        self.broken = set(broken or ())
        self.navigations: List[str] = []
        self.visits: Counter = Counter()
        self.current: Optional[str] = None

    def navigate(self, url: str) -> bool:
        self.navigations.append(url)
        if url in self.failing or url not in self.pages:
            return False
        self.current = url
        self.visits[url] += 1
        return True

    def extract_links(self) -> List[Link]:
        _, links = self.pages[self.current]
        return [Link(text, href) for text, href in links]

    def extract_body_text(self) -> str:
        if self.current in self.broken:
            raise RuntimeError(f"page crashed: {self.current}")
        text, _ = self.pages[self.current]
        if isinstance(text, list):
            return text[min(self.visits[self.current], len(text)) - 1]
        return text


@pytest.fixture
def fake_session_factory():
    return FakeSession
