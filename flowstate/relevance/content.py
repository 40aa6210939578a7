"""Per-page content analysis: wait for page metadata, then ask the oracle.

Each navigation starts one analysis task. Starting a new one cancels the
previous page's task first, and every verdict carries the page id it was
produced for, so a verdict for an old page is never applied to a new one.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Optional, Protocol

from flowstate.events import PageVerdict
from flowstate.relevance.blocklist import match_blocklist
from flowstate.relevance.oracle import RelevanceOracle
from flowstate.relevance.verdict import blocklisted_verdict

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 10
RETRY_INTERVAL_SECONDS = 1.0


@dataclass(frozen=True)
class PageMetadata:
    title: str
    description: Optional[str] = None


class ContentObserver(Protocol):
    """Source of page metadata; returns None until the metadata is available."""

    def read_metadata(self) -> Optional[PageMetadata]: ...


class MetadataSlot:
    """Content observer filled in by a surface once the page has rendered."""

    def __init__(self, metadata: Optional[PageMetadata] = None) -> None:
        self._metadata = metadata

    def fill(self, metadata: PageMetadata) -> None:
        self._metadata = metadata

    def read_metadata(self) -> Optional[PageMetadata]:
        if self._metadata is None or not self._metadata.title.strip():
            return None
        return self._metadata


class ContentAnalyzer:
    """Runs at most one page analysis at a time.

    Args:
        oracle: Relevance oracle.
        emit: Called with the PageVerdict once the page has been judged.
        goal: Returns the user's current goal.
        blocklist: Returns the current blocklist entries.
        max_attempts: Metadata polls before giving up on a page.
        retry_interval: Seconds between metadata polls.
        sleep: Awaitable sleep (injectable for tests).
    """

    def __init__(
        self,
        oracle: RelevanceOracle,
        emit: Callable[[PageVerdict], None],
        goal: Callable[[], str],
        blocklist: Callable[[], Iterable[str]],
        max_attempts: int = MAX_ATTEMPTS,
        retry_interval: float = RETRY_INTERVAL_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._oracle = oracle
        self._emit = emit
        self._goal = goal
        self._blocklist = blocklist
        self._max_attempts = max_attempts
        self._retry_interval = retry_interval
        self._sleep = sleep
        self._page_id = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def page_id(self) -> int:
        """Id of the most recent navigation."""
        return self._page_id

    @property
    def task(self) -> Optional[asyncio.Task]:
        """The in-flight analysis task, if any."""
        return self._task

    def navigate(self, url: str, observer: ContentObserver) -> int:
        """Cancel the previous page's analysis and start analyzing a new page.

        Must be called from the event loop. Returns the new page id.
        """
        self.cancel()
        self._page_id += 1
        page_id = self._page_id
        self._task = asyncio.create_task(
            self._analyze(page_id, url, observer),
            name=f"content_analysis_{page_id}",
        )
        return page_id

    def cancel(self) -> None:
        """Cancel the in-flight analysis, if any."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            logger.debug("Cancelled content analysis for page %d", self._page_id)
        self._task = None

    async def _poll_metadata(self, observer: ContentObserver) -> Optional[PageMetadata]:
        for attempt in range(self._max_attempts):
            metadata = observer.read_metadata()
            if metadata is not None:
                return metadata
            if attempt + 1 < self._max_attempts:
                await self._sleep(self._retry_interval)
        return None

    async def _analyze(self, page_id: int, url: str, observer: ContentObserver) -> None:
        entry = match_blocklist(url, self._blocklist())
        if entry is not None:
            logger.info("Blocklisted page (%s): %s", entry, url)
            metadata = observer.read_metadata()
            self._emit(PageVerdict(
                page_id=page_id,
                url=url,
                title=metadata.title if metadata else url,
                verdict=blocklisted_verdict(),
            ))
            return

        metadata = await self._poll_metadata(observer)
        if metadata is None:
            logger.info(
                "No page metadata after %d attempts, skipping analysis: %s",
                self._max_attempts, url,
            )
            return

        verdict = await self._oracle.judge(
            self._goal(), metadata.title, metadata.description,
        )
        self._emit(PageVerdict(
            page_id=page_id, url=url, title=metadata.title, verdict=verdict,
        ))
