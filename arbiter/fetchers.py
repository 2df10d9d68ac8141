from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urljoin

from playwright.async_api import Error as PlaywrightError

from . import selectors
from .base import BaseFetcher
from .errors import NavigationError
from .extraction import Record
from .links import extract_note_url, is_error_page
from .models import Comment, Note

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 10
COMMENT_WAIT_MS = 8000
DIALOG_WAIT_MS = 15000


def to_note(record: Record, url: str = "") -> Note:
    return Note(
        title=record.get("title", ""),
        content=record.get("content", ""),
        author=record.get("author", ""),
        url=record.get("url") or url,
        tags=[t.lstrip("#") for t in record.get("tags", [])],
        likes=record.get("likes", 0),
        collects=record.get("collects", 0),
        comments=record.get("comments", 0),
    )


def to_comment(record: Record) -> Comment:
    return Comment(
        author=record.get("author", "Unknown"),
        content=record.get("content", ""),
        likes=record.get("likes", 0),
        time=record.get("time", ""),
    )


class SearchNotesFetcher(BaseFetcher):
    """Keyword search: opens each result card and extracts the note detail.

    When no card can be opened, the cards of the result page itself are
    returned (title, author, likes, link) instead."""

    kind = "search_notes"

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._detail = selectors.note_detail_pipeline()

    def validate(self, params: Dict[str, Any]) -> None:
        keywords = params.get("keywords")
        if not isinstance(keywords, str) or not keywords.strip():
            raise ValueError("keywords is required")
        limit = params.get("limit", DEFAULT_SEARCH_LIMIT)
        if not isinstance(limit, int) or isinstance(limit, bool) or limit < 1:
            raise ValueError("limit must be a positive integer")

    def normalize(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "keywords": " ".join(params["keywords"].split()),
            "limit": params.get("limit", DEFAULT_SEARCH_LIMIT),
        }

    async def fetch(self, page: Any, params: Dict[str, Any]) -> List[Note]:
        keywords, limit = params["keywords"], params["limit"]

        logger.info("Waiting before search to avoid anti-bot detection")
        await self._pacer.random_delay(2, 4)

        logger.info("Navigating to search page")
        await page.goto(selectors.SEARCH_URL.format(keyword=quote(keywords)))
        await self._pacer.random_delay(2, 3)

        logger.info("Waiting for search results")
        await page.wait_for_selector(selectors.FEED_CONTAINER, timeout=self._timeout_ms)

        items = await page.query_selector_all(selectors.FEED_ITEM)
        total = min(len(items), limit)
        logger.info("Found %d note items", len(items))

        notes: List[Note] = []
        for i in range(total):
            logger.info("Processing note %d/%d", i + 1, total)
            try:
                note = await self._open_note(page, items[i])
                if note is not None:
                    logger.info("Extracted note: %s", note.title)
                    notes.append(note)
            except PlaywrightError as exc:
                logger.error("Error processing note %d: %s", i + 1, exc)
            finally:
                await self._close_note(page)
                await self._pacer.random_delay(0.5, 1.5)

        if not notes and total:
            logger.warning("No note could be opened, falling back to result cards")
            cards = selectors.search_feed_pipeline(limit=limit).extract(await page.content())
            notes = [to_note(card) for card in cards]
            for note in notes:
                note.url = urljoin(page.url, note.url) if note.url else ""

        logger.info("Successfully processed %d notes", len(notes))
        return notes

    async def _open_note(self, page: Any, item: Any) -> Optional[Note]:
        await item.eval_on_selector(selectors.FEED_COVER_LINK, "el => el.click()")
        logger.info("Waiting for note page to load")
        await page.wait_for_selector(selectors.NOTE_CONTAINER, timeout=self._timeout_ms)
        await self._pacer.random_delay(0.5, 1.5)

        records = self._detail.extract(await page.content())
        if not records:
            return None
        return to_note(records[0], url=page.url)

    async def _close_note(self, page: Any) -> None:
        try:
            button = await page.query_selector(selectors.NOTE_CLOSE_BUTTON)
            if button is None:
                return
            logger.info("Closing note dialog")
            await button.click()
            await page.wait_for_selector(selectors.NOTE_CONTAINER, state="detached", timeout=self._timeout_ms)
        except PlaywrightError as exc:
            logger.debug("Could not close note dialog: %s", exc)


class _NoteUrlFetcher(BaseFetcher):
    def validate(self, params: Dict[str, Any]) -> None:
        url = params.get("url")
        if not isinstance(url, str) or not url.strip():
            raise ValueError("url is required")

    def normalize(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return {"url": extract_note_url(params["url"])}

    async def _open(self, page: Any, url: str, wait_until: str = "domcontentloaded") -> None:
        logger.info("Navigating to: %s", url)
        await self._pacer.random_delay(0.5, 1.5)
        await page.goto(url, wait_until=wait_until, timeout=self._timeout_ms)
        await self._pacer.random_delay(1, 2)

        final_url = page.url
        logger.info("Final URL after navigation: %s", final_url)
        if is_error_page(final_url):
            logger.error("Redirected to error page: %s", final_url)
            raise NavigationError(f"Failed to access note: redirected to {final_url}")


class NoteContentFetcher(_NoteUrlFetcher):
    kind = "get_note_content"

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._pipeline = selectors.note_detail_pipeline()

    async def fetch(self, page: Any, params: Dict[str, Any]) -> Optional[Note]:
        url = params["url"]
        await self._open(page, url)
        records = self._pipeline.extract(await page.content())
        if not records:
            logger.warning("No note content found at %s", url)
            return None
        note = to_note(records[0])
        note.url = url
        logger.info("Successfully extracted note: %s", note.title)
        return note


class NoteCommentsFetcher(_NoteUrlFetcher):
    kind = "get_note_comments"

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._pipeline = selectors.comment_pipeline()

    async def fetch(self, page: Any, params: Dict[str, Any]) -> List[Comment]:
        await self._open(page, params["url"])
        await self._pacer.random_delay(1, 2)

        await self.trigger_comment_loading(page)
        await self.wait_for_comments(page)

        comments = [to_comment(r) for r in self._pipeline.extract(await page.content())]
        logger.info("Successfully extracted %d comments", len(comments))
        return comments

    async def trigger_comment_loading(self, page: Any) -> None:
        """Click the first comment button found, else scroll to the bottom."""
        logger.info("Attempting to trigger comment loading")
        for selector in selectors.COMMENT_BUTTONS:
            try:
                button = await page.query_selector(selector)
                if button is None:
                    continue
                logger.info("Found comment button with selector: %s", selector)
                await button.click()
                await self._pacer.random_delay(1, 2)
                return
            except PlaywrightError as exc:
                logger.debug("Failed to click comment button %s: %s", selector, exc)

        try:
            logger.info("Scrolling down to trigger comment loading")
            await page.evaluate("() => window.scrollTo(0, document.body.scrollHeight)")
            await self._pacer.random_delay(1, 2)
        except PlaywrightError as exc:
            logger.debug("Failed to scroll: %s", exc)

    async def wait_for_comments(self, page: Any) -> bool:
        """Wait for a comment container holding items. Never raises."""
        for selector in selectors.COMMENT_CONTAINERS:
            try:
                await page.wait_for_selector(selector, timeout=COMMENT_WAIT_MS)
            except PlaywrightError:
                logger.debug("Selector %s not found, trying next...", selector)
                continue
            await self._pacer.random_delay(2, 4)
            try:
                container = await page.query_selector(selector)
                items = await container.query_selector_all(selectors.COMMENT_ITEMS) if container else []
            except PlaywrightError:
                items = []
            if items:
                logger.info("Found comment items with selector: %s", selector)
                return True
            logger.info("Found container but no comment items with selector: %s", selector)

        try:
            logger.info("Last resort: waiting for any dialog with extended timeout")
            await page.wait_for_selector(selectors.DIALOGS, timeout=DIALOG_WAIT_MS)
            await self._pacer.random_delay(3, 5)
            await page.evaluate(
                "(sel) => { const d = document.querySelector(sel); if (d) d.scrollTop = d.scrollHeight }",
                selectors.DIALOGS,
            )
            await self._pacer.random_delay(1, 2)
        except PlaywrightError:
            logger.warning("Could not find any comment container, proceeding with fallback extraction")
        return False
