"""Site-specific selectors for the RedNote web app and the pipelines built on them.

Everything that has to change when the platform's markup changes lives in
this module.
"""
from __future__ import annotations

from typing import Optional

from .extraction import (
    ExtractionPipeline,
    FieldRule,
    Strategy,
    attribute_scan,
    first_selector,
    parse_count,
    parse_digits,
    remaining_text,
    short_leaf_text,
    within_containers,
)

SEARCH_URL = "https://www.xiaohongshu.com/search_result?keyword={keyword}"

# -- login detection -------------------------------------------------------

LOGIN_SIDEBAR = ".user.side-bar-component .channel"
LOGIN_SIDEBAR_TEXT = "我"
LOGIN_MARKERS = (
    ".avatar, .user-avatar, [data-testid=\"user-avatar\"]",
    ".user-info, .user-name, .profile",
)
LOGOUT_BUTTONS = ('button:has-text("退出")', 'button:has-text("登出")')

# -- search feed -----------------------------------------------------------

FEED_CONTAINER = ".feeds-container"
FEED_ITEM = ".feeds-container .note-item"
FEED_COVER_LINK = "a.cover.mask.ld"
NOTE_CONTAINER = "#noteContainer"
NOTE_CLOSE_BUTTON = ".close-circle"

# -- comments --------------------------------------------------------------

COMMENT_BUTTONS = (
    ".engage-bar .chat-wrapper",
    ".engage-bar .chat-btn",
    ".comment-btn",
    "[data-testid=\"comment-button\"]",
    ".comment-count",
    ".bottom-bar .comment",
)

COMMENT_CONTAINERS = (
    "[role=\"dialog\"] [role=\"list\"]",
    ".comment-list",
    ".comments-container",
    "[data-testid=\"comments\"]",
    ".comment-section",
    ".comment-feed",
    ".note-comments",
    ".comment-items",
    ".notes-detail .comment-list",
    ".detail-comments .comment-list",
    "[class*=\"comment\"] [class*=\"list\"]",
    "[class*=\"comment\"]",
    "[role=\"dialog\"]",
    ".modal .content",
)

COMMENT_ITEMS = "[role=\"listitem\"], .comment-item, .comment, [class*=\"comment\"]"
DIALOGS = "[role=\"dialog\"], .modal, .popup"

# Hides the most common automation markers.
STEALTH_INIT_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined, configurable: true });
Object.defineProperty(navigator, 'languages', { get: () => ['zh-CN', 'zh', 'en-US', 'en'], configurable: true });
"""


def comment_pipeline(limit: Optional[int] = None) -> ExtractionPipeline:
    strategies = [
        Strategy(
            "dialog_items",
            within_containers(DIALOGS, "[role=\"listitem\"], .comment-item, [class*=\"comment\"]"),
        ),
        Strategy(
            "comment_containers",
            first_selector(
                "[role=\"dialog\"] [role=\"list\"] [role=\"listitem\"]",
                ".comment-list .comment-item",
                ".comments-container .comment",
                "[data-testid=\"comment-item\"]",
                ".note-comments .comment",
                ".detail-comments .comment",
            ),
        ),
        Strategy("comment_like_elements", attribute_scan(("comment", "user"))),
    ]
    rules = [
        FieldRule(
            "author",
            (
                "[data-testid=\"user-name\"]",
                ".username",
                ".author-name",
                ".user-name",
                ".name",
                "[class*=\"user\"]",
                "[class*=\"author\"]",
            ),
            fallback=short_leaf_text(),
            required=True,
            default="Unknown",
        ),
        FieldRule(
            "content",
            (
                "[data-testid=\"comment-content\"]",
                ".comment-text",
                ".comment-content",
                ".content",
                ".text",
                "[class*=\"content\"]",
                "[class*=\"text\"]",
            ),
            fallback=remaining_text(consumed=("author",)),
            required=True,
        ),
        FieldRule(
            "likes",
            (
                "[data-testid=\"likes-count\"]",
                ".like-count",
                ".likes",
                ".like-number",
                ".like",
                "[class*=\"like\"]",
            ),
            parse=parse_count,
            default=0,
        ),
        FieldRule(
            "time",
            ("time", ".time", ".comment-time", ".timestamp", ".date", "[class*=\"time\"]", "[class*=\"date\"]"),
        ),
    ]
    return ExtractionPipeline(strategies, rules, limit=limit)


def note_detail_pipeline() -> ExtractionPipeline:
    strategies = [
        Strategy("note_container", first_selector(NOTE_CONTAINER)),
        Strategy("detail_wrappers", first_selector(".note-container", ".note-detail", "[class*=\"note-detail\"]")),
        Strategy("page_body", first_selector("body")),
    ]
    rules = [
        FieldRule("title", ("#detail-title", ".note-content .title", ".title")),
        FieldRule(
            "content",
            ("#detail-desc .note-text", "#detail-desc", ".note-content .desc", ".desc"),
            required=True,
        ),
        FieldRule(
            "author",
            (".author-wrapper .username", ".author .name", ".username"),
            required=True,
        ),
        FieldRule("tags", ("#detail-desc a.tag", "a.tag", "#hash-tag"), many=True, default=()),
        FieldRule("likes", (".engage-bar-style .like-wrapper .count", ".like-wrapper .count"), parse=parse_digits, default=0),
        FieldRule(
            "collects",
            (".engage-bar-style .collect-wrapper .count", ".collect-wrapper .count"),
            parse=parse_digits,
            default=0,
        ),
        FieldRule(
            "comments",
            (".engage-bar-style .chat-wrapper .count", ".chat-wrapper .count"),
            parse=parse_digits,
            default=0,
        ),
    ]
    return ExtractionPipeline(strategies, rules, limit=1)


def search_feed_pipeline(limit: Optional[int] = None) -> ExtractionPipeline:
    strategies = [
        Strategy("feed_items", first_selector(FEED_ITEM)),
        Strategy("generic_cards", first_selector("section.note-item", "[data-testid=\"note-card\"]", ".note-card")),
    ]
    rules = [
        FieldRule("title", (".footer .title", ".title span", ".title"), required=True),
        FieldRule("author", (".author-wrapper .name", ".author .name", ".name"), required=True),
        FieldRule("likes", (".like-wrapper .count", ".count"), parse=parse_count, default=0),
        FieldRule("url", (FEED_COVER_LINK, "a.cover", "a[href*=\"/explore/\"]"), attribute="href"),
    ]
    return ExtractionPipeline(strategies, rules, limit=limit)
