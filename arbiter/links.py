from __future__ import annotations

import re

_SHORT_LINK = re.compile(r"(https?://xhslink\.com/[a-zA-Z0-9/]+)", re.IGNORECASE)
_NOTE_LINK = re.compile(r"(https?://(?:www\.)?xiaohongshu\.com/[^，\s]+)", re.IGNORECASE)


def extract_note_url(share_text: str) -> str:
    """Pull the note link out of a share text.

    Short xhslink.com links win over full xiaohongshu.com links; text with
    neither is returned unchanged."""
    text = (share_text or "").strip()
    match = _SHORT_LINK.search(text)
    if match:
        return match.group(1)
    match = _NOTE_LINK.search(text)
    if match:
        return match.group(1)
    return text


def is_error_page(url: str) -> bool:
    """True when navigation ended on the platform's 404 or error page."""
    return "/404" in url or "error" in url
