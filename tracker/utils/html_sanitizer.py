"""HTML sanitization for user-supplied text shown on pages and in mail."""

import bleach

# Disabled-account messages may carry light formatting and links.
ALLOWED_TAGS = [
    "p", "br",
    "strong", "em", "b", "i", "u",
    "code", "pre",
    "ul", "ol", "li",
    "a",
]

ALLOWED_ATTRIBUTES = {
    "a": ["href", "title", "rel"],
}

ALLOWED_PROTOCOLS = ["http", "https", "mailto"]


def sanitize_html(content: str) -> str:
    """
    Sanitize a fragment of HTML, keeping only safe formatting tags.

    Args:
        content: Raw HTML supplied by an administrator

    Returns:
        Sanitized HTML
    """
    if not content:
        return ""

    cleaned = bleach.clean(
        content,
        tags=ALLOWED_TAGS,
        attributes=ALLOWED_ATTRIBUTES,
        protocols=ALLOWED_PROTOCOLS,
        strip=True,
    )

    # Links must not hand the opener to the target page.
    return bleach.linkify(
        cleaned,
        callbacks=[_set_link_rel],
        skip_tags=["pre", "code"],
    )


def _set_link_rel(attrs: dict, new: bool = False) -> dict:
    attrs[(None, "rel")] = "nofollow noopener noreferrer"
    return attrs
