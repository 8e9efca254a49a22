"""URL slug generation for post titles."""

import unicodedata

# Characters that are reserved (or unsafe) in a URL path segment
RESERVED_URL_CHARACTERS = frozenset("!#$&'()*,/:;=?@[]\"%.<>\\^_{}|~`+")


def _remove_diacritics(text: str) -> str:
    """Strip accents: decompose, drop non-spacing marks, recompose."""
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(c for c in decomposed if unicodedata.category(c) != "Mn")
    return unicodedata.normalize("NFC", stripped)


def _remove_reserved_url_characters(text: str) -> str:
    return "".join(c for c in text if c not in RESERVED_URL_CHARACTERS)


def create_slug(title: str | None, max_length: int = 50) -> str:
    """Build a URL-safe slug from a post title.

    Lower-cases the title, turns spaces into hyphens, removes diacritics and
    URL-reserved characters, then truncates to ``max_length`` characters.

    >>> create_slug("Héllo World!")
    'hello-world'
    """
    slug = (title or "").lower().replace(" ", "-")
    slug = _remove_diacritics(slug)
    slug = _remove_reserved_url_characters(slug)
    if len(slug) > max_length:
        slug = slug[: max(max_length, 0)]
    return slug.lower()
