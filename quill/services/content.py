"""Post body rewriting: lazy-loaded media, video embeds, embedded images.

Rewrites work on the raw HTML text one ``<img>`` tag at a time with regular
expressions; the document is never parsed.
"""

import base64
import binascii
import logging
import os
import re
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

# 1x1 transparent GIF shown until the real image is lazy-loaded
LAZY_PLACEHOLDER_SRC = (
    "data:image/gif;base64,R0lGODlhAQABAIAAAP///wAAACH5BAEAAAAALAAAAAABAAEAAAICRAEAOw=="
)

YOUTUBE_EMBED_TEMPLATE = (
    '<div class="video"><iframe width="560" height="315" title="YouTube embed" '
    'src="about:blank" data-src="https://www.youtube-nocookie.com/embed/{video_id}'
    '?modestbranding=1&amp;hd=1&amp;rel=0&amp;theme=light" allowfullscreen>'
    "</iframe></div>"
)

ALLOWED_IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".gif", ".png", ".webp"})

_IMG_TAG_RE = re.compile(r"<img\b[^>]*>", re.IGNORECASE)
_SRC_ATTR_RE = re.compile(r"""(\ssrc\s*=\s*)(["'])(.*?)\2""", re.IGNORECASE | re.DOTALL)
_DATA_SRC_ATTR_RE = re.compile(r"\sdata-src\s*=", re.IGNORECASE)
_DATA_FILENAME_ATTR_RE = re.compile(
    r"""\s+data-filename\s*=\s*(["'])(.*?)\1""", re.IGNORECASE | re.DOTALL
)
_BASE64_DATA_URI_RE = re.compile(
    r"^data:[^/;,]+/[a-z0-9.+-]+;base64,(?P<payload>.+)$", re.IGNORECASE | re.DOTALL
)
_YOUTUBE_RE = re.compile(r"\[youtube:(.*?)\]")

SaveFile = Callable[[bytes, str], Awaitable[str]]


def _lazy_load_tag(match: re.Match[str]) -> str:
    tag = match.group(0)
    # Already rewritten (or authored with data-src): leave as-is
    if _DATA_SRC_ATTR_RE.search(tag):
        return tag
    src = _SRC_ATTR_RE.search(tag)
    if src is None:
        return tag
    prefix, quote, url = src.groups()
    replacement = (
        f"{prefix}{quote}{LAZY_PLACEHOLDER_SRC}{quote} data-src={quote}{url}{quote}"
    )
    return tag[: src.start()] + replacement + tag[src.end() :]


def lazy_load_images(html: str) -> str:
    """Move every ``<img>`` src into ``data-src`` behind a placeholder image."""
    return _IMG_TAG_RE.sub(_lazy_load_tag, html)


def expand_video_embeds(html: str) -> str:
    """Replace ``[youtube:ID]`` markers with a lazy-loaded iframe embed."""
    return _YOUTUBE_RE.sub(
        lambda m: YOUTUBE_EMBED_TEMPLATE.format(video_id=m.group(1)), html
    )


def render_post_body(html: str) -> str:
    """Apply the display-time rewrites to a stored post body."""
    if not html:
        return html
    return expand_video_embeds(lazy_load_images(html))


async def _externalize_tag(tag: str, save_file: SaveFile) -> str:
    """Upload one embedded image and point its src at the stored copy.

    Returns the tag unchanged when it is not an embedded upload or when the
    upload is not an accepted image.
    """
    src = _SRC_ATTR_RE.search(tag)
    filename_attr = _DATA_FILENAME_ATTR_RE.search(tag)
    if src is None or filename_attr is None:
        return tag

    file_name = filename_attr.group(2)
    extension = os.path.splitext(file_name)[1].lower()
    if extension not in ALLOWED_IMAGE_EXTENSIONS:
        logger.warning("Skipping embedded file with disallowed type: %s", file_name)
        return tag

    data_uri = _BASE64_DATA_URI_RE.match(src.group(3))
    if data_uri is None:
        return tag

    try:
        payload = "".join(data_uri.group("payload").split())
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        logger.warning("Skipping embedded image with invalid base64: %s", file_name)
        return tag

    reference = await save_file(data, file_name)

    prefix, quote, _ = src.groups()
    new_src = f"{prefix}{quote}{reference}{quote}"
    rewritten = tag[: src.start()] + new_src + tag[src.end() :]
    return _DATA_FILENAME_ATTR_RE.sub("", rewritten, count=1)


async def externalize_embedded_images(html: str, save_file: SaveFile) -> str:
    """Persist base64 ``<img>`` uploads via ``save_file`` and link to them.

    Only tags with both a ``data:`` src and a ``data-filename`` attribute are
    touched. Each file is saved before its tag is rewritten, and tags are
    processed in document order. Running this on already-externalized content
    is a no-op.
    """
    if not html:
        return html

    pieces: list[str] = []
    last = 0
    for match in _IMG_TAG_RE.finditer(html):
        pieces.append(html[last : match.start()])
        pieces.append(await _externalize_tag(match.group(0), save_file))
        last = match.end()
    pieces.append(html[last:])
    return "".join(pieces)
