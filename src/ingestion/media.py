"""
Image extraction from feed entries
"""
import re
from typing import Any, Iterable, List, Optional

_MEDIA_TAG = re.compile(r'<media:content[^>]*?\burl=["\']([^"\']+)["\']', re.IGNORECASE)
_IMG_TAG = re.compile(r'<img[^>]+?\bsrc=["\']([^"\']+)["\']', re.IGNORECASE)

DEFAULT_EPHEMERAL_PATTERNS = ("fbcdn.net", "scontent", "cdninstagram.com")


def _get(obj: Any, key: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _from_media_content(entry: Any) -> Optional[str]:
    for media in _as_list(_get(entry, "media_content")):
        url = _get(media, "url")
        if not url:
            continue
        media_type = (_get(media, "type") or "").lower()
        medium = (_get(media, "medium") or "").lower()
        if media_type and not media_type.startswith("image/") and medium != "image":
            continue
        return url
    return None


def _from_raw_markup(raw_markup: Optional[str]) -> Optional[str]:
    if not raw_markup:
        return None
    match = _MEDIA_TAG.search(raw_markup)
    return match.group(1) if match else None


def _from_enclosures(entry: Any) -> Optional[str]:
    candidates = _as_list(_get(entry, "enclosures"))
    candidates += [
        link for link in _as_list(_get(entry, "links"))
        if _get(link, "rel") == "enclosure"
    ]
    for enclosure in candidates:
        enclosure_type = (_get(enclosure, "type") or "").lower()
        url = _get(enclosure, "href") or _get(enclosure, "url")
        if url and enclosure_type.startswith("image/"):
            return url
    return None


def _from_inline_html(entry: Any) -> Optional[str]:
    fragments = [part.get("value", "") for part in _as_list(_get(entry, "content")) if isinstance(part, dict)]
    fragments.append(_get(entry, "summary") or "")
    fragments.append(_get(entry, "description") or "")
    for fragment in fragments:
        match = _IMG_TAG.search(fragment or "")
        if match:
            return match.group(1)
    return None


def _from_thumbnails(entry: Any) -> Optional[str]:
    for thumb in _as_list(_get(entry, "media_thumbnail")):
        url = _get(thumb, "url")
        if url:
            return url
    image = _get(entry, "image")
    href = _get(image, "href") or _get(image, "url")
    if href:
        return href
    thumbnail = _get(entry, "thumbnail")
    if isinstance(thumbnail, str) and thumbnail:
        return thumbnail
    return _get(thumbnail, "url")


def extract_image_url(entry: Any, raw_markup: Optional[str] = None) -> Optional[str]:
    """
    Find the image of a feed entry. Sources are tried in order and the first
    non-empty URL wins: media content, raw <media:content> markup, image
    enclosures, inline <img> tags, thumbnail fields.
    """
    for candidate in (
        _from_media_content(entry),
        _from_raw_markup(raw_markup),
        _from_enclosures(entry),
        _from_inline_html(entry),
        _from_thumbnails(entry),
    ):
        if candidate and candidate.strip():
            return candidate.strip()
    return None


def is_ephemeral_url(url: Optional[str], patterns: Iterable[str] = DEFAULT_EPHEMERAL_PATTERNS) -> bool:
    """True for CDN URLs that expire, which must be rehosted before they are stored."""
    if not url:
        return False
    lowered = url.lower()
    return any(pattern.lower() in lowered for pattern in patterns)


def split_raw_entries(document: str) -> List[str]:
    """Raw <item>/<entry> blocks of a feed document, in document order."""
    return re.findall(r'<item\b.*?</item>|<entry\b.*?</entry>', document, re.DOTALL | re.IGNORECASE)
