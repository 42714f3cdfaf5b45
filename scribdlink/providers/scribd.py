"""Scribd provider – turns scribd.com document URLs into ilide.info links.

Scribd does not expose a direct download for most documents.  ilide.info
offers a "doc generator" page that, given a file reference on its own
downloader host, redirects through a PDF.js viewer whose ``file=`` query
parameter is the direct (signed, short-lived) download link.  This module
covers the two pure steps of that chain:

1. ``extract_scribd_info`` – pull the numeric document id and title slug out
   of a Scribd URL.
2. ``generate_ilide_link`` – build the ilide.info generator URL for it.

The browser half lives in :mod:`scribdlink.interception`.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from urllib.parse import quote

from scribdlink.errors import InvalidReferenceFormat
from scribdlink.providers.base import BaseProvider

logger = logging.getLogger(__name__)

#: ``scribd.com/`` at the start, after a scheme, or after any subdomain.
_SCRIBD_PATTERN = re.compile(r"(?:^|[/.])scribd\.com/")

#: ``<lang>.scribd.com/document/<id>/<slug>`` (``doc`` is an alias).
_PRIMARY_PATTERN = re.compile(
    r"(?:[a-z]{2,3}\.)?scribd\.com/(?:document|doc)/(\d+)/?([^?/]+)?"
)

#: Any Scribd path containing a known document type followed by an id.
_FALLBACK_PATTERN = re.compile(
    r"(?:[a-z]{2,3}\.)?scribd\.com/(?:.*/)?"
    r"(?:document|doc|presentation|book)/(\d+)"
)

ILIDE_GENERATOR_URL = "https://ilide.info/docgeneratev2"
DOWNLOADER_BASE_URL = "https://scribd.vdownloaders.com/pdownload/"
TRACKING_PARAMS = "utm_source=scrfree&utm_medium=queue&utm_campaign=dl"

# Characters ``encodeURIComponent`` leaves alone besides alphanumerics.
_URI_COMPONENT_SAFE = "-_.!~*'()"


@dataclass(frozen=True)
class ScribdDocument:
    """Identity of a Scribd document as recovered from its URL."""

    doc_id: str
    title_slug: str
    title: str


def _encode_component(value: str) -> str:
    return quote(value, safe=_URI_COMPONENT_SAFE)


def extract_scribd_info(url: str) -> ScribdDocument:
    """Extract the document id and title slug from a Scribd *url*.

    Tries the canonical ``/document/<id>/<slug>`` shape first, then a looser
    pattern that accepts ``presentation`` and ``book`` paths anywhere in the
    URL.  The looser pattern recovers no slug, so one is synthesised from
    the id.

    Raises :class:`~scribdlink.errors.InvalidReferenceFormat` when *url* is
    empty, not a string, or matches neither pattern.
    """
    if not url or not isinstance(url, str):
        raise InvalidReferenceFormat("Invalid URL provided for extraction.")

    match = _PRIMARY_PATTERN.search(url)
    if match:
        doc_id = match.group(1)
        slug = match.group(2)
        title_slug = slug.rstrip("/") if slug else f"document-{doc_id}"
        title = title_slug.replace("-", " ")
        logger.debug("Extracted via primary pattern: id=%s slug=%s", doc_id, title_slug)
        return ScribdDocument(doc_id=doc_id, title_slug=title_slug, title=title)

    match = _FALLBACK_PATTERN.search(url)
    if match:
        doc_id = match.group(1)
        logger.warning("Used generic Scribd URL matching for %s", url)
        return ScribdDocument(
            doc_id=doc_id,
            title_slug=f"document-{doc_id}",
            title=f"Document {doc_id}",
        )

    logger.error("Failed to match Scribd URL format: %s", url)
    raise InvalidReferenceFormat("Invalid or unrecognized Scribd URL format.")


def generate_ilide_link(doc: ScribdDocument) -> str:
    """Build the ilide.info generator URL for *doc*.

    The id/slug separator is percent-encoded before the file reference as a
    whole is encoded again, so it reaches ilide.info as ``%252F``.
    """
    file_url = _encode_component(
        f"{DOWNLOADER_BASE_URL}{doc.doc_id}%2F{doc.title_slug}"
    )
    title_with_spaces = doc.title_slug.replace("-", " ")
    encoded_title = _encode_component(f"<div><p>{title_with_spaces}</p></div>")
    return (
        f"{ILIDE_GENERATOR_URL}?fileurl={file_url}"
        f"&title={encoded_title}&{TRACKING_PARAMS}"
    )


class ScribdProvider(BaseProvider):
    """Resolve Scribd document URLs through ilide.info."""

    @staticmethod
    def can_handle(url: str) -> bool:
        return bool(_SCRIBD_PATTERN.search(url))

    def target_url(self, url: str) -> str:
        doc = extract_scribd_info(url)
        link = generate_ilide_link(doc)
        logger.info("Target ilide.info link for %s: %s", doc.doc_id, link)
        return link
