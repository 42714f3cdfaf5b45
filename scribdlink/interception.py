"""Network interception that captures the direct link from ilide.info.

Opening an ilide.info generator URL kicks off a chain of redirects that ends
in a PDF.js viewer page (``.../viewer/web/viewer.html?file=<link>``).  We never
need the viewer itself: watching the browser's responses for that URL and
reading its ``file`` parameter is enough.

The same program exists twice:

- ``INTERCEPT_SCRIPT`` is the JavaScript module posted to a remote Browserless
  ``/function`` endpoint, which runs it against a Puppeteer ``page``.
- ``intercept`` drives a Playwright ``Page`` from Python, for running against
  a local Chromium or an existing Chrome over CDP.

Both filter requests with the same block list, keep only the *first*
matching viewer response, wait a short settle delay after the page is ready
(the redirect chain is asynchronous) and report "navigation failed" and
"link never seen" as different errors.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from urllib.parse import parse_qs, unquote, urlsplit

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page, sync_playwright

logger = logging.getLogger(__name__)

#: Path fragment of the PDF.js viewer that carries the download link.
VIEWER_MARKER = "viewer/web/viewer.html"

#: Resource types aborted when non-essential resources are blocked.
BLOCKED_RESOURCE_TYPES = ("image", "stylesheet", "font", "media")

WAIT_STRATEGIES = ("domcontentloaded", "networkidle")

NAVIGATION_TIMEOUT_MS = 55_000

#: Settle delays after the ready signal.  Blocking scripts removes most of
#: the asynchronous work on the page, so a shorter margin suffices.
SETTLE_MS_SCRIPTS_BLOCKED = 500
SETTLE_MS_DEFAULT = 1_500


class InterceptionError(RuntimeError):
    """The interception run finished without a captured link."""


class NavigationFailed(InterceptionError):
    """Navigation to the target URL raised before any link was captured."""


class LinkNotDetected(InterceptionError):
    """Navigation completed but no viewer response was observed."""

    def __init__(self, message: str = "Download link response not detected on ilide.info.") -> None:
        super().__init__(message)


@dataclass(frozen=True)
class InterceptionConfig:
    """Input of one interception run."""

    target_url: str
    block_non_essential_resources: bool = True
    block_scripts: bool = False
    wait_until: str = "domcontentloaded"
    navigation_timeout_ms: int = NAVIGATION_TIMEOUT_MS
    settle_ms: int | None = None

    def __post_init__(self) -> None:
        if self.wait_until not in WAIT_STRATEGIES:
            raise ValueError(
                f"wait_until must be one of {WAIT_STRATEGIES}, "
                f"got {self.wait_until!r}"
            )

    @property
    def settle_delay_ms(self) -> int:
        if self.settle_ms is not None:
            return self.settle_ms
        if self.block_scripts:
            return SETTLE_MS_SCRIPTS_BLOCKED
        return SETTLE_MS_DEFAULT

    def to_context(self) -> dict:
        """Serialise into the ``context`` object handed to the remote script."""
        return {
            "targetUrl": self.target_url,
            "blockNonEssentialResources": self.block_non_essential_resources,
            "blockScripts": self.block_scripts,
            "waitUntil": self.wait_until,
            "navigationTimeoutMs": self.navigation_timeout_ms,
            "settleMs": self.settle_delay_ms,
        }


class CaptureSlot:
    """Holds at most one captured link; later offers are ignored."""

    def __init__(self) -> None:
        self._value: str | None = None

    @property
    def value(self) -> str | None:
        return self._value

    def offer(self, link: str) -> bool:
        """Store *link* if the slot is empty.  Returns True if it was stored."""
        if self._value is not None:
            return False
        self._value = link
        return True


def should_block(resource_type: str, config: InterceptionConfig) -> bool:
    """Return True if a request of *resource_type* should be aborted."""
    if config.block_scripts and resource_type == "script":
        return True
    return (
        config.block_non_essential_resources
        and resource_type in BLOCKED_RESOURCE_TYPES
    )


def extract_viewer_link(url: str) -> str | None:
    """Return the decoded ``file`` parameter of a viewer *url*, if any.

    Query parsing decodes the value once; it is then decoded again, and a
    third pass is attempted for links that were encoded twice upstream.
    Returns ``None`` for URLs that are not viewer responses or whose
    parameter cannot be decoded.
    """
    if VIEWER_MARKER not in url or "file=" not in url:
        return None
    values = parse_qs(urlsplit(url).query).get("file")
    if not values or not values[0]:
        return None
    try:
        link = unquote(values[0], errors="strict")
    except UnicodeDecodeError as exc:
        logger.error("Error parsing viewer URL %s: %s", url, exc)
        return None
    try:
        link = unquote(link, errors="strict")
    except UnicodeDecodeError:
        pass
    return link


def intercept(page: Page, config: InterceptionConfig) -> str:
    """Run the interception program against a Playwright *page*.

    Returns the captured link or raises :class:`NavigationFailed` /
    :class:`LinkNotDetected`.
    """
    slot = CaptureSlot()

    if config.block_non_essential_resources or config.block_scripts:
        def _on_route(route) -> None:
            resource_type = route.request.resource_type
            if should_block(resource_type, config):
                if resource_type == "script":
                    logger.debug("Blocking script: %s", route.request.url)
                route.abort()
            else:
                route.continue_()

        page.route("**/*", _on_route)

    def _on_response(response) -> None:
        link = extract_viewer_link(response.url)
        if link is None:
            return
        if slot.offer(link):
            logger.info("Captured target link: %s", link)
        else:
            logger.debug("Ignoring later viewer response: %s", link)

    page.on("response", _on_response)

    navigation_error: Exception | None = None
    try:
        logger.info(
            "Navigating to %s (wait_until=%s)", config.target_url, config.wait_until,
        )
        page.goto(
            config.target_url,
            wait_until=config.wait_until,
            timeout=config.navigation_timeout_ms,
        )
        # Unlike time.sleep, this keeps dispatching response events.
        page.wait_for_timeout(config.settle_delay_ms)
    except PlaywrightError as exc:
        logger.error("Navigation/processing error: %s", exc)
        navigation_error = exc

    if slot.value:
        return slot.value
    if navigation_error is not None:
        raise NavigationFailed(
            f"Browserless execution failed: {navigation_error}"
        ) from navigation_error
    raise LinkNotDetected()


def run_local(
    config: InterceptionConfig,
    *,
    cdp_url: str | None = None,
    headless: bool = True,
) -> str:
    """Run :func:`intercept` in a local browser.

    Launches Playwright's bundled Chromium, or attaches to a running Chrome
    when *cdp_url* is given (``ws://...`` or ``http://127.0.0.1:9222``).
    """
    with sync_playwright() as pw:
        if cdp_url:
            logger.info("Connecting via CDP: %s", cdp_url)
            browser = pw.chromium.connect_over_cdp(cdp_url)
            context = (
                browser.contexts[0]
                if browser.contexts
                else browser.new_context()
            )
        else:
            browser = pw.chromium.launch(headless=headless)
            context = browser.new_context()
        page = context.new_page()
        page.set_default_timeout(config.navigation_timeout_ms)
        try:
            return intercept(page, config)
        finally:
            page.close()
            if not cdp_url:
                browser.close()


# ----------------------------------------------------------------------
# Remote (Browserless) form
# ----------------------------------------------------------------------

_SCRIPT_TEMPLATE = r"""
export default async function ({ page, context }) {
    const {
        targetUrl,
        blockNonEssentialResources = true,
        blockScripts = false,
        waitUntil = 'domcontentloaded',
        navigationTimeoutMs = __NAVIGATION_TIMEOUT_MS__,
        settleMs = blockScripts ? __SETTLE_BLOCKED__ : __SETTLE_DEFAULT__,
    } = context;
    const blockList = __BLOCK_LIST__;
    const viewerMarker = __VIEWER_MARKER__;
    let capturedLink = null;
    let navigationError = null;

    // Request filtering.
    if (blockNonEssentialResources || blockScripts) {
        await page.setRequestInterception(true);
        page.on('request', (request) => {
            const resourceType = request.resourceType();
            if (blockScripts && resourceType === 'script') {
                request.abort();
            } else if (blockNonEssentialResources && blockList.includes(resourceType)) {
                request.abort();
            } else {
                request.continue();
            }
        });
    }

    // First viewer response wins.
    page.on('response', (response) => {
        const url = response.url();
        if (capturedLink || !url.includes(viewerMarker) || !url.includes('file=')) {
            return;
        }
        try {
            const fileParam = new URL(url).searchParams.get('file');
            if (!fileParam) return;
            let decodedLink = decodeURIComponent(fileParam);
            try { decodedLink = decodeURIComponent(decodedLink); } catch (e) {}
            capturedLink = decodedLink;
            console.log('Captured target link:', capturedLink);
        } catch (err) {
            console.error('Error parsing viewer URL:', err.message);
        }
    });

    try {
        await page.goto(targetUrl, { waitUntil, timeout: navigationTimeoutMs });
        await new Promise((resolve) => setTimeout(resolve, settleMs));
    } catch (error) {
        console.error('Navigation/processing error:', error);
        navigationError = error;
    }

    if (capturedLink) {
        return { data: capturedLink, type: 'text/plain' };
    } else if (navigationError) {
        throw new Error('Browserless execution failed: ' + navigationError.message);
    }
    throw new Error('Download link response not detected on ilide.info.');
}
"""


def _render_script() -> str:
    replacements = {
        "__NAVIGATION_TIMEOUT_MS__": str(NAVIGATION_TIMEOUT_MS),
        "__SETTLE_BLOCKED__": str(SETTLE_MS_SCRIPTS_BLOCKED),
        "__SETTLE_DEFAULT__": str(SETTLE_MS_DEFAULT),
        "__BLOCK_LIST__": json.dumps(list(BLOCKED_RESOURCE_TYPES)),
        "__VIEWER_MARKER__": json.dumps(VIEWER_MARKER),
    }
    script = _SCRIPT_TEMPLATE
    for placeholder, value in replacements.items():
        script = script.replace(placeholder, value)
    return script.strip() + "\n"


#: JavaScript source posted as the ``code`` field of a Browserless call.
INTERCEPT_SCRIPT = _render_script()
