from __future__ import annotations

import logging

from playwright.async_api import Browser, Page, Playwright, async_playwright

from kestrel.browser.site import SiteLayout
from kestrel.config import Settings

logger = logging.getLogger(__name__)


class BrowserAttachError(RuntimeError):
    pass


class BrowserAttachment:
    """Attaches to an already-open tab over the DevTools protocol.

    The browser process is not owned here: leaving the context disconnects
    without closing the user's browser.
    """

    def __init__(self, settings: Settings, layout: SiteLayout):
        self.settings = settings
        self.layout = layout
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None

    async def __aenter__(self) -> Page:
        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.connect_over_cdp(self.settings.browser_cdp_url)
        except Exception as exc:
            await self._playwright.stop()
            self._playwright = None
            raise BrowserAttachError(
                f"Could not attach to the browser at {self.settings.browser_cdp_url}: {exc}"
            ) from exc

        page = self._find_page()
        if page is None:
            await self.__aexit__(None, None, None)
            raise BrowserAttachError(f"Please navigate to {self.layout.base_url} first!")

        await page.bring_to_front()
        logger.info("Attached to tab %s", page.url)
        return page

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception as close_exc:
                logger.debug("Ignoring error while disconnecting from browser: %s", close_exc)
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    def _find_page(self) -> Page | None:
        if self._browser is None:
            return None
        for context in self._browser.contexts:
            for page in context.pages:
                if self.layout.is_site_url(page.url):
                    return page
        return None
