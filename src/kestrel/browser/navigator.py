"""Navigation controller for the single attached browser tab.

Every wait is bounded. A timeout degrades to one reload-and-retry (company
links) or a forced navigation (back-navigation), never to an open-ended retry.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from urllib.parse import urlparse

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from kestrel.browser.site import USER_ID_SCRIPT, SiteLayout, filter_company_links
from kestrel.config import Settings, get_settings

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

_HREFS_SCRIPT = "(selector) => Array.from(document.querySelectorAll(selector)).map((a) => a.getAttribute('href'))"
_LINKS_SCRIPT = """
(selector) => Array.from(document.querySelectorAll(selector)).map((a) => ({
  href: a.getAttribute('href'),
  text: (a.innerText || '').trim(),
}))
"""
_DESCRIPTION_SCRIPT = "(selector) => (document.querySelector(selector) || document.body).innerText"
_SCROLL_INTO_VIEW = "(el) => el.scrollIntoView({ behavior: 'smooth', block: 'center' })"


class NavigationError(RuntimeError):
    pass


class ListingUnavailable(NavigationError):
    """The company listing did not render even after a reload."""


@dataclass(frozen=True, slots=True)
class JobLink:
    index: int
    title: str
    href: str | None


class NavigationController:
    def __init__(
        self,
        page: Page,
        layout: SiteLayout,
        settings: Settings | None = None,
        *,
        sleep: Sleep = asyncio.sleep,
    ):
        self.page = page
        self.layout = layout
        self.settings = settings or get_settings()
        self._sleep = sleep

    async def pause(self, milliseconds: int) -> None:
        if milliseconds > 0:
            await self._sleep(milliseconds / 1000)

    async def ensure_on_listing(self) -> bool:
        """Navigate to the listing unless already there. Returns True if it navigated."""
        if self.layout.is_listing_url(self.page.url):
            return False
        logger.info("Not on the listing page (%s); navigating", self.page.url)
        await self.page.goto(self.layout.listing_url, timeout=self.settings.page_load_timeout_ms)
        await self.pause(self.settings.listing_settle_ms)
        return True

    async def wait_for_company_links(self, timeout_ms: int | None = None) -> None:
        selector = self.layout.company_link_selector
        try:
            await self.page.wait_for_selector(
                selector, timeout=timeout_ms or self.settings.company_links_timeout_ms
            )
            return
        except PlaywrightTimeoutError:
            logger.info("No company links rendered; reloading the listing once")

        try:
            await self.page.reload(timeout=self.settings.page_load_timeout_ms)
            await self.page.wait_for_selector(selector, timeout=self.settings.company_links_retry_timeout_ms)
        except PlaywrightError as exc:
            raise ListingUnavailable(f"company listing did not render after reload: {exc}") from exc

    async def scroll_to_and_pause(self, locator: Locator) -> None:
        """Bring an element to the centre of the view so an operator can follow along."""
        await locator.evaluate(_SCROLL_INTO_VIEW)
        await self.pause(self.settings.highlight_pause_ms)

    async def extract_company_links(self) -> list[str]:
        hrefs = await self.page.evaluate(_HREFS_SCRIPT, self.layout.company_link_selector)
        return filter_company_links(self.layout, list(hrefs or []))

    async def highlight_company(self, href: str) -> None:
        locator = self.page.locator(f'a[href="{href}"]').first
        try:
            await self.scroll_to_and_pause(locator)
        except PlaywrightError as exc:
            logger.debug("Could not scroll to company link %s: %s", href, exc)

    async def load_more_companies(self) -> None:
        await self.page.mouse.wheel(0, self.settings.listing_scroll_px)
        await self.pause(self.settings.listing_scroll_pause_ms)

    async def scroll_offset(self) -> float:
        value = await self.page.evaluate("() => window.scrollY")
        return float(value or 0)

    async def open_company(self, url: str) -> bool:
        return await self._open(url, settle_ms=self.settings.company_settle_ms)

    async def extract_job_links(self) -> list[JobLink]:
        raw = await self.page.evaluate(_LINKS_SCRIPT, self.layout.job_link_selector)
        return [
            JobLink(index=index, title=str(item.get("text") or ""), href=item.get("href"))
            for index, item in enumerate(raw or [])
        ]

    async def highlight_job(self, job: JobLink) -> None:
        locator = self.page.locator(self.layout.job_link_selector).nth(job.index)
        try:
            await self.scroll_to_and_pause(locator)
        except PlaywrightError as exc:
            logger.debug("Could not scroll to job link %s: %s", job.href, exc)

    async def open_job(self, url: str) -> bool:
        # Direct navigation: job links on this site open in new tabs.
        return await self._open(url, settle_ms=self.settings.job_settle_ms)

    async def has_applied_marker(self) -> bool:
        marker = self.page.get_by_text(self.layout.applied_marker_text, exact=True)
        return await marker.count() > 0

    async def extract_description(self) -> str:
        text = await self.page.evaluate(_DESCRIPTION_SCRIPT, self.layout.description_selector)
        return str(text or "")

    async def open_application_form(self) -> bool:
        button = self.page.get_by_text(self.layout.apply_button_text, exact=True).first
        if not await button.is_visible():
            return False
        await self.scroll_to_and_pause(button)
        await button.click()
        await self.pause(self.settings.apply_settle_ms)
        return True

    async def has_cover_letter_input(self) -> bool:
        return await self.page.locator(self.layout.cover_letter_selector).first.is_visible()

    async def fill_cover_letter(self, text: str) -> bool:
        """Type ``text`` into the free-text field at a human pace. Never submits the form."""
        field = self.page.locator(self.layout.cover_letter_selector).first
        if not await field.is_visible():
            return False
        await self.scroll_to_and_pause(field)
        await field.press_sequentially(
            text,
            delay=self.settings.typing_delay_ms,
            timeout=self.settings.typing_timeout_ms,
        )
        return True

    async def go_back_restoring_scroll(
        self,
        saved_y: float,
        *,
        fallback_url: str,
        landing_selector: str | None = None,
        expected_url: str | None = None,
    ) -> bool:
        """Go back and restore ``saved_y``.

        If the expected page cannot be confirmed within the landing timeout,
        force-navigate to ``fallback_url`` instead. Returns False when the
        fallback was used.
        """
        try:
            await self.page.go_back(timeout=self.settings.page_load_timeout_ms)
            await self.pause(self.settings.back_settle_ms)
            if expected_url is not None and not _same_page(self.page.url, expected_url):
                raise NavigationError(f"back navigation landed on {self.page.url}")
            if landing_selector is not None:
                await self.page.wait_for_selector(landing_selector, timeout=self.settings.landing_timeout_ms)
            await self.page.evaluate("(y) => window.scrollTo(0, y)", saved_y)
            return True
        except (PlaywrightError, NavigationError) as exc:
            logger.info("Back navigation failed (%s); forcing %s", exc, fallback_url)

        await self.page.goto(fallback_url, timeout=self.settings.page_load_timeout_ms)
        try:
            await self.page.wait_for_load_state("networkidle", timeout=self.settings.page_load_timeout_ms)
        except PlaywrightTimeoutError:
            logger.debug("Network did not go idle after forced navigation to %s", fallback_url)
        return False

    async def return_to_company(self, company_url: str, saved_y: float) -> bool:
        return await self.go_back_restoring_scroll(
            saved_y,
            fallback_url=company_url,
            expected_url=company_url,
        )

    async def return_to_listing(self, saved_y: float) -> bool:
        restored = await self.go_back_restoring_scroll(
            saved_y,
            fallback_url=self.layout.listing_url,
            landing_selector=self.layout.company_link_selector,
        )
        await self.pause(self.settings.list_return_settle_ms)
        return restored

    async def read_user_id(self) -> str | None:
        try:
            value = await self.page.evaluate(USER_ID_SCRIPT, self.layout.user_id_storage_marker)
        except PlaywrightError as exc:
            logger.warning("Could not read user id from page storage: %s", exc)
            return None
        return str(value) if value else None

    async def _open(self, url: str, *, settle_ms: int) -> bool:
        try:
            await self.page.goto(url, timeout=self.settings.page_load_timeout_ms)
            await self.page.wait_for_load_state("domcontentloaded", timeout=self.settings.page_load_timeout_ms)
        except PlaywrightError as exc:
            logger.warning("Timed out loading %s: %s", url, exc)
            return False
        await self.pause(settle_ms)
        return True


def _same_page(current: str, expected: str) -> bool:
    a, b = urlparse(current), urlparse(expected)
    return a.netloc == b.netloc and a.path.rstrip("/") == b.path.rstrip("/")
