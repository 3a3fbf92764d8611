from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urljoin, urlparse

from kestrel.config import Settings, get_settings

# Reads the analytics user id ($user_id) from the first localStorage key containing the marker.
USER_ID_SCRIPT = """
(marker) => {
  try {
    for (let i = 0; i < localStorage.length; i++) {
      const key = localStorage.key(i);
      if (key && key.includes(marker)) {
        const raw = localStorage.getItem(key);
        if (raw) {
          const parsed = JSON.parse(raw);
          if (parsed && parsed.$user_id) return String(parsed.$user_id);
        }
      }
    }
    return null;
  } catch (e) {
    return null;
  }
}
"""


@dataclass(frozen=True, slots=True)
class SiteLayout:
    """Every selector, URL pattern and text marker of the target site.

    Tuned to one known DOM shape; a redesign of the site is handled here and
    nowhere else.
    """

    base_url: str
    listing_path: str = "/companies"
    company_link_selector: str = 'a[href^="/companies/"]'
    job_link_selector: str = 'a[href*="/jobs/"]'
    excluded_company_fragments: tuple[str, ...] = ("/jobs/", "/website", "/twitter", "/linkedin")
    description_selector: str = "main"
    applied_marker_text: str = "Applied"
    apply_button_text: str = "Apply"
    cover_letter_selector: str = "textarea"
    user_id_storage_marker: str = "_posthog"

    @property
    def listing_url(self) -> str:
        return f"{self.base_url.rstrip('/')}{self.listing_path}"

    @property
    def host(self) -> str:
        return urlparse(self.base_url).netloc.lower()

    def absolute_url(self, href: str) -> str:
        if href.startswith("http"):
            return href
        return urljoin(f"{self.base_url.rstrip('/')}/", href)

    def is_listing_url(self, url: str) -> bool:
        path = urlparse(url).path.rstrip("/")
        return path == self.listing_path.rstrip("/")

    def is_company_href(self, href: str | None) -> bool:
        if not href or href.startswith("http"):
            return False
        if not href.startswith(f"{self.listing_path}/"):
            return False
        return not any(fragment in href for fragment in self.excluded_company_fragments)

    def company_slug(self, href: str) -> str:
        path = urlparse(href).path
        prefix = f"{self.listing_path}/"
        return path[len(prefix):] if path.startswith(prefix) else path.strip("/")

    def is_site_url(self, url: str) -> bool:
        return urlparse(url).netloc.lower().endswith(self.host.removeprefix("www."))


def layout_from_settings(settings: Settings | None = None) -> SiteLayout:
    settings = settings or get_settings()
    return SiteLayout(base_url=settings.site_base_url, listing_path=settings.site_listing_path)


def filter_company_links(layout: SiteLayout, hrefs: list[str | None]) -> list[str]:
    """Company hrefs in document order, deduplicated, with job/external/social links removed."""
    seen: set[str] = set()
    links: list[str] = []
    for href in hrefs:
        if not layout.is_company_href(href) or href in seen:
            continue
        seen.add(href)
        links.append(href)
    return links
