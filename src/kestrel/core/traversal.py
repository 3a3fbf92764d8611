"""The traversal loop: listing -> companies -> jobs -> relevance gates -> draft.

Processing is strictly sequential on one tab. Companies are handled in
extraction order and jobs in DOM order. The loop polls its ``RunController``
before every company, before every job and inside every delay; a stop raises
``RunStopped`` from the poll point and unwinds every level at once.

Dedup state lives in the record store, which the loop does not own, so every
write is preceded by a lookup and a duplicate reported by the store counts as
success.
"""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass
from typing import Protocol

from kestrel.browser.navigator import JobLink
from kestrel.browser.site import SiteLayout
from kestrel.config import Settings, get_settings
from kestrel.core.activity import ActivityLog
from kestrel.core.drafting import Drafter
from kestrel.core.relevance import (
    NotRelevant,
    RelevanceClassifier,
    RelevanceStage,
    RelevanceVerdict,
    verdict_payload,
)
from kestrel.core.state import RunController, RunState, RunStopped
from kestrel.store.client import RecordStore, StoreError, StoreUnauthorized
from kestrel.types import ApplicationStatus, Profile

logger = logging.getLogger(__name__)

# Link texts like "View job" or "Apply" that sit on job links but are not titles.
_ACTION_WORDS = re.compile(r"^(view|apply|see|open)(\s|$)", re.IGNORECASE)


def is_plausible_job_title(title: str, min_length: int = 5) -> bool:
    text = title.strip()
    if len(text) < min_length:
        return False
    return _ACTION_WORDS.match(text) is None


class Navigator(Protocol):
    layout: SiteLayout

    async def ensure_on_listing(self) -> bool: ...

    async def wait_for_company_links(self, timeout_ms: int | None = None) -> None: ...

    async def extract_company_links(self) -> list[str]: ...

    async def highlight_company(self, href: str) -> None: ...

    async def load_more_companies(self) -> None: ...

    async def scroll_offset(self) -> float: ...

    async def open_company(self, url: str) -> bool: ...

    async def extract_job_links(self) -> list[JobLink]: ...

    async def highlight_job(self, job: JobLink) -> None: ...

    async def open_job(self, url: str) -> bool: ...

    async def has_applied_marker(self) -> bool: ...

    async def extract_description(self) -> str: ...

    async def open_application_form(self) -> bool: ...

    async def has_cover_letter_input(self) -> bool: ...

    async def fill_cover_letter(self, text: str) -> bool: ...

    async def return_to_company(self, company_url: str, saved_y: float) -> bool: ...

    async def return_to_listing(self, saved_y: float) -> bool: ...


@dataclass(slots=True)
class RunSummary:
    companies_seen: int = 0
    companies_visited: int = 0
    jobs_seen: int = 0
    titles_filtered: int = 0
    skipped_title: int = 0
    skipped_description: int = 0
    already_applied: int = 0
    drafted: int = 0
    errors: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


class TraversalLoop:
    def __init__(
        self,
        *,
        navigator: Navigator,
        classifier: RelevanceClassifier,
        drafter: Drafter,
        store: RecordStore,
        profile: Profile,
        controller: RunController,
        activity: ActivityLog | None = None,
        settings: Settings | None = None,
    ):
        self.navigator = navigator
        self.classifier = classifier
        self.drafter = drafter
        self.store = store
        self.profile = profile
        self.controller = controller
        self.activity = activity or ActivityLog()
        self.settings = settings or get_settings()
        self.summary = RunSummary()
        self._seen_companies: set[str] = set()
        self._listing_failures = 0

    @property
    def layout(self) -> SiteLayout:
        return self.navigator.layout

    async def run(self) -> RunSummary:
        if self.controller.state is RunState.IDLE:
            self.controller.start()

        await self.activity("Starting automation loop...")
        try:
            while True:
                await self.controller.checkpoint()
                await self._iterate()
        except RunStopped:
            logger.info("Traversal stopped summary=%s", self.summary.as_dict())

        await self.activity("Automation stopped.")
        return self.summary

    async def _iterate(self) -> None:
        try:
            await self._scan_listing()
        except RunStopped:
            raise
        except Exception as exc:
            self.summary.errors += 1
            self._listing_failures += 1
            logger.warning("Listing iteration failed (%d in a row): %s", self._listing_failures, exc)
            await self.activity(f"Listing unavailable: {exc}", "error")
            if self._listing_failures >= self.settings.listing_failure_limit:
                await self.activity(
                    f"Listing failed {self._listing_failures} times in a row; stopping.",
                    "error",
                )
                self.controller.stop()

    async def _scan_listing(self) -> None:
        nav = self.navigator
        await nav.ensure_on_listing()
        await nav.wait_for_company_links()

        links = await nav.extract_company_links()
        self._seen_companies.update(links)
        self.summary.companies_seen = len(self._seen_companies)

        fresh = await self._new_companies(links)
        self._listing_failures = 0
        await self.activity(f"Found {len(fresh)} new companies.")

        if not fresh:
            await self.activity("No new companies. Scrolling...")
            await nav.load_more_companies()
            return

        for href in fresh:
            await self.controller.checkpoint()
            try:
                await self._visit_company(href)
            except RunStopped:
                raise
            except Exception as exc:
                self.summary.errors += 1
                logger.exception("Company visit failed href=%s", href)
                await self.activity(f"Error visiting company {self.layout.company_slug(href)}: {exc}", "error")

    async def _new_companies(self, links: list[str]) -> list[str]:
        fresh: list[str] = []
        for href in links:
            url = self.layout.absolute_url(href)
            try:
                existing = await self.store.find_company(url)
            except StoreUnauthorized:
                raise
            except StoreError as exc:
                logger.warning("Company lookup failed url=%s: %s", url, exc)
                continue
            if existing is None:
                fresh.append(href)
        return fresh

    async def _visit_company(self, href: str) -> None:
        nav = self.navigator
        company_url = self.layout.absolute_url(href)
        company_name = self.layout.company_slug(href)

        if not await self._mark_company_visited(company_url, company_name):
            return

        await self.activity(f"Checking company: {company_name}")
        await nav.highlight_company(href)
        listing_y = await nav.scroll_offset()
        self.summary.companies_visited += 1

        if await nav.open_company(company_url):
            await self._process_company_jobs(company_url, company_name)
        else:
            await self.activity("Timeout loading company, skipping.", "skip")

        await self.activity("Returning to list...")
        await nav.return_to_listing(listing_y)

    async def _mark_company_visited(self, company_url: str, company_name: str) -> bool:
        """Write-ahead marker, created before the company's jobs are inspected.

        Returns False when another writer already recorded the company since the
        listing scan, in which case the visit is skipped.
        """
        try:
            if await self.store.find_company(company_url) is not None:
                logger.info("Company recorded since listing scan, skipping url=%s", company_url)
                return False
            await self.store.create_company(url=company_url, name=company_name, status="visited")
        except StoreError as exc:
            logger.error("Failed to save company url=%s: %s", company_url, exc)
        return True

    async def _process_company_jobs(self, company_url: str, company_name: str) -> None:
        try:
            jobs = await self.navigator.extract_job_links()
        except RunStopped:
            raise
        except Exception as exc:
            self.summary.errors += 1
            logger.exception("Could not enumerate jobs company=%s", company_name)
            await self.activity(f"Error reading jobs for {company_name}: {exc}", "error")
            return

        if jobs:
            await self.activity(f"Found {len(jobs)} job(s) at this company.")

        for job in jobs:
            await self.controller.checkpoint()
            try:
                await self._process_job(company_url, company_name, job)
            except RunStopped:
                raise
            except Exception as exc:
                self.summary.errors += 1
                logger.exception("Job processing failed company=%s job=%s", company_name, job.href)
                await self.activity(f"Error: {exc}", "error", job_title=job.title)

    async def _process_job(self, company_url: str, company_name: str, job: JobLink) -> None:
        nav = self.navigator
        if not job.href:
            return

        self.summary.jobs_seen += 1
        title = job.title.strip()
        if not is_plausible_job_title(title, self.settings.title_min_length):
            self.summary.titles_filtered += 1
            logger.debug("Ignoring non-title job link text=%r href=%s", title, job.href)
            return

        job_url = self.layout.absolute_url(job.href)
        await nav.highlight_job(job)
        await self.activity("Checking title match...", job_title=title)

        verdict = await self.classifier.classify(title, self.profile.persona_vector, RelevanceStage.TITLE)
        if isinstance(verdict, NotRelevant):
            self.summary.skipped_title += 1
            await self.activity("Title not relevant, skipping.", "skip", job_title=title, match_score=verdict.score)
            await self._record_application(
                job_title=title,
                company_name=company_name,
                job_url=job_url,
                body_text=f"Title mismatch (Score: {verdict.score})",
                status="skipped",
                verdict=verdict,
            )
            return

        await self.activity("Title looks relevant!", "match", job_title=title, match_score=_display_score(verdict))

        company_y = await nav.scroll_offset()
        if not await nav.open_job(job_url):
            await self.activity("Timeout loading job, skipping.", "skip", job_title=title)
        else:
            try:
                await self._qualify_job(title, company_name, job_url)
            except RunStopped:
                raise
            except Exception as exc:
                self.summary.errors += 1
                logger.exception("Job page handling failed company=%s job=%s", company_name, job_url)
                await self.activity(f"Error: {exc}", "error", job_title=title)

        await nav.return_to_company(company_url, company_y)

    async def _qualify_job(self, title: str, company_name: str, job_url: str) -> None:
        nav = self.navigator
        if await nav.has_applied_marker():
            self.summary.already_applied += 1
            await self.activity("Already applied, skipping.", "skip", job_title=title)
            return

        description = await nav.extract_description()
        await self.activity("AI analyzing job description...", job_title=title)
        verdict = await self.classifier.classify(
            description, self.profile.persona_vector, RelevanceStage.DESCRIPTION
        )
        if isinstance(verdict, NotRelevant):
            self.summary.skipped_description += 1
            await self.activity("Not a good fit, skipping.", "skip", job_title=title, match_score=verdict.score)
            await self._record_application(
                job_title=title,
                company_name=company_name,
                job_url=job_url,
                body_text=f"Description mismatch (Score: {verdict.score})",
                status="skipped",
                verdict=verdict,
            )
            return

        await self.activity(
            "Good fit! Generating application...",
            "success",
            job_title=title,
            match_score=_display_score(verdict),
        )
        await self._draft(title, company_name, job_url, description, verdict)

    async def _draft(
        self,
        title: str,
        company_name: str,
        job_url: str,
        description: str,
        verdict: RelevanceVerdict,
    ) -> None:
        nav = self.navigator
        await nav.open_application_form()
        if not await nav.has_cover_letter_input():
            await self.activity("No application field found, skipping.", "skip", job_title=title)
            return

        letter = await self.drafter.draft(description, self.profile.raw_text)
        await self.activity(f"Typing application ({len(letter)} chars)...", job_title=title)
        if not await nav.fill_cover_letter(letter):
            await self.activity("Application field disappeared before typing.", "error", job_title=title)
            return

        saved = await self._record_application(
            job_title=title,
            company_name=company_name,
            job_url=job_url,
            body_text=letter,
            status="submitted",
            verdict=verdict,
        )
        self.summary.drafted += 1
        if saved:
            await self.activity("Application saved to database.", "success", job_title=title)
        await self.activity("Application filled! (Not submitted)", "success", job_title=title)

    async def _record_application(
        self,
        *,
        job_title: str,
        company_name: str,
        job_url: str,
        body_text: str,
        status: ApplicationStatus,
        verdict: RelevanceVerdict,
    ) -> bool:
        """Check-then-create an application record. Returns True if this call created it."""
        try:
            if await self.store.find_application(job_url) is not None:
                logger.debug("Application already recorded job_url=%s", job_url)
                return False
            _, created = await self.store.create_application(
                job_title=job_title,
                company_name=company_name,
                job_url=job_url,
                body_text=body_text,
                status=status,
                match_score=None if verdict.score is None else float(verdict.score),
            )
        except StoreError as exc:
            logger.error("Failed to save application job_url=%s: %s", job_url, exc)
            await self.activity(f"Failed to save application: {exc}", "error", job_title=job_title)
            return False
        return created


def _display_score(verdict: RelevanceVerdict) -> int:
    return int(verdict_payload(verdict)["score"])
