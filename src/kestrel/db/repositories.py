from __future__ import annotations

import logging
from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from kestrel.db.models import Application, Company, EmbeddingCacheEntry
from kestrel.types import ApplicationRecord, CompanyRecord

logger = logging.getLogger(__name__)


class Repository:
    """Check-then-create access to companies, applications and the embedding cache.

    Every ``create_*`` returns ``(row, created)``. A unique-constraint violation
    from a concurrent writer is resolved by returning the row that won the race
    with ``created=False``.
    """

    def __init__(self, session: Session):
        self.session = session

    def find_company(self, user_id: str, url: str) -> Company | None:
        return self.session.scalar(
            select(Company).where(Company.user_id == user_id, Company.url == url)
        )

    def list_companies(self, user_id: str) -> list[Company]:
        statement = select(Company).where(Company.user_id == user_id).order_by(Company.id)
        return list(self.session.scalars(statement).all())

    def create_company(
        self,
        user_id: str,
        *,
        url: str,
        name: str | None,
        status: str = "visited",
    ) -> tuple[Company, bool]:
        existing = self.find_company(user_id, url)
        if existing:
            return existing, False

        company = Company(user_id=user_id, url=url, name=name, status=status or "visited")
        self.session.add(company)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            winner = self.find_company(user_id, url)
            if winner is None:
                raise
            logger.info("Company already recorded by a concurrent writer url=%s", url)
            return winner, False

        self.session.refresh(company)
        return company, True

    def find_application(self, user_id: str, job_url: str) -> Application | None:
        return self.session.scalar(
            select(Application).where(Application.user_id == user_id, Application.job_url == job_url)
        )

    def list_applications(self, user_id: str) -> list[Application]:
        statement = (
            select(Application)
            .where(Application.user_id == user_id)
            .order_by(Application.applied_at.desc(), Application.id.desc())
        )
        return list(self.session.scalars(statement).all())

    def create_application(
        self,
        user_id: str,
        *,
        job_title: str,
        company_name: str,
        job_url: str,
        body_text: str,
        status: str = "submitted",
        match_score: float | None = None,
    ) -> tuple[Application, bool]:
        existing = self.find_application(user_id, job_url)
        if existing:
            return existing, False

        application = Application(
            user_id=user_id,
            job_title=job_title,
            company_name=company_name,
            job_url=job_url,
            body_text=body_text,
            status=status or "submitted",
            match_score=match_score,
        )
        self.session.add(application)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            winner = self.find_application(user_id, job_url)
            if winner is None:
                raise
            logger.info("Application already recorded by a concurrent writer job_url=%s", job_url)
            return winner, False

        self.session.refresh(application)
        return application, True

    def get_embedding(self, model_id: str, content_hash: str) -> EmbeddingCacheEntry | None:
        return self.session.scalar(
            select(EmbeddingCacheEntry).where(
                EmbeddingCacheEntry.model_id == model_id,
                EmbeddingCacheEntry.content_hash == content_hash,
            )
        )

    def put_embedding(
        self,
        model_id: str,
        content_hash: str,
        *,
        normalized_text: str,
        vector: Sequence[float],
    ) -> EmbeddingCacheEntry:
        entry = self.get_embedding(model_id, content_hash)
        if entry is None:
            entry = EmbeddingCacheEntry(
                model_id=model_id,
                content_hash=content_hash,
                normalized_text=normalized_text,
                vector=list(vector),
            )
            self.session.add(entry)
        elif entry.normalized_text == normalized_text:
            return entry
        else:
            # Same key, different text: a hash collision. Last writer wins.
            entry.normalized_text = normalized_text
            entry.vector = list(vector)

        self.session.commit()
        self.session.refresh(entry)
        return entry


def to_company_record(row: Company) -> CompanyRecord:
    return CompanyRecord(
        id=row.id,
        url=row.url,
        display_name=row.name,
        status=row.status,
        visited_at=row.visited_at,
    )


def to_application_record(row: Application) -> ApplicationRecord:
    return ApplicationRecord(
        id=row.id,
        job_title=row.job_title,
        company_name=row.company_name,
        job_url=row.job_url,
        body_text=row.body_text,
        status=row.status,
        match_score=row.match_score,
        applied_at=row.applied_at,
    )
