from __future__ import annotations

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from kestrel.api.deps import get_db
from kestrel.api.schemas import ApplicationCreateRequest, CompanyCreateRequest, ConflictResponse
from kestrel.db.repositories import Repository, to_application_record, to_company_record

router = APIRouter(prefix="/api", tags=["store"])

UserHeader = Header(default=None, alias="X-User-Id")


def _require_user(user_id: str | None) -> str:
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing User ID header")
    return user_id


def _wire(record: BaseModel) -> dict:
    return record.model_dump(mode="json", by_alias=True)


@router.get("/companies")
def list_companies(user_id: str | None = UserHeader, db: Session = Depends(get_db)) -> JSONResponse:
    if not user_id:
        return JSONResponse([])
    rows = Repository(db).list_companies(user_id)
    return JSONResponse([_wire(to_company_record(row)) for row in rows])


@router.post("/companies")
def create_company(
    payload: CompanyCreateRequest,
    user_id: str | None = UserHeader,
    db: Session = Depends(get_db),
) -> JSONResponse:
    owner = _require_user(user_id)
    row, created = Repository(db).create_company(
        owner, url=payload.url, name=payload.name, status=payload.status or "visited"
    )
    record = _wire(to_company_record(row))
    if not created:
        conflict = ConflictResponse(message="Company already exists", data=record)
        return JSONResponse(conflict.model_dump(), status_code=409)
    return JSONResponse(record, status_code=201)


@router.get("/companies/search")
def find_company(
    url: str | None = Query(default=None),
    user_id: str | None = UserHeader,
    db: Session = Depends(get_db),
) -> JSONResponse:
    owner = _require_user(user_id)
    if not url:
        raise HTTPException(status_code=400, detail="Missing url query parameter")
    row = Repository(db).find_company(owner, url)
    if row is None:
        raise HTTPException(status_code=404, detail="Company not found")
    return JSONResponse(_wire(to_company_record(row)))


@router.get("/applications")
def list_applications(user_id: str | None = UserHeader, db: Session = Depends(get_db)) -> JSONResponse:
    if not user_id:
        return JSONResponse([])
    rows = Repository(db).list_applications(user_id)
    return JSONResponse([_wire(to_application_record(row)) for row in rows])


@router.post("/applications")
def create_application(
    payload: ApplicationCreateRequest,
    user_id: str | None = UserHeader,
    db: Session = Depends(get_db),
) -> JSONResponse:
    owner = _require_user(user_id)
    row, created = Repository(db).create_application(
        owner,
        job_title=payload.job_title,
        company_name=payload.company_name,
        job_url=payload.job_url,
        body_text=payload.body_text,
        status=payload.status or "submitted",
        match_score=payload.match_score,
    )
    record = _wire(to_application_record(row))
    if not created:
        conflict = ConflictResponse(message="Application already exists", data=record)
        return JSONResponse(conflict.model_dump(), status_code=409)
    return JSONResponse(record, status_code=201)


@router.get("/applications/search")
def find_application(
    job_url: str | None = Query(default=None, alias="jobUrl"),
    user_id: str | None = UserHeader,
    db: Session = Depends(get_db),
) -> JSONResponse:
    owner = _require_user(user_id)
    if not job_url:
        raise HTTPException(status_code=400, detail="Missing jobUrl query parameter")
    row = Repository(db).find_application(owner, job_url)
    if row is None:
        raise HTTPException(status_code=404, detail="Application not found")
    return JSONResponse(_wire(to_application_record(row)))
