from __future__ import annotations

from fastapi.testclient import TestClient

from kestrel.api.app import create_app
from kestrel.db.models import Application, Company
from kestrel.db.repositories import Repository
from kestrel.db.session import SessionLocal

ALICE = {"X-User-Id": "alice"}
BOB = {"X-User-Id": "bob"}
COMPANY_URL = "https://www.workatastartup.com/companies/acme"
JOB_URL = "https://www.workatastartup.com/companies/acme/jobs/1-backend"


def _client() -> TestClient:
    return TestClient(create_app())


def _application(job_url: str = JOB_URL, **overrides) -> dict:
    payload = {
        "jobTitle": "Backend Engineer",
        "companyName": "acme",
        "jobUrl": job_url,
        "bodyText": "Hello team",
        "status": "submitted",
        "matchScore": 71,
    }
    payload.update(overrides)
    return payload


def test_company_create_search_and_conflict() -> None:
    client = _client()

    created = client.post("/api/companies", json={"url": COMPANY_URL, "name": "acme"}, headers=ALICE)
    assert created.status_code == 201
    assert created.json()["status"] == "visited"
    assert created.json()["visitedAt"]

    duplicate = client.post("/api/companies", json={"url": COMPANY_URL, "name": "acme"}, headers=ALICE)
    assert duplicate.status_code == 409
    assert duplicate.json()["data"]["id"] == created.json()["id"]

    found = client.get("/api/companies/search", params={"url": COMPANY_URL}, headers=ALICE)
    assert found.status_code == 200
    assert found.json()["name"] == "acme"

    assert len(client.get("/api/companies", headers=ALICE).json()) == 1


def test_missing_header_and_missing_query() -> None:
    client = _client()

    assert client.post("/api/companies", json={"url": COMPANY_URL}).status_code == 401
    assert client.post("/api/applications", json=_application()).status_code == 401
    assert client.get("/api/companies/search", params={"url": COMPANY_URL}).status_code == 401
    assert client.get("/api/companies/search", headers=ALICE).status_code == 400
    assert client.get("/api/applications/search", headers=ALICE).status_code == 400
    assert client.get("/api/companies").json() == []
    assert client.get("/api/applications").json() == []


def test_unknown_records_are_404() -> None:
    client = _client()
    assert client.get("/api/companies/search", params={"url": COMPANY_URL}, headers=ALICE).status_code == 404
    assert client.get("/api/applications/search", params={"jobUrl": JOB_URL}, headers=ALICE).status_code == 404


def test_users_are_isolated() -> None:
    client = _client()
    client.post("/api/companies", json={"url": COMPANY_URL, "name": "acme"}, headers=ALICE)
    client.post("/api/applications", json=_application(), headers=ALICE)

    assert client.get("/api/companies/search", params={"url": COMPANY_URL}, headers=BOB).status_code == 404
    assert client.get("/api/applications", headers=BOB).json() == []

    bob_company = client.post("/api/companies", json={"url": COMPANY_URL, "name": "acme"}, headers=BOB)
    assert bob_company.status_code == 201


def test_application_defaults_and_conflict() -> None:
    client = _client()
    payload = _application()
    payload.pop("status")
    payload.pop("matchScore")

    created = client.post("/api/applications", json=payload, headers=ALICE)
    assert created.status_code == 201
    assert created.json()["status"] == "submitted"
    assert created.json()["matchScore"] is None

    again = client.post("/api/applications", json=_application(status="skipped"), headers=ALICE)
    assert again.status_code == 409
    assert again.json()["data"]["status"] == "submitted"

    found = client.get("/api/applications/search", params={"jobUrl": JOB_URL}, headers=ALICE)
    assert found.status_code == 200
    assert found.json()["jobTitle"] == "Backend Engineer"


def test_applications_are_listed_newest_first() -> None:
    client = _client()
    for index in range(3):
        response = client.post(
            "/api/applications",
            json=_application(job_url=f"{JOB_URL}-{index}", jobTitle=f"Role {index}"),
            headers=ALICE,
        )
        assert response.status_code == 201

    titles = [item["jobTitle"] for item in client.get("/api/applications", headers=ALICE).json()]
    assert titles == ["Role 2", "Role 1", "Role 0"]


def test_health() -> None:
    assert _client().get("/health").json() == {"status": "ok"}


def _stale_once(repository: Repository, name: str, monkeypatch) -> None:
    """The first lookup on ``repository`` misses, as if it ran before the other writer committed."""
    real = getattr(repository, name)
    calls: list[str] = []

    def lookup(user_id: str, key: str):
        calls.append(key)
        return None if len(calls) == 1 else real(user_id, key)

    monkeypatch.setattr(repository, name, lookup)


def test_concurrent_company_writers_keep_one_row(monkeypatch) -> None:
    with SessionLocal() as first_db, SessionLocal() as second_db:
        first, second = Repository(first_db), Repository(second_db)
        _stale_once(second, "find_company", monkeypatch)

        winner, winner_created = first.create_company("alice", url=COMPANY_URL, name="acme")
        loser, loser_created = second.create_company("alice", url=COMPANY_URL, name="acme")

        assert winner_created is True
        assert loser_created is False
        assert loser.id == winner.id

    with SessionLocal() as db:
        assert len(Repository(db).list_companies("alice")) == 1


def test_concurrent_application_writers_keep_one_row(monkeypatch) -> None:
    values = {
        "job_title": "Backend Engineer",
        "company_name": "acme",
        "job_url": JOB_URL,
        "body_text": "Hello team",
    }
    with SessionLocal() as first_db, SessionLocal() as second_db:
        first, second = Repository(first_db), Repository(second_db)
        _stale_once(second, "find_application", monkeypatch)

        winner, winner_created = first.create_application("alice", **values)
        loser, loser_created = second.create_application("alice", status="skipped", **values)

        assert winner_created is True
        assert loser_created is False
        assert loser.id == winner.id
        assert loser.status == "submitted"

    with SessionLocal() as db:
        assert len(Repository(db).list_applications("alice")) == 1


def test_company_lost_race_is_409(monkeypatch) -> None:
    real_find = Repository.find_company
    calls: list[str] = []

    def find_after_other_writer(self, user_id: str, url: str):
        calls.append(url)
        if len(calls) == 1:
            with SessionLocal() as other:
                other.add(Company(user_id=user_id, url=url, name="acme"))
                other.commit()
            return None
        return real_find(self, user_id, url)

    monkeypatch.setattr(Repository, "find_company", find_after_other_writer)
    client = _client()

    response = client.post("/api/companies", json={"url": COMPANY_URL, "name": "acme"}, headers=ALICE)

    assert response.status_code == 409
    assert response.json()["data"]["url"] == COMPANY_URL
    assert len(client.get("/api/companies", headers=ALICE).json()) == 1


def test_application_lost_race_is_409(monkeypatch) -> None:
    real_find = Repository.find_application
    calls: list[str] = []

    def find_after_other_writer(self, user_id: str, job_url: str):
        calls.append(job_url)
        if len(calls) == 1:
            with SessionLocal() as other:
                other.add(
                    Application(
                        user_id=user_id,
                        job_title="Backend Engineer",
                        company_name="acme",
                        job_url=job_url,
                        body_text="First writer",
                        status="submitted",
                    )
                )
                other.commit()
            return None
        return real_find(self, user_id, job_url)

    monkeypatch.setattr(Repository, "find_application", find_after_other_writer)
    client = _client()

    response = client.post("/api/applications", json=_application(), headers=ALICE)

    assert response.status_code == 409
    assert response.json()["data"]["bodyText"] == "First writer"
    assert len(client.get("/api/applications", headers=ALICE).json()) == 1
