import io
from unittest.mock import patch

import pytest

from book_import.api.base import APITimeoutError
from book_import.main import create_app
from book_import.sync.models import CandidateRecord

from conftest import DUNE_CSV


@pytest.fixture
def client(db, monkeypatch):
    monkeypatch.setenv("ENABLE_ENRICHMENT", "false")
    app = create_app(secret_key="test")
    app.testing = True
    return app.test_client()


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.get_json()["status"] == "ok"


def test_import_raw_body(client):
    response = client.post("/api/import", data=DUNE_CSV, content_type="text/csv")

    data = response.get_json()
    assert response.status_code == 200
    assert data["success"] is True
    assert data["inserted"] == 1
    assert data["summary"] == "Added 1 new books and updated 0 existing books"
    assert data["records"][0]["outcome"] == "inserted"

    books = client.get("/api/books").get_json()
    assert books[0]["isbn"] == "9780441013593"
    assert books[0]["available_copies"] == 3

    runs = client.get("/api/runs").get_json()
    assert runs[0]["run_id"] == data["run_id"]
    assert runs[0]["status"] == "completed"

    history = client.get(f"/api/history?run_id={data['run_id']}").get_json()
    assert history[0]["outcome"] == "inserted"


def test_import_file_upload(client):
    response = client.post(
        "/api/import",
        data={"file": (io.BytesIO(DUNE_CSV.encode("utf-8")), "books.csv")},
        content_type="multipart/form-data",
    )

    assert response.get_json()["inserted"] == 1


def test_import_rejects_bad_csv(client):
    response = client.post("/api/import", data=DUNE_CSV.replace(",3\n", "\n"))

    data = response.get_json()
    assert response.status_code == 400
    assert data["error"] == "MalformedRow"
    assert data["row"] == 2
    assert data["actual"] == 5


def test_preview_does_not_import(client):
    response = client.post("/api/import/preview", data=DUNE_CSV)

    assert response.get_json()["books"][0]["authors"] == ["Frank Herbert"]
    assert client.get("/api/books").get_json() == []


def test_preview_empty_file(client):
    response = client.post("/api/import/preview", data="Title,Author\n")

    assert response.status_code == 400
    assert response.get_json()["error"] == "EmptyFile"


def test_shelves(client):
    assert client.post("/api/shelves", json={"shelf_id": "A1", "capacity": 0}).status_code == 400

    response = client.post("/api/shelves", json={"shelf_id": "A1", "capacity": 10})
    assert response.status_code == 201
    assert response.get_json() == {"shelf_id": "A1", "capacity": 10, "current_occupancy": 0}

    client.post("/api/import", data=DUNE_CSV)
    assert client.get("/api/shelves").get_json()[0]["current_occupancy"] == 0


def test_lookup(client):
    draft = CandidateRecord(
        title="Dune",
        authors=("Frank Herbert",),
        genre="Fiction",
        isbn="9780441013593",
        publication_year="1990",
        total_copies=2,
    )

    with patch("book_import.sync.engine.ImportEngine.draft_from_isbn", return_value=draft) as draft_mock:
        response = client.get("/api/lookup/9780441013593?copies=2")

    assert response.status_code == 200
    assert response.get_json()["authors"] == ["Frank Herbert"]
    draft_mock.assert_called_once_with("9780441013593", total_copies=2)


def test_lookup_not_found(client):
    assert client.get("/api/lookup/000").status_code == 404


def test_lookup_timeout(client):
    with patch("book_import.sync.engine.ImportEngine.draft_from_isbn", side_effect=APITimeoutError("Request timeout")):
        response = client.get("/api/lookup/9780441013593")

    assert response.status_code == 504
    assert "timed out" in response.get_json()["error"]


def test_assign_unshelved_book(client):
    client.post("/api/import", data=DUNE_CSV)
    book = client.get("/api/books?unshelved=1").get_json()[0]
    client.post("/api/shelves", json={"shelf_id": "A1", "capacity": 4})

    response = client.post(f"/api/books/{book['id']}/shelf", json={"shelf_id": "A1"})

    assert response.status_code == 200
    assert response.get_json() == {"shelf_id": "A1", "capacity": 4, "current_occupancy": 3}
    assert client.get("/api/books?unshelved=1").get_json() == []
    assert client.get("/api/books").get_json()[0]["shelf_location"] == "A1"


def test_assign_shelf_over_capacity(client):
    client.post("/api/import", data=DUNE_CSV)
    book = client.get("/api/books").get_json()[0]
    client.post("/api/shelves", json={"shelf_id": "A1", "capacity": 2})

    response = client.post(f"/api/books/{book['id']}/shelf", json={"shelf_id": "A1"})

    data = response.get_json()
    assert response.status_code == 409
    assert data["error"] == "ShelfCapacityError"
    assert data["overflow"] == 1
    assert len(client.get("/api/books?unshelved=1").get_json()) == 1


def test_assign_shelf_validation(client):
    assert client.post("/api/books/missing/shelf", json={"shelf_id": "A1"}).status_code == 404
    assert client.post("/api/books/missing/shelf", json={}).status_code == 400
