import sqlite3

import pytest
from fastapi.testclient import TestClient

import database
from api import create_app
from library import Library


@pytest.fixture
def client(lib):
    lib.add_book("Dune", "Frank Herbert", 5)
    lib.add_book("Dune", "Brian Herbert", 1)
    lib.add_book("Emma", "Jane Austen", 2)
    with TestClient(create_app(library=lib)) as test_client:
        yield test_client


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "total_books": 3}

def test_get_books(client):
    response = client.get("/api/books")
    assert response.status_code == 200
    assert [b["id"] for b in response.json()] == [1, 2, 3]

def test_get_books_by_title_is_case_insensitive(client):
    response = client.get("/api/books", params={"title": "dune"})
    assert response.status_code == 200
    assert [b["author"] for b in response.json()] == ["Frank Herbert", "Brian Herbert"]

def test_get_books_by_unknown_title_is_empty(client):
    response = client.get("/api/books", params={"title": "Ulysses"})
    assert response.status_code == 200
    assert response.json() == []

def test_get_book(client):
    response = client.get("/api/books/3")
    assert response.status_code == 200
    assert response.json() == {"id": 3, "title": "Emma", "author": "Jane Austen", "copies_available": 2}

def test_get_book_not_found(client):
    assert client.get("/api/books/42").status_code == 404

def test_create_book(client):
    payload = {"title": "Ulysses", "author": "James Joyce", "quantity": 2}
    response = client.post("/api/books", json=payload)
    assert response.status_code == 201
    assert response.headers["Location"] == "/api/books/4"
    assert response.json()["copies_available"] == 2

def test_create_existing_book_adds_copies(client):
    payload = {"title": "DUNE", "author": "frank herbert", "quantity": 3}
    response = client.post("/api/books", json=payload)
    assert response.status_code == 201
    assert response.json() == {"id": 1, "title": "Dune", "author": "Frank Herbert", "copies_available": 8}

@pytest.mark.parametrize("quantity", [0, -2])
def test_create_book_invalid_quantity(client, quantity):
    payload = {"title": "Ulysses", "author": "James Joyce", "quantity": quantity}
    response = client.post("/api/books", json=payload)
    assert response.status_code == 400
    assert client.get("/api/books", params={"title": "Ulysses"}).json() == []

def test_create_book_missing_fields(client):
    response = client.post("/api/books", json={"title": "Ulysses"})
    assert response.status_code == 422

def test_borrow_then_insufficient_stock(client):
    response = client.post("/api/books/1/borrow", json={"quantity": 3})
    assert response.status_code == 200
    assert response.json()["copies_available"] == 2

    response = client.post("/api/books/1/borrow", json={"quantity": 3})
    assert response.status_code == 409
    assert "Only 2 copies available" in response.json()["detail"]
    assert client.get("/api/books/1").json()["copies_available"] == 2

def test_borrow_invalid_quantity(client):
    response = client.post("/api/books/1/borrow", json={"quantity": 0})
    assert response.status_code == 400
    assert client.get("/api/books/1").json()["copies_available"] == 5

def test_borrow_unknown_book(client):
    assert client.post("/api/books/42/borrow", json={"quantity": 1}).status_code == 404

def test_return(client):
    response = client.post("/api/books/3/return", json={"quantity": 4})
    assert response.status_code == 200
    assert response.json()["copies_available"] == 6

def test_return_invalid_quantity(client):
    assert client.post("/api/books/3/return", json={"quantity": -1}).status_code == 400
    assert client.post("/api/books/42/return", json={"quantity": 1}).status_code == 404

def test_stats(client):
    response = client.get("/api/stats")
    assert response.status_code == 200
    assert response.json() == {
        "total_titles": 2,
        "total_records": 3,
        "total_copies": 8,
        "unique_authors": 3,
    }

def test_changes_are_saved_to_db_file(db_file):
    with TestClient(create_app(db_file=db_file)) as client:
        client.post("/api/books", json={"title": "Dune", "author": "Frank Herbert", "quantity": 4})
        client.post("/api/books/1/borrow", json={"quantity": 1})

    stored = database.load_library(db_file)
    assert stored.find_book("dune")[0].copies_available == 3

def test_catalog_is_loaded_from_db_file(db_file):
    lib = Library()
    lib.add_book("Emma", "Jane Austen", 2)
    database.save_library(lib, db_file)

    with TestClient(create_app(db_file=db_file)) as client:
        assert client.get("/api/books/1").json()["title"] == "Emma"

@pytest.mark.parametrize("payload", [
    {"title": "   ", "author": "James Joyce", "quantity": 2},
    {"title": "Ulysses", "author": "  ", "quantity": 2},
])
def test_create_book_blank_text(client, payload):
    response = client.post("/api/books", json=payload)
    assert response.status_code == 422
    assert client.get("/api/books", params={"title": ""}).json() == []
    assert len(client.get("/api/books").json()) == 3

def test_create_book_strips_title_and_author(client):
    payload = {"title": "  Ulysses ", "author": " James Joyce ", "quantity": 1}
    response = client.post("/api/books", json=payload)
    assert response.status_code == 201
    assert response.json()["title"] == "Ulysses"
    assert response.json()["author"] == "James Joyce"

def test_failed_save_discards_change(db_file, monkeypatch):
    with TestClient(create_app(db_file=db_file)) as client:
        client.post("/api/books", json={"title": "Dune", "author": "Frank Herbert", "quantity": 4})

        def broken_save(library, db_file=None):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(database, "save_library", broken_save)

        response = client.post("/api/books/1/borrow", json={"quantity": 1})
        assert response.status_code == 503
        assert client.get("/api/books/1").json()["copies_available"] == 4

        response = client.post("/api/books", json={"title": "Emma", "author": "Jane Austen", "quantity": 1})
        assert response.status_code == 503
        assert client.get("/api/books", params={"title": "Emma"}).json() == []
