"""
Library API — HTTP Endpoint Tests
===================================

What:  End-to-end behaviour through the ASGI app: routing, validation,
       status codes, error bodies, and bookCount maintenance as clients see it.
"""

import uuid
from unittest.mock import AsyncMock, patch

import pytest


async def _create_category(client, name, **extra):
    response = await client.post("/api/categories", json={"name": name, **extra})
    assert response.status_code == 201, response.text
    return response.json()


async def _create_book(client, category_id, isbn, **extra):
    body = {"title": f"Book {isbn}", "author": "Author", "isbn": isbn, "category": category_id}
    body.update(extra)
    response = await client.post("/api/books", json=body)
    assert response.status_code == 201, response.text
    return response.json()


async def _book_count(client, category_id):
    response = await client.get(f"/api/categories/{category_id}")
    assert response.status_code == 200
    return response.json()["bookCount"]


class TestBookCountScenarios:

    @pytest.mark.asyncio
    async def test_create_delete_and_guarded_delete(self, test_client):
        fiction = await _create_category(test_client, "Fiction")
        assert fiction["bookCount"] == 0

        book = await _create_book(test_client, fiction["id"], "111", title="X")
        assert book["category"]["id"] == fiction["id"]
        assert book["category"]["name"] == "Fiction"
        assert await _book_count(test_client, fiction["id"]) == 1

        response = await test_client.delete(f"/api/books/{book['id']}")
        assert response.status_code == 200
        assert response.json()["message"] == "Book deleted successfully."
        assert await _book_count(test_client, fiction["id"]) == 0

        await _create_book(test_client, fiction["id"], "222")
        response = await test_client.delete(f"/api/categories/{fiction['id']}")
        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "referential_conflict"
        assert body["message"].startswith("Cannot delete category while books are still assigned")
        assert body["details"]["book_count"] == 1

        response = await test_client.get(f"/api/categories/{fiction['id']}")
        assert response.status_code == 200
        assert response.json()["bookCount"] == 1

    @pytest.mark.asyncio
    async def test_reassign_book_between_categories(self, test_client):
        a = await _create_category(test_client, "A")
        b = await _create_category(test_client, "B")
        book = await _create_book(test_client, a["id"], "111")

        response = await test_client.put(f"/api/books/{book['id']}", json={"categoryId": b["id"]})

        assert response.status_code == 200
        assert response.json()["book"]["category"]["id"] == b["id"]
        assert "X-Stale-Categories" not in response.headers
        assert await _book_count(test_client, a["id"]) == 0
        assert await _book_count(test_client, b["id"]) == 1

    @pytest.mark.asyncio
    async def test_delete_empty_category(self, test_client):
        empty = await _create_category(test_client, "Empty")

        response = await test_client.delete(f"/api/categories/{empty['id']}")

        assert response.status_code == 200
        assert response.json()["category"]["name"] == "Empty"
        assert (await test_client.get(f"/api/categories/{empty['id']}")).status_code == 404


class TestCategoryEndpoints:

    @pytest.mark.asyncio
    async def test_camel_case_fields(self, test_client):
        category = await _create_category(test_client, "Fiction", description="Stories")
        assert set(category) >= {"id", "name", "description", "bookCount", "createdAt", "updatedAt"}

    @pytest.mark.asyncio
    async def test_duplicate_name(self, test_client):
        await _create_category(test_client, "Fiction")

        response = await test_client.post("/api/categories", json={"name": "Fiction"})

        assert response.status_code == 409
        assert response.json()["error"] == "duplicate_key"
        assert response.json()["message"] == "Category name already exists."

    @pytest.mark.asyncio
    async def test_blank_name_rejected(self, test_client):
        response = await test_client.post("/api/categories", json={"name": "   "})

        assert response.status_code == 400
        fields = [f["field"] for f in response.json()["details"]["fields"]]
        assert fields == ["name"]

    @pytest.mark.asyncio
    async def test_list_and_update(self, test_client):
        fiction = await _create_category(test_client, "Fiction")
        await _create_category(test_client, "Poetry")

        listing = await test_client.get("/api/categories")
        assert listing.status_code == 200
        assert {c["name"] for c in listing.json()} == {"Fiction", "Poetry"}

        response = await test_client.put(f"/api/categories/{fiction['id']}", json={"name": "Novels"})
        assert response.status_code == 200
        assert response.json()["message"] == "Category updated successfully."
        assert response.json()["category"]["name"] == "Novels"

    @pytest.mark.asyncio
    async def test_malformed_id_is_bad_request(self, test_client):
        response = await test_client.get("/api/categories/not-a-uuid")

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"
        assert response.json()["message"] == "Invalid category id."

    @pytest.mark.asyncio
    async def test_missing_category(self, test_client):
        response = await test_client.get(f"/api/categories/{uuid.uuid4()}")

        assert response.status_code == 404
        assert response.json()["message"] == "Category not found."


class TestBookEndpoints:

    @pytest.mark.asyncio
    async def test_validation_lists_every_failing_field(self, test_client):
        response = await test_client.post(
            "/api/books",
            json={"category": str(uuid.uuid4()), "stock": -1},
        )

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "validation_error"
        fields = {f["field"] for f in body["details"]["fields"]}
        assert {"title", "author", "isbn", "stock"} <= fields

    @pytest.mark.asyncio
    async def test_unknown_category(self, test_client):
        response = await test_client.post(
            "/api/books",
            json={"title": "X", "author": "Y", "isbn": "111", "categoryId": str(uuid.uuid4())},
        )

        assert response.status_code == 404
        assert response.json()["message"] == "Category not found."

    @pytest.mark.asyncio
    async def test_duplicate_isbn(self, test_client):
        fiction = await _create_category(test_client, "Fiction")
        await _create_book(test_client, fiction["id"], "111")

        response = await test_client.post(
            "/api/books",
            json={"title": "Other", "author": "Z", "isbn": "111", "category": fiction["id"]},
        )

        assert response.status_code == 409
        assert response.json()["message"] == "ISBN already exists."
        assert await _book_count(test_client, fiction["id"]) == 1

    @pytest.mark.asyncio
    async def test_book_fields_round_trip(self, test_client):
        fiction = await _create_category(test_client, "Fiction")
        book = await _create_book(
            test_client, fiction["id"], "111", publishedYear=1965, stock=3, description="Spice"
        )

        response = await test_client.get(f"/api/books/{book['id']}")

        assert response.status_code == 200
        fetched = response.json()
        assert fetched["publishedYear"] == 1965
        assert fetched["stock"] == 3
        assert fetched["description"] == "Spice"

    @pytest.mark.asyncio
    async def test_list_with_filters(self, test_client):
        fiction = await _create_category(test_client, "Fiction")
        science = await _create_category(test_client, "Science")
        await _create_book(test_client, fiction["id"], "111", title="Dune")
        await _create_book(test_client, science["id"], "222", title="Cosmos")

        by_category = await test_client.get("/api/books", params={"categoryId": science["id"]})
        by_search = await test_client.get("/api/books", params={"search": "DUNE"})

        assert [b["title"] for b in by_category.json()] == ["Cosmos"]
        assert [b["title"] for b in by_search.json()] == ["Dune"]

    @pytest.mark.asyncio
    async def test_update_missing_book(self, test_client):
        response = await test_client.put(f"/api/books/{uuid.uuid4()}", json={"title": "X"})
        assert response.status_code == 404
        assert response.json()["message"] == "Book not found."

    @pytest.mark.asyncio
    async def test_oversized_integers_rejected(self, test_client):
        fiction = await _create_category(test_client, "Fiction")

        response = await test_client.post(
            "/api/books",
            json={"title": "X", "author": "Y", "isbn": "111", "category": fiction["id"], "stock": 10**20},
        )
        assert response.status_code == 400
        assert [f["field"] for f in response.json()["details"]["fields"]] == ["stock"]

        book = await _create_book(test_client, fiction["id"], "222")
        response = await test_client.put(f"/api/books/{book['id']}", json={"publishedYear": 10**20})
        assert response.status_code == 400
        assert [f["field"] for f in response.json()["details"]["fields"]] in (["publishedYear"], ["published_year"])

    @pytest.mark.asyncio
    async def test_failed_recount_sets_stale_header(self, test_client):
        fiction = await _create_category(test_client, "Fiction")

        with patch(
            "library_api.services.category_integrity.CategoryIntegrityMaintainer.recompute",
            new=AsyncMock(return_value=False),
        ):
            response = await test_client.post(
                "/api/books",
                json={"title": "X", "author": "Y", "isbn": "111", "category": fiction["id"]},
            )

        assert response.status_code == 201
        assert response.headers["X-Stale-Categories"] == fiction["id"]
        assert await _book_count(test_client, fiction["id"]) == 0

    @pytest.mark.asyncio
    async def test_malformed_book_id(self, test_client):
        response = await test_client.delete("/api/books/not-a-uuid")

        assert response.status_code == 400
        assert response.json()["message"] == "Invalid book id."

    @pytest.mark.asyncio
    async def test_null_title_rejected_on_update(self, test_client):
        fiction = await _create_category(test_client, "Fiction")
        book = await _create_book(test_client, fiction["id"], "111")

        response = await test_client.put(f"/api/books/{book['id']}", json={"title": None})

        assert response.status_code == 400


class TestServiceEndpoints:

    @pytest.mark.asyncio
    async def test_banner(self, test_client):
        response = await test_client.get("/")
        assert response.status_code == 200
        assert "/api/categories" in response.text

    @pytest.mark.asyncio
    async def test_health(self, test_client):
        response = await test_client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["database"] == "connected"

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, test_client):
        response = await test_client.get("/api/categories", headers={"X-Request-ID": "trace-123"})
        assert response.headers["X-Request-ID"] == "trace-123"
