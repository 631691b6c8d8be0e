"""
Ledger API — End-to-End API Flow Tests
=======================================

Runs the real application against a SQLite database (aiosqlite), created
fresh for every test by the `db_tables` fixture.

What we test:
    ✅ register → login → validate, including conflict and bad credentials
    ✅ create / list / get operations with the envelope shapes clients see
    ✅ Ownership: another user's operation is 403, unknown id is 404
    ✅ Query and path parameter validation
"""

import uuid

import pytest

PASSWORD = "s3cret-pass"


async def _register(client, email, first="Ada", last="Lovelace"):
    return await client.post(
        "/api/auth/register",
        json={"email": email, "password": PASSWORD, "firstName": first, "lastName": last},
    )


async def _auth_headers(client, email, **names):
    response = await _register(client, email, **names)
    assert response.status_code == 201, response.text
    return {"Authorization": f"Bearer {response.json()['data']['token']}"}


class TestAuthFlow:

    @pytest.mark.asyncio
    async def test_register_login_validate(self, api_client):
        response = await _register(api_client, "Ada@Example.com")
        body = response.json()
        assert response.status_code == 201
        assert body["message"] == "user registered successfully"
        assert body["data"]["user"]["email"] == "ada@example.com"
        assert body["data"]["user"]["firstName"] == "Ada"
        assert "password" not in body["data"]["user"]

        response = await api_client.post(
            "/api/auth/login", json={"email": "ada@example.com", "password": PASSWORD}
        )
        body = response.json()
        assert response.status_code == 200
        assert body["message"] == "login successful"
        token = body["data"]["token"]

        response = await api_client.get(
            "/api/auth/validate", headers={"Authorization": f"Bearer {token}"}
        )
        body = response.json()
        assert response.status_code == 200
        assert body["message"] == "token is valid"
        assert body["data"]["user"]["lastName"] == "Lovelace"

    @pytest.mark.asyncio
    async def test_duplicate_registration(self, api_client):
        assert (await _register(api_client, "ada@example.com")).status_code == 201

        response = await _register(api_client, "ada@example.com")

        assert response.status_code == 409
        assert response.json()["error"] == "a user with this email already exists"

    @pytest.mark.asyncio
    async def test_bad_credentials(self, api_client):
        await _register(api_client, "ada@example.com")

        wrong = await api_client.post(
            "/api/auth/login", json={"email": "ada@example.com", "password": "not-it-at-all"}
        )
        unknown = await api_client.post(
            "/api/auth/login", json={"email": "nobody@example.com", "password": PASSWORD}
        )

        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json()["error"] == unknown.json()["error"] == "invalid credentials"

    @pytest.mark.asyncio
    async def test_validate_without_token(self, api_client):
        response = await api_client.get("/api/auth/validate")

        assert response.status_code == 401
        assert response.json()["error"] == "access token required"


class TestOperationFlow:

    @pytest.mark.asyncio
    async def test_create_list_get(self, api_client):
        headers = await _auth_headers(api_client, "ada@example.com")

        first = await api_client.post(
            "/api/operations",
            json={"type": "buy", "amount": 100.5, "currency": "USD"},
            headers=headers,
        )
        second = await api_client.post(
            "/api/operations",
            json={"type": "sell", "amount": 20, "currency": " BTC "},
            headers=headers,
        )

        assert first.status_code == 201
        created = first.json()["data"]
        assert set(created) == {"id", "type", "amount", "currency", "createdAt"}
        assert created["amount"] == 100.5
        assert second.json()["data"]["currency"] == "BTC"

        response = await api_client.get("/api/operations", headers=headers)
        body = response.json()
        assert response.status_code == 200
        assert [op["type"] for op in body["data"]] == ["sell", "buy"]
        assert body["meta"]["count"] == 2
        assert body["pagination"] == {"page": 1, "limit": 10, "total": 2, "totalPages": 1}

        response = await api_client.get(f"/api/operations/{created['id']}", headers=headers)
        assert response.status_code == 200
        assert response.json()["data"]["id"] == created["id"]

    @pytest.mark.asyncio
    async def test_pagination(self, api_client):
        headers = await _auth_headers(api_client, "ada@example.com")
        for amount in (1, 2, 3):
            await api_client.post(
                "/api/operations",
                json={"type": "buy", "amount": amount, "currency": "EUR"},
                headers=headers,
            )

        response = await api_client.get("/api/operations?page=2&limit=2", headers=headers)

        body = response.json()
        assert len(body["data"]) == 1
        assert body["pagination"] == {"page": 2, "limit": 2, "total": 3, "totalPages": 2}
        assert body["meta"]["path"] == "/api/operations?page=2&limit=2"

    @pytest.mark.asyncio
    async def test_other_users_operation_is_forbidden(self, api_client):
        ada = await _auth_headers(api_client, "ada@example.com")
        grace = await _auth_headers(api_client, "grace@example.com", first="Grace", last="Hopper")

        created = await api_client.post(
            "/api/operations",
            json={"type": "buy", "amount": 5, "currency": "USD"},
            headers=ada,
        )
        op_id = created.json()["data"]["id"]

        response = await api_client.get(f"/api/operations/{op_id}", headers=grace)
        assert response.status_code == 403
        assert response.json()["error"] == "you do not have permission to view this operation"

        listing = await api_client.get("/api/operations", headers=grace)
        assert listing.json()["data"] == []

    @pytest.mark.asyncio
    async def test_unknown_operation(self, api_client):
        headers = await _auth_headers(api_client, "ada@example.com")

        response = await api_client.get(f"/api/operations/{uuid.uuid4()}", headers=headers)

        assert response.status_code == 404
        assert response.json()["error"] == "operation not found"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            {"type": "buy", "amount": 0, "currency": "USD"},
            {"type": "hold", "amount": 5, "currency": "USD"},
            {"type": "buy", "amount": 5, "currency": "usd"},
            {"type": "buy", "amount": 5},
        ],
    )
    async def test_invalid_operation_payload(self, api_client, payload):
        headers = await _auth_headers(api_client, "ada@example.com")

        response = await api_client.post("/api/operations", json=payload, headers=headers)

        assert response.status_code == 400
        assert response.json()["error"] == "invalid input data"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", ["page=0", "limit=0", "limit=101", "page=abc"])
    async def test_invalid_pagination(self, api_client, query):
        headers = await _auth_headers(api_client, "ada@example.com")

        response = await api_client.get(f"/api/operations?{query}", headers=headers)

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_malformed_operation_id(self, api_client):
        headers = await _auth_headers(api_client, "ada@example.com")

        response = await api_client.get("/api/operations/not-a-uuid", headers=headers)

        assert response.status_code == 400
        assert response.json()["details"][0]["field"] == "operation_id"

    @pytest.mark.asyncio
    async def test_token_for_deleted_user(self, api_client):
        headers = await _auth_headers(api_client, "ada@example.com")

        from sqlalchemy import delete

        from ledger.database import async_session_factory
        from ledger.models.user import User

        async with async_session_factory() as session:
            await session.execute(delete(User))
            await session.commit()

        response = await api_client.post(
            "/api/operations",
            json={"type": "buy", "amount": 5, "currency": "USD"},
            headers=headers,
        )
        assert response.status_code == 404
        assert response.json()["error"] == "user not found"
