from datetime import datetime, timezone
from decimal import Decimal

from conftest import make_principal

from incubus.api.deps.auth import get_current_principal
from incubus.api.routes.genres import get_genre_service
from incubus.api.routes.marketplace import get_marketplace_service
from incubus.api.routes.wishlist import get_wishlist_service
from incubus.core.errors import bad_request

API = "/api/v1"
CREATED = datetime(2026, 4, 1, tzinfo=timezone.utc)


class FakeGenreService:
    def __init__(self):
        self.created = []

    async def list_entries(self, *, params, sort, search):
        self.last_query = (params, sort, search)
        rows = [
            {"id": 1, "name": "Action", "slug": "action", "created_at": CREATED, "updated_at": CREATED},
            {"id": 2, "name": "Puzzle", "slug": "puzzle", "created_at": CREATED, "updated_at": CREATED},
        ]
        return rows, 12

    async def create_entry(self, values):
        self.created.append(values)
        return {"id": 3, "slug": "roguelike", "created_at": CREATED, "updated_at": CREATED, **values}


class FakeWishlistService:
    async def add_game(self, *, user_id, game_id):
        return game_id != 99

    async def replace(self, *, user_id, game_ids):
        return sorted(set(game_ids))


class FakeMarketplaceService:
    async def purchase(self, principal, *, listing_id, wallet_id):
        if listing_id == 404:
            raise bad_request("LISTING_NOT_ACTIVE", "Listing is not active")
        listing = {
            "id": listing_id,
            "type": "GAME_LICENSE",
            "status": "SOLD",
            "seller_id": 2,
            "price": Decimal("10"),
            "quantity": 1,
            "buyer_id": principal.user_id,
            "sold_at": CREATED,
            "created_at": CREATED,
            "updated_at": CREATED,
        }
        transaction = {
            "id": 1,
            "hash": "tx-1",
            "blockchain_id": 1,
            "from_wallet_id": wallet_id,
            "to_wallet_id": 5,
            "type": "GAME_PURCHASE",
            "status": "CONFIRMED",
            "amount": Decimal("10"),
            "fee": Decimal("0.5"),
            "data": {"listing_id": listing_id},
            "created_at": CREATED,
            "confirmed_at": CREATED,
        }
        license_row = {"id": 8, "game_id": 4, "wallet_id": wallet_id, "is_active": True}
        return {"listing": listing, "transaction": transaction, "license": license_row}


def test_health_and_request_id(client):
    response = client.get(f"{API}/system/health", headers={"X-Request-ID": "req-42"})
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.headers["X-Request-ID"] == "req-42"


def test_protected_route_requires_authentication(client):
    response = client.post(f"{API}/wishlist/3")
    assert response.status_code == 401
    body = response.json()
    assert body["error_code"] == "AUTH_REQUIRED"
    assert body["request_id"]


def test_genre_list_is_paginated(app, client):
    service = FakeGenreService()
    app.dependency_overrides[get_genre_service] = lambda: service

    response = client.get(f"{API}/genres", params={"page": 2, "limit": 5, "sort_by": "bogus"})

    assert response.status_code == 200
    body = response.json()
    assert [row["slug"] for row in body["data"]] == ["action", "puzzle"]
    assert body["meta"]["pagination"] == {"page": 2, "limit": 5, "total": 12, "total_pages": 3}
    params, sort, search = service.last_query
    assert (params.page, params.limit) == (2, 5)
    assert (sort.field, sort.order) == ("name", "asc")
    assert search is None


def test_genre_create_requires_platform_admin(app, client):
    service = FakeGenreService()
    app.dependency_overrides[get_genre_service] = lambda: service
    app.dependency_overrides[get_current_principal] = lambda: make_principal()

    response = client.post(f"{API}/genres", json={"name": "Roguelike"})

    assert response.status_code == 403
    assert response.json()["error_code"] == "PERMISSION_DENIED"
    assert service.created == []


def test_genre_create_as_platform_admin(app, client):
    service = FakeGenreService()
    app.dependency_overrides[get_genre_service] = lambda: service
    app.dependency_overrides[get_current_principal] = lambda: make_principal(
        platform_role="Owner",
        roles=("user", "platform:Owner"),
    )

    response = client.post(f"{API}/genres", json={"name": "Roguelike"})

    assert response.status_code == 201
    assert response.json()["name"] == "Roguelike"
    assert service.created == [{"name": "Roguelike", "description": None}]


def test_genre_create_validation_error_shape(app, client):
    app.dependency_overrides[get_genre_service] = FakeGenreService
    app.dependency_overrides[get_current_principal] = lambda: make_principal(role="admin")

    response = client.post(f"{API}/genres", json={"name": "x", "color": "red"})

    assert response.status_code == 422
    body = response.json()
    assert body["error_code"] == "VALIDATION_FAILED"
    assert "name" in body["details"]["validation_errors"]


def test_wishlist_add_and_replace(app, client):
    app.dependency_overrides[get_wishlist_service] = FakeWishlistService
    app.dependency_overrides[get_current_principal] = lambda: make_principal(7)

    added = client.post(f"{API}/wishlist/3")
    assert added.json() == {"game_id": 3, "changed": True}

    replaced = client.put(f"{API}/wishlist", json={"game_ids": [5, 2, 5]})
    assert replaced.json() == {"game_ids": [2, 5]}


def test_purchase_route(app, client):
    app.dependency_overrides[get_marketplace_service] = FakeMarketplaceService
    app.dependency_overrides[get_current_principal] = lambda: make_principal(3)

    response = client.post(f"{API}/marketplace/listings/11/purchase", json={"wallet_id": 6})

    assert response.status_code == 200
    body = response.json()
    assert body["listing"]["status"] == "SOLD"
    assert body["listing"]["buyer_id"] == 3
    assert body["transaction"]["hash"] == "tx-1"
    assert body["license"]["wallet_id"] == 6
    assert body["item_ownership"] is None


def test_purchase_route_propagates_domain_errors(app, client):
    app.dependency_overrides[get_marketplace_service] = FakeMarketplaceService
    app.dependency_overrides[get_current_principal] = lambda: make_principal(3)

    response = client.post(f"{API}/marketplace/listings/404/purchase", json={"wallet_id": 6})

    assert response.status_code == 400
    assert response.json()["error_code"] == "LISTING_NOT_ACTIVE"
