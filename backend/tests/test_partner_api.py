"""
Partner API tests - key issuance, authentication, scopes and per-key rate limit
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from eventswap.core.common.clock import utcnow
from eventswap.core.listings.models import Category, ListingStatus
from eventswap.core.partners.models import ApiKey
from eventswap.services.exceptions import ValidationError
from eventswap.services.partners.api_keys import (
    authenticate_api_key,
    create_api_key,
    has_permission,
    hash_api_key,
    revoke_api_key,
)
from tests.auth_utils import auth_headers


@pytest.fixture
def issue_key(db_session):
    def _issue(permissions=("listings:read", "categories:read", "stats:read"), **kwargs):
        _, raw_key = create_api_key(db=db_session, name="Ticket aggregator", permissions=permissions, **kwargs)
        return raw_key

    return _issue


class TestApiKeyService:
    def test_key_shape_and_storage(self, db_session):
        api_key, raw_key = create_api_key(db=db_session, name="Partner", permissions=["listings:read"])

        assert raw_key.startswith("evtswap_")
        assert len(raw_key) == len("evtswap_") + 40
        assert api_key.key_prefix == raw_key[:12]
        assert api_key.key_hash == hash_api_key(raw_key)
        assert raw_key not in (api_key.key_hash, api_key.key_prefix)

    @pytest.mark.parametrize("permissions", [[], ["listings:write"], ["listings:read", "admin"]])
    def test_rejects_unknown_permissions(self, db_session, permissions):
        with pytest.raises(ValidationError):
            create_api_key(db=db_session, name="Partner", permissions=permissions)

    def test_wildcard_grants_everything(self, db_session):
        api_key, _ = create_api_key(db=db_session, name="Partner", permissions=["*"])
        assert has_permission(api_key, "stats:read")
        assert has_permission(api_key, "listings:read")

    def test_authentication_rules(self, db_session):
        api_key, raw_key = create_api_key(db=db_session, name="Partner", permissions=["listings:read"])
        assert authenticate_api_key(db_session, raw_key).id == api_key.id
        assert authenticate_api_key(db_session, None) is None
        assert authenticate_api_key(db_session, "sk_live_" + raw_key[8:]) is None
        assert authenticate_api_key(db_session, raw_key + "0") is None

        revoke_api_key(db=db_session, api_key_id=api_key.id)
        assert authenticate_api_key(db_session, raw_key) is None

    def test_expired_key_rejected(self, db_session):
        _, raw_key = create_api_key(
            db=db_session,
            name="Partner",
            permissions=["listings:read"],
            expires_at=utcnow() - timedelta(minutes=1),
        )
        assert authenticate_api_key(db_session, raw_key) is None


class TestPartnerListings:
    def test_lists_only_active_listings(self, client: TestClient, db_session, seller, make_listing, issue_key):
        visible = make_listing(seller, title="Jazz night")
        make_listing(seller, status=ListingStatus.DRAFT)
        make_listing(seller, status=ListingStatus.SOLD)

        response = client.get("/api/v1/listings", headers={"X-API-Key": issue_key()})

        assert response.status_code == 200
        data = response.json()
        assert data["meta"] == {"page": 1, "per_page": 20, "total": 1}
        assert [item["id"] for item in data["data"]] == [str(visible.id)]
        assert data["data"][0]["category"]["slug"] == "concerts"
        assert data["data"][0]["asking_price"] == "900.00"

    def test_filters(self, client: TestClient, db_session, seller, make_listing, issue_key):
        theatre = Category(slug="theatre", name="Theatre")
        db_session.add(theatre)
        db_session.commit()
        cheap = make_listing(seller, asking_price=Decimal("120.00"), city="Rio de Janeiro")
        make_listing(seller, asking_price=Decimal("900.00"))
        staged = make_listing(seller, category_id=theatre.id, asking_price=Decimal("300.00"))
        headers = {"X-API-Key": issue_key()}

        by_city = client.get("/api/v1/listings", params={"city": "rio de janeiro"}, headers=headers).json()
        assert [item["id"] for item in by_city["data"]] == [str(cheap.id)]

        by_category = client.get("/api/v1/listings", params={"category": "theatre"}, headers=headers).json()
        assert [item["id"] for item in by_category["data"]] == [str(staged.id)]

        by_price = client.get("/api/v1/listings", params={"min_price": "200", "max_price": "500"}, headers=headers).json()
        assert [item["id"] for item in by_price["data"]] == [str(staged.id)]

    def test_pagination(self, client: TestClient, db_session, seller, make_listing, issue_key):
        for days in range(3):
            make_listing(seller, published_at=utcnow() - timedelta(days=days))

        response = client.get("/api/v1/listings", params={"page": 2, "per_page": 2}, headers={"X-API-Key": issue_key()})

        data = response.json()
        assert data["meta"]["total"] == 3
        assert len(data["data"]) == 1

    def test_listing_detail(self, client: TestClient, db_session, seller, make_listing, issue_key):
        listing = make_listing(seller)
        draft = make_listing(seller, status=ListingStatus.DRAFT)
        headers = {"X-API-Key": issue_key()}

        response = client.get(f"/api/v1/listings/{listing.id}", headers=headers)
        assert response.status_code == 200
        assert response.json()["data"]["slug"] == listing.slug

        assert client.get(f"/api/v1/listings/{draft.id}", headers=headers).status_code == 404

    def test_categories_and_stats(self, client: TestClient, db_session, seller, make_listing, issue_key):
        make_listing(seller)
        make_listing(seller)
        headers = {"X-API-Key": issue_key()}

        categories = client.get("/api/v1/categories", headers=headers).json()
        assert [item["slug"] for item in categories["data"]] == ["concerts"]

        stats = client.get("/api/v1/stats", headers=headers).json()["data"]
        assert stats == {"active_listings": 2, "listings_by_category": {"concerts": 2}, "completed_transactions": 0}


class TestPartnerAuth:
    def test_missing_key(self, client: TestClient, db_session):
        response = client.get("/api/v1/listings")
        assert response.status_code == 401
        assert response.json()["code"] == "INVALID_API_KEY"
        assert response.headers["X-Request-Id"].startswith("req_")

    def test_unknown_key(self, client: TestClient, db_session):
        response = client.get("/api/v1/listings", headers={"X-API-Key": "evtswap_" + "0" * 40})
        assert response.status_code == 401

    def test_revoked_key(self, client: TestClient, db_session, issue_key):
        raw_key = issue_key()
        api_key = db_session.query(ApiKey).one()
        revoke_api_key(db=db_session, api_key_id=api_key.id)

        response = client.get("/api/v1/listings", headers={"X-API-Key": raw_key})
        assert response.status_code == 401

    def test_missing_permission(self, client: TestClient, db_session, issue_key):
        raw_key = issue_key(permissions=["categories:read"])

        response = client.get("/api/v1/stats", headers={"X-API-Key": raw_key})
        assert response.status_code == 403
        assert response.json()["code"] == "INSUFFICIENT_PERMISSIONS"

        assert client.get("/api/v1/categories", headers={"X-API-Key": raw_key}).status_code == 200

    def test_success_carries_request_id_and_quota(self, client: TestClient, db_session, issue_key):
        response = client.get("/api/v1/categories", headers={"X-API-Key": issue_key()})

        assert response.status_code == 200
        assert response.headers["X-Request-Id"].startswith("req_")
        assert response.headers["X-RateLimit-Limit"] == "3"
        assert response.headers["X-RateLimit-Remaining"] == "2"

    def test_last_used_is_recorded(self, client: TestClient, db_session, issue_key):
        client.get("/api/v1/categories", headers={"X-API-Key": issue_key()})
        db_session.expire_all()
        assert db_session.query(ApiKey).one().last_used_at is not None


class TestPartnerRateLimit:
    def test_quota_is_per_key(self, client: TestClient, db_session, issue_key):
        first, second = issue_key(), issue_key()

        for _ in range(3):
            assert client.get("/api/v1/categories", headers={"X-API-Key": first}).status_code == 200

        response = client.get("/api/v1/categories", headers={"X-API-Key": first})
        assert response.status_code == 429
        assert response.json()["code"] == "RATE_LIMITED"
        assert response.headers["X-RateLimit-Remaining"] == "0"

        assert client.get("/api/v1/categories", headers={"X-API-Key": second}).status_code == 200


class TestApiKeyAdmin:
    def test_admin_issues_and_revokes(self, client: TestClient, db_session, admin_user):
        headers = auth_headers(admin_user.id, "ADMIN")

        response = client.post(
            "/api/admin/api-keys",
            json={"name": "Aggregator", "permissions": ["listings:read"]},
            headers=headers,
        )
        assert response.status_code == 201
        created = response.json()
        assert created["key"].startswith("evtswap_")
        assert created["key_prefix"] == created["key"][:12]
        assert created["is_active"] is True

        assert client.get("/api/v1/listings", headers={"X-API-Key": created["key"]}).status_code == 200

        response = client.delete(f"/api/admin/api-keys/{created['id']}", headers=headers)
        assert response.status_code == 200
        assert response.json()["is_active"] is False
        assert "key" not in response.json()

        assert client.get("/api/v1/listings", headers={"X-API-Key": created["key"]}).status_code == 401

    def test_invalid_permissions_rejected(self, client: TestClient, db_session, admin_user):
        response = client.post(
            "/api/admin/api-keys",
            json={"name": "Aggregator", "permissions": ["listings:write"]},
            headers=auth_headers(admin_user.id, "ADMIN"),
        )
        assert response.status_code == 400
        assert response.json()["details"]["unknown"] == ["listings:write"]

    def test_users_cannot_issue_keys(self, client: TestClient, db_session, buyer):
        response = client.post(
            "/api/admin/api-keys",
            json={"name": "Mine", "permissions": ["*"]},
            headers=auth_headers(buyer.id),
        )
        assert response.status_code == 403
