from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from incubus.domain.policies import MarketplacePolicy, OrganizationAccessPolicy, ReviewPolicy

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


def _blockers(**overrides):
    values = {
        "status": "ACTIVE",
        "expires_at": None,
        "seller_id": 1,
        "buyer_id": 2,
        "price": Decimal("10"),
        "buyer_balance": Decimal("25"),
        "now": NOW,
    }
    values.update(overrides)
    return MarketplacePolicy.purchase_blockers(**values)


def test_split_price_takes_fee_in_basis_points():
    split = MarketplacePolicy.split_price(Decimal("100"), 500)
    assert split.fee == Decimal("5.00000000")
    assert split.seller_amount == Decimal("95")
    assert split.fee + split.seller_amount == split.price


def test_split_price_rounds_fee_half_up():
    split = MarketplacePolicy.split_price(Decimal("0.00000010"), 2500)
    assert split.fee == Decimal("0.00000003")


@pytest.mark.parametrize("price, bps", [(Decimal("-1"), 500), (Decimal("1"), 10001)])
def test_split_price_rejects_bad_input(price, bps):
    with pytest.raises(ValueError):
        MarketplacePolicy.split_price(price, bps)


def test_purchase_blockers():
    assert _blockers() == []
    assert _blockers(status="SOLD") == ["LISTING_NOT_ACTIVE"]
    assert _blockers(expires_at=NOW - timedelta(seconds=1)) == ["LISTING_EXPIRED"]
    assert _blockers(expires_at=NOW + timedelta(days=1)) == []
    assert _blockers(buyer_id=1) == ["CANNOT_BUY_OWN_LISTING"]
    assert _blockers(buyer_balance=Decimal("9.99")) == ["INSUFFICIENT_BALANCE"]


def test_transaction_type_for_bundle_is_rejected():
    assert MarketplacePolicy.transaction_type_for("GAME_LICENSE") == "GAME_PURCHASE"
    assert MarketplacePolicy.transaction_type_for("GAME_ITEM") == "ITEM_PURCHASE"
    with pytest.raises(ValueError):
        MarketplacePolicy.transaction_type_for("BUNDLE")


def test_organization_access_statements():
    assert OrganizationAccessPolicy.allows("owner", "game", "delete")
    assert not OrganizationAccessPolicy.allows("admin", "game", "delete")
    assert OrganizationAccessPolicy.allows("member", "gameItem", "create")
    assert not OrganizationAccessPolicy.allows("member", "member", "create")
    assert not OrganizationAccessPolicy.allows("stranger", "game", "create")
    assert not OrganizationAccessPolicy.allows(None, "game", "create")
    assert OrganizationAccessPolicy.roles_allowing("game", "delete") == ["owner"]


@pytest.mark.parametrize(
    "previous, requested, expected",
    [
        (None, "upvote", (1, 0)),
        (None, "downvote", (0, 1)),
        ("upvote", "downvote", (-1, 1)),
        ("upvote", "upvote", (0, 0)),
        ("downvote", "remove", (0, -1)),
        (None, "remove", (0, 0)),
    ],
)
def test_review_vote_deltas(previous, requested, expected):
    assert ReviewPolicy.vote_deltas(previous, requested) == expected


def test_review_rating_range():
    assert ReviewPolicy.rating_is_valid(1)
    assert ReviewPolicy.rating_is_valid(5)
    assert not ReviewPolicy.rating_is_valid(0)
    assert not ReviewPolicy.rating_is_valid(6)
