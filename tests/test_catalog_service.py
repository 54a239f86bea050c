from decimal import Decimal
from types import SimpleNamespace

import pytest
from conftest import make_principal
from sqlalchemy import select

from incubus.application.services.catalog_service import TaxonomyService
from incubus.application.services.game_service import GameService
from incubus.application.services.organization_service import OrganizationService
from incubus.core.database import get_session
from incubus.core.errors import ApiException
from incubus.infrastructure.db.models import InboxEntry, User

pytestmark = pytest.mark.usefixtures("database")


async def _users() -> SimpleNamespace:
    async with get_session() as session:
        owner = User(email="owner@example.com", name="Owner")
        member = User(email="member@example.com", name="Member")
        outsider = User(email="outsider@example.com", name="Outsider")
        invitee = User(email="invitee@example.com", name="Invitee")
        session.add_all([owner, member, outsider, invitee])
        await session.flush()
        return SimpleNamespace(
            owner=make_principal(owner.id, email=owner.email, name=owner.name),
            member=make_principal(member.id, email=member.email, name=member.name),
            outsider=make_principal(outsider.id, email=outsider.email, name=outsider.name),
            invitee=make_principal(invitee.id, email=invitee.email, name=invitee.name),
        )


async def _studio(users) -> dict:
    return await OrganizationService().create_organization(users.owner, name="Nightfall Studio")


async def test_create_organization_makes_owner_and_publisher():
    users = await _users()
    organization = await _studio(users)

    assert organization["role"] == "owner"
    assert organization["slug"] == "nightfall-studio"
    assert organization["publisher_id"] is not None

    members = await OrganizationService().list_members(users.owner, organization["id"])
    assert [row["user_id"] for row in members] == [users.owner.user_id]


async def test_owner_creates_game_with_genres():
    users = await _users()
    organization = await _studio(users)
    genre = await TaxonomyService("genre").create_entry({"name": "Action"})

    game = await GameService().create_game(
        users.owner,
        values={
            "title": "  Hollow Crown ",
            "publisher_id": organization["publisher_id"],
            "base_price": Decimal("20"),
            "genre_ids": [genre["id"]],
        },
    )

    assert game["slug"] == "hollow-crown"
    assert game["title"] == "Hollow Crown"
    assert [row["name"] for row in game["genres"]] == ["Action"]
    assert game["publisher"]["id"] == organization["publisher_id"]
    assert game["review_count"] == 0
    assert game["average_rating"] is None


async def test_game_creation_rejects_outsiders_and_plain_members():
    users = await _users()
    organization = await _studio(users)
    service = GameService()
    values = {
        "title": "Hollow Crown",
        "publisher_id": organization["publisher_id"],
        "base_price": Decimal("20"),
    }

    with pytest.raises(ApiException) as outsider_error:
        await service.create_game(users.outsider, values=dict(values))
    assert outsider_error.value.status_code == 403

    await OrganizationService().add_member(
        users.owner,
        organization_id=organization["id"],
        user_id=users.member.user_id,
        role="member",
    )
    with pytest.raises(ApiException) as member_error:
        await service.create_game(users.member, values=dict(values))
    assert member_error.value.error_code == "PERMISSION_DENIED"
    assert member_error.value.details == {
        "required_roles": ["admin", "owner", "publisher"],
        "user_role": "member",
    }

    game = await service.create_game(users.owner, values=dict(values))
    item = await service.create_item(
        users.member,
        game_id=game["id"],
        values={"name": "Ember Blade", "rarity": "EPIC"},
    )
    assert item["name"] == "Ember Blade"


async def test_platform_admin_bypasses_membership():
    users = await _users()
    organization = await _studio(users)
    admin = make_principal(users.outsider.user_id, platform_role="Admin")

    game = await GameService().create_game(
        admin,
        values={
            "title": "Ashfall",
            "publisher_id": organization["publisher_id"],
            "base_price": Decimal("20"),
        },
    )
    assert game["slug"] == "ashfall"


async def test_game_validation_errors():
    users = await _users()
    organization = await _studio(users)
    service = GameService()
    listing = {"publisher_id": organization["publisher_id"], "base_price": Decimal("20")}
    await service.create_game(users.owner, values={**listing, "title": "Hollow Crown"})

    with pytest.raises(ApiException) as duplicate:
        await service.create_game(users.owner, values={**listing, "title": "Hollow  Crown"})
    assert duplicate.value.status_code == 409
    assert duplicate.value.error_code == "GAME_ALREADY_EXISTS"

    with pytest.raises(ApiException) as discount:
        await service.create_game(
            users.owner,
            values={
                **listing,
                "title": "Ashfall",
                "base_price": Decimal("10"),
                "discount_price": Decimal("12"),
            },
        )
    assert discount.value.error_code == "INVALID_DISCOUNT"

    with pytest.raises(ApiException) as genres:
        await service.create_game(
            users.owner,
            values={**listing, "title": "Ashfall", "genre_ids": [404]},
        )
    assert genres.value.error_code == "INVALID_GENRE_IDS"
    assert genres.value.details == {"ids": [404]}

    with pytest.raises(ApiException) as publisher:
        await service.create_game(users.owner, values={**listing, "title": "Ashfall", "publisher_id": 999})
    assert publisher.value.status_code == 404


async def test_invitation_flow_adds_member_and_notifies():
    users = await _users()
    organization = await _studio(users)
    service = OrganizationService()

    invitation = await service.create_invitation(
        users.owner,
        organization_id=organization["id"],
        email="Invitee@Example.com ",
    )
    assert invitation["email"] == "invitee@example.com"
    assert invitation["status"] == "PENDING"

    with pytest.raises(ApiException) as duplicate:
        await service.create_invitation(
            users.owner,
            organization_id=organization["id"],
            email="invitee@example.com",
        )
    assert duplicate.value.error_code == "INVITATION_ALREADY_EXISTS"

    with pytest.raises(ApiException) as stranger:
        await service.update_invitation_status(
            users.outsider,
            organization_id=organization["id"],
            invitation_id=invitation["id"],
            status="ACCEPTED",
        )
    assert stranger.value.status_code == 403

    accepted = await service.update_invitation_status(
        users.invitee,
        organization_id=organization["id"],
        invitation_id=invitation["id"],
        status="ACCEPTED",
    )
    assert accepted["status"] == "ACCEPTED"

    members = await service.list_members(users.owner, organization["id"])
    assert {row["user_id"]: row["role"] for row in members} == {
        users.owner.user_id: "owner",
        users.invitee.user_id: "member",
    }

    async with get_session() as session:
        deliveries = (
            await session.execute(
                select(InboxEntry).where(
                    InboxEntry.user_id == users.invitee.user_id
                )
            )
        ).scalars().all()
    assert len(deliveries) == 1


async def test_last_owner_cannot_be_removed():
    users = await _users()
    organization = await _studio(users)
    service = OrganizationService()
    members = await service.list_members(users.owner, organization["id"])

    with pytest.raises(ApiException) as error:
        await service.remove_member(
            users.owner,
            organization_id=organization["id"],
            member_id=members[0]["id"],
        )
    assert error.value.status_code == 400
    assert error.value.error_code == "LAST_OWNER"

    added = await service.add_member(
        users.owner,
        organization_id=organization["id"],
        user_id=users.member.user_id,
        role="member",
    )
    with pytest.raises(ApiException) as again:
        await service.add_member(
            users.owner,
            organization_id=organization["id"],
            user_id=users.member.user_id,
            role="member",
        )
    assert again.value.error_code == "MEMBER_ALREADY_EXISTS"

    await service.remove_member(users.member, organization_id=organization["id"], member_id=added["id"])
    remaining = await service.list_members(users.owner, organization["id"])
    assert [row["user_id"] for row in remaining] == [users.owner.user_id]
