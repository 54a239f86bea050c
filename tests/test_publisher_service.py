from decimal import Decimal
from types import SimpleNamespace

import pytest
from conftest import make_principal

from incubus.application.services.bundle_service import BundleService
from incubus.application.services.catalog_service import PublisherService
from incubus.application.services.staff_service import StaffService
from incubus.core.database import get_session
from incubus.core.errors import ApiException
from incubus.infrastructure.db.models import Game, User

pytestmark = pytest.mark.usefixtures("database")


async def _studios() -> SimpleNamespace:
    service = PublisherService()
    nightfall = await service.create_publisher({"name": "Nightfall Studio"})
    ember = await service.create_publisher({"name": "Ember Works"})
    empty = await service.create_publisher({"name": "Quiet Harbor"})
    async with get_session() as session:
        staff = User(email="lead@nightfall.example", name="Lead")
        hollow = Game(
            title="Hollow Crown",
            slug="hollow-crown",
            publisher_id=nightfall["id"],
            base_price=Decimal("20"),
        )
        ashfall = Game(title="Ashfall", slug="ashfall", publisher_id=ember["id"], base_price=Decimal("15"))
        session.add_all([staff, hollow, ashfall])
        await session.flush()
        lead = make_principal(
            staff.id,
            publisher_id=nightfall["id"],
            publisher_role="Publisher",
            roles=("user", "publisher"),
        )
        games = {hollow.title: hollow.id, ashfall.title: ashfall.id}
    return SimpleNamespace(nightfall=nightfall, ember=ember, empty=empty, games=games, lead=lead)


async def test_publisher_with_games_cannot_be_deleted():
    studios = await _studios()
    service = PublisherService()

    with pytest.raises(ApiException) as exc:
        await service.delete_publisher(studios.nightfall["id"])
    assert exc.value.status_code == 400
    assert exc.value.error_code == "PUBLISHER_HAS_GAMES"
    assert exc.value.details == {"games": 1}

    await service.delete_publisher(studios.empty["id"])
    with pytest.raises(ApiException) as missing:
        await service.get_publisher(studios.empty["id"])
    assert missing.value.status_code == 404


async def test_publishers_bundle_only_their_own_games():
    studios = await _studios()
    service = BundleService()
    own = studios.games["Hollow Crown"]
    foreign = studios.games["Ashfall"]

    with pytest.raises(ApiException) as exc:
        await service.create_bundle(
            studios.lead,
            values={"title": "Night Pack", "price": Decimal("30"), "game_ids": [own, foreign]},
        )
    assert exc.value.status_code == 403

    bundle = await service.create_bundle(
        studios.lead,
        values={"title": "Night Pack", "price": Decimal("18"), "game_ids": [own]},
    )
    assert [game["id"] for game in bundle["games"]] == [own]

    with pytest.raises(ApiException) as update:
        await service.update_bundle(studios.lead, bundle_id=bundle["id"], values={"game_ids": [foreign]})
    assert update.value.status_code == 403

    admin = make_principal(999, platform_role="Admin")
    mixed = await service.create_bundle(
        admin,
        values={"title": "Everything", "price": Decimal("30"), "game_ids": [own, foreign]},
    )
    with pytest.raises(ApiException) as delete:
        await service.delete_bundle(studios.lead, bundle_id=mixed["id"])
    assert delete.value.status_code == 403

    with pytest.raises(ApiException) as player:
        await service.create_bundle(make_principal(998), values={"title": "Solo", "game_ids": [own]})
    assert player.value.status_code == 403


async def test_registering_twice_is_rejected():
    studios = await _studios()
    service = StaffService()
    async with get_session() as session:
        user = User(email="nyx@example.com", name="Nyx")
        session.add(user)
        await session.flush()
        principal = make_principal(user.id)

    player = await service.register_player(principal)
    assert player["user_id"] == principal.user_id
    staff = await service.register_publisher_staff(
        principal,
        publisher_id=studios.ember["id"],
        role="Developer",
    )
    assert staff["publisher_id"] == studios.ember["id"]
    platform = await service.register_platform_staff(principal)
    assert platform["role"] == "Support"

    attempts = (
        lambda: service.register_player(principal),
        lambda: service.register_publisher_staff(
            principal,
            publisher_id=studios.nightfall["id"],
            role="Developer",
        ),
        lambda: service.register_platform_staff(principal),
    )
    for attempt in attempts:
        with pytest.raises(ApiException) as exc:
            await attempt()
        assert exc.value.status_code == 400
        assert exc.value.error_code == "ALREADY_REGISTERED"
