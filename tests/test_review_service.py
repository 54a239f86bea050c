import asyncio
from decimal import Decimal
from types import SimpleNamespace

import pytest
from conftest import make_principal
from sqlalchemy import select

from incubus.application.services.review_service import ReviewService
from incubus.core.database import get_session
from incubus.core.errors import ApiException
from incubus.infrastructure.db.models import AuditLog, Game, InboxEntry, Publisher, Review, User

pytestmark = pytest.mark.usefixtures("database")


async def _seed() -> SimpleNamespace:
    async with get_session() as session:
        users = [User(email=f"{name}@example.com", name=name.title()) for name in ("author", "ana", "ben")]
        admin = User(email="mod@example.com", name="Mod", role="admin")
        publisher = Publisher(name="Nightfall Studio", slug="nightfall-studio")
        session.add_all([*users, admin, publisher])
        await session.flush()
        game = Game(
            title="Hollow Crown",
            slug="hollow-crown",
            publisher_id=publisher.id,
            base_price=Decimal("20"),
        )
        session.add(game)
        await session.flush()
        author, ana, ben = (make_principal(user.id) for user in users)
        return SimpleNamespace(
            game_id=game.id,
            author=author,
            ana=ana,
            ben=ben,
            admin=make_principal(admin.id, role="admin", roles=("admin",)),
        )


async def _review(service: ReviewService, seed: SimpleNamespace) -> dict:
    return await service.create_review(
        principal=seed.author,
        game_id=seed.game_id,
        rating=4,
        content="Tight combat, short campaign.",
        title="Worth it",
        is_recommended=True,
    )


async def test_concurrent_votes_are_all_counted():
    seed = await _seed()
    service = ReviewService()
    review = await _review(service, seed)

    await asyncio.gather(
        service.vote(principal=seed.ana, game_id=seed.game_id, review_id=review["id"], vote_type="upvote"),
        service.vote(principal=seed.ben, game_id=seed.game_id, review_id=review["id"], vote_type="upvote"),
    )
    async with get_session() as session:
        stored = await session.get(Review, review["id"])
        assert (stored.upvotes, stored.downvotes) == (2, 0)

    switched = await service.vote(
        principal=seed.ana, game_id=seed.game_id, review_id=review["id"], vote_type="downvote"
    )
    assert switched["previous_vote"] == "upvote"
    assert (switched["review"]["upvotes"], switched["review"]["downvotes"]) == (1, 1)

    removed = await service.vote(
        principal=seed.ana, game_id=seed.game_id, review_id=review["id"], vote_type="remove"
    )
    assert (removed["review"]["upvotes"], removed["review"]["downvotes"]) == (1, 0)


async def test_duplicate_review_and_own_vote_are_rejected():
    seed = await _seed()
    service = ReviewService()
    review = await _review(service, seed)

    with pytest.raises(ApiException) as duplicate:
        await _review(service, seed)
    assert duplicate.value.status_code == 409
    assert duplicate.value.error_code == "REVIEW_ALREADY_EXISTS"

    with pytest.raises(ApiException) as own_vote:
        await service.vote(
            principal=seed.author, game_id=seed.game_id, review_id=review["id"], vote_type="upvote"
        )
    assert own_vote.value.status_code == 400
    assert own_vote.value.error_code == "CANNOT_VOTE_OWN_REVIEW"


async def test_admin_edit_changes_status_only_and_matches_moderation():
    seed = await _seed()
    service = ReviewService()
    review = await _review(service, seed)

    with pytest.raises(ApiException) as content_edit:
        await service.update_review(
            principal=seed.admin,
            game_id=seed.game_id,
            review_id=review["id"],
            changes={"status": "APPROVED", "content": "rewritten"},
        )
    assert content_edit.value.status_code == 403

    edited = await service.update_review(
        principal=seed.admin,
        game_id=seed.game_id,
        review_id=review["id"],
        changes={"status": "APPROVED"},
    )
    assert edited["status"] == "APPROVED"
    assert edited["content"] == "Tight combat, short campaign."

    moderated = await service.moderate(actor=seed.admin, review_id=review["id"], status="REJECTED")
    assert moderated["status"] == "REJECTED"

    async with get_session() as session:
        actions = (
            await session.execute(
                select(AuditLog.action).where(AuditLog.entity_type == "review").order_by(AuditLog.id)
            )
        ).scalars().all()
        inbox = (
            await session.execute(select(InboxEntry).where(InboxEntry.user_id == seed.author.user_id))
        ).scalars().all()
    assert actions == ["review.approved", "review.rejected"]
    assert len(inbox) == 2


async def test_author_edit_sends_review_back_to_moderation():
    seed = await _seed()
    service = ReviewService()
    review = await _review(service, seed)
    await service.moderate(actor=seed.admin, review_id=review["id"], status="APPROVED")

    edited = await service.update_review(
        principal=seed.author,
        game_id=seed.game_id,
        review_id=review["id"],
        changes={"rating": 5, "content": "Patch 1.1 fixed the ending."},
    )
    assert edited["status"] == "PENDING"
    assert edited["rating"] == 5

    with pytest.raises(ApiException) as stranger:
        await service.update_review(
            principal=seed.ana,
            game_id=seed.game_id,
            review_id=review["id"],
            changes={"rating": 1},
        )
    assert stranger.value.status_code == 403
