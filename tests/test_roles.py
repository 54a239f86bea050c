from incubus.domain.roles import (
    account_kind,
    build_role_tags,
    encode_roles_header,
    has_all_roles,
    has_any_role,
    parse_roles_header,
)
from incubus.domain.slugs import slugify


def test_build_role_tags_orders_user_platform_publisher_player():
    tags = build_role_tags(
        user_role="user",
        platform_role="Moderator",
        publisher_role="Developer",
        is_player=True,
    )
    assert tags == ("user", "platform:Moderator", "publisher:Developer", "player")


def test_account_kind_prefers_platform_then_publisher():
    assert account_kind(platform_role="Admin", publisher_role="Tester", is_player=True) == "platform"
    assert account_kind(platform_role=None, publisher_role="Tester", is_player=True) == "publisher"
    assert account_kind(platform_role=None, publisher_role=None, is_player=True) == "player"
    assert account_kind(platform_role=None, publisher_role=None, is_player=False) is None


def test_roles_header_round_trip_and_garbage():
    raw = encode_roles_header(("admin", "player"))
    assert raw == '["admin","player"]'
    assert parse_roles_header(raw) == ["admin", "player"]
    assert parse_roles_header('"admin"') == ["admin"]
    assert parse_roles_header("not json") == []
    assert parse_roles_header('{"role": "admin"}') == []
    assert parse_roles_header('["admin", 3]') == ["admin"]
    assert parse_roles_header(None) == []


def test_role_matching():
    assert has_any_role(["user"], [])
    assert has_any_role(["user", "admin"], ["admin"])
    assert not has_any_role(["user"], ["admin"])
    assert has_all_roles(["user", "player"], ["player"])
    assert not has_all_roles(["user"], ["user", "player"])


def test_slugify():
    assert slugify("Hello, World!") == "hello-world"
    assert slugify("Café Déjà Vu") == "cafe-deja-vu"
    assert slugify("!!!") == "item"
    assert slugify("", fallback="game") == "game"
    assert slugify("a b c", max_length=3) == "a-b"
