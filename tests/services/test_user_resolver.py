"""UserResolver 및 상관 토큰 파싱 테스트"""
import pytest

from services.user_resolver import UserResolver, parse_correlation_token


class CountingDb:
    """조회 호출을 기록하는 최소 저장소"""

    def __init__(self, users):
        self.users = {u["id"]: u for u in users}
        self.calls = []

    async def get_user(self, user_id):
        self.calls.append(("id", user_id))
        return self.users.get(user_id)

    async def find_user_by_field(self, field, value):
        self.calls.append((field, value))
        return next((u for u in self.users.values() if u.get(field) == value), None)


USERS = [
    {"id": "u123", "email": "ada@example.com"},
    {"id": "u999", "email": "other@example.com", "payment_provider_customer_id": "cus_1"},
]


@pytest.mark.parametrize(
    "token, expected",
    [
        ("u123_basic", ("u123", "basic", None)),
        ("u123_coins_popular", ("u123", None, "popular")),
        ("u123", None),
        ("_basic", None),
        ("u123_", None),
        ("a_b_c", None),
        ("u123_coins_", None),
        ("", None),
        (None, None),
    ],
)
def test_parse_correlation_token(token, expected):
    parsed = parse_correlation_token(token)
    if expected is None:
        assert parsed is None
    else:
        assert (parsed.user_id, parsed.plan_id, parsed.coin_package_id) == expected


@pytest.mark.asyncio
async def test_token_match_wins_and_customer_id_is_not_consulted():
    db = CountingDb(USERS)
    resolver = UserResolver(db)

    resolved = await resolver.resolve(
        reference=parse_correlation_token("u123_pro"),
        customer_id="cus_1",
        email="other@example.com",
    )

    assert resolved.user_id == "u123"
    assert resolved.strategy == "reference"
    assert db.calls == [("id", "u123")]


@pytest.mark.asyncio
async def test_unknown_token_user_falls_through_to_customer_id():
    db = CountingDb(USERS)

    resolved = await UserResolver(db).resolve(
        reference=parse_correlation_token("ghost_pro"),
        customer_id="cus_1",
    )

    assert resolved.user_id == "u999"
    assert resolved.strategy == "customer_id"


@pytest.mark.asyncio
async def test_email_is_last_resort_and_exact():
    db = CountingDb(USERS)
    resolver = UserResolver(db)

    resolved = await resolver.resolve(customer_id="cus_missing", email="ada@example.com")
    assert resolved.user_id == "u123"
    assert resolved.strategy == "email"

    assert await resolver.resolve(email="ADA@example.com") is None


@pytest.mark.asyncio
async def test_nothing_to_match_returns_none():
    db = CountingDb(USERS)

    assert await UserResolver(db).resolve() is None
    assert db.calls == []
