"""Shared test fixtures - async SQLite, in-memory Redis and a fixed outcome table."""

from datetime import datetime, timedelta, timezone

import pytest
from eth_account import Account
from eth_account.messages import encode_defunct
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cavecrawl.core.fairness import RoundOutcome
from cavecrawl.core.siwe import format_timestamp
from cavecrawl.db.database import Base, get_db
from cavecrawl.db.redis import get_redis
from cavecrawl.models.user import User
from cavecrawl.services.auth_service import AuthService
from cavecrawl.services.game_service import GameService
from cavecrawl.services.wallet_service import SignatureVerifier

# In-memory SQLite for tests (no Docker needed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///file::memory:?cache=shared&uri=true"

test_engine = create_async_engine(TEST_DATABASE_URL, echo=False)
test_session_factory = async_sessionmaker(
    test_engine, class_=AsyncSession, expire_on_commit=False
)

CHAIN_ID = 11124

# Trap positions the route and state-machine tests rely on
FIXED_TABLE = [
    RoundOutcome(trap_index=2, payouts=(0.005, 0.004, 0.006)),
    RoundOutcome(trap_index=0, payouts=(0.003, 0.007, 0.002)),
    RoundOutcome(trap_index=1, payouts=(0.0025, 0.0075, 0.005)),
]


class FixedOutcomeExpander:
    """Returns FIXED_TABLE (cycled) regardless of the commitment."""

    def __init__(self, table: list[RoundOutcome] | None = None):
        self.table = table or FIXED_TABLE
        self.calls: list[tuple[str, int, int]] = []

    def expand(self, commitment: str, round_count: int, options_per_round: int):
        self.calls.append((commitment, round_count, options_per_round))
        return [self.table[i % len(self.table)] for i in range(round_count)]


class FakeRedis:
    """The handful of redis.asyncio calls the app makes, backed by a dict."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}

    async def set(self, key, value, ex=None):
        self.store[key] = value
        self.ttls[key] = ex
        return True

    async def get(self, key):
        return self.store.get(key)

    async def getdel(self, key):
        self.ttls.pop(key, None)
        return self.store.pop(key, None)

    async def exists(self, *keys):
        return sum(1 for key in keys if key in self.store)

    async def delete(self, *keys):
        return sum(1 for key in keys if self.store.pop(key, None) is not None)


class FakeContractValidator:
    """Stands in for the JSON-RPC ERC-1271 check."""

    def __init__(self, deployed: set[str] | None = None, accepts: bool = True):
        self.deployed = {a.lower() for a in (deployed or set())}
        self.accepts = accepts
        self.checked: list[tuple[str, bytes]] = []

    async def is_deployed(self, chain_id, address):
        return address.lower() in self.deployed

    async def is_valid_signature(self, chain_id, address, message_hash, signature):
        self.checked.append((address, signature))
        return self.accepts


def build_siwe_message(
    address: str,
    nonce: str,
    chain_id: int = CHAIN_ID,
    expires_in: timedelta | None = timedelta(hours=1),
    domain: str = "cave.example",
    not_before: datetime | None = None,
) -> str:
    """Canonical EIP-4361 text, as a wallet would present it for signing."""
    now = datetime.now(timezone.utc)
    lines = [
        f"{domain} wants you to sign in with your Ethereum account:",
        address,
        "",
        "Sign in to Cave Crawl.",
        "",
        f"URI: https://{domain}",
        "Version: 1",
        f"Chain ID: {chain_id}",
        f"Nonce: {nonce}",
        f"Issued At: {format_timestamp(now)}",
    ]
    if expires_in is not None:
        lines.append(f"Expiration Time: {format_timestamp(now + expires_in)}")
    if not_before is not None:
        lines.append(f"Not Before: {format_timestamp(not_before)}")
    return "\n".join(lines)


def sign(account, message: str) -> str:
    return account.sign_message(encode_defunct(text=message)).signature.hex()


@pytest.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after."""
    # Import all models so Base.metadata knows about them
    import cavecrawl.models  # noqa: F401

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def db():
    """Direct async DB session for service-level tests."""
    async with test_session_factory() as session:
        yield session
        await session.commit()


@pytest.fixture
def redis():
    return FakeRedis()


@pytest.fixture
def contract_validator():
    return FakeContractValidator()


@pytest.fixture
def auth(contract_validator):
    return AuthService(verifier=SignatureVerifier(contract_validator))


@pytest.fixture
def expander():
    return FixedOutcomeExpander()


@pytest.fixture
def games(expander):
    return GameService(expander=expander)


@pytest.fixture
def account():
    return Account.from_key("0x" + "11" * 32)


@pytest.fixture
def other_account():
    return Account.from_key("0x" + "22" * 32)


@pytest.fixture
async def player(db):
    user = User(wallet_address="0x" + "ab" * 20, username="Spelunker")
    db.add(user)
    await db.flush()
    return user


@pytest.fixture
async def other_player(db):
    user = User(wallet_address="0x" + "cd" * 20)
    db.add(user)
    await db.flush()
    return user


@pytest.fixture
async def client(redis, auth, games):
    """Async HTTP test client with test DB, Redis and service overrides."""
    from cavecrawl.api.deps import get_auth_service, get_game_service
    from cavecrawl.main import app

    async def _override_get_db():
        async with test_session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def _override_get_redis():
        return redis

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_redis] = _override_get_redis
    app.dependency_overrides[get_auth_service] = lambda: auth
    app.dependency_overrides[get_game_service] = lambda: games
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def login(client: AsyncClient, account) -> str:
    """Full SIWE round trip over HTTP; returns the bearer token."""
    nonce = (await client.get("/api/auth/nonce")).json()["nonce"]
    message = build_siwe_message(account.address, nonce)
    resp = await client.post(
        "/api/auth/verify",
        json={"message": message, "signature": sign(account, message), "nonce": nonce},
    )
    assert resp.status_code == 200, resp.text
    return resp.json()["token"]
