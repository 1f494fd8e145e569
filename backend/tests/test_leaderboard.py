"""Tests for settlement and the daily/overall leaderboards."""

import datetime

import pytest
from sqlalchemy import select

from cavecrawl.core.errors import InvalidState
from cavecrawl.models.leaderboard import DailyLeaderboardEntry, OverallLeaderboardEntry
from cavecrawl.models.user import User
from cavecrawl.services.leaderboard_service import leaderboard_service, utc_today
from cavecrawl.services.settlement_service import is_terminal, settlement_service


async def _overall(db, user_id):
    result = await db.execute(
        select(OverallLeaderboardEntry)
        .where(OverallLeaderboardEntry.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _daily(db, user_id):
    result = await db.execute(
        select(DailyLeaderboardEntry)
        .where(DailyLeaderboardEntry.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalars().all()


def test_is_terminal():
    assert is_terminal({"round": 1, "was_successful": False}, 6)
    assert is_terminal({"round": 6, "was_successful": True}, 6)
    assert not is_terminal({"round": 5, "was_successful": True}, 6)


# ---------------------------------------------------------------------------
# Settlement
# ---------------------------------------------------------------------------

async def test_loss_is_recorded(db, games, player):
    session = await games.create_session(db, player.id, wager=0.01, max_rounds=6)
    await games.resolve_round(db, session.id, player.id, 1, 2)

    row = await _overall(db, player.id)
    assert row.username == "Spelunker"
    assert row.total_rounds == 1
    assert row.total_net_credits == pytest.approx(-0.01)

    daily = await _daily(db, player.id)
    assert len(daily) == 1
    assert daily[0].date == utc_today()
    assert daily[0].daily_rounds == 1


async def test_win_credits_every_round(db, games, player):
    session = await games.create_session(db, player.id, wager=0.01, max_rounds=3)
    for number, choice in [(1, 0), (2, 1), (3, 0)]:
        await games.resolve_round(db, session.id, player.id, number, choice)

    row = await _overall(db, player.id)
    assert row.total_rounds == 3
    assert row.total_net_credits == pytest.approx(0.0145 - 0.01)


async def test_settling_twice_is_a_no_op(db, games, player):
    session = await games.create_session(db, player.id, wager=0.01, max_rounds=6)
    await games.resolve_round(db, session.id, player.id, 1, 2)

    assert await settlement_service.settle(db, session) is False

    row = await _overall(db, player.id)
    assert row.total_rounds == 1
    assert row.total_net_credits == pytest.approx(-0.01)


async def test_non_terminal_session_cannot_settle(db, games, player):
    session = await games.create_session(db, player.id, wager=0.01, max_rounds=6)
    with pytest.raises(InvalidState):
        await settlement_service.settle(db, session)

    await games.resolve_round(db, session.id, player.id, 1, 0)
    with pytest.raises(InvalidState):
        await settlement_service.settle(db, session)
    assert await _overall(db, player.id) is None


async def test_totals_are_additive(db, games, player):
    """Three settled games: +0.0045 win, -0.01 loss, -0.006 loss."""
    win = await games.create_session(db, player.id, wager=0.01, max_rounds=3)
    for number, choice in [(1, 0), (2, 1), (3, 0)]:
        await games.resolve_round(db, win.id, player.id, number, choice)

    loss = await games.create_session(db, player.id, wager=0.01, max_rounds=6)
    await games.resolve_round(db, loss.id, player.id, 1, 2)

    partial = await games.create_session(db, player.id, wager=0.01, max_rounds=6)
    await games.resolve_round(db, partial.id, player.id, 1, 1)
    await games.resolve_round(db, partial.id, player.id, 2, 0)

    row = await _overall(db, player.id)
    assert row.total_rounds == 3 + 1 + 2
    assert row.total_net_credits == pytest.approx(0.0045 - 0.01 - 0.006)

    daily = await _daily(db, player.id)
    assert len(daily) == 1
    assert daily[0].daily_rounds == 6
    assert daily[0].daily_net_credits == pytest.approx(row.total_net_credits)


async def test_user_without_username_gets_placeholder(db, games, other_player):
    session = await games.create_session(db, other_player.id, wager=0.01, max_rounds=1)
    await games.resolve_round(db, session.id, other_player.id, 1, 2)

    row = await _overall(db, other_player.id)
    assert row.username == "Explorer-cdcdcd"


async def test_missing_user_falls_back_to_default_name(db):
    assert await settlement_service.resolve_username(db, "ghost") == "Explorer"


# ---------------------------------------------------------------------------
# Ranked reads
# ---------------------------------------------------------------------------

async def _seed(db, credits_by_name):
    users = {}
    for index, (name, credits) in enumerate(credits_by_name.items()):
        user = User(wallet_address="0x" + f"{index + 1:040x}", username=name)
        db.add(user)
        await db.flush()
        await leaderboard_service.record(db, user.id, name, rounds=index + 1, net_credits=credits)
        users[name] = user
    return users


async def test_ordered_by_net_credits(db):
    await _seed(db, {"low": -0.5, "high": 0.9, "mid": 0.1})

    entries, caller = await leaderboard_service.top(db, "overall")

    assert [e["username"] for e in entries] == ["high", "mid", "low"]
    assert [e["rank"] for e in entries] == [1, 2, 3]
    assert caller is None


async def test_ties_share_a_rank(db):
    await _seed(db, {"a": 0.2, "b": 0.2, "c": 0.1})
    entries, _ = await leaderboard_service.top(db, "overall")
    assert [e["rank"] for e in entries] == [1, 1, 3]
    # equal credits fall back to rounds played, highest first
    assert [e["username"] for e in entries[:2]] == ["b", "a"]


async def test_caller_outside_top_gets_own_rank(db):
    users = await _seed(db, {"one": 0.5, "two": 0.4, "three": 0.3, "four": -0.2})

    entries, caller = await leaderboard_service.top(
        db, "overall", caller_id=users["four"].id, limit=2
    )

    assert [e["username"] for e in entries] == ["one", "two"]
    assert caller["username"] == "four"
    assert caller["rank"] == 4


async def test_caller_inside_top_not_repeated(db):
    users = await _seed(db, {"one": 0.5, "two": 0.4})
    _, caller = await leaderboard_service.top(db, "overall", caller_id=users["one"].id)
    assert caller is None


async def test_daily_only_shows_today(db, player):
    yesterday = utc_today() - datetime.timedelta(days=1)
    await leaderboard_service.record(db, player.id, "Spelunker", 4, 0.3, day=yesterday)

    entries, _ = await leaderboard_service.top(db, "daily")
    assert entries == []

    overall, _ = await leaderboard_service.top(db, "overall")
    assert overall[0]["rounds"] == 4


async def test_unknown_scope(db):
    with pytest.raises(ValueError):
        await leaderboard_service.top(db, "weekly")
