"""Tests for usernames and referral codes."""

import datetime

import pytest
from sqlalchemy import select

from cavecrawl.core.errors import InvalidInput
from cavecrawl.models.leaderboard import DailyLeaderboardEntry, OverallLeaderboardEntry
from cavecrawl.models.user import User
from cavecrawl.services.profile_service import profile_service


async def test_new_users_get_a_referral_code(player, other_player):
    assert player.referral_code.startswith("CAVE")
    assert len(player.referral_code) == 10
    assert player.referral_code != other_player.referral_code


async def test_set_username(db, other_player):
    user = await profile_service.update_profile(db, other_player, "  Rockhound  ")
    assert user.username == "Rockhound"
    assert user.display_name() == "Rockhound"


async def test_keep_own_username(db, player):
    user = await profile_service.update_profile(db, player, "spelunker")
    assert user.username == "spelunker"


@pytest.mark.parametrize("username", ["ab", "x" * 21, "has space", "semi;colon", ""])
async def test_invalid_username_rejected(db, player, username):
    with pytest.raises(InvalidInput):
        await profile_service.update_profile(db, player, username)


async def test_taken_username_rejected(db, player, other_player):
    with pytest.raises(InvalidInput, match="taken"):
        await profile_service.update_profile(db, other_player, "SPELUNKER")


# ---------------------------------------------------------------------------
# Referrals
# ---------------------------------------------------------------------------

async def test_referral_code_links_referrer(db, player, other_player):
    code = player.referral_code.lower()
    user = await profile_service.update_profile(db, other_player, "Newcomer", code)
    assert user.referred_by == player.id


async def test_unknown_referral_code_rejected(db, other_player):
    with pytest.raises(InvalidInput, match="referral"):
        await profile_service.update_profile(db, other_player, "Newcomer", "CAVE000000")
    assert other_player.referred_by is None


async def test_own_referral_code_rejected(db, player):
    with pytest.raises(InvalidInput, match="own"):
        await profile_service.update_profile(db, player, "Spelunker", player.referral_code)


async def test_referrer_cannot_be_swapped(db, player, other_player):
    third = User(wallet_address="0x" + "ef" * 20)
    db.add(third)
    await db.flush()

    await profile_service.update_profile(db, other_player, "Newcomer", player.referral_code)
    # re-sending the same code is harmless
    await profile_service.update_profile(db, other_player, "Newcomer", player.referral_code)

    with pytest.raises(InvalidInput, match="already been applied"):
        await profile_service.update_profile(db, other_player, "Newcomer", third.referral_code)
    assert other_player.referred_by == player.id


async def test_rename_updates_leaderboard_rows(db, player):
    db.add(DailyLeaderboardEntry(user_id=player.id, date=datetime.date.today(), username="Spelunker"))
    db.add(OverallLeaderboardEntry(user_id=player.id, username="Spelunker"))
    await db.flush()

    await profile_service.update_profile(db, player, "DeepDelver")

    for model in (DailyLeaderboardEntry, OverallLeaderboardEntry):
        row = (
            await db.execute(
                select(model)
                .where(model.user_id == player.id)
                .execution_options(populate_existing=True)
            )
        ).scalar_one()
        assert row.username == "DeepDelver"
