"""Provably-fair primitives - seed commitment and deterministic outcome expansion.

Flow:
1. ``create_commitment`` draws a secret server seed and publishes
   ``sha256(server_seed|client_seed)`` before any round is played.
2. ``Mulberry32Expander.expand`` turns the commitment into the full per-round
   outcome table. It is a pure function of its inputs, so anyone holding the
   revealed seeds can rebuild the table and check it against the session.
"""

from __future__ import annotations

import hashlib
import hmac
import math
import secrets
from dataclasses import dataclass
from typing import Protocol

from cavecrawl.config import settings

PAYOUT_DECIMALS = 6
_MASK32 = 0xFFFFFFFF


@dataclass(frozen=True)
class RoundOutcome:
    """Pre-generated outcome of one round: which passage is trapped, what each pays."""
    trap_index: int
    payouts: tuple[float, ...]

    def to_dict(self) -> dict:
        return {"trap_index": self.trap_index, "payouts": list(self.payouts)}

    @classmethod
    def from_dict(cls, data: dict) -> RoundOutcome:
        return cls(trap_index=int(data["trap_index"]), payouts=tuple(data["payouts"]))


def sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def generate_server_seed() -> str:
    """256 bits from the OS CSPRNG. Errors propagate; there is no weaker fallback."""
    return secrets.token_hex(32)


def compute_commitment(server_seed: str, client_seed: str) -> str:
    return sha256_hex(f"{server_seed}|{client_seed}")


def create_commitment(client_seed: str) -> tuple[str, str]:
    """Return ``(server_seed, commitment)`` for a new session."""
    server_seed = generate_server_seed()
    return server_seed, compute_commitment(server_seed, client_seed)


def verify_commitment(server_seed: str, client_seed: str, commitment: str) -> bool:
    """Recompute the commitment from revealed seeds (constant-time compare)."""
    expected = compute_commitment(server_seed, client_seed)
    return hmac.compare_digest(expected, commitment.lower())


def seed_from_commitment(commitment: str) -> int:
    """32-bit generator seed: first 8 hex chars of sha256(commitment), never 0."""
    return int(sha256_hex(commitment)[:8], 16) or 1


def _imul(a: int, b: int) -> int:
    return (a * b) & _MASK32


class Mulberry32:
    """Small reproducible 32-bit generator producing floats in [0, 1)."""

    def __init__(self, seed: int):
        self.state = seed & _MASK32

    def random(self) -> float:
        self.state = (self.state + 0x6D2B79F5) & _MASK32
        t = self.state
        t = _imul(t ^ (t >> 15), t | 1)
        t ^= (t + _imul(t ^ (t >> 7), t | 61)) & _MASK32
        return ((t ^ (t >> 14)) & _MASK32) / 4294967296


class OutcomeExpander(Protocol):
    def expand(
        self, commitment: str, round_count: int, options_per_round: int
    ) -> list[RoundOutcome]: ...


class Mulberry32Expander:
    """Production expander: Mulberry32 seeded from the commitment.

    Draw order per round is fixed: one draw for the trap index, then one draw
    per passage for its payout. Rounds never look at earlier draws' results,
    and nothing about the player's choices feeds back into the stream.
    """

    def __init__(
        self,
        reference_unit: float | None = None,
        band_low: float | None = None,
        band_high: float | None = None,
    ):
        self.reference_unit = (
            settings.PAYOUT_REFERENCE_UNIT if reference_unit is None else reference_unit
        )
        self.band_low = settings.PAYOUT_BAND_LOW if band_low is None else band_low
        self.band_high = settings.PAYOUT_BAND_HIGH if band_high is None else band_high

    def expand(
        self, commitment: str, round_count: int, options_per_round: int
    ) -> list[RoundOutcome]:
        if round_count < 1 or options_per_round < 2:
            raise ValueError("need at least one round and two passages per round")

        rng = Mulberry32(seed_from_commitment(commitment))
        table = []
        for _ in range(round_count):
            trap_index = math.floor(rng.random() * options_per_round)
            payouts = tuple(self._payout(rng.random()) for _ in range(options_per_round))
            table.append(RoundOutcome(trap_index=trap_index, payouts=payouts))
        return table

    def _payout(self, r: float) -> float:
        fraction = self.band_low + r * (self.band_high - self.band_low)
        return round(fraction * self.reference_unit, PAYOUT_DECIMALS)


def expand_from_seeds(
    server_seed: str,
    client_seed: str,
    round_count: int,
    options_per_round: int,
    expander: OutcomeExpander | None = None,
) -> tuple[str, list[RoundOutcome]]:
    """Rebuild ``(commitment, table)`` from revealed seeds, for audits."""
    commitment = compute_commitment(server_seed, client_seed)
    expander = expander or Mulberry32Expander()
    return commitment, expander.expand(commitment, round_count, options_per_round)
