#!/usr/bin/env python3
"""Offline CLI to playtest the cave and audit finished sessions.

Usage:
    python play.py                                   # play a 6-round cave locally
    python play.py play 3 my-seed                    # 3 rounds with a chosen client seed
    python play.py verify <server_seed> <client_seed> <commitment> [rounds]

Features:
    - Play through a locally committed cave, round by round
    - Verify a revealed session: recompute the commitment and the trap table

No server, database, or Redis needed.
"""

import sys

from cavecrawl.config import settings
from cavecrawl.core.fairness import (
    RoundOutcome,
    create_commitment,
    expand_from_seeds,
    Mulberry32Expander,
    verify_commitment,
)

# --- ANSI Colors ---
DIVIDER = "\033[90m" + "─" * 50 + "\033[0m"
RESET = "\033[0m"
DIM = "\033[90m"
BOLD = "\033[1m"
YELLOW = "\033[93m"
GREEN = "\033[92m"
RED = "\033[91m"


# =============================================================
# Part 1: Audit
# =============================================================

def verify_game(
    server_seed: str,
    client_seed: str,
    commitment: str,
    rounds: int,
    options: int | None = None,
) -> tuple[bool, list[RoundOutcome]]:
    """Check the commitment and rebuild the outcome table from revealed seeds."""
    options = options or settings.OPTIONS_PER_ROUND
    _, table = expand_from_seeds(server_seed, client_seed, rounds, options)
    return verify_commitment(server_seed, client_seed, commitment), table


def print_table(table: list[RoundOutcome]):
    for number, outcome in enumerate(table, start=1):
        cells = []
        for index, payout in enumerate(outcome.payouts):
            if index == outcome.trap_index:
                cells.append(f"{RED}TRAP{RESET}")
            else:
                cells.append(f"{payout:.6f}")
        print(f"  Round {number}: " + "  |  ".join(cells))


def run_verify(args: list[str]) -> int:
    if len(args) < 3:
        print(f"{RED}usage: play.py verify <server_seed> <client_seed> <commitment> [rounds]{RESET}")
        return 2
    server_seed, client_seed, commitment = args[:3]
    rounds = int(args[3]) if len(args) > 3 else settings.DEFAULT_MAX_ROUNDS

    ok, table = verify_game(server_seed, client_seed, commitment, rounds)
    print()
    if ok:
        print(f"{GREEN}Commitment matches: sha256(server_seed|client_seed) == {commitment}{RESET}")
    else:
        print(f"{RED}Commitment MISMATCH - these seeds did not produce {commitment}{RESET}")
    print(DIVIDER)
    print_table(table)
    print()
    return 0 if ok else 1


# =============================================================
# Part 2: Local playthrough
# =============================================================

def choose_passage(options: int) -> int:
    """Prompt until the player picks a valid passage number (1-based on screen)."""
    valid = [str(i) for i in range(1, options + 1)]
    while True:
        choice = input(f"  Choose a passage ({'/'.join(valid)}): ").strip()
        if choice in valid:
            return int(choice) - 1
        print(f"  {RED}Invalid choice, enter {'/'.join(valid)}{RESET}")


def play_cave(rounds: int, client_seed: str, wager: float) -> float:
    """Play one cave offline. Returns the net result."""
    options = settings.OPTIONS_PER_ROUND
    server_seed, commitment = create_commitment(client_seed)
    table = Mulberry32Expander().expand(commitment, rounds, options)

    print()
    print(f"{BOLD}" + "=" * 50 + f"{RESET}")
    print(f"{BOLD}  Cave Crawl - {rounds} rounds, wager {wager}{RESET}")
    print(f"  {DIM}commitment: {commitment}{RESET}")
    print(f"{BOLD}" + "=" * 50 + f"{RESET}")

    total = 0.0
    for number, outcome in enumerate(table, start=1):
        print()
        print(DIVIDER)
        print(f"  {BOLD}Round {number}{RESET}: {options} passages ahead. One is trapped.")
        chosen = choose_passage(options)
        if chosen == outcome.trap_index:
            print(f"  {RED}The passage collapses! Game over.{RESET}")
            break
        total += outcome.payouts[chosen]
        print(f"  {YELLOW}Treasure +{outcome.payouts[chosen]:.6f} (total {total:.6f}){RESET}")
    else:
        print(f"\n  {GREEN}You made it through the cave!{RESET}")

    net = round(total - wager, 6)
    print()
    print(DIVIDER)
    print(f"  Net result: {net:+.6f}")
    print(f"  {DIM}server seed: {server_seed}{RESET}")
    print(f"  {DIM}verify with: python play.py verify {server_seed} '{client_seed}' {commitment} {rounds}{RESET}")
    print()
    return net


# =============================================================
# Main
# =============================================================

def main(argv: list[str]) -> int:
    if argv and argv[0] == "verify":
        return run_verify(argv[1:])
    if argv and argv[0] == "play":
        argv = argv[1:]

    rounds = int(argv[0]) if argv else settings.DEFAULT_MAX_ROUNDS
    client_seed = argv[1] if len(argv) > 1 else ""
    play_cave(rounds, client_seed, settings.MIN_WAGER)
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main(sys.argv[1:]))
    except KeyboardInterrupt:
        print(f"\n\n{DIM}Left the cave.{RESET}")
    except ValueError as e:
        print(f"{RED}{e}{RESET}")
