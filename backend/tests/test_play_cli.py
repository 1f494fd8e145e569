"""Tests for the offline play/verify CLI."""

import play
from cavecrawl.core.fairness import Mulberry32Expander, create_commitment


def test_verify_game_accepts_honest_seeds():
    server_seed, commitment = create_commitment("abc")
    ok, table = play.verify_game(server_seed, "abc", commitment, 4)
    assert ok is True
    assert table == Mulberry32Expander().expand(commitment, 4, 3)


def test_verify_game_flags_wrong_seed():
    _, commitment = create_commitment("abc")
    ok, _ = play.verify_game("ff" * 32, "abc", commitment, 4)
    assert ok is False


def test_run_verify_exit_codes(capsys):
    server_seed, commitment = create_commitment("abc")
    assert play.run_verify([server_seed, "abc", commitment, "2"]) == 0
    assert "Round 2" in capsys.readouterr().out

    assert play.run_verify([server_seed, "xyz", commitment]) == 1
    assert "MISMATCH" in capsys.readouterr().out

    assert play.run_verify(["only-one"]) == 2


def test_main_dispatches_verify():
    server_seed, commitment = create_commitment("")
    assert play.main(["verify", server_seed, "", commitment, "1"]) == 0


def test_choose_passage_retries_until_valid(monkeypatch, capsys):
    answers = iter(["9", "x", "2"])
    monkeypatch.setattr("builtins.input", lambda _prompt: next(answers))
    assert play.choose_passage(3) == 1
    assert capsys.readouterr().out.count("Invalid choice") == 2


def test_play_cave_loses_on_trap(monkeypatch):
    """Always walking into round one's trap costs exactly the wager."""
    trapped = {}
    real_expand = Mulberry32Expander.expand

    def fake_expand(self, commitment, rounds, options):
        table = real_expand(self, commitment, rounds, options)
        trapped["index"] = table[0].trap_index
        return table

    monkeypatch.setattr(play.Mulberry32Expander, "expand", fake_expand)
    monkeypatch.setattr("builtins.input", lambda _prompt: str(trapped["index"] + 1))

    assert play.play_cave(3, "seed", 0.01) == -0.01
