from datetime import datetime, timedelta, timezone

from sweeper.config import Settings
from sweeper.leaderboard import LeaderboardActor
from sweeper.types import Difficulty, GameConfig, GameResult, GameStatus, LeaderboardCategory as Cat


T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)
BEGINNER = GameConfig(9, 9, 10)
EXPERT = GameConfig(30, 16, 99)

_seq = iter(range(1_000_000))


def make_result(player, duration, status=GameStatus.WON, config=BEGINNER):
    n = next(_seq)
    start = T0 + timedelta(minutes=n)
    return GameResult(
        id=f"game-{n}",
        session_id=player,
        config=config,
        status=status,
        start_time=start,
        end_time=start + timedelta(seconds=duration),
        duration=float(duration),
        cells_revealed=config.width * config.height - config.mine_count,
        flags_used=0,
    )


def make_board(**settings):
    return LeaderboardActor(Settings(**settings)).start()


def feed(board, *results):
    for r in results:
        board.add_result(r).result(2)


def test_empty_leaderboard_is_not_an_error():
    board = make_board()
    lb = board.get_leaderboard(Cat.FASTEST_TIME)
    assert lb.entries == []
    assert lb.last_updated is None
    assert lb.difficulty is None
    assert board.get_player_stats("nobody") is None
    board.stop()


def test_losses_are_not_ranked():
    board = make_board()
    assert board.add_result(make_result("p1", 30, status=GameStatus.LOST)).result(2) is False
    assert board.get_player_stats("p1") is None
    assert board.get_leaderboard(Cat.MOST_WINS).entries == []
    board.stop()


def test_fastest_time_is_append_only_and_ascending():
    board = make_board()
    feed(board, make_result("p1", 50), make_result("p2", 20), make_result("p1", 35), make_result("p3", 35))
    lb = board.get_leaderboard(Cat.FASTEST_TIME, Difficulty.BEGINNER)
    values = [e.value for e in lb.entries]
    assert values == sorted(values)
    assert [e.player_id for e in lb.entries] == ["p2", "p1", "p3", "p1"]
    assert lb.last_updated == lb.entries[2].timestamp
    board.stop()


def test_most_wins_replaces_previous_entry_and_descends():
    board = make_board()
    feed(board, make_result("p1", 10), make_result("p2", 10), make_result("p2", 10), make_result("p1", 10),
         make_result("p1", 10))
    lb = board.get_leaderboard(Cat.MOST_WINS)
    assert [(e.player_id, e.value) for e in lb.entries] == [("p1", 3), ("p2", 2)]
    board.stop()


def test_win_rate_needs_five_games():
    board = make_board()
    feed(board, *[make_result("p1", 10 + i) for i in range(4)])
    assert board.get_leaderboard(Cat.BEST_WIN_RATE).entries == []
    assert board.get_player_stats("p1").total_games == 4
    feed(board, make_result("p1", 9))
    entries = board.get_leaderboard(Cat.BEST_WIN_RATE, Difficulty.BEGINNER).entries
    assert [(e.player_id, e.value) for e in entries] == [("p1", 100.0)]
    feed(board, make_result("p1", 9))
    assert len(board.get_leaderboard(Cat.BEST_WIN_RATE).entries) == 1
    board.stop()


def test_difficulty_and_global_lists():
    board = make_board()
    feed(board, make_result("p1", 100, config=EXPERT), make_result("p2", 40), make_result("p3", 60, config=GameConfig(5, 5, 3)))
    assert [e.player_id for e in board.get_leaderboard(Cat.FASTEST_TIME, Difficulty.EXPERT).entries] == ["p1"]
    assert [e.player_id for e in board.get_leaderboard(Cat.FASTEST_TIME, Difficulty.CUSTOM).entries] == ["p3"]
    glob = board.get_leaderboard(Cat.FASTEST_TIME)
    assert [e.player_id for e in glob.entries] == ["p2", "p3", "p1"]
    assert glob.entries[2].difficulty == Difficulty.EXPERT
    assert board.get_leaderboard(Cat.FASTEST_TIME, Difficulty.INTERMEDIATE).entries == []
    board.stop()


def test_lists_are_capped_and_limit_applies():
    board = make_board(leaderboard_max_entries=3)
    feed(board, *[make_result(f"p{i}", 100 - i) for i in range(6)])
    lb = board.get_leaderboard(Cat.FASTEST_TIME, limit=50)
    assert [e.value for e in lb.entries] == [95.0, 96.0, 97.0]
    assert len(board.get_leaderboard(Cat.FASTEST_TIME, limit=2).entries) == 2
    assert board.get_leaderboard(Cat.FASTEST_TIME, limit=0).entries == []
    board.stop()


def test_ties_keep_insertion_order():
    board = make_board()
    feed(board, make_result("first", 42), make_result("second", 42), make_result("third", 41))
    lb = board.get_leaderboard(Cat.FASTEST_TIME)
    assert [e.player_id for e in lb.entries] == ["third", "first", "second"]
    board.stop()


def test_player_stats_best_times_only_improve():
    board = make_board()
    feed(board, make_result("p1", 30), make_result("p1", 45), make_result("p1", 25, config=EXPERT))
    stats = board.get_player_stats("p1")
    assert stats.total_games == 3 and stats.total_wins == 3
    assert stats.win_rate == 1.0
    assert stats.best_times == {Difficulty.BEGINNER: 30.0, Difficulty.EXPERT: 25.0}
    assert stats.last_played is not None
    stats.total_wins = 99
    assert board.get_player_stats("p1").total_wins == 3
    board.stop()


def test_failed_update_leaves_rankings_consistent(monkeypatch, caplog):
    board = make_board()
    feed(board, make_result("p1", 40))
    real = LeaderboardActor._ranked
    calls = []

    def flaky(self, key, entry):
        calls.append(key)
        if len(calls) == 2:
            raise RuntimeError("insert failed")
        return real(self, key, entry)

    monkeypatch.setattr(LeaderboardActor, "_ranked", flaky)
    with caplog.at_level("ERROR", logger="uvicorn.error"):
        assert board.add_result(make_result("p1", 30)).exception(2) is not None
    assert board.get_player_stats("p1").total_wins == 1
    assert board.get_leaderboard(Cat.MOST_WINS).entries[0].value == 1
    assert board.get_leaderboard(Cat.FASTEST_TIME).entries[0].value == 40.0
    assert "handler failed" in caplog.text
    monkeypatch.undo()
    feed(board, make_result("p1", 30))
    assert board.get_player_stats("p1").total_wins == 2
    board.stop()
