import pytest

from fingerrace.services.race.room import FINISHED, GO, RACING, STOP, WAITING, Player, Room
from fingerrace.services.race.taps import (
    ADVANCED, IGNORED, PENALIZED, RECOVERED, TAP_PENALTY, WON, resolve_tap, submit_tap,
)


def _racing_room(target=5, **scores):
    players = {pid: Player(name=pid.upper(), score=score) for pid, score in scores.items()}
    room = Room(code='WXYZ', host_id=sorted(players)[0], target_score=target, players=players)
    room.assign_host(room.host_id)
    room.status = RACING
    return room


def test_go_taps_advance_up_to_target():
    room = _racing_room(target=5, a=0)
    outcomes = [resolve_tap(room, 'a') for _ in range(4)]
    assert outcomes == [ADVANCED] * 4
    assert room.players['a'].score == 4
    assert resolve_tap(room, 'a') == WON
    assert room.players['a'].score == 5
    assert room.status == FINISHED
    assert room.winner_name == 'A'
    # After the finish every further tap is stale
    assert resolve_tap(room, 'a') == IGNORED
    assert room.players['a'].score == 5


@pytest.mark.parametrize('start, expected', [(0, 0), (2, 0), (3, 0), (4, 1), (5, 2)])
def test_stop_tap_penalizes_and_stuns(start, expected):
    room = _racing_room(target=10, a=start)
    room.signal = STOP
    assert resolve_tap(room, 'a') == PENALIZED
    assert room.players['a'].score == max(0, start - TAP_PENALTY) == expected
    assert room.players['a'].stunned is True


@pytest.mark.parametrize('signal', [GO, STOP])
def test_stunned_tap_only_recovers(signal):
    room = _racing_room(target=10, a=4)
    room.players['a'].stunned = True
    room.signal = signal
    assert resolve_tap(room, 'a') == RECOVERED
    assert room.players['a'].stunned is False
    assert room.players['a'].score == 4


def test_tap_does_not_touch_other_players():
    room = _racing_room(target=10, a=2, b=7)
    resolve_tap(room, 'a')
    room.signal = STOP
    resolve_tap(room, 'a')
    assert room.players['b'].score == 7
    assert room.players['b'].stunned is False


def test_unknown_player_and_waiting_room_are_ignored():
    room = _racing_room(a=1)
    assert resolve_tap(room, 'ghost') == IGNORED
    room.status = WAITING
    assert resolve_tap(room, 'a') == IGNORED
    assert room.players['a'].score == 1


def test_late_tap_after_someone_else_won_is_a_plain_move():
    room = _racing_room(target=5, a=4, b=4)
    assert resolve_tap(room, 'b') == WON
    assert resolve_tap(room, 'a', late=True) == ADVANCED
    assert room.players['a'].score == 5
    assert room.winner_name == 'B'
    assert room.status == FINISHED


def test_example_race_scenario(lifecycle, store):
    room = lifecycle.create_room('a', 'A')
    code = room.code
    lifecycle.join_room('b', code, 'B')
    lifecycle.start_game('a', code)

    for _ in range(2):
        assert submit_tap(store, 'a', code) == ADVANCED

    store.transact(code, lambda r: _with_signal(r, STOP))
    assert submit_tap(store, 'b', code) == PENALIZED
    store.transact(code, lambda r: _with_signal(r, GO))

    outcomes = [submit_tap(store, 'a', code) for _ in range(3)]
    assert outcomes == [ADVANCED, ADVANCED, WON]

    final = store.get(code)
    assert final.status == FINISHED
    assert final.winner_name == 'A'
    assert final.players['a'].score == 5
    assert final.players['b'].score == 0
    assert final.players['b'].stunned is True
    assert submit_tap(store, 'b', code) == IGNORED


def test_simultaneous_finish_has_one_winner(lifecycle, store, monkeypatch):
    code = lifecycle.create_room('a', 'A').code
    lifecycle.join_room('b', code, 'B')
    lifecycle.start_game('a', code)
    store.transact(code, lambda r: _with_scores(r, a=4, b=4))

    outcomes = {}
    original = store._compare_and_swap
    raced = []

    def racing_swap(swap_code, expected, proposed):
        # B's tap commits between A's read and A's write
        if not raced:
            raced.append(True)
            outcomes['b'] = submit_tap(store, 'b', code)
        return original(swap_code, expected, proposed)

    monkeypatch.setattr(store, '_compare_and_swap', racing_swap)
    outcomes['a'] = submit_tap(store, 'a', code)

    room = store.get(code)
    assert outcomes == {'b': WON, 'a': ADVANCED}
    assert room.winner_name == 'B'
    assert room.status == FINISHED
    assert room.players['a'].score == 5
    assert room.players['b'].score == 5


def test_tap_on_missing_room_is_ignored(store):
    assert submit_tap(store, 'a', 'NOPE') == IGNORED


def _with_signal(room, signal):
    room.signal = signal
    return room


def _with_scores(room, **scores):
    for pid, score in scores.items():
        room.players[pid].score = score
    return room
