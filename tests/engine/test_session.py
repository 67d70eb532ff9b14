"""Turn arbitration, timer and persistence hooks of a game session."""

import time

import pytest

from seabattle.engine.board import ShotResult
from seabattle.engine.errors import PersistenceError, PlacementError, ShotError
from seabattle.engine.events import EventQueue, Side
from seabattle.engine.session import BattleClock, GamePhase, TurnToken
from seabattle.engine.ship import STANDARD_FLEET, Coordinate, ShipType


def _wait_until(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_placement_tracks_remaining_ships(make_session) -> None:
    session = make_session()
    session.place_ship(ShipType.CARRIER, Coordinate(0, 0), horizontal=True)
    assert session.remaining_ships()[ShipType.CARRIER] == 0

    with pytest.raises(PlacementError):
        session.place_ship(ShipType.CARRIER, Coordinate(5, 0), horizontal=True)
    with pytest.raises(PlacementError):
        session.place_ship(ShipType.SUBMARINE, Coordinate(0, 2), horizontal=False)
    assert session.remaining_ships()[ShipType.SUBMARINE] == 2
    assert len(session.player_board.fleet) == 1


def test_battle_requires_full_fleet(make_session) -> None:
    session = make_session()
    with pytest.raises(PlacementError):
        session.start_battle()
    session.place_fleet_randomly()
    assert session.fleet_complete()
    session.start_battle()

    assert session.phase is GamePhase.BATTLE
    assert session.is_my_turn
    assert len(session.enemy_board.fleet) == 10
    with pytest.raises(PlacementError):
        session.place_ship(ShipType.FRIGATE, Coordinate(9, 9), horizontal=True)


def test_random_fleet_completes_manual_start(make_session) -> None:
    session = make_session()
    session.place_ship(ShipType.CARRIER, Coordinate(9, 0), horizontal=True)
    session.place_fleet_randomly()
    counts = {t: sum(1 for s in session.player_board.fleet if s.ship_type is t) for t in STANDARD_FLEET}
    assert counts == STANDARD_FLEET


def test_fire_before_battle_is_rejected(make_session) -> None:
    session = make_session()
    with pytest.raises(ShotError):
        session.fire_at(Coordinate(0, 0))


def test_human_hit_keeps_the_turn(make_session, place_fixed_fleet) -> None:
    session = make_session()
    place_fixed_fleet(session)
    session.start_battle()

    target = next(iter(session.enemy_board.occupancy))
    assert session.fire_at(target) in (ShotResult.HIT, ShotResult.SUNK)
    assert session.is_my_turn
    assert session.turn.owner is Side.HUMAN

    with pytest.raises(ShotError):
        session.fire_at(target)
    with pytest.raises(ShotError):
        session.fire_at(Coordinate(10, 0))


def test_machine_turn_continues_on_hits_and_yields_on_miss(
    make_session, place_fixed_fleet, scripted, find_water
) -> None:
    strategy = scripted([Coordinate(0, 0), Coordinate(0, 1), Coordinate(9, 9)])
    session = make_session(strategy=strategy)
    listener = session.listener
    place_fixed_fleet(session)
    session.start_battle()

    assert session.fire_at(find_water(session.enemy_board)) is ShotResult.MISS
    assert session.wait_for_opponent(timeout=5)

    machine_shots = [e for e in listener.of_kind("shot") if e[3] is Side.HUMAN]
    assert [(e[1], e[2]) for e in machine_shots] == [
        (Coordinate(0, 0), ShotResult.HIT),
        (Coordinate(0, 1), ShotResult.HIT),
        (Coordinate(9, 9), ShotResult.MISS),
    ]
    # The turn only returns to the human after the miss has been reported.
    assert all(e[4] is Side.MACHINE for e in machine_shots)
    assert listener.of_kind("turn") == [("turn", Side.HUMAN), ("turn", Side.MACHINE), ("turn", Side.HUMAN)]
    assert listener.events[-1] == ("turn", Side.HUMAN)
    assert session.is_my_turn
    assert session.player_board.shots_fired == {Coordinate(0, 0), Coordinate(0, 1), Coordinate(9, 9)}


def test_cannot_fire_during_machine_turn(make_session, settings, place_fixed_fleet, find_water) -> None:
    slow = settings.model_copy(update={"ai_think_delay": 30})
    session = make_session(settings=slow)
    place_fixed_fleet(session)
    session.start_battle()
    session.fire_at(find_water(session.enemy_board))

    assert session.turn.owner is Side.MACHINE
    with pytest.raises(ShotError):
        session.fire_at(find_water(session.enemy_board))
    session.close(timeout=5)
    assert session.wait_for_opponent(timeout=5)
    assert session.player_board.shots_fired == set()


def test_human_victory_ends_game(make_session, place_fixed_fleet) -> None:
    session = make_session()
    listener = session.listener
    place_fixed_fleet(session)
    session.start_battle()

    for coord in list(session.enemy_board.occupancy):
        session.fire_at(coord)

    assert session.phase is GamePhase.GAME_OVER
    assert session.winner is Side.HUMAN
    assert listener.events[-1] == ("game_over", True)
    assert len(listener.of_kind("sunk")) == 10
    with pytest.raises(ShotError):
        session.fire_at(Coordinate(9, 9))


def test_machine_victory_stops_firing(
    make_session, place_fixed_fleet, scripted, fixed_ship_cells, find_water
) -> None:
    strategy = scripted(fixed_ship_cells + [Coordinate(9, 9)])
    session = make_session(strategy=strategy)
    listener = session.listener
    place_fixed_fleet(session)
    session.start_battle()

    session.fire_at(find_water(session.enemy_board))
    assert session.wait_for_opponent(timeout=5)

    assert session.phase is GamePhase.GAME_OVER
    assert session.winner is Side.MACHINE
    assert listener.events[-1] == ("game_over", False)
    assert len(session.player_board.shots_fired) == 20
    assert strategy.targets == [Coordinate(9, 9)]


def test_clock_ticks_during_battle_only(make_session, settings, place_fixed_fleet) -> None:
    fast = settings.model_copy(update={"tick_interval": 0.01})
    session = make_session(settings=fast)
    place_fixed_fleet(session)
    time.sleep(0.05)
    assert session.elapsed_seconds == 0

    session.start_battle()
    assert _wait_until(lambda: session.elapsed_seconds >= 3)
    ticks = [e[1] for e in session.listener.of_kind("tick")]
    assert ticks[:3] == [1, 2, 3]

    for coord in list(session.enemy_board.occupancy):
        session.fire_at(coord)
    stopped_at = session.elapsed_seconds
    time.sleep(0.05)
    assert session.elapsed_seconds == stopped_at


def test_battle_clock_stops_cooperatively() -> None:
    ticks = []
    clock = BattleClock(lambda: ticks.append(1), interval=0.01)
    clock.start()
    assert _wait_until(lambda: len(ticks) >= 2)
    clock.stop()
    clock.join(timeout=5)
    count = len(ticks)
    time.sleep(0.05)
    assert len(ticks) == count
    assert not clock.running


def test_turn_token_handoff_wakes_waiters() -> None:
    token = TurnToken(Side.MACHINE)
    assert not token.wait_for(Side.HUMAN, timeout=0.01)
    token.hand_to(Side.HUMAN)
    assert token.wait_for(Side.HUMAN, timeout=0.01)
    assert token.held_by(Side.HUMAN)


def test_save_and_resume_battle(make_session, place_fixed_fleet) -> None:
    session = make_session(nickname="Daniel")
    place_fixed_fleet(session)
    session.start_battle()
    target = next(iter(session.enemy_board.occupancy))
    session.fire_at(target)
    session.elapsed_seconds = 42
    assert session.save()

    resumed = make_session(nickname="someone else")
    assert resumed.load()
    assert resumed.nickname == "Daniel"
    assert resumed.elapsed_seconds == 42
    assert resumed.phase is GamePhase.BATTLE
    assert resumed.is_my_turn
    assert target in resumed.enemy_board.shots_fired
    assert len(resumed.player_board.fleet) == 10
    with pytest.raises(ShotError):
        resumed.fire_at(target)


def test_autosave_reflects_latest_shot(make_session, place_fixed_fleet) -> None:
    session = make_session()
    place_fixed_fleet(session)
    session.start_battle()
    target = next(iter(session.enemy_board.occupancy))
    session.fire_at(target)
    session.close(timeout=5)

    snapshot = session.store.load()
    assert snapshot is not None
    assert snapshot.enemy_board.shots_fired == {target}


def test_load_without_save_returns_false(make_session) -> None:
    session = make_session()
    assert session.load() is False
    assert session.phase is GamePhase.PLACING


def test_corrupt_save_leaves_session_untouched(make_session, settings) -> None:
    settings.data_path.write_bytes(b"not a pickle")
    session = make_session()
    session.place_ship(ShipType.CARRIER, Coordinate(0, 0), horizontal=True)

    with pytest.raises(PersistenceError):
        session.load()
    assert session.phase is GamePhase.PLACING
    assert len(session.player_board.fleet) == 1


def test_resume_finished_game_goes_straight_to_game_over(make_session, place_fixed_fleet) -> None:
    session = make_session()
    place_fixed_fleet(session)
    session.start_battle()
    for coord in list(session.enemy_board.occupancy):
        session.fire_at(coord)
    assert session.save()

    resumed = make_session()
    assert resumed.load()
    assert resumed.phase is GamePhase.GAME_OVER
    assert resumed.winner is Side.HUMAN


def test_restart_returns_to_placement(make_session, place_fixed_fleet) -> None:
    session = make_session(nickname="Ana")
    place_fixed_fleet(session)
    session.start_battle()
    session.fire_at(next(iter(session.enemy_board.occupancy)))

    session.restart()
    assert session.phase is GamePhase.PLACING
    assert session.nickname == "Ana"
    assert session.elapsed_seconds == 0
    assert session.player_board.fleet == []
    assert session.enemy_board.shots_fired == set()
    assert session.remaining_ships() == STANDARD_FLEET


def test_events_can_be_marshalled_to_one_thread(make_session, place_fixed_fleet, scripted, find_water) -> None:
    events = EventQueue()
    strategy = scripted([Coordinate(0, 0), Coordinate(9, 9)])
    session = make_session(dispatcher=events.post, strategy=strategy)
    place_fixed_fleet(session)
    session.start_battle()
    session.fire_at(find_water(session.enemy_board))
    assert session.wait_for_opponent(timeout=5)

    assert session.listener.events == []
    assert events.pump() >= 5
    assert session.listener.events[-1] == ("turn", Side.HUMAN)


def test_saving_during_machine_turn_sees_only_reported_shots(
    make_session, settings, place_fixed_fleet, scripted, fixed_ship_cells, find_water
) -> None:
    session = make_session(
        settings=settings.model_copy(update={"ai_think_delay": 0.002}),
        strategy=scripted(fixed_ship_cells),
    )
    place_fixed_fleet(session)
    session.start_battle()
    session.fire_at(find_water(session.enemy_board))

    results = []
    while session.phase is GamePhase.BATTLE:
        results.append(session.save())
        snapshot = session.store.load()
        reported = [e for e in session.listener.of_kind("shot") if e[3] is Side.HUMAN]
        assert len(snapshot.player_board.shots_fired) <= len(reported)
    assert session.wait_for_opponent(timeout=5)

    assert all(results)
    assert session.winner is Side.MACHINE
