from partycards.services.rooms import lifecycle, progress
from partycards.services.rooms.errors import ErrorKind
from partycards.services.rooms.state import GameState, Player, Room

NOW = 1_700_000_000.0


def _state(status='waiting', multiplicity=5):
    room = Room(code='ABC234', host_id='h', host_name='Ava', seed=42,
                status=status, deck_multiplicity=multiplicity)
    return GameState(room=room, players={
        'h': Player(id='h', name='Ava', is_host=True),
        'b': Player(id='b', name='Ben'),
    })


def test_phases_only_move_forward_one_step():
    assert lifecycle.can_transition('waiting', 'countdown')
    assert lifecycle.can_transition('countdown', 'playing')
    assert lifecycle.can_transition('playing', 'finished')
    assert not lifecycle.can_transition('waiting', 'playing')
    assert not lifecycle.can_transition('playing', 'waiting')
    for target in lifecycle.STATUSES:
        assert not lifecycle.can_transition('finished', target)


def test_invalid_transition_is_reported_not_raised():
    state = _state('waiting')
    result = lifecycle.transition(state, 'playing', NOW)
    assert not result.ok
    assert result.error is ErrorKind.INVALID_STATE
    assert state.room.status == 'waiting'


def test_only_host_may_start():
    state = _state()
    result = lifecycle.start(state, 'b', NOW, 3000)
    assert result.error is ErrorKind.UNAUTHORIZED
    assert state.room.status == 'waiting'

    result = lifecycle.start(state, 'ghost', NOW, 3000)
    assert result.error is ErrorKind.UNAUTHORIZED


def test_start_enters_countdown_with_deadline():
    state = _state()
    result = lifecycle.start(state, 'h', NOW, 3000)
    assert result.ok
    assert state.room.status == 'countdown'
    assert state.room.countdown_end == NOW + 3.0
    assert state.room.last_activity == NOW


def test_start_twice_is_invalid_state():
    state = _state('countdown')
    result = lifecycle.start(state, 'h', NOW, 3000)
    assert result.error is ErrorKind.INVALID_STATE
    assert state.room.status == 'countdown'


def test_finish_countdown_clears_deadline():
    state = _state('countdown')
    state.room.countdown_end = NOW
    assert lifecycle.finish_countdown(state, NOW).ok
    assert state.room.status == 'playing'
    assert state.room.countdown_end is None


def test_match_advances_cursor_and_completed_count():
    state = _state('playing')
    result = progress.advance(state, 'b', 'match', NOW)
    assert result.ok and result.applied
    assert result.value == 1
    assert state.players['b'].cards_completed == 1


def test_skip_advances_cursor_only():
    state = _state('playing')
    progress.advance(state, 'b', 'swipe_left', NOW)
    ben = state.players['b']
    assert ben.current_card_index == 1
    assert ben.cards_completed == 0


def test_advance_outside_playing_is_a_noop():
    for status in ('waiting', 'countdown', 'finished'):
        state = _state(status)
        result = progress.advance(state, 'b', 'match', NOW)
        assert result.ok
        assert not result.applied
        assert state.players['b'].current_card_index == 0
        assert state.room.winner_id is None


def test_unknown_player_and_action():
    state = _state('playing')
    assert progress.advance(state, 'ghost', 'match', NOW).error is ErrorKind.NOT_FOUND
    assert progress.advance(state, 'b', 'dance', NOW).error is ErrorKind.INVALID_INPUT


def test_first_to_threshold_wins_and_is_not_overwritten():
    state = _state('playing')
    for _ in range(25):
        progress.advance(state, 'b', 'match', NOW)
    assert state.room.status == 'finished'
    assert state.room.winner_id == 'b'
    assert state.room.winner_name == 'Ben'
    assert state.players['b'].cards_completed == 25

    result = progress.advance(state, 'h', 'match', NOW)
    assert result.ok and not result.applied
    assert state.room.winner_id == 'b'
    assert lifecycle.finish(state, state.players['h'], NOW).error is ErrorKind.INVALID_STATE
    assert state.room.winner_id == 'b'


def test_completion_does_not_depend_on_action_type():
    state = _state('playing')
    for _ in range(25):
        progress.advance(state, 'h', 'skip', NOW)
    assert state.room.status == 'finished'
    assert state.room.winner_id == 'h'
    assert state.players['h'].cards_completed == 0


def test_empty_deck_is_already_complete():
    state = _state('playing', multiplicity=0)
    assert state.deck_length == 0
    result = progress.check_empty_deck(state, NOW)
    assert result.ok
    assert state.room.status == 'finished'
    assert state.room.winner_id == 'h'
    assert state.snapshot()['players'][0]['progress'] == 100.0


def test_acting_marks_player_connected():
    state = _state('playing')
    state.players['b'].connected = False
    progress.advance(state, 'b', 'match', NOW)
    ben = state.players['b']
    assert ben.connected is True
    assert ben.last_seen == NOW
