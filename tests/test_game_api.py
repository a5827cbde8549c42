import random

from config import ROUND_DURATION_SECONDS, TERMINAL_YEAR
from content import UpstreamError
from game_api import GameAPI, GameSession, MessageType, resolve_region
from prefetch import PrefetchSlot
from round_state import RoundPhase


def types(messages):
    return [m['type'] for m in messages]


def play(game, region, letters):
    """Select a region and answer every question"""
    messages = list(game.select_region(region))
    for i, letter in enumerate(letters):
        messages += list(game.answer(i, letter))
    return messages


def test_start_reports_state(game):
    messages = list(game.start())
    assert types(messages) == [MessageType.GAME_START]
    data = messages[0]['data']
    assert len(data['regions']) == 7
    assert data['score']['total_score'] == 0
    assert data['level']['name'] == 'Novice'


def test_full_round_flow(game, provider):
    messages = list(game.select_region('Europe'))
    assert types(messages) == [MessageType.LOADING, MessageType.ROUND_READY]
    ready = messages[1]['data']
    assert ready['period'] == '1500-1550'
    assert ready['request_id'] == 1
    assert 'correct' not in ready['content']['questions'][0]

    first = list(game.answer(0, 'A'))
    assert types(first) == [MessageType.ANSWER_RESULT]
    assert first[0]['data']['is_correct']

    list(game.answer(1, 'B'))
    messages = list(game.answer(2, 'D'))
    assert types(messages) == [
        MessageType.ANSWER_RESULT, MessageType.ROUND_COMPLETE, MessageType.NAME_REQUEST,
    ]
    assert messages[0]['data']['correct'] == 'C'
    assert messages[1]['data']['correct_count'] == 2
    assert messages[1]['data']['passed']

    messages = list(game.advance())
    assert types(messages) == [MessageType.SCORE_UPDATE, MessageType.LOADING, MessageType.ROUND_READY]
    update = messages[0]['data']
    assert update['record'] == {'region': 'Europe', 'period': '1500-1550', 'points': 2}
    assert update['cursor'] == 1551
    assert messages[1]['data']['period'] == '1551-1600'
    assert provider.calls == [('Europe', 1500), ('Europe', 1551)]


def test_prefetch_starts_after_second_passing_round(game, provider):
    play(game, 'Europe', 'ABC')
    list(game.advance())
    assert len(provider.calls) == 2

    for i, letter in enumerate('ABC'):
        list(game.answer(i, letter))
    # next period plus one random unseen combination
    assert len(provider.calls) == 4
    assert provider.calls[2] == ('Europe', 1601)

    messages = list(game.advance())
    assert types(messages) == [MessageType.SCORE_UPDATE, MessageType.LOADING, MessageType.ROUND_READY]
    assert messages[2]['data']['period'] == '1601-1650'
    assert len(provider.calls) == 4


def test_prefetch_can_be_disabled(provider, save_manager):
    game = GameAPI(user_id='quiet', provider=provider, save_manager=save_manager,
                   rng=random.Random(1), spawn=lambda fn, *args: fn(*args),
                   prefetch_enabled=False)
    play(game, 'Asia', 'ABC')
    list(game.advance())
    for i, letter in enumerate('ABC'):
        list(game.answer(i, letter))
    assert game.passed_this_session == 2
    assert len(provider.calls) == 2


def test_round_times_out(game, provider):
    list(game.select_region('Europe'))
    list(game.answer(0, 'A'))

    countdown = []
    for _ in range(ROUND_DURATION_SECONDS):
        countdown += list(game.tick())
    assert types(countdown[:-1]) == [MessageType.COUNTDOWN] * (ROUND_DURATION_SECONDS - 1)
    assert countdown[-1]['type'] == MessageType.ROUND_TIMED_OUT
    assert countdown[-1]['data']['correct_count'] == 1
    assert not game.player.first_round_complete

    # Failed round: nothing recorded, same period again
    messages = list(game.advance())
    assert types(messages) == [MessageType.LOADING, MessageType.ROUND_READY]
    assert game.progress.get('Europe') == 1500
    assert provider.calls == [('Europe', 1500), ('Europe', 1500)]


def test_tick_outside_a_round_does_nothing(game):
    assert list(game.tick()) == []


def test_upstream_error_then_retry(game, provider):
    provider.error = UpstreamError('Service unavailable', status=503)
    messages = list(game.select_region('Asia'))
    assert types(messages) == [MessageType.LOADING, MessageType.ERROR]
    assert messages[1]['data']['kind'] == 'upstream'
    assert messages[1]['data']['status'] == 503
    assert game.state.phase == RoundPhase.IDLE

    provider.error = None
    messages = list(game.retry())
    assert types(messages) == [MessageType.LOADING, MessageType.ROUND_READY]
    assert game.state.period.label == '1500-1550'


def test_leaving_mid_request_drops_the_result(game, provider):
    provider.on_fetch = lambda region, period: list(game.leave())
    messages = list(game.select_region('Oceania'))
    assert types(messages) == [MessageType.LOADING]
    assert game.state.phase == RoundPhase.IDLE
    assert game.state.content is None


def test_switching_region_settles_finished_round(game):
    play(game, 'Europe', 'ABC')
    messages = list(game.select_region('Africa'))
    assert types(messages) == [MessageType.SCORE_UPDATE, MessageType.LOADING, MessageType.ROUND_READY]
    assert game.progress.get('Europe') == 1551
    assert game.state.region == 'Africa'


def test_switching_region_mid_round_keeps_cursor(game):
    list(game.select_region('Europe'))
    list(game.answer(0, 'A'))
    list(game.select_region('Asia'))
    assert game.progress.get('Europe') == 1500
    assert game.scoring.records == []


def test_finished_region(game):
    game.progress.set('Antarctica', TERMINAL_YEAR)
    messages = list(game.select_region('Antarctica'))
    assert types(messages) == [MessageType.REGION_COMPLETE]
    assert messages[0]['data']['summary']['finished']


def test_unknown_region_is_an_error(game):
    messages = list(game.select_region('Atlantis'))
    assert types(messages) == [MessageType.ERROR]


def test_region_click():
    assert resolve_region({'CONTINENT': 'Asia'}) == 'Asia'
    assert resolve_region({'continent': 'Seven seas (open ocean)'}) is None
    assert resolve_region({'NAME': 'Fiji'}) is None
    assert resolve_region(None) is None


def test_region_click_ignores_other_shapes(game, provider):
    assert list(game.region_click({'CONTINENT': 'Seven seas (open ocean)'})) == []
    assert provider.calls == []
    messages = list(game.region_click({'continent': 'South America'}))
    assert types(messages) == [MessageType.LOADING, MessageType.ROUND_READY]


def test_set_name(game, save_manager):
    messages = list(game.set_player_name('  Ada '))
    assert types(messages) == [MessageType.NAME_SET]
    assert messages[0]['data']['alias'] == 'adA'
    assert save_manager.load('tester').player_name == 'Ada'

    assert types(list(game.set_player_name('   '))) == [MessageType.ERROR]


def test_progress_survives_a_new_session(game, provider, save_manager):
    play(game, 'Europe', 'ABC')
    list(game.advance())

    again = GameAPI(user_id='tester', provider=provider, save_manager=save_manager,
                    spawn=lambda fn, *args: fn(*args))
    assert again.progress.get('Europe') == 1551
    assert [r.to_dict() for r in again.scoring.records] == [
        {'region': 'Europe', 'period': '1500-1550', 'points': 3},
    ]
    assert again.player.first_round_complete


def test_leave_settles_a_finished_round(game, save_manager):
    play(game, 'Europe', 'ABD')
    messages = list(game.leave())
    assert types(messages) == [MessageType.SCORE_UPDATE]
    assert save_manager.load('tester').progress.get('Europe') == 1551


def test_session_wrapper_returns_lists(provider, save_manager):
    session = GameSession(user_id='wrapped', provider=provider, save_manager=save_manager,
                          spawn=lambda fn, *args: fn(*args))
    assert types(session.start()) == [MessageType.GAME_START]
    ready = session.select_region('Europe')
    assert types(ready) == [MessageType.LOADING, MessageType.ROUND_READY]
    assert session.countdown_active(ready[-1]['data']['request_id'])
    assert types(session.save()) == [MessageType.GAME_SAVED]
    assert session.get_state()['round']['phase'] == 'answering'


def test_load_restores_saved_progress(game, save_manager):
    play(game, 'Europe', 'ABC')
    list(game.advance())
    list(game.save_game())

    game.progress.advance('Asia')
    messages = list(game.load_game())
    assert types(messages) == [MessageType.GAME_LOADED]
    assert game.progress.get('Asia') == 1500
    assert game.progress.get('Europe') == 1551
    assert game.state.phase == RoundPhase.IDLE


def test_load_without_save(provider, tmp_path):
    from saves import FileSaveManager

    game = GameAPI(user_id='fresh', provider=provider,
                   save_manager=FileSaveManager(str(tmp_path / 'empty')),
                   spawn=lambda fn, *args: fn(*args))
    assert types(list(game.load_game())) == [MessageType.ERROR]


def test_late_prefetch_for_the_period_being_played_is_not_cached(provider, save_manager):
    jobs = []
    game = GameAPI(user_id='slow', provider=provider, save_manager=save_manager,
                   rng=random.Random(7), spawn=lambda fn, *args: jobs.append((fn, args)),
                   prefetch_enabled=True)
    play(game, 'Europe', 'ABC')
    list(game.advance())
    for i, letter in enumerate('ABC'):
        list(game.answer(i, letter))
    assert len(jobs) == 2

    # Advance before the prefetch lands: the period is fetched directly
    list(game.advance())
    assert game.progress.get('Europe') == 1601
    assert provider.calls[-1] == ('Europe', 1601)

    for fn, args in jobs:
        fn(*args)
    assert game.prefetch.peek(PrefetchSlot.NEXT_PERIOD) is None
