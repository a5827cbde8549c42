import random

import pytest
from flask import Flask

from content import ContentProvider, Question, RoundContent
from game_api import GameAPI
from saves import FileSaveManager


def make_content(label='1500-1550', correct=('A', 'B', 'C')):
    return RoundContent(
        period=label,
        paragraph='Something happened here.',
        questions=[
            Question(f'Question {i}?', ['one', 'two', 'three', 'four'], letter)
            for i, letter in enumerate(correct)
        ],
    )


class FakeProvider(ContentProvider):
    """Provider that never touches the network"""

    def __init__(self):
        super().__init__(api_key='test-key')
        self.calls = []
        self.error = None
        self.on_fetch = None

    def fetch(self, region, period):
        self.calls.append((region, period.start))
        if self.on_fetch:
            self.on_fetch(region, period)
        if self.error is not None:
            raise self.error
        return make_content(period.label)


def sync_spawn(fn, *args):
    fn(*args)


@pytest.fixture()
def provider():
    return FakeProvider()


@pytest.fixture()
def save_manager(tmp_path):
    return FileSaveManager(str(tmp_path / 'saves'))


@pytest.fixture()
def game(provider, save_manager):
    return GameAPI(
        user_id='tester',
        provider=provider,
        save_manager=save_manager,
        rng=random.Random(7),
        spawn=sync_spawn,
        prefetch_enabled=True,
    )


@pytest.fixture()
def client(save_manager):
    from routes import api

    app = Flask(__name__)
    app.config['TESTING'] = True
    app.config['SAVE_MANAGER'] = save_manager
    app.register_blueprint(api)
    return app.test_client()
