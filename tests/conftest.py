"""
Shared pytest fixtures for bracket tests.

Running tests:
    pytest tests/
"""
import pytest
import sys
import os

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from bracket.elimination import create_initial_matches


def make_participants(count):
    """(participant_id, seed) pairs named p1..pN, seeded in order."""
    return [(f'p{seed}', seed) for seed in range(1, count + 1)]


@pytest.fixture
def four_participants():
    return make_participants(4)


@pytest.fixture
def three_participants():
    return make_participants(3)


@pytest.fixture
def four_player_matches(four_participants):
    """Four player bracket with storage ids assigned."""
    matches = create_initial_matches('t1', four_participants)
    for i, m in enumerate(matches):
        m.id = f'm{i}'
    return matches


@pytest.fixture
def client():
    """Create a test client."""
    from app import app
    app.config['TESTING'] = True
    with app.test_client() as client:
        yield client


@pytest.fixture
def temp_data_dir(tmp_path, monkeypatch):
    """Point the app's data directories at a temporary location."""
    import app as app_module

    tournaments_dir = tmp_path / 'tournaments'
    tournaments_dir.mkdir()

    monkeypatch.setattr(app_module, 'DATA_DIR', str(tmp_path))
    monkeypatch.setattr(app_module, 'TOURNAMENTS_DIR', str(tournaments_dir))

    return tournaments_dir
