"""
Unit tests for Flask web application.
"""
import pytest
import sys
import os
import yaml

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from app import app, load_matches, load_participants, load_tournament, list_tournaments


def _create(client, participants=None, name='Friday Night', game_name='Smash'):
    body = {'name': name, 'game_name': game_name}
    if participants is not None:
        body['participants'] = participants
    return client.post('/api/tournaments', json=body)


def _match_at(client, tournament_id, round_number, position):
    data = client.get(f'/api/tournaments/{tournament_id}').get_json()
    return data['rounds'][round_number - 1]['matches'][position]


def _score(client, tournament_id, match_id, score1, score2):
    return client.post(f'/api/tournaments/{tournament_id}/matches/{match_id}/score',
                       json={'player1_score': score1, 'player2_score': score2})


class TestCreateTournament:
    """Tests for POST /api/tournaments."""

    def test_create_with_participants_starts_bracket(self, client, temp_data_dir):
        response = _create(client, ['Ann', 'Ben', 'Cat', 'Dan'])
        assert response.status_code == 201
        tournament = response.get_json()['tournament']
        assert tournament['status'] == 'active'
        assert tournament['bracket_size'] == 4

        participants = load_participants(tournament['id'])
        assert [(p.name, p.seed) for p in participants] == [('Ann', 1), ('Ben', 2), ('Cat', 3), ('Dan', 4)]

        matches = load_matches(tournament['id'])
        assert len(matches) == 3
        assert all(m.id for m in matches)

    def test_create_writes_yaml_files(self, client, temp_data_dir):
        tournament_id = _create(client, ['Ann', 'Ben', 'Cat']).get_json()['tournament']['id']
        tournament_dir = temp_data_dir / tournament_id
        for name in ('tournament.yaml', 'participants.yaml', 'matches.yaml'):
            assert (tournament_dir / name).exists()
        stored = yaml.safe_load((tournament_dir / 'matches.yaml').read_text())
        assert [(m['round'], m['position']) for m in stored['matches']] == [(1, 0), (1, 1), (2, 0)]

    def test_create_without_participants_is_draft(self, client, temp_data_dir):
        response = _create(client)
        assert response.status_code == 201
        tournament = response.get_json()['tournament']
        assert tournament['status'] == 'draft'
        assert load_matches(tournament['id']) == []

    def test_create_requires_names(self, client, temp_data_dir):
        assert _create(client, name=' ').status_code == 400
        assert _create(client, game_name='').status_code == 400

    def test_create_rejects_bad_participants(self, client, temp_data_dir):
        response = _create(client, ['Ann', 'ann'])
        assert response.status_code == 400
        assert 'unique' in response.get_json()['error']

        response = _create(client, ['Ann', ''])
        assert response.status_code == 400
        assert list(temp_data_dir.iterdir()) == []

    def test_create_requires_json(self, client, temp_data_dir):
        response = client.post('/api/tournaments', data='nope')
        assert response.status_code == 400
        assert response.get_json()['success'] is False

    def test_list_tournaments(self, client, temp_data_dir):
        _create(client, ['Ann', 'Ben'], name='One')
        _create(client, name='Two')
        response = client.get('/api/tournaments')
        names = {t['name'] for t in response.get_json()['tournaments']}
        assert names == {'One', 'Two'}
        assert len(list_tournaments()) == 2


class TestDraftFlow:
    """Tests for joining and starting a draft tournament."""

    def test_join_assigns_next_seed(self, client, temp_data_dir):
        tournament_id = _create(client).get_json()['tournament']['id']
        for name in ('Ann', 'Ben', 'Cat'):
            response = client.post(f'/api/tournaments/{tournament_id}/join', json={'name': name})
            assert response.status_code == 201
        assert [p.seed for p in load_participants(tournament_id)] == [1, 2, 3]

    def test_join_rejects_duplicate_name(self, client, temp_data_dir):
        tournament_id = _create(client).get_json()['tournament']['id']
        client.post(f'/api/tournaments/{tournament_id}/join', json={'name': 'Ann'})
        response = client.post(f'/api/tournaments/{tournament_id}/join', json={'name': ' ANN'})
        assert response.status_code == 400
        assert response.get_json()['error'] == 'This name is already taken'

    def test_remove_participant_renumbers(self, client, temp_data_dir):
        tournament_id = _create(client).get_json()['tournament']['id']
        ids = [client.post(f'/api/tournaments/{tournament_id}/join', json={'name': n}).get_json()['participant']['id']
               for n in ('Ann', 'Ben', 'Cat')]

        response = client.post(f'/api/tournaments/{tournament_id}/participants/{ids[0]}/delete')
        assert response.status_code == 200
        assert [(p.name, p.seed) for p in load_participants(tournament_id)] == [('Ben', 1), ('Cat', 2)]

        response = client.post(f'/api/tournaments/{tournament_id}/participants/{ids[0]}/delete')
        assert response.status_code == 404

    def test_start_needs_two_participants(self, client, temp_data_dir):
        tournament_id = _create(client).get_json()['tournament']['id']
        client.post(f'/api/tournaments/{tournament_id}/join', json={'name': 'Ann'})
        response = client.post(f'/api/tournaments/{tournament_id}/start')
        assert response.status_code == 400
        assert load_tournament(tournament_id).status == 'draft'

    def test_start_builds_bracket(self, client, temp_data_dir):
        tournament_id = _create(client).get_json()['tournament']['id']
        for name in ('Ann', 'Ben', 'Cat', 'Dan', 'Eve'):
            client.post(f'/api/tournaments/{tournament_id}/join', json={'name': name})

        response = client.post(f'/api/tournaments/{tournament_id}/start')
        assert response.status_code == 200

        tournament = load_tournament(tournament_id)
        assert tournament.status == 'active'
        assert tournament.bracket_size == 5
        assert sorted(p.seed for p in load_participants(tournament_id)) == [1, 2, 3, 4, 5]

        matches = load_matches(tournament_id)
        assert len(matches) == 7
        assert sum(1 for m in matches if m.is_bye) == 3

    def test_no_changes_after_start(self, client, temp_data_dir):
        tournament_id = _create(client, ['Ann', 'Ben']).get_json()['tournament']['id']
        assert client.post(f'/api/tournaments/{tournament_id}/start').status_code == 409
        response = client.post(f'/api/tournaments/{tournament_id}/join', json={'name': 'Cat'})
        assert response.status_code == 409
        participant_id = load_participants(tournament_id)[0].id
        response = client.post(f'/api/tournaments/{tournament_id}/participants/{participant_id}/delete')
        assert response.status_code == 409


class TestSubmitScore:
    """Tests for POST /api/tournaments/<id>/matches/<id>/score."""

    def test_four_player_tournament(self, client, temp_data_dir):
        tournament_id = _create(client, ['Ann', 'Ben', 'Cat', 'Dan']).get_json()['tournament']['id']

        first = _match_at(client, tournament_id, 1, 0)
        assert (first['player1_name'], first['player2_name']) == ('Ann', 'Dan')
        response = _score(client, tournament_id, first['id'], 10, 5)
        assert response.status_code == 200
        body = response.get_json()
        assert body['advancement']['slot'] == 'first'
        assert body['next_match']['player1_id'] == first['player1_id']

        second = _match_at(client, tournament_id, 1, 1)
        assert (second['player1_name'], second['player2_name']) == ('Ben', 'Cat')
        body = _score(client, tournament_id, second['id'], '7', '6').get_json()
        assert body['advancement']['slot'] == 'second'

        final = _match_at(client, tournament_id, 2, 0)
        assert final['is_playable']
        body = _score(client, tournament_id, final['id'], 3, 2).get_json()
        assert body['tournament_completed'] is True
        assert body['advancement'] is None

        data = client.get(f'/api/tournaments/{tournament_id}').get_json()
        assert data['tournament']['status'] == 'completed'
        assert data['champion']['name'] == 'Ann'

    def test_double_submission_rejected(self, client, temp_data_dir):
        tournament_id = _create(client, ['Ann', 'Ben', 'Cat', 'Dan']).get_json()['tournament']['id']
        match = _match_at(client, tournament_id, 1, 0)

        assert _score(client, tournament_id, match['id'], 10, 5).status_code == 200
        response = _score(client, tournament_id, match['id'], 0, 5)
        assert response.status_code == 409

        final = _match_at(client, tournament_id, 2, 0)
        assert final['player1_name'] == 'Ann'

    def test_invalid_scores_leave_no_trace(self, client, temp_data_dir):
        tournament_id = _create(client, ['Ann', 'Ben']).get_json()['tournament']['id']
        match = _match_at(client, tournament_id, 1, 0)
        before = (temp_data_dir / tournament_id / 'matches.yaml').read_text()

        for score1, score2 in ((3, 3), (-1, 2), ('x', 1), (None, 2)):
            response = _score(client, tournament_id, match['id'], score1, score2)
            assert response.status_code == 400

        assert (temp_data_dir / tournament_id / 'matches.yaml').read_text() == before

    def test_match_not_ready(self, client, temp_data_dir):
        tournament_id = _create(client, ['Ann', 'Ben', 'Cat']).get_json()['tournament']['id']
        bye = _match_at(client, tournament_id, 1, 0)
        assert bye['is_bye']
        assert _score(client, tournament_id, bye['id'], 1, 0).status_code == 409

        final = _match_at(client, tournament_id, 2, 0)
        assert final['state'] == 'pending'
        assert _score(client, tournament_id, final['id'], 1, 0).status_code == 409

    def test_draft_tournament_has_no_scores(self, client, temp_data_dir):
        tournament_id = _create(client).get_json()['tournament']['id']
        assert _score(client, tournament_id, 'whatever', 1, 0).status_code == 409

    def test_unknown_match(self, client, temp_data_dir):
        tournament_id = _create(client, ['Ann', 'Ben']).get_json()['tournament']['id']
        assert _score(client, tournament_id, 'missing', 1, 0).status_code == 404


class TestLookups:
    """Tests for reading tournaments."""

    def test_unknown_tournament(self, client, temp_data_dir):
        response = client.get('/api/tournaments/' + 'a' * 32)
        assert response.status_code == 404
        assert response.get_json() == {'success': False, 'error': 'Tournament not found'}

    def test_malformed_id_rejected(self, client, temp_data_dir):
        assert client.get('/api/tournaments/..%2F..%2Fetc').status_code == 404
        assert client.get('/api/tournaments/not-an-id').status_code == 404

    def test_stream_returns_event_stream(self, client, temp_data_dir):
        tournament_id = _create(client, ['Ann', 'Ben']).get_json()['tournament']['id']
        response = client.get(f'/api/tournaments/{tournament_id}/stream')
        assert response.status_code == 200
        assert 'text/event-stream' in response.content_type

    def test_stream_unknown_tournament(self, client, temp_data_dir):
        assert client.get('/api/tournaments/' + 'b' * 32 + '/stream').status_code == 404


class TestStorageFailures:
    """Tests for requests that must not touch the data directory."""

    def test_unknown_ids_leave_no_directories(self, client, temp_data_dir):
        unknown = ['%032x' % i for i in range(1, 5)]
        assert client.post(f'/api/tournaments/{unknown[0]}/join', json={'name': 'Ann'}).status_code == 404
        assert client.post(f'/api/tournaments/{unknown[1]}/participants/{unknown[2]}/delete').status_code == 404
        assert client.post(f'/api/tournaments/{unknown[2]}/start').status_code == 404
        assert _score(client, unknown[3], unknown[0], 1, 0).status_code == 404
        assert os.listdir(temp_data_dir) == []

    def test_lock_timeout_reported_as_json(self, client, temp_data_dir, monkeypatch):
        import app as app_module
        from filelock import Timeout

        tournament_id = _create(client, ['Ann', 'Ben']).get_json()['tournament']['id']
        match = _match_at(client, tournament_id, 1, 0)

        class BusyLock:
            def __init__(self, lock_file, timeout=None):
                self.lock_file = lock_file

            def __enter__(self):
                raise Timeout(self.lock_file)

            def __exit__(self, *exc):
                return False

        monkeypatch.setattr(app_module, 'FileLock', BusyLock)
        response = _score(client, tournament_id, match['id'], 2, 1)
        assert response.status_code == 503
        assert response.get_json()['success'] is False
        assert load_matches(tournament_id)[0].winner_id is None

    def test_import_writes_no_secret_key(self):
        import app as app_module
        assert app.secret_key is None
        assert not hasattr(app_module, '_get_or_create_secret_key')
