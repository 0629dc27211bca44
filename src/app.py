"""
Flask web application for single elimination brackets.
"""
import os
import re
import time
import yaml
from datetime import datetime
from filelock import FileLock, Timeout
from flask import Flask, request, jsonify, Response, stream_with_context
from bracket.elimination import create_initial_matches, find_match, get_bracket_display
from bracket.errors import BracketError, InvalidInputError, NotFoundError, PreconditionError
from bracket.models import Tournament, Participant, Match, STATUS_ACTIVE, STATUS_DRAFT, new_id
from bracket.participants import (
    assign_seeds,
    check_new_participant_name,
    clean_participant_names,
    renumber_seeds,
    shuffle_seeds,
)
from bracket.scoring import apply_score_submission, submit_score

app = Flask(__name__)


BASE_DIR = os.path.dirname(os.path.dirname(__file__))
DATA_DIR = os.environ.get('BRACKET_DATA_DIR', os.path.join(BASE_DIR, 'data'))
TOURNAMENTS_DIR = os.path.join(DATA_DIR, 'tournaments')
LOCK_TIMEOUT = float(os.environ.get('BRACKET_LOCK_TIMEOUT', '10'))

TOURNAMENT_FILE = 'tournament.yaml'
PARTICIPANTS_FILE = 'participants.yaml'
MATCHES_FILE = 'matches.yaml'
DATA_FILES = (TOURNAMENT_FILE, PARTICIPANTS_FILE, MATCHES_FILE)

_ID_PATTERN = re.compile(r'^[a-f0-9]{32}$')


def _tournament_dir(tournament_id: str) -> str:
    """Return data directory for a tournament, rejecting malformed ids."""
    if not tournament_id or not _ID_PATTERN.match(tournament_id):
        raise NotFoundError('Tournament not found')
    return os.path.join(TOURNAMENTS_DIR, tournament_id)


def _tournament_lock(tournament_id: str, create: bool = False) -> FileLock:
    """Per-tournament lock serialising read-modify-write cycles.

    Only a new tournament (``create=True``) gets its directory made here;
    otherwise the tournament must already exist.
    """
    tournament_dir = _tournament_dir(tournament_id)
    if create:
        os.makedirs(tournament_dir, exist_ok=True)
    elif not os.path.exists(os.path.join(tournament_dir, TOURNAMENT_FILE)):
        raise NotFoundError('Tournament not found')
    return FileLock(os.path.join(tournament_dir, '.lock'), timeout=LOCK_TIMEOUT)


def _read_yaml(path):
    with open(path, 'r', encoding='utf-8') as f:
        return yaml.safe_load(f)


def _write_yaml(path, data):
    with open(path, 'w', encoding='utf-8') as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)


def load_tournament(tournament_id: str) -> Tournament:
    path = os.path.join(_tournament_dir(tournament_id), TOURNAMENT_FILE)
    if not os.path.exists(path):
        raise NotFoundError('Tournament not found')
    return Tournament.from_dict(_read_yaml(path))


def save_tournament(tournament: Tournament):
    tournament_dir = _tournament_dir(tournament.id)
    os.makedirs(tournament_dir, exist_ok=True)
    _write_yaml(os.path.join(tournament_dir, TOURNAMENT_FILE), tournament.to_dict())


def load_participants(tournament_id: str) -> list:
    """Load participants ordered by seed."""
    path = os.path.join(_tournament_dir(tournament_id), PARTICIPANTS_FILE)
    if not os.path.exists(path):
        return []
    data = _read_yaml(path) or {}
    participants = [Participant.from_dict(p) for p in data.get('participants', [])]
    return sorted(participants, key=lambda p: p.seed)


def save_participants(tournament_id: str, participants: list):
    ordered = sorted(participants, key=lambda p: p.seed)
    _write_yaml(os.path.join(_tournament_dir(tournament_id), PARTICIPANTS_FILE),
                {'participants': [p.to_dict() for p in ordered]})


def load_matches(tournament_id: str) -> list:
    """Load matches ordered by (round, position)."""
    path = os.path.join(_tournament_dir(tournament_id), MATCHES_FILE)
    if not os.path.exists(path):
        return []
    data = _read_yaml(path) or {}
    matches = [Match.from_dict(m) for m in data.get('matches', [])]
    return sorted(matches, key=lambda m: (m.round, m.position))


def save_matches(tournament_id: str, matches: list):
    ordered = sorted(matches, key=lambda m: (m.round, m.position))
    _write_yaml(os.path.join(_tournament_dir(tournament_id), MATCHES_FILE),
                {'matches': [m.to_dict() for m in ordered]})


def list_tournaments() -> list:
    """All stored tournaments, newest first."""
    if not os.path.isdir(TOURNAMENTS_DIR):
        return []
    tournaments = []
    for entry in os.listdir(TOURNAMENTS_DIR):
        path = os.path.join(TOURNAMENTS_DIR, entry, TOURNAMENT_FILE)
        if not os.path.exists(path):
            continue
        try:
            tournaments.append(Tournament.from_dict(_read_yaml(path)))
        except (yaml.YAMLError, KeyError, TypeError, BracketError) as e:
            app.logger.warning(f'Failed to parse {path}: {e}')
    return sorted(tournaments, key=lambda t: t.created_at, reverse=True)


def _stamp_new_matches(matches: list) -> list:
    """Give freshly built matches their storage id and timestamp."""
    created = datetime.now().isoformat()
    for m in matches:
        m.id = new_id()
        m.created_at = created
    return matches


def _start_bracket(tournament: Tournament, participants: list):
    """Activate a tournament and write its participants and full match tree."""
    matches = create_initial_matches(tournament.id, [(p.id, p.seed) for p in participants])
    tournament.activate(len(participants))
    save_participants(tournament.id, participants)
    save_matches(tournament.id, _stamp_new_matches(matches))
    save_tournament(tournament)
    app.logger.info(f'Tournament {tournament.id} started with {len(participants)} participants')


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidInputError('No data provided')
    return data


@app.errorhandler(BracketError)
def handle_bracket_error(error):
    return jsonify({'success': False, 'error': error.message}), error.status_code


@app.errorhandler(Timeout)
def handle_lock_timeout(error):
    app.logger.warning(f'Could not acquire {error.lock_file} within {LOCK_TIMEOUT}s')
    return jsonify({'success': False, 'error': 'Failed to update the tournament. Please try again.'}), 503


@app.route('/api/tournaments', methods=['GET'])
def api_list_tournaments():
    return jsonify({'tournaments': [t.to_dict() for t in list_tournaments()]})


@app.route('/api/tournaments', methods=['POST'])
def api_create_tournament():
    """Create a tournament.

    With a ``participants`` list (seed order, best first) the bracket starts
    immediately; without one the tournament opens as a draft others can join.
    """
    data = _json_body()
    name = (data.get('name') or '').strip()
    game_name = (data.get('game_name') or '').strip()
    names = data.get('participants') or []

    if not name:
        raise InvalidInputError('Tournament name is required')
    if not game_name:
        raise InvalidInputError('Game name is required')
    if not isinstance(names, list) or not all(isinstance(n, str) for n in names):
        raise InvalidInputError('Participants must be a list of names')

    tournament = Tournament(name=name, game_name=game_name)
    if names:
        participants = assign_seeds(tournament.id, clean_participant_names(names))
        with _tournament_lock(tournament.id, create=True):
            _start_bracket(tournament, participants)
    else:
        with _tournament_lock(tournament.id, create=True):
            save_tournament(tournament)
            save_participants(tournament.id, [])
        app.logger.info(f'Draft tournament {tournament.id} created')

    return jsonify({'success': True, 'tournament': tournament.to_dict()}), 201


@app.route('/api/tournaments/<tournament_id>', methods=['GET'])
def api_get_tournament(tournament_id):
    tournament = load_tournament(tournament_id)
    display = get_bracket_display(tournament, load_participants(tournament_id), load_matches(tournament_id))
    return jsonify(display)


@app.route('/api/tournaments/<tournament_id>/join', methods=['POST'])
def api_join_tournament(tournament_id):
    """Add a participant to a draft tournament with the next free seed."""
    data = _json_body()
    with _tournament_lock(tournament_id):
        tournament = load_tournament(tournament_id)
        if tournament.status != STATUS_DRAFT:
            raise PreconditionError('This tournament has already started')
        participants = load_participants(tournament_id)
        name = check_new_participant_name(data.get('name'), participants)
        participant = Participant(tournament_id=tournament_id, name=name, seed=len(participants) + 1)
        participants.append(participant)
        save_participants(tournament_id, participants)
    return jsonify({'success': True, 'participant': participant.to_dict()}), 201


@app.route('/api/tournaments/<tournament_id>/participants/<participant_id>/delete', methods=['POST'])
def api_remove_participant(tournament_id, participant_id):
    with _tournament_lock(tournament_id):
        tournament = load_tournament(tournament_id)
        if tournament.status != STATUS_DRAFT:
            raise PreconditionError('Participants can only be removed before the tournament starts')
        participants = load_participants(tournament_id)
        remaining = [p for p in participants if p.id != participant_id]
        if len(remaining) == len(participants):
            raise NotFoundError('Participant not found')
        save_participants(tournament_id, renumber_seeds(remaining))
    return jsonify({'success': True})


@app.route('/api/tournaments/<tournament_id>/start', methods=['POST'])
def api_start_tournament(tournament_id):
    """Randomise seeds of a draft tournament and build its bracket."""
    with _tournament_lock(tournament_id):
        tournament = load_tournament(tournament_id)
        if tournament.status != STATUS_DRAFT:
            raise PreconditionError('This tournament has already started')
        participants = load_participants(tournament_id)
        clean_participant_names([p.name for p in participants])
        _start_bracket(tournament, shuffle_seeds(participants))
    return jsonify({'success': True, 'tournament': tournament.to_dict()})


@app.route('/api/tournaments/<tournament_id>/matches/<match_id>/score', methods=['POST'])
def api_submit_score(tournament_id, match_id):
    """Record a match result and advance the winner.

    Requires: player1_score, player2_score in JSON body.
    The match is re-read under the tournament lock, so a second submission
    for the same match sees the first winner and is rejected.
    """
    data = _json_body()
    with _tournament_lock(tournament_id):
        tournament = load_tournament(tournament_id)
        if tournament.status != STATUS_ACTIVE:
            raise PreconditionError(f'Scores cannot be entered while the tournament is {tournament.status}')
        matches = load_matches(tournament_id)
        match = next((m for m in matches if m.id == match_id), None)
        if match is None:
            raise NotFoundError('Match not found')
        try:
            submission = submit_score(match, data.get('player1_score'), data.get('player2_score'), matches)
        except PreconditionError:
            app.logger.warning(f'Rejected score for match {match_id} in state {match.state}')
            raise

        updated_matches = apply_score_submission(matches, submission)
        save_matches(tournament_id, updated_matches)
        if submission['tournament_completed']:
            tournament.complete()
            save_tournament(tournament)
            app.logger.info(f"Tournament {tournament_id} completed, champion {submission['champion_id']}")

    advancement = submission['advancement']
    next_match = None
    if advancement:
        next_match = find_match(updated_matches, advancement['round'], advancement['position'])
    return jsonify({
        'success': True,
        'match': submission['match'].to_dict(),
        'advancement': advancement,
        'next_match': next_match.to_dict() if next_match else None,
        'tournament_completed': submission['tournament_completed'],
        'champion_id': submission['champion_id'],
    })


def _get_data_file_mtimes(tournament_id: str) -> dict:
    """Return modification times for a tournament's data files.

    Returns:
        Dictionary mapping file path to its mtime (float), or 0.0 if missing.
    """
    tournament_dir = _tournament_dir(tournament_id)
    files = [os.path.join(tournament_dir, n) for n in DATA_FILES]
    return {f: os.path.getmtime(f) if os.path.exists(f) else 0.0 for f in files}


@app.route('/api/tournaments/<tournament_id>/stream')
def api_tournament_stream(tournament_id):
    """Server-Sent Events stream that notifies clients when a tournament changes."""
    load_tournament(tournament_id)

    def generate():
        """Yield SSE events, checking data file mtimes every 3 seconds."""
        yield "event: connected\ndata: ok\n\n"

        last_mtimes = _get_data_file_mtimes(tournament_id)
        heartbeat_counter = 0

        while True:
            time.sleep(3)
            heartbeat_counter += 3

            current_mtimes = _get_data_file_mtimes(tournament_id)
            if current_mtimes != last_mtimes:
                last_mtimes = current_mtimes
                yield f"event: update\ndata: {time.time()}\n\n"

            # Heartbeat every ~15 seconds keeps proxies from closing the connection
            if heartbeat_counter >= 15:
                heartbeat_counter = 0
                yield ": heartbeat\n\n"

    return Response(
        stream_with_context(generate()),
        mimetype='text/event-stream',
        headers={
            'Cache-Control': 'no-cache',
            'X-Accel-Buffering': 'no',
        },
    )


if __name__ == '__main__':
    app.run(debug=True, port=5000)
