"""
Tournament, participant and match records for single elimination brackets.
"""
import uuid
from datetime import datetime

from bracket.errors import InvalidInputError, PreconditionError

STATUS_DRAFT = 'draft'
STATUS_ACTIVE = 'active'
STATUS_COMPLETED = 'completed'
STATUSES = (STATUS_DRAFT, STATUS_ACTIVE, STATUS_COMPLETED)

SLOT_FIRST = 'first'
SLOT_SECOND = 'second'

MATCH_EMPTY = 'empty'
MATCH_PENDING = 'pending'
MATCH_READY = 'ready'
MATCH_RESOLVED = 'resolved'


def new_id() -> str:
    return uuid.uuid4().hex


def _now() -> str:
    return datetime.now().isoformat()


class Tournament:
    def __init__(self, name, game_name, bracket_size=0, status=STATUS_DRAFT, id=None, created_at=None):
        if status not in STATUSES:
            raise InvalidInputError(f'Unknown tournament status: {status}')
        self.id = id or new_id()
        self.name = name
        self.game_name = game_name
        self.bracket_size = bracket_size  # participant count, not the power of two
        self.status = status
        self.created_at = created_at or _now()

    def activate(self, participant_count):
        """Lock in the participant count and move draft -> active."""
        if self.status != STATUS_DRAFT:
            raise PreconditionError(f'Tournament is already {self.status}')
        self.bracket_size = participant_count
        self.status = STATUS_ACTIVE

    def complete(self):
        if self.status != STATUS_ACTIVE:
            raise PreconditionError(f'Cannot complete a tournament that is {self.status}')
        self.status = STATUS_COMPLETED

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'game_name': self.game_name,
            'bracket_size': self.bracket_size,
            'status': self.status,
            'created_at': self.created_at,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            name=data['name'],
            game_name=data.get('game_name', ''),
            bracket_size=data.get('bracket_size', 0),
            status=data.get('status', STATUS_DRAFT),
            id=data.get('id'),
            created_at=data.get('created_at'),
        )

    def __repr__(self):
        return f"Tournament(name={self.name}, status={self.status}, bracket_size={self.bracket_size})"


class Participant:
    def __init__(self, tournament_id, name, seed, id=None, created_at=None):
        self.id = id or new_id()
        self.tournament_id = tournament_id
        self.name = name
        self.seed = seed
        self.created_at = created_at or _now()

    def to_dict(self):
        return {
            'id': self.id,
            'tournament_id': self.tournament_id,
            'name': self.name,
            'seed': self.seed,
            'created_at': self.created_at,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            tournament_id=data['tournament_id'],
            name=data['name'],
            seed=data['seed'],
            id=data.get('id'),
            created_at=data.get('created_at'),
        )

    def __repr__(self):
        return f"Participant(name={self.name}, seed={self.seed})"


class Match:
    """
    One node of the bracket tree.

    A match whose winner is set while only one player slot is filled is a
    bye: it was resolved at construction without a live contest.
    """

    FIELDS = ('id', 'tournament_id', 'round', 'position', 'player1_id', 'player2_id',
              'player1_score', 'player2_score', 'winner_id', 'created_at')

    def __init__(self, tournament_id, round, position, player1_id=None, player2_id=None,
                 player1_score=None, player2_score=None, winner_id=None, id=None, created_at=None):
        self.id = id
        self.tournament_id = tournament_id
        self.round = round
        self.position = position
        self.player1_id = player1_id
        self.player2_id = player2_id
        self.player1_score = player1_score
        self.player2_score = player2_score
        self.winner_id = winner_id
        self.created_at = created_at

    @property
    def state(self) -> str:
        if self.winner_id is not None:
            return MATCH_RESOLVED
        if self.player1_id is not None and self.player2_id is not None:
            return MATCH_READY
        if self.player1_id is None and self.player2_id is None:
            return MATCH_EMPTY
        return MATCH_PENDING

    @property
    def is_bye(self) -> bool:
        return self.winner_id is not None and (self.player1_id is None) != (self.player2_id is None)

    @property
    def is_playable(self) -> bool:
        return self.state == MATCH_READY

    def get_slot(self, slot):
        if slot == SLOT_FIRST:
            return self.player1_id
        if slot == SLOT_SECOND:
            return self.player2_id
        raise InvalidInputError(f'Unknown slot: {slot}')

    def set_slot(self, slot, participant_id):
        if slot == SLOT_FIRST:
            self.player1_id = participant_id
        elif slot == SLOT_SECOND:
            self.player2_id = participant_id
        else:
            raise InvalidInputError(f'Unknown slot: {slot}')

    def copy(self):
        return Match.from_dict(self.to_dict())

    def to_dict(self):
        return {field: getattr(self, field) for field in self.FIELDS}

    @classmethod
    def from_dict(cls, data):
        return cls(**{field: data.get(field) for field in cls.FIELDS})

    def __eq__(self, other):
        if not isinstance(other, Match):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        return (f"Match(round={self.round}, position={self.position}, "
                f"player1={self.player1_id}, player2={self.player2_id}, winner={self.winner_id})")
