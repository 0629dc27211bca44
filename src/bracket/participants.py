"""
Participant entry, name validation and seeding.
"""
import random
from typing import List, Optional

from bracket.elimination import MIN_PARTICIPANTS, is_valid_participant_count
from bracket.errors import InvalidInputError
from bracket.models import Participant


def clean_participant_names(names: List[str]) -> List[str]:
    """
    Strip names, drop blank entries and check what is left.

    Raises InvalidInputError for fewer than two names or for names that
    differ only in case.
    """
    cleaned = [n.strip() for n in names if n and n.strip()]
    if not is_valid_participant_count(len(cleaned)):
        raise InvalidInputError(f'At least {MIN_PARTICIPANTS} participants are required')
    if len({n.lower() for n in cleaned}) != len(cleaned):
        raise InvalidInputError('All participant names must be unique')
    return cleaned


def check_new_participant_name(name: str, existing: List[Participant]) -> str:
    """Validate a name joining a draft tournament."""
    name = (name or '').strip()
    if not name:
        raise InvalidInputError('Please enter your name')
    if any(p.name.lower() == name.lower() for p in existing):
        raise InvalidInputError('This name is already taken')
    return name


def assign_seeds(tournament_id: str, names: List[str]) -> List[Participant]:
    """Seed participants in list order: the first name is seed 1."""
    return [Participant(tournament_id=tournament_id, name=name, seed=i + 1)
            for i, name in enumerate(names)]


def renumber_seeds(participants: List[Participant]) -> List[Participant]:
    """Close gaps in the seed order, keeping the relative ranking."""
    ordered = sorted(participants, key=lambda p: p.seed)
    for i, participant in enumerate(ordered):
        participant.seed = i + 1
    return ordered


def shuffle_seeds(participants: List[Participant], rng: Optional[random.Random] = None) -> List[Participant]:
    """
    Randomly reseed a draft tournament's participants.

    Returns the participants in their new seed order with seeds 1..N.
    """
    rng = rng or random.Random()
    shuffled = list(participants)
    rng.shuffle(shuffled)
    for i, participant in enumerate(shuffled):
        participant.seed = i + 1
    return shuffled
