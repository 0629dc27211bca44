"""
Score submission: resolve a live match and advance its winner.
"""
from typing import List, Dict, Optional

from bracket.elimination import (
    find_match,
    get_next_match_position,
    get_total_rounds_from_matches,
)
from bracket.errors import InvalidInputError, NotFoundError, PreconditionError
from bracket.models import Match, MATCH_READY


def parse_score(value) -> int:
    """Turn a submitted score (int or numeric string) into a non-negative int."""
    if isinstance(value, bool):
        raise InvalidInputError('Please enter valid scores')
    if isinstance(value, int):
        score = value
    else:
        try:
            score = int(str(value).strip())
        except ValueError:
            raise InvalidInputError('Please enter valid scores')
    if score < 0:
        raise InvalidInputError('Scores cannot be negative')
    return score


def validate_scores(score1, score2) -> tuple:
    score1 = parse_score(score1)
    score2 = parse_score(score2)
    if score1 == score2:
        raise InvalidInputError('Scores cannot be tied - there must be a winner')
    return score1, score2


def submit_score(match: Match, score1, score2, matches: List[Match]) -> Dict:
    """
    Resolve a ready match from its two scores; the higher score wins.

    Args:
        match: The match being scored
        score1: Score of player 1
        score2: Score of player 2
        matches: Every match of the tournament, used to find the final round
            and the match the winner advances into

    Returns:
        Dict with:
        - match: updated copy of the scored match
        - advancement: {'match_id', 'round', 'position', 'slot', 'winner_id'}
          or None when the final was scored
        - tournament_completed: True when the final was scored
        - champion_id: winner of the final, else None

    Neither ``match`` nor ``matches`` is modified.
    """
    score1, score2 = validate_scores(score1, score2)

    if match.winner_id is not None:
        raise PreconditionError('Match already has a winner')
    if match.state != MATCH_READY:
        raise PreconditionError('Both players must be known before a score can be entered')

    updated = match.copy()
    updated.player1_score = score1
    updated.player2_score = score2
    updated.winner_id = match.player1_id if score1 > score2 else match.player2_id

    total_rounds = get_total_rounds_from_matches(matches)
    if match.round >= total_rounds:
        return {
            'match': updated,
            'advancement': None,
            'tournament_completed': True,
            'champion_id': updated.winner_id,
        }

    target = get_next_match_position(match.round, match.position)
    next_match = find_match(matches, target['round'], target['position'])
    if next_match is None:
        raise NotFoundError(f"No match at round {target['round']} position {target['position']}")

    occupant = next_match.get_slot(target['slot'])
    if occupant is not None and occupant != updated.winner_id:
        raise PreconditionError('The next match already has a different player in that slot')

    return {
        'match': updated,
        'advancement': {
            'match_id': next_match.id,
            'round': target['round'],
            'position': target['position'],
            'slot': target['slot'],
            'winner_id': updated.winner_id,
        },
        'tournament_completed': False,
        'champion_id': None,
    }


def apply_score_submission(matches: List[Match], submission: Dict) -> List[Match]:
    """Return a new match list with a submission's updates written in."""
    scored = submission['match']
    advancement: Optional[Dict] = submission['advancement']
    result = []
    for m in matches:
        if m.round == scored.round and m.position == scored.position:
            result.append(scored.copy())
        elif advancement and m.round == advancement['round'] and m.position == advancement['position']:
            updated = m.copy()
            updated.set_slot(advancement['slot'], advancement['winner_id'])
            result.append(updated)
        else:
            result.append(m.copy())
    return result
