"""
Single elimination bracket generation and advancement.
"""
import math
from typing import List, Dict, Tuple, Optional

from bracket.errors import InvalidInputError
from bracket.models import Match, SLOT_FIRST, SLOT_SECOND

MIN_PARTICIPANTS = 2


def get_round_name(round_number: int, total_rounds: int) -> str:
    """Get the name of a round based on how many players it starts with."""
    players_in_round = 2 ** (total_rounds - round_number + 1)
    if players_in_round == 2:
        return "Final"
    elif players_in_round == 4:
        return "Semifinal"
    elif players_in_round == 8:
        return "Quarterfinal"
    else:
        return f"Round of {players_in_round}"


def is_valid_participant_count(count: int) -> bool:
    return count >= MIN_PARTICIPANTS


def calculate_bracket_size(num_participants: int) -> int:
    """Calculate the bracket size (next power of 2, never below 2)."""
    if num_participants <= 1:
        return 2
    return 2 ** math.ceil(math.log2(num_participants))


def calculate_byes(num_participants: int) -> int:
    """Calculate number of byes needed."""
    return calculate_bracket_size(num_participants) - num_participants


def calculate_total_rounds(num_participants: int) -> int:
    return int(math.log2(calculate_bracket_size(num_participants)))


def _generate_bracket_order(bracket_size: int) -> List[int]:
    """
    Generate the standard tournament bracket order.
    This ensures that if all higher seeds win, they meet in the proper rounds.

    For 8 slots: [1, 8, 4, 5, 2, 7, 3, 6]
    This gives matchups: 1v8, 4v5, 2v7, 3v6
    Winners: 1v4 side, 2v3 side
    Final: 1v2 (if chalk)
    """
    if bracket_size == 2:
        return [1, 2]

    half_size = bracket_size // 2
    upper_half = _generate_bracket_order(half_size)

    # Lower half is the complement of the upper half
    lower_half = [bracket_size + 1 - seed for seed in upper_half]

    result = []
    for u, l in zip(upper_half, lower_half):
        result.extend([u, l])

    return result


def generate_seed_order(bracket_size: int, participant_count: int) -> List[Tuple[int, Optional[int]]]:
    """
    Generate first round pairings as 0-based seed indices.

    Indices >= participant_count are byes and come back as None. Byes sit at
    the bottom of the seed list, so they are handed to the top seeds and
    always land in the second slot of a pairing.
    """
    if bracket_size < 2 or bracket_size & (bracket_size - 1):
        raise InvalidInputError(f'Bracket size must be a power of two, got {bracket_size}')
    if participant_count > bracket_size:
        raise InvalidInputError(
            f'{participant_count} participants do not fit in a bracket of {bracket_size}')

    order = _generate_bracket_order(bracket_size)
    pairings = []
    for i in range(0, len(order), 2):
        top, bottom = sorted((order[i] - 1, order[i + 1] - 1))
        pairings.append((top if top < participant_count else None,
                         bottom if bottom < participant_count else None))
    return pairings


def get_next_match_position(round_number: int, position: int) -> Dict:
    """
    Where the winner of (round_number, position) goes next.

    Callers check round_number < total_rounds first; the final has no
    downstream match.
    """
    return {
        'round': round_number + 1,
        'position': position // 2,
        'slot': SLOT_FIRST if position % 2 == 0 else SLOT_SECOND,
    }


def find_match(matches: List[Match], round_number: int, position: int) -> Optional[Match]:
    return next((m for m in matches if m.round == round_number and m.position == position), None)


def get_total_rounds_from_matches(matches: List[Match]) -> int:
    return max((m.round for m in matches), default=0)


def create_initial_matches(tournament_id: str, participants: List[Tuple[str, int]]) -> List[Match]:
    """
    Create every match of the bracket for a tournament that is starting.

    Args:
        tournament_id: Owning tournament
        participants: (participant_id, seed) pairs; seeds are dense from 1

    Returns:
        Matches ordered by (round, position). Round 1 is populated and its
        byes are resolved 0-0 with the winner already placed in round 2.
        Later rounds are empty placeholders. Ids and timestamps are left for
        the storage layer.
    """
    participant_count = len(participants)
    if not is_valid_participant_count(participant_count):
        raise InvalidInputError(f'At least {MIN_PARTICIPANTS} participants are required')

    bracket_size = calculate_bracket_size(participant_count)
    total_rounds = calculate_total_rounds(participant_count)

    seeded_ids = [pid for pid, _ in sorted(participants, key=lambda p: p[1])]
    matchups = generate_seed_order(bracket_size, participant_count)

    matches = []
    bye_winners = []

    for position, (index1, index2) in enumerate(matchups):
        player1_id = seeded_ids[index1] if index1 is not None else None
        player2_id = seeded_ids[index2] if index2 is not None else None

        is_bye = player1_id is None or player2_id is None
        winner_id = (player1_id or player2_id) if is_bye else None
        if is_bye:
            bye_winners.append((position, winner_id))

        matches.append(Match(
            tournament_id=tournament_id,
            round=1,
            position=position,
            player1_id=player1_id,
            player2_id=player2_id,
            player1_score=0 if is_bye else None,
            player2_score=0 if is_bye else None,
            winner_id=winner_id,
        ))

    # Placeholder matches for subsequent rounds
    for round_number in range(2, total_rounds + 1):
        for position in range(bracket_size // 2 ** round_number):
            matches.append(Match(tournament_id=tournament_id, round=round_number, position=position))

    if total_rounds >= 2:
        for position, player_id in bye_winners:
            target = get_next_match_position(1, position)
            next_match = find_match(matches, target['round'], target['position'])
            next_match.set_slot(target['slot'], player_id)

    return matches


def get_champion(matches: List[Match]) -> Optional[str]:
    """Winner of the final, or None while it is undecided."""
    total_rounds = get_total_rounds_from_matches(matches)
    final_match = find_match(matches, total_rounds, 0)
    return final_match.winner_id if final_match else None


def get_bracket_display(tournament, participants, matches: List[Match]) -> Dict:
    """
    Get bracket data formatted for UI display.

    Brackets with three or more rounds are split into a left and a right
    side, each holding half of every round before the final; the final sits
    between them.
    """
    by_id = {p.id: p for p in participants}
    participant_count = len(participants)
    total_rounds = get_total_rounds_from_matches(matches)
    ordered = sorted(matches, key=lambda m: (m.round, m.position))

    def _name(participant_id):
        participant = by_id.get(participant_id)
        return participant.name if participant else None

    def _display(match):
        data = match.to_dict()
        data.update({
            'player1_name': _name(match.player1_id),
            'player2_name': _name(match.player2_id),
            'winner_name': _name(match.winner_id),
            'state': match.state,
            'is_bye': match.is_bye,
            'is_playable': match.is_playable,
        })
        return data

    rounds = []
    for round_number in range(1, total_rounds + 1):
        round_matches = [_display(m) for m in ordered if m.round == round_number]
        rounds.append({
            'round': round_number,
            'name': get_round_name(round_number, total_rounds),
            'matches': round_matches,
        })

    sides = None
    if total_rounds >= 3:
        sides = {'left': [], 'right': [], 'final': rounds[-1]['matches'][0]}
        for round_data in rounds[:-1]:
            half = len(round_data['matches']) // 2
            sides['left'].append({**round_data, 'matches': round_data['matches'][:half]})
            sides['right'].append({**round_data, 'matches': round_data['matches'][half:]})

    champion_id = get_champion(ordered) if ordered else None
    champion = by_id.get(champion_id)

    return {
        'tournament': tournament.to_dict(),
        'participants': [p.to_dict() for p in sorted(participants, key=lambda p: p.seed)],
        'rounds': rounds,
        'sides': sides,
        'bracket_size': calculate_bracket_size(participant_count) if participant_count else 0,
        'total_rounds': total_rounds,
        'total_participants': participant_count,
        'byes': sum(1 for m in ordered if m.round == 1 and m.is_bye),
        'matches_per_round': {
            r['name']: sum(1 for m in r['matches'] if not m['is_bye']) for r in rounds
        },
        'champion': champion.to_dict() if champion else None,
    }
