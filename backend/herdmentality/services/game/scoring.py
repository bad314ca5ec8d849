from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

DEFAULT_WIN_SCORE = 8


@dataclass(frozen=True)
class SubmittedAnswer:
    player_id: int
    display_name: str
    original_text: str
    normalized_text: str


@dataclass
class RoundTally:
    majority_answer: Optional[str]
    unique_player_id: Optional[int]
    scoring_player_ids: List[int] = field(default_factory=list)
    answers: List[SubmittedAnswer] = field(default_factory=list)

    def to_dict(self):
        return {
            'majorityAnswer': self.majority_answer,
            'uniqueAnswerer': self.unique_player_id,
            'scoringPlayers': list(self.scoring_player_ids),
            # Original text only; the canonical form is an implementation detail
            'answers': [
                {'playerId': a.player_id, 'displayName': a.display_name, 'answer': a.original_text}
                for a in self.answers
            ],
        }


def tally_answers(answers: Iterable[SubmittedAnswer]) -> Optional[RoundTally]:
    """Work out the herd and the odd one out for a round.

    The majority answer only exists when a single canonical answer has the
    top count; a tie at the top scores nobody. The unique answerer only
    exists when exactly one canonical answer was given by a single player.
    Returns None when no answers were submitted.
    """
    answers = list(answers)
    if not answers:
        return None

    counts = Counter(a.normalized_text for a in answers)
    top = max(counts.values())
    leaders = [text for text, n in counts.items() if n == top]
    majority = leaders[0] if len(leaders) == 1 else None

    singles = [text for text, n in counts.items() if n == 1]
    unique_player_id = None
    if len(singles) == 1:
        unique_player_id = next(a.player_id for a in answers if a.normalized_text == singles[0])

    scoring = [a.player_id for a in answers if majority is not None and a.normalized_text == majority]

    return RoundTally(
        majority_answer=majority,
        unique_player_id=unique_player_id,
        scoring_player_ids=scoring,
        answers=answers,
    )


def next_token_holder(current_holder: Optional[int], unique_player_id: Optional[int]) -> Optional[int]:
    """The token moves to the unique answerer, if there is one and it is someone else."""
    if unique_player_id is not None and unique_player_id != current_holder:
        return unique_player_id
    return current_holder


def find_winner(players, token_holder_id: Optional[int], threshold: int = DEFAULT_WIN_SCORE):
    """Return the winning player, or None.

    Players at or above ``threshold`` who do not hold the token are eligible;
    the highest score wins and ties go to whoever comes first in ``players``.
    """
    eligible = [p for p in players if p.score >= threshold and p.id != token_holder_id]
    if not eligible:
        return None
    return max(eligible, key=lambda p: p.score)
