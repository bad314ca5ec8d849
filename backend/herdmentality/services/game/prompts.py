import random
from typing import Iterable, Optional, Sequence

PROMPTS = (
    'Name a fruit that is yellow.',
    'Name a farm animal.',
    'What is the best pizza topping?',
    'Name a colour of the rainbow.',
    'What do you put on toast?',
    'Name a famous detective.',
    'Name a sport played with a ball.',
    'What is the best day of the week?',
    'Name a planet in our solar system.',
    'Name something you find at the beach.',
    'What is the most useful kitchen utensil?',
    'Name a musical instrument.',
    'Name a superhero.',
    'What is the best breakfast cereal?',
    'Name a board game.',
    'Name a country in Europe.',
    'What is the scariest animal?',
    'Name a flavour of ice cream.',
    'Name something that is always cold.',
    'What do you take on a picnic?',
    'Name a vegetable that is green.',
    'Name a Shakespeare play.',
    'What is the best month of the year?',
    'Name a type of tree.',
    'Name something you can never have too many of.',
    'What is the worst chore?',
    'Name a cartoon character.',
    'Name a dog breed.',
    'What would you save first from a burning house?',
    'Name a card game.',
    'Name a capital city.',
    'What is the best holiday destination?',
    'Name something people are afraid of.',
    'Name a type of cheese.',
    'What is the best smell in the world?',
    'Name a famous painter.',
    'Name a hot drink.',
    'What is the hardest language to learn?',
    'Name something with wheels.',
    'Name an animal that lives in the sea.',
    'What is the best film of all time?',
    'Name a bird that cannot fly.',
    'Name a word that rhymes with cow.',
    'What is the best thing about winter?',
    'Name a fictional wizard.',
    'Name something you do every morning.',
    'What is the best snack?',
    'Name a piece of furniture.',
)


class PromptSelector:
    """Draws prompts for a room, avoiding ones it has already used.

    When every prompt in the catalog has been used the whole catalog is
    eligible again, so a long room repeats prompts instead of running dry.
    """

    def __init__(self, catalog: Sequence[str] = PROMPTS, rng: Optional[random.Random] = None):
        if not catalog:
            raise ValueError('Prompt catalog is empty')
        self.catalog = tuple(catalog)
        self.rng = rng or random.Random()

    def next(self, used: Iterable[str] = ()) -> str:
        used = set(used or ())
        candidates = [p for p in self.catalog if p not in used]
        if not candidates:
            candidates = list(self.catalog)
        return self.rng.choice(candidates)


_default_selector = PromptSelector()


def pick_next_prompt(used: Iterable[str] = ()) -> str:
    return _default_selector.next(used)
