import re

_WHITESPACE = re.compile(r'\s+')
_PUNCTUATION = re.compile(r'[.,/#!$%^&*;:{}=\-_`~()]')
# A double s ("glass", "dress") is part of the word, not a plural
_TRAILING_S = re.compile(r'(?<!s)s$')
_ARTICLES = re.compile(r'\b(a|an|the)\b')


def _normalize_once(text: str) -> str:
    text = text.lower()
    text = _WHITESPACE.sub(' ', text).strip()
    text = _PUNCTUATION.sub('', text).strip()
    text = _TRAILING_S.sub('', text)
    text = _ARTICLES.sub('', text)
    return _WHITESPACE.sub(' ', text).strip()


def normalize_answer(text) -> str:
    """Canonical form used to decide whether two answers are the same.

    Lower-cases, collapses whitespace, strips punctuation, folds a single
    trailing "s" (naive plural; "ss" endings stay) and drops the articles
    a/an/the. Repeats until the text stops changing, so normalizing a
    canonical form returns it unchanged.
    """
    if not text:
        return ''
    current = _normalize_once(str(text))
    while True:
        again = _normalize_once(current)
        if again == current:
            return current
        current = again
