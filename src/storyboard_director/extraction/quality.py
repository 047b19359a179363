"""Word-overlap measures used to score fallback output.

These compare the content words of two texts; they are heuristics, not
semantic similarity.
"""

import re

_WORD = re.compile(r"[a-z][a-z'-]*")

STOPWORDS = frozenset(
    """
    a about above after again all also am an and any are as at be because been
    before being below between both but by can could did do does doing down
    during each few for from further had has have having he her here hers him
    his how i if in into is it its itself just me more most my no nor not now
    of off on once only or other our ours out over own same she should so some
    such than that the their them then there these they this those through to
    too under until up very was we were what when where which while who whom
    why will with would you your yours scene shot prompt let lets here's it's
    that's there's i'm we'll you'll don't doesn't isn't
    """.split()
)


def extract_key_terms(text: str, *, min_length: int = 3) -> set[str]:
    """Lower-cased content words of ``text`` with stopwords removed."""
    return {
        word.strip("'-")
        for word in _WORD.findall(text.lower())
        if len(word.strip("'-")) >= min_length and word not in STOPWORDS
    }


def preservation_ratio(original: str, produced: str) -> float:
    """Share of the original's key terms that survive in ``produced``.

    Returns 0.0 when the original has no key terms.
    """
    source_terms = extract_key_terms(original)
    if not source_terms:
        return 0.0
    kept = source_terms & extract_key_terms(produced)
    return len(kept) / len(source_terms)


def word_overlap(first: str, second: str) -> float:
    """Jaccard index of the two texts' word sets."""
    first_words = set(first.lower().split())
    second_words = set(second.lower().split())
    union = first_words | second_words
    if not union:
        return 0.0
    return len(first_words & second_words) / len(union)
