"""
Cheap lexical contradiction detection.

Flags memory pairs that look contradictory before (or instead of) asking the
LLM: one side negates the other, an antonym replaces its counterpart, a
sentiment verb flips, or the same subject takes a different value.
"""

import re
from enum import Enum

from engram.utils.similarity import content_overlap_score, fuzzy_overlap_score

ANTONYM_PAIRS = [
    ("love", "hate"),
    ("like", "dislike"),
    ("hot", "cold"),
    ("always", "never"),
    ("happy", "sad"),
    ("good", "bad"),
    ("fast", "slow"),
    ("big", "small"),
    ("tall", "short"),
    ("light", "dark"),
    ("open", "closed"),
    ("true", "false"),
    ("yes", "no"),
    ("enable", "disable"),
    ("enabled", "disabled"),
    ("active", "inactive"),
    ("prefer", "avoid"),
    ("start", "stop"),
    ("accept", "reject"),
    ("allow", "block"),
]

SENTIMENT_PAIRS = [
    ("likes", "hates"),
    ("likes", "dislikes"),
    ("loves", "hates"),
    ("loves", "dislikes"),
    ("enjoys", "hates"),
    ("enjoys", "dislikes"),
    ("prefers", "avoids"),
    ("wants", "doesn't want"),
]

NEGATION_PHRASES = [
    "doesn't", "does not", "don't", "do not", "isn't", "is not", "wasn't",
    "was not", "won't", "will not", "can't", "cannot", "can not", "never",
    "no longer", "not",
]

VALUE_PIVOTS = [" is ", " are ", " was ", " were "]

_NEGATION_RE = re.compile(
    r"\b(" + "|".join(re.escape(p) for p in sorted(NEGATION_PHRASES, key=len, reverse=True)) + r")\b"
)


class ContradictionCheck(str, Enum):
    """Heuristic verdict for a pair of statements."""

    NONE = "none"
    UNLIKELY = "unlikely"
    LIKELY = "likely"


def _words(text: str) -> set[str]:
    return set(re.findall(r"[a-z0-9']+", text))


def _remove_words(text: str, *words: str) -> str:
    for word in words:
        text = re.sub(r"\b" + re.escape(word) + r"\b", " ", text)
    return " ".join(text.split())


def _is_word_subset(subset: str, superset: str) -> bool:
    sub = {w for w in subset.split() if len(w) > 1}
    sup = {w for w in superset.split() if len(w) > 1}
    return sub <= sup


class ContradictionDetector:
    """
    Lexical contradiction detector.

    Usage:
        detector = ContradictionDetector()
        detector.check("User likes Python", "User doesn't like Python")
        # ContradictionCheck.LIKELY
    """

    def check(self, existing: str, new: str) -> ContradictionCheck:
        existing = existing.lower().strip()
        new = new.lower().strip()
        if existing == new:
            return ContradictionCheck.NONE

        for rule in (self._check_negation, self._check_sentiment, self._check_antonyms, self._check_value):
            verdict = rule(existing, new)
            if verdict is not None:
                return verdict
        return ContradictionCheck.NONE

    def _check_negation(self, existing: str, new: str) -> ContradictionCheck | None:
        existing_negated = _NEGATION_RE.search(existing)
        new_negated = _NEGATION_RE.search(new)
        if bool(existing_negated) == bool(new_negated):
            return None

        plain, negated = (existing, new) if new_negated else (new, existing)
        stripped = " ".join(_NEGATION_RE.sub(" ", negated).split())
        if fuzzy_overlap_score(plain, stripped) >= 0.5:
            return ContradictionCheck.LIKELY
        return None

    def _check_sentiment(self, existing: str, new: str) -> ContradictionCheck | None:
        for positive, negative in SENTIMENT_PAIRS:
            flipped = (positive in _words(existing) and negative in new) or (
                negative in existing and positive in _words(new)
            )
            if not flipped:
                continue
            a = _remove_words(existing, positive, negative)
            b = _remove_words(new, positive, negative)
            if content_overlap_score(a, b) > 0.5:
                return ContradictionCheck.LIKELY
        return None

    def _check_antonyms(self, existing: str, new: str) -> ContradictionCheck | None:
        existing_words = _words(existing)
        new_words = _words(new)
        for word_a, word_b in ANTONYM_PAIRS:
            a_old, b_old = word_a in existing_words, word_b in existing_words
            a_new, b_new = word_a in new_words, word_b in new_words
            if not ((a_old and b_new and not b_old and not a_new) or (b_old and a_new and not a_old and not b_new)):
                continue

            overlap = content_overlap_score(
                _remove_words(existing, word_a, word_b),
                _remove_words(new, word_a, word_b),
            )
            if overlap > 0.5:
                return ContradictionCheck.LIKELY
            if overlap > 0.3:
                return ContradictionCheck.UNLIKELY
        return None

    def _check_value(self, existing: str, new: str) -> ContradictionCheck | None:
        for pivot in VALUE_PIVOTS:
            if pivot not in existing or pivot not in new:
                continue
            old_subject, old_value = existing.split(pivot, 1)
            new_subject, new_value = new.split(pivot, 1)
            old_value, new_value = old_value.strip(" ."), new_value.strip(" .")

            if (
                content_overlap_score(old_subject, new_subject) > 0.7
                and old_value
                and new_value
                and old_value != new_value
                and old_value not in new_value
                and new_value not in old_value
                and not _is_word_subset(old_value, new_value)
                and not _is_word_subset(new_value, old_value)
            ):
                return ContradictionCheck.UNLIKELY
        return None
