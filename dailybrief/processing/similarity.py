import re

_PUNCT_RE = re.compile(r"[^\w\s]")


def _tokens(text: str) -> set[str]:
    cleaned = _PUNCT_RE.sub("", text.lower())
    return {tok for tok in cleaned.split() if len(tok) > 1}


def similarity(a: str, b: str) -> float:
    """Jaccard index of the word sets of two headlines, in [0, 1].

    Punctuation is stripped and single-character tokens are ignored, so
    "U.S." and "US" compare equal while "a" never contributes.
    """
    tokens_a = _tokens(a)
    tokens_b = _tokens(b)
    if not tokens_a or not tokens_b:
        return 0.0
    return len(tokens_a & tokens_b) / len(tokens_a | tokens_b)
