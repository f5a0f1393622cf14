"""Singular/plural helpers for collection names."""

_IRREGULAR: dict[str, str] = {
    "person": "people",
    "child": "children",
    "index": "indices",
    "datum": "data",
}

_IRREGULAR_SINGULAR: dict[str, str] = {v: k for k, v in _IRREGULAR.items()}

_SIBILANT_ENDINGS = ("s", "x", "z", "ch", "sh")
# Singular nouns that already end in "s" (status, class, basis)
_SINGULAR_S_ENDINGS = ("us", "ss", "is")
_VOWELS = frozenset("aeiou")


def pluralize(word: str) -> str:
    """Return a simple English plural of ``word``.

    Examples:
        >>> pluralize("page")
        'pages'
        >>> pluralize("entry")
        'entries'
        >>> pluralize("box")
        'boxes'
    """
    lower = word.lower()
    if lower in _IRREGULAR:
        return word[0] + _IRREGULAR[lower][1:]
    if lower.endswith("y") and len(lower) > 1 and lower[-2] not in _VOWELS:
        return word[:-1] + "ies"
    if lower.endswith(_SIBILANT_ENDINGS):
        return word + "es"
    return word + "s"


def singularize(word: str) -> str:
    """Best-effort inverse of :func:`pluralize`."""
    lower = word.lower()
    if lower in _IRREGULAR_SINGULAR:
        return word[0] + _IRREGULAR_SINGULAR[lower][1:]
    if lower.endswith("ies") and len(lower) > 3:
        return word[:-3] + "y"
    if lower.endswith("es") and lower[:-2].endswith(_SIBILANT_ENDINGS):
        return word[:-2]
    if lower.endswith("s") and not lower.endswith(_SINGULAR_S_ENDINGS):
        return word[:-1]
    return word


def is_plural(word: str) -> bool:
    """Return True when ``word`` already looks like a plural form."""
    return word != singularize(word) and pluralize(singularize(word)) == word
