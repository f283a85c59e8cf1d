"""
Collection naming.

Models without an explicit collection store their documents in the
lower-cased plural of the model name (``User`` -> ``users``).
"""

import re

_UNCOUNTABLES = frozenset(
    {
        "advice", "energy", "equipment", "excretion", "expertise", "information",
        "jeans", "knowledge", "money", "news", "police", "rice", "series",
        "sheep", "species", "traffic",
    }
)

_RULES: list[tuple[re.Pattern, str]] = [
    (re.compile(r"(m)an$", re.I), r"\1en"),
    (re.compile(r"(pe)rson$", re.I), r"\1ople"),
    (re.compile(r"(child)$", re.I), r"\1ren"),
    (re.compile(r"^(ox)$", re.I), r"\1en"),
    (re.compile(r"(ax|test)is$", re.I), r"\1es"),
    (re.compile(r"(octop|vir)us$", re.I), r"\1i"),
    (re.compile(r"(alias|status)$", re.I), r"\1es"),
    (re.compile(r"(bu)s$", re.I), r"\1ses"),
    (re.compile(r"(buffal|tomat|potat)o$", re.I), r"\1oes"),
    (re.compile(r"([ti])um$", re.I), r"\1a"),
    (re.compile(r"sis$", re.I), "ses"),
    (re.compile(r"(?:([^f])fe|([lr])f)$", re.I), r"\1\2ves"),
    (re.compile(r"([^aeiouy]|qu)y$", re.I), r"\1ies"),
    (re.compile(r"(x|ch|ss|sh)$", re.I), r"\1es"),
    (re.compile(r"(matr|vert|ind)ix|ex$", re.I), r"\1ices"),
    (re.compile(r"([m|l])ouse$", re.I), r"\1ice"),
    (re.compile(r"(quiz)$", re.I), r"\1zes"),
    (re.compile(r"s$", re.I), "s"),
    (re.compile(r"([^a-z])$", re.I), r"\1"),
    (re.compile(r"$"), "s"),
]


def pluralize(name: str) -> str:
    """Return the default collection name for a model name."""
    lowered = name.lower()
    if lowered in _UNCOUNTABLES:
        return lowered
    for pattern, replacement in _RULES:
        if pattern.search(lowered):
            return pattern.sub(replacement, lowered, count=1)
    return lowered
