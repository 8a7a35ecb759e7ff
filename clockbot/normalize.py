from __future__ import annotations

import re

_WHITESPACE_RUN = re.compile(r"\s+")
_HYPHEN_RUN = re.compile(r"-+")


def canonicalize(raw: str) -> str:
    """Map a free-text activity label to its canonical key.

    "WorkSchool" -> "work-school", "schoool" -> "school", "workkkkk" -> "work".
    Returns an empty string for blank input; callers must reject that before storing it.
    """
    trimmed = raw.strip()
    if not trimmed:
        return ""

    hyphenated = split_word_boundaries(collapse_repeated_chars(trimmed))
    lowered = hyphenated.lower()
    lowered = _WHITESPACE_RUN.sub(" ", lowered)
    lowered = _HYPHEN_RUN.sub("-", lowered)
    return lowered.strip(" -")


def collapse_repeated_chars(text: str) -> str:
    """Shorten runs of one character: 1-2 kept, exactly 3 -> 2, 4 or more -> 1.

    Runs are matched case-insensitively so that lowercasing later cannot
    merge two short runs into a long one ("aAaa" would otherwise not be stable).
    """
    pieces: list[str] = []
    i = 0
    while i < len(text):
        key = text[i].lower()
        run = 1
        while i + run < len(text) and text[i + run].lower() == key:
            run += 1

        if run < 3:
            pieces.append(text[i : i + run])
        elif run == 3:
            pieces.append(text[i : i + 2])
        else:
            pieces.append(text[i])
        i += run

    return "".join(pieces)


def split_word_boundaries(text: str) -> str:
    """Insert hyphens at camelCase / PascalCase word boundaries."""
    out: list[str] = []
    for i, char in enumerate(text):
        if i > 0 and char.isupper():
            prev = text[i - 1]
            nxt = text[i + 1] if i + 1 < len(text) else ""
            # "workSchool" and the "D" in "XMLDocs" both start a new word.
            if prev.islower() or (prev.isupper() and nxt.islower()):
                out.append("-")
        out.append(char)
    return "".join(out)
