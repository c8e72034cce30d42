import re
from typing import List, Tuple

SUGGESTIONS_MARKER = "---SUGGESTIONS---"

_MARKER_RE = re.compile(re.escape(SUGGESTIONS_MARKER), re.IGNORECASE)
_ORDINAL_RE = re.compile(r"^\d+\.\s*")

MAX_SUGGESTIONS = 3


def extract_suggestions(text: str) -> Tuple[str, List[str]]:
    """Split a model reply into its message and the trailing follow-up suggestions.

    Everything after the first marker is read line by line: numeric ordinals
    are stripped, blank lines dropped and at most three lines kept. The
    message is the text before the marker with trailing whitespace removed.
    Text without a marker is returned unchanged with no suggestions.
    """
    match = _MARKER_RE.search(text)
    if match is None:
        return text, []

    suggestions: List[str] = []
    for line in text[match.end():].splitlines():
        line = _ORDINAL_RE.sub("", line.strip()).strip()
        if line:
            suggestions.append(line)
        if len(suggestions) == MAX_SUGGESTIONS:
            break

    return text[:match.start()].rstrip(), suggestions
