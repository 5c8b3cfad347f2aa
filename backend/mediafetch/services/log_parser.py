"""Detection of the produced file in yt-dlp's human-readable output.

yt-dlp has no structured "this is your file" message when run as a CLI, so
the output path is recovered from two kinds of lines (``--newline`` mode)::

    [download] Destination: /data/downloads/clip [abc].f137.mp4
    [Merger] Merging formats into "/data/downloads/clip [abc].mp4"

For audio extraction the ``[ExtractAudio] Destination: ...`` line plays the
role of the merge line.  A wording change in yt-dlp silently disables
resolution, so "no match" is always a valid result here.
"""
import re
from typing import Literal

DESTINATION_MARKER = "Destination:"
MERGE_MARKER = "Merging formats into"

_OUTPUT_PATH_RE = re.compile(r'(?:Destination:|Merging formats into)\s+"?([^"]+)"?$')

MatchPolicy = Literal["last", "first"]


def extract_output_path(line: str) -> str | None:
    """Return the path announced by a destination/merge line, else None.

    The path is returned verbatim (no normalization); only surrounding
    whitespace is trimmed.
    """
    if DESTINATION_MARKER not in line and MERGE_MARKER not in line:
        return None
    match = _OUTPUT_PATH_RE.search(line)
    if not match:
        return None
    path = match.group(1).strip()
    return path or None


class OutputPathTracker:
    """Keeps the candidate output path seen so far for one job."""

    def __init__(self, keep: MatchPolicy = "last") -> None:
        self.keep = keep
        self.path: str | None = None
        self.matches = 0

    def feed(self, line: str) -> str | None:
        """Inspect a line and update the candidate; returns the match, if any."""
        found = extract_output_path(line)
        if found is None:
            return None
        self.matches += 1
        if self.keep == "last" or self.path is None:
            self.path = found
        return found
