"""String splitting on a single-character delimiter."""

from __future__ import annotations

from typing import List, Optional


def split(text: str, delimiter: Optional[str] = None,
          max_splits: int = -1) -> List[str]:
    """Split ``text`` on a single-character ``delimiter``.

    With no delimiter, or an empty one, the text is split into its
    characters. ``max_splits`` limits the number of splits; -1 means no
    limit, and the remainder of the text forms the last piece.
    """
    if not isinstance(text, str):
        raise TypeError("Expected a string as the first argument")

    if delimiter is not None:
        if not isinstance(delimiter, str):
            raise TypeError("Expected a string as the second argument")
        if len(delimiter) > 1:
            raise ValueError(
                "Delimiter should be a single character or an empty string"
            )

    if isinstance(max_splits, bool) or not isinstance(max_splits, int):
        raise TypeError("Expected an integer as the third argument")
    if max_splits < -1:
        raise ValueError("max_splits should be -1 or greater")

    if not delimiter:
        return list(text)
    return text.split(delimiter, max_splits)