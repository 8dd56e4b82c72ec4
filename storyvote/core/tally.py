from __future__ import annotations

from collections import Counter
from collections.abc import Mapping, Sequence


def tally(votes: Mapping[str, str], choice_order: Sequence[str]) -> str:
    """Return the winning choice id for a round.

    The choice with the most votes wins. On a tie the choice declared first in
    `choice_order` wins. Votes for ids missing from `choice_order` rank after
    every declared choice, in order of first appearance.
    """

    if not votes:
        raise ValueError("Cannot tally an empty vote set")

    counts = Counter(votes.values())
    position = {choice_id: idx for idx, choice_id in enumerate(choice_order)}
    fallback = len(position)

    ranked = sorted(counts, key=lambda cid: (-counts[cid], position.get(cid, fallback)))
    return ranked[0]
