"""
Module: delivery/bundler.py
Description: Groups selected items into independently dispatchable units.

A bundle pair is one bundleable score_push and one bundleable
note_push for the same applicant. The pair is dispatched concurrently
but each member is still settled by its own retry decision.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple, Union

from push_queue.models.queue_item import QueueItem, WebhookType


@dataclass(frozen=True)
class BundlePair:
    """A score push and a note push for one applicant."""

    score: QueueItem
    note: QueueItem

    @property
    def applicant_id(self) -> str:
        return self.score.applicant_id

    @property
    def members(self) -> Tuple[QueueItem, QueueItem]:
        return (self.score, self.note)


DispatchUnit = Union[QueueItem, BundlePair]


def _first_bundleable(items: Sequence[QueueItem], webhook_type: WebhookType) -> Optional[QueueItem]:
    for item in items:
        if item.webhook_type == webhook_type and item.is_bundleable:
            return item
    return None


def find_bundle_pairs(items: Sequence[QueueItem]) -> Dict[str, BundlePair]:
    """
    Find at most one bundle pair per applicant.

    Returns:
        Mapping of member item id to the pair it belongs to
    """
    by_applicant: Dict[str, List[QueueItem]] = {}
    for item in items:
        by_applicant.setdefault(item.applicant_id, []).append(item)

    pairs: Dict[str, BundlePair] = {}
    for group in by_applicant.values():
        score = _first_bundleable(group, WebhookType.SCORE_PUSH)
        note = _first_bundleable(group, WebhookType.NOTE_PUSH)
        if score is not None and note is not None:
            pair = BundlePair(score=score, note=note)
            pairs[score.id] = pair
            pairs[note.id] = pair

    return pairs


def plan_dispatch(items: Sequence[QueueItem]) -> List[DispatchUnit]:
    """
    Partition selected items into dispatch units.

    Units keep the selector's order; a pair takes the position of its
    first member. Every item id appears in exactly one unit.

    Example:
        >>> units = plan_dispatch([score, note, other])
        >>> [type(u).__name__ for u in units]
        ['BundlePair', 'QueueItem']
    """
    pairs = find_bundle_pairs(items)

    units: List[DispatchUnit] = []
    seen = set()
    for item in items:
        if item.id in seen:
            continue

        pair = pairs.get(item.id)
        if pair is not None:
            seen.update(member.id for member in pair.members)
            units.append(pair)
        else:
            seen.add(item.id)
            units.append(item)

    return units
