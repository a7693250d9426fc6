from collections import defaultdict
from typing import Iterable

from memerec_core.types import InteractionEvent, ItemId, UserId


def group_by_item(
    events: Iterable[InteractionEvent],
) -> dict[ItemId, list[InteractionEvent]]:
    by_item: dict[ItemId, list[InteractionEvent]] = defaultdict(list)
    for ev in events:
        by_item[ev.item_id].append(ev)
    return by_item


def group_by_user(
    events: Iterable[InteractionEvent],
) -> dict[UserId, list[InteractionEvent]]:
    by_user: dict[UserId, list[InteractionEvent]] = defaultdict(list)
    for ev in events:
        by_user[ev.user_id].append(ev)
    return by_user


def interacted_item_ids(events: Iterable[InteractionEvent]) -> set[ItemId]:
    return {ev.item_id for ev in events}
