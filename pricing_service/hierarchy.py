"""Builds the nested pricing view of a service from its flat item rows.

Items are persisted flat with a `parent_id` reference. On every read the
flat list is turned into a tree of `ServiceItemNode`:

- siblings are ordered by `sort_order`, then `name`
- each node shows one price: the first populated tier
  (daily, monthly, hourly, then the legacy single price), else 0
- `is_optional` is the inverse of the stored `is_required`

Items that cannot reach a root (dangling `parent_id` or a parent cycle) are
left out of the tree and reported as a warning.
"""

import logging
from collections import defaultdict
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Set

from pricing_service.models.models import Service, ServiceItem
from pricing_service.models.schemas import HierarchicalService, ServiceItemNode

logger = logging.getLogger("pricing-service")


def select_price(*tiers: Optional[Decimal]) -> float:
    """Return the first populated, non-zero price tier as a float (0 if none)."""
    for price in tiers:
        if price:
            return float(price)
    return 0.0


def item_price(item: ServiceItem) -> float:
    return select_price(item.price_daily, item.price_monthly, item.price_hourly, item.base_price)


def service_price(service: Service) -> float:
    return select_price(
        service.base_price_daily, service.base_price_monthly, service.base_price_hourly
    )


def _sort_key(item: ServiceItem):
    return (item.sort_order or 0, item.name or "")


def _group_by_parent(items: Iterable[ServiceItem]) -> Dict[object, List[ServiceItem]]:
    children = defaultdict(list)
    for item in items:
        children[item.parent_id].append(item)
    for siblings in children.values():
        siblings.sort(key=_sort_key)
    return children


def find_unreachable_items(items: Sequence[ServiceItem]) -> List[object]:
    """
    Return ids of items that never chain up to a top-level item.

    Covers both orphans (parent id not in the list) and members of parent
    cycles. Order follows the input list.
    """
    children = _group_by_parent(items)
    reachable: Set[object] = set()
    stack = list(children.get(None, []))
    while stack:
        item = stack.pop()
        if item.id in reachable:
            continue
        reachable.add(item.id)
        stack.extend(children.get(item.id, []))
    return [item.id for item in items if item.id not in reachable]


def would_create_cycle(items: Sequence[ServiceItem], item_id, new_parent_id) -> bool:
    """True when re-parenting `item_id` under `new_parent_id` closes a loop."""
    if new_parent_id is None:
        return False
    parents = {item.id: item.parent_id for item in items}
    seen: Set[object] = set()
    current = new_parent_id
    while current is not None and current not in seen:
        if current == item_id:
            return True
        seen.add(current)
        current = parents.get(current)
    return False


def _build_level(
    children: Dict[object, List[ServiceItem]],
    parent_id,
    depth: int,
    visited: Set[object],
) -> List[ServiceItemNode]:
    nodes = []
    for item in children.get(parent_id, []):
        if item.id in visited:
            continue
        visited.add(item.id)
        nodes.append(
            ServiceItemNode(
                id=item.id,
                name=item.name,
                description=item.description or "",
                level=item.level,
                depth=depth,
                sort_order=item.sort_order or 0,
                is_optional=not item.is_required,
                base_price=item_price(item),
                children=_build_level(children, item.id, depth + 1, visited),
            )
        )
    return nodes


def build_service_hierarchy(
    items: Sequence[ServiceItem], parent_id=None
) -> List[ServiceItemNode]:
    """
    Build the nested item tree below `parent_id` (None for the top level).

    Args:
        items: Flat list of all items of one service (already loaded)
        parent_id: Parent to start from

    Returns:
        Nodes at the requested level, each with its `children` filled in
    """
    if not items:
        return []

    children = _group_by_parent(items)
    nodes = _build_level(children, parent_id, 0, set())

    if parent_id is None:
        dropped = find_unreachable_items(items)
        if dropped:
            logger.warning(
                "Dropped %d service item(s) not attached to a root: %s",
                len(dropped),
                ", ".join(str(i) for i in dropped),
            )
    return nodes


def transform_service_to_hierarchical(
    service: Service, items: Optional[Sequence[ServiceItem]]
) -> HierarchicalService:
    """Wrap a service and its flat items into the hierarchical pricing view."""
    return HierarchicalService(
        id=service.id,
        name=service.name,
        description=service.description or "",
        base_price=service_price(service),
        items=build_service_hierarchy(items, None) if items else [],
    )
