"""
Tests for building the nested pricing tree in `pricing_service/hierarchy.py`.
"""
import logging
import uuid
from decimal import Decimal

from pricing_service.hierarchy import (
    build_service_hierarchy,
    find_unreachable_items,
    transform_service_to_hierarchical,
    would_create_cycle,
)
from pricing_service.models.models import Service, ServiceItem

SERVICE_ID = uuid.uuid4()


def make_item(name, parent_id=None, sort_order=0, is_required=False, level=1, **prices):
    return ServiceItem(
        id=uuid.uuid4(),
        service_id=SERVICE_ID,
        parent_id=parent_id,
        name=name,
        level=level,
        sort_order=sort_order,
        is_required=is_required,
        **prices,
    )


def names(nodes):
    return [n.name for n in nodes]


def flatten(nodes):
    for node in nodes:
        yield node
        yield from flatten(node.children)


def test_basic_care_with_optional_wound_care():
    basic = make_item("Basic Care", sort_order=1, is_required=True, base_price=Decimal("100"))
    wound = make_item(
        "Wound Care", parent_id=basic.id, sort_order=1, level=2, base_price=Decimal("20")
    )

    tree = build_service_hierarchy([basic, wound], None)

    assert len(tree) == 1
    root = tree[0]
    assert root.name == "Basic Care"
    assert root.is_optional is False
    assert root.base_price == 100.0
    assert len(root.children) == 1
    child = root.children[0]
    assert child.name == "Wound Care"
    assert child.is_optional is True
    assert child.base_price == 20.0
    assert child.children == []


def test_empty_list_gives_empty_tree():
    assert build_service_hierarchy([], None) == []


def test_siblings_sorted_by_sort_order_then_name_at_every_level():
    root = make_item("Root", sort_order=0)
    items = [
        make_item("Zeta", sort_order=2),
        root,
        make_item("Beta", sort_order=1),
        make_item("Alpha", sort_order=1),
        make_item("Night shift", parent_id=root.id, sort_order=5),
        make_item("Day shift", parent_id=root.id, sort_order=5),
        make_item("Assessment", parent_id=root.id, sort_order=1),
    ]

    tree = build_service_hierarchy(items, None)

    assert names(tree) == ["Root", "Alpha", "Beta", "Zeta"]
    assert names(tree[0].children) == ["Assessment", "Day shift", "Night shift"]


def test_missing_sort_order_counts_as_zero():
    items = [make_item("B", sort_order=1), make_item("A", sort_order=None)]
    assert names(build_service_hierarchy(items)) == ["A", "B"]


def test_same_input_gives_identical_output():
    root = make_item("Root")
    items = [make_item(f"Child {i}", parent_id=root.id, sort_order=i % 3) for i in range(10)]
    items.append(root)

    first = build_service_hierarchy(items, None)
    second = build_service_hierarchy(list(items), None)

    assert [n.model_dump() for n in first] == [n.model_dump() for n in second]


def test_every_attached_item_appears_exactly_once_with_derived_depth():
    a = make_item("A")
    b = make_item("B", parent_id=a.id)
    c = make_item("C", parent_id=b.id)
    d = make_item("D", parent_id=a.id)
    e = make_item("E")

    nodes = list(flatten(build_service_hierarchy([c, e, d, b, a])))

    assert sorted(n.name for n in nodes) == ["A", "B", "C", "D", "E"]
    depths = {n.name: n.depth for n in nodes}
    assert depths == {"A": 0, "B": 1, "C": 2, "D": 1, "E": 0}


def test_orphans_are_dropped_and_reported(caplog):
    root = make_item("Root")
    orphan = make_item("Orphan", parent_id=uuid.uuid4())
    orphan_child = make_item("Orphan child", parent_id=orphan.id)

    with caplog.at_level(logging.WARNING, logger="pricing-service"):
        tree = build_service_hierarchy([root, orphan, orphan_child], None)

    assert names(flatten(tree)) == ["Root"]
    assert "Dropped 2 service item(s)" in caplog.text
    assert str(orphan.id) in caplog.text


def test_cycle_members_are_dropped():
    root = make_item("Root")
    x = make_item("X")
    y = make_item("Y", parent_id=x.id)
    x.parent_id = y.id

    tree = build_service_hierarchy([root, x, y], None)

    assert names(flatten(tree)) == ["Root"]
    assert set(find_unreachable_items([root, x, y])) == {x.id, y.id}


def test_building_below_a_cycle_member_terminates():
    x = make_item("X")
    y = make_item("Y", parent_id=x.id)
    x.parent_id = y.id

    tree = build_service_hierarchy([x, y], x.id)

    assert names(tree) == ["Y"]
    assert names(tree[0].children) == ["X"]
    assert tree[0].children[0].children == []


def test_building_from_inner_parent():
    root = make_item("Root")
    child = make_item("Child", parent_id=root.id)
    grandchild = make_item("Grandchild", parent_id=child.id)

    tree = build_service_hierarchy([root, child, grandchild], root.id)

    assert names(tree) == ["Child"]
    assert names(tree[0].children) == ["Grandchild"]


def test_price_tier_selection():
    only_monthly = make_item("Monthly", price_monthly=Decimal("1500.00"))
    nothing = make_item("Free")
    daily_wins = make_item("Daily", price_daily=Decimal("80"), price_monthly=Decimal("2000"))
    zero_daily_falls_through = make_item(
        "Zero daily", price_daily=Decimal("0"), price_hourly=Decimal("12.50")
    )

    tree = {n.name: n for n in build_service_hierarchy(
        [only_monthly, nothing, daily_wins, zero_daily_falls_through]
    )}

    assert tree["Monthly"].base_price == 1500.0
    assert tree["Free"].base_price == 0
    assert tree["Daily"].base_price == 80.0
    assert tree["Zero daily"].base_price == 12.5


def test_transform_service_to_hierarchical():
    service = Service(
        id=SERVICE_ID,
        name="AHENEFIE",
        slug="ahenefie",
        description=None,
        base_price_monthly=Decimal("2500"),
    )
    root = make_item("Live-in care", is_required=True)
    extra = make_item("Night visits", parent_id=root.id)

    view = transform_service_to_hierarchical(service, [extra, root])

    assert view.id == SERVICE_ID
    assert view.name == "AHENEFIE"
    assert view.description == ""
    assert view.base_price == 2500.0
    assert names(view.items) == ["Live-in care"]
    assert names(view.items[0].children) == ["Night visits"]

    dumped = view.model_dump(by_alias=True)
    assert dumped["basePrice"] == 2500.0
    assert dumped["items"][0]["isOptional"] is False


def test_transform_service_without_items_or_prices():
    service = Service(id=SERVICE_ID, name="Event cover", slug="event-cover")

    view = transform_service_to_hierarchical(service, None)

    assert view.items == []
    assert view.base_price == 0


def test_would_create_cycle():
    a = make_item("A")
    b = make_item("B", parent_id=a.id)
    c = make_item("C", parent_id=b.id)
    other = make_item("Other")
    items = [a, b, c, other]

    assert would_create_cycle(items, a.id, c.id) is True
    assert would_create_cycle(items, a.id, a.id) is True
    assert would_create_cycle(items, c.id, other.id) is False
    assert would_create_cycle(items, b.id, None) is False
