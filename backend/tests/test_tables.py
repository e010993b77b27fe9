from backend.app.services.models import Table, Zone
from backend.app.services.tables import ById, ByName, ByNumber, FloorPlan, TableResolver, parse_table_ref


def test_parse_table_ref_tags_numbers_and_ids():
    assert parse_table_ref("12") == ByNumber(12, "12")
    assert parse_table_ref(7) == ByNumber(7, "7")
    assert parse_table_ref(" t5 ") == ById("t5")
    assert parse_table_ref(ByName("Window")) == ByName("Window")


def test_exact_id_in_zone(resolver):
    assert resolver.resolve("t6", "main").id == "t6"


def test_display_number_in_zone(resolver):
    assert resolver.resolve("5", "main").id == "t5"
    assert resolver.resolve(2, "patio").id == "p2"


def test_unknown_reference_resolves_to_none(resolver):
    assert resolver.resolve("gone", "main") is None
    assert resolver.resolve("99", "main") is None


def test_stale_id_is_rematched_by_number_in_target_zone():
    # Same table saved under a previous layout snapshot with a different id.
    plan = FloorPlan.from_tables(
        [
            Table(id="old-5", number=5, zone_id="archive"),
            Table(id="new-5", number=5, zone_id="main"),
        ]
    )
    assert TableResolver(plan).resolve("old-5", "main").id == "new-5"


def test_rematch_by_name_when_number_differs():
    plan = FloorPlan.from_tables(
        [
            Table(id="old-bar", number=40, name="Bar", zone_id="archive"),
            Table(id="bar", number=41, name="Bar", zone_id="main"),
        ]
    )
    resolver = TableResolver(plan)
    assert resolver.resolve("old-bar", "main").id == "bar"
    assert resolver.resolve(ByName("Bar"), "main").id == "bar"


def test_blank_name_is_never_matched():
    plan = FloorPlan.from_tables(
        [
            Table(id="x", number=None, name="  ", zone_id="archive"),
            Table(id="y", number=None, name="  ", zone_id="main"),
        ]
    )
    assert TableResolver(plan).resolve("x", "main") is None


def test_number_retry_reads_fresh_zone_tables():
    plan = FloorPlan.from_tables([Table(id="t1", number=1, zone_id="main")])
    fresh = [Table(id="t9", number=9, zone_id="main")]
    resolver = TableResolver(plan, refresh=lambda zone_id: fresh)

    assert resolver.resolve("9", "main") is None
    assert resolver.resolve("9", "main", zone_hint="main").id == "t9"
    assert resolver.resolve("9", "main", zone_hint="patio") is None


def test_candidate_resolution_falls_back_to_any_zone(resolver):
    assert resolver.resolve_for_candidate("p1", "main").id == "p1"
    assert resolver.resolve_for_candidate("6", None).id == "t6"


def test_floor_plan_dedupes_snapshot_tables():
    plan = FloorPlan()
    plan.add_tables("main", [Table(id="a", number=2, zone_id="main"), Table(id="b", number=1, zone_id="main")])
    plan.add_tables("main", [Table(id="a", number=2, zone_id="main")])
    assert [t.id for t in plan.sorted_tables("main")] == ["b", "a"]
    assert plan.zone_ids() == ["main"]


def test_table_label_prefers_name():
    assert FloorPlan.label(Table(id="t7", number=7, name="Window", zone_id="main")) == "Window"
    assert Table(id="t5", number=5, zone_id="main").label == "5"
    assert Table(id="t0", zone_id="main").label == "t0"


def test_zones_without_metadata_fall_back_to_bare_zone(tables):
    plan = FloorPlan.from_tables(tables, [Zone(id="main", name="Dining room")])
    assert plan.zone("main").name == "Dining room"
    assert plan.zone("patio") == Zone(id="patio")
    assert plan.zone("roof") is None
    assert plan.zone_ids() == ["main", "patio"]
