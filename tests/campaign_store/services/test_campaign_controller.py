from __future__ import annotations

import pytest

from campaign_store.core.data_store import DataStore
from campaign_store.core.event_bus import EventBus, Events
from campaign_store.core.exceptions import FilterSpecError
from campaign_store.core.filter_engine import FilterEngine
from campaign_store.core.indexing import IndexingService
from campaign_store.services.campaign_controller import CampaignController
from campaign_store.services.render_target import InMemoryRenderTarget


def _make_controller(**engine_kwargs):
    bus = EventBus()
    store = DataStore(bus)
    engine = FilterEngine(bus, indexing=IndexingService(bus), **engine_kwargs)
    target = InMemoryRenderTarget()
    controller = CampaignController(bus, store, engine, target, index_fields=["id", "region", "status"])
    return controller, bus, store, target


def _seed(controller):
    controller.load_data(
        [
            {"id": "1", "region": "EMEA", "status": "Planning", "description": "AI webinar"},
            {"id": "2", "region": "APAC", "status": "Planning", "description": "Roadshow"},
            {"id": "3", "region": "EMEA", "status": "Shipped", "description": "AI summit"},
        ]
    )


def _ids(rows):
    return [r["id"] for r in rows]


def test_load_data_pushes_full_set_to_render_target():
    controller, _, _, target = _make_controller()

    _seed(controller)

    assert _ids(target.get_data()) == ["1", "2", "3"]
    assert target.replace_count == 1


def test_apply_filters_returns_and_renders_matching_records():
    controller, _, _, target = _make_controller()
    _seed(controller)

    result = controller.apply_filters({"region": ["EMEA"], "status": ["Planning"]})

    assert _ids(result) == ["1"]
    assert _ids(target.get_data()) == ["1"]


def test_empty_filters_return_full_active_dataset():
    controller, _, store, _ = _make_controller()
    _seed(controller)

    assert controller.apply_filters({}) == store.get_data()


def test_mutations_reapply_last_filter_with_whole_set_replace():
    controller, _, _, target = _make_controller()
    _seed(controller)
    controller.apply_filters({"region": ["EMEA"]})
    replaces = target.replace_count

    added = controller.add_campaign({"region": "EMEA", "status": "Planning"})
    assert _ids(target.get_data()) == ["1", "3", added["id"]]

    controller.add_campaign({"region": "APAC"})
    assert _ids(target.get_data()) == ["1", "3", added["id"]]

    assert controller.update_campaign("2", {"region": "EMEA"}) is True
    assert _ids(target.get_data()) == ["1", "2", "3", added["id"]]

    assert controller.delete_campaign("1") is True
    assert _ids(target.get_data()) == ["2", "3", added["id"]]

    assert controller.restore_campaign("1") is True
    assert _ids(target.get_data()) == ["1", "2", "3", added["id"]]

    # one replace per mutation, never partial patches
    assert target.replace_count == replaces + 5


def test_purge_requires_prior_delete():
    controller, _, store, _ = _make_controller()
    _seed(controller)

    assert controller.purge_campaign("1") is False
    assert controller.delete_campaign("1") is True
    assert controller.purge_campaign("1") is True
    assert "1" not in store
    assert controller.get_deleted_campaigns() == []


def test_unknown_ids_return_false():
    controller, _, _, _ = _make_controller()
    _seed(controller)

    assert controller.update_campaign("nope", {"x": 1}) is False
    assert controller.delete_campaign("nope") is False
    assert controller.restore_campaign("1") is False


def test_data_updated_subscriber_failure_does_not_block_controller():
    controller, bus, _, target = _make_controller()
    _seed(controller)
    received = []

    def broken(_payload):
        raise ValueError("broken chart")

    bus.subscribe(Events.DATA_UPDATED, broken)
    bus.subscribe(Events.DATA_UPDATED, received.append)

    controller.add_campaign({"id": "9", "region": "NA"})

    assert received[-1]["id"] == "9"
    assert "9" in _ids(target.get_data())


def test_ui_filter_changed_event_applies_filters():
    controller, bus, _, target = _make_controller()
    _seed(controller)
    applied = []
    bus.subscribe(Events.FILTER_APPLIED, applied.append)

    bus.publish(Events.UI_FILTER_CHANGED, {"filters": {"region": ["APAC"]}})

    assert _ids(target.get_data()) == ["2"]
    assert applied[-1]["result_count"] == 1
    assert controller.current_filters == {"region": ["APAC"]}


def test_invalid_filter_event_keeps_previous_filters():
    controller, bus, _, target = _make_controller()
    _seed(controller)
    controller.apply_filters({"region": ["APAC"]})

    bus.publish(Events.UI_FILTER_CHANGED, {"filters": {"nonsense": ["x"]}})
    bus.publish(Events.UI_FILTER_CHANGED, {"no_filters": True})

    assert controller.current_filters == {"region": ["APAC"]}
    assert _ids(target.get_data()) == ["2"]


def test_direct_invalid_filters_raise():
    controller, _, _, _ = _make_controller()

    with pytest.raises(FilterSpecError):
        controller.apply_filters({"nonsense": ["x"]})


def test_search_by_description_adds_and_removes_keywords():
    controller, _, _, _ = _make_controller()
    _seed(controller)
    controller.apply_filters({"region": ["EMEA"]})

    assert _ids(controller.search_by_description("  ai  summit ")) == ["3"]
    assert controller.current_filters["descriptionKeyword"] == ["ai", "summit"]

    assert _ids(controller.search_by_description("")) == ["1", "3"]
    assert "descriptionKeyword" not in controller.current_filters


def test_get_unique_values_sorted_and_non_empty():
    controller, _, _, _ = _make_controller()
    controller.load_data([{"region": "EMEA"}, {"region": "APAC"}, {"region": ""}, {"region": None}, {"region": "EMEA"}])

    assert controller.get_unique_values("region") == ["APAC", "EMEA"]


def test_performance_warning_enables_indexes():
    controller, bus, store, _ = _make_controller(warning_threshold_ms=1e-9)
    _seed(controller)
    indexing = controller.engine.indexing

    controller.apply_filters({"region": ["EMEA"]})

    assert controller.get_stats()["index_enabled"] is True
    assert indexing.is_current(store.revision)

    # later mutations trigger a rebuild before the next pass
    controller.add_campaign({"id": "4", "region": "EMEA"})
    assert indexing.is_current(store.revision)
    assert _ids(controller.get_filtered_data()) == ["1", "3", "4"]


def test_change_from_other_source_is_ignored():
    controller, bus, _, target = _make_controller()
    _seed(controller)
    replaces = target.replace_count

    bus.publish(Events.DATA_UPDATED, {"source": "budgets", "action": "update"})

    assert target.replace_count == replaces


def test_chart_refresh_is_requested_after_change():
    controller, bus, _, _ = _make_controller()
    _seed(controller)
    refreshes = []
    bus.subscribe(Events.CHART_REFRESH_NEEDED, refreshes.append)

    controller.delete_campaign("2")

    assert refreshes == [{"source": "campaigns", "reason": "delete"}]


def test_stats_and_close():
    controller, bus, _, _ = _make_controller()
    _seed(controller)
    controller.delete_campaign("1")

    stats = controller.get_stats()
    assert stats["master_count"] == 3
    assert stats["active_count"] == 2
    assert stats["deleted_count"] == 1
    assert stats["has_render_target"] is True
    assert "index_cache" in stats

    controller.close()
    assert bus.subscriber_count(Events.DATA_UPDATED) == 0
    assert bus.subscriber_count(Events.UI_FILTER_CHANGED) == 0


def test_get_data_with_and_without_deleted():
    controller, _, _, _ = _make_controller()
    _seed(controller)
    controller.delete_campaign("2")

    assert _ids(controller.get_data()) == ["1", "3"]
    assert _ids(controller.get_data(include_deleted=True)) == ["1", "2", "3"]


def test_unique_values_are_memoised_per_store_revision():
    controller, _, _, _ = _make_controller()
    _seed(controller)
    indexing = controller.engine.indexing

    first = controller.get_unique_values("region")
    first.append("mutated by caller")
    assert controller.get_unique_values("region") == ["APAC", "EMEA"]

    stats = indexing.get_cache_stats()
    assert stats.hit_count == 1
    assert stats.memoized_size == 1

    controller.add_campaign({"region": "NA"})
    assert controller.get_unique_values("region") == ["APAC", "EMEA", "NA"]
