import asyncio

from darkmode.dom.loader import parse_html
from darkmode.engine.engine import ENGINE_SERVICE_KEY, attach_engine
from darkmode.engine.heuristic import DarkReason
from darkmode.engine.renderer import mount_preboot_guard
from darkmode.engine.state import VisualState
from darkmode.services.event_bus import EngineEvent
from darkmode.services.kv_store import MemoryKeyValueStore
from darkmode.services.persistence import PersistenceLayer
from darkmode.services.scheduler import AsyncioScheduler

from factories import DARK_HEAD, WHITE_HEAD, WHITE_PAGE, enabled_store, make_document, make_engine, run

PENDING = "darkmode-pro-pending"


def test_bootstrap_mounts_pending_guard_for_enabled_site():
    engine, doc, _ = make_engine()
    root = doc.document_element
    assert engine.get_state() is VisualState.PENDING
    assert root.has_class(PENDING)
    assert root.style.get_property("min-height") == "100vh"
    assert doc.get_element_by_id(engine.config.pending_style_id) is not None


def test_white_page_resolves_on_with_mask():
    engine, doc, sched = make_engine()
    assert run(sched, engine.resolve()) is VisualState.RESOLVED_ON
    root = doc.document_element
    assert root.get_attribute("data-darkmode-pro") == "on"
    assert not root.has_class(PENDING)
    assert not root.has_attribute("style")
    assert doc.get_element_by_id(engine.config.pending_style_id) is None
    style = doc.get_element_by_id(engine.config.id)
    assert "invert(1) hue-rotate(180deg)" in style.text_content
    mask = doc.get_element_by_id(engine.config.mask_id)
    assert "background:rgba(0,0,0,0.08)" in mask.style.css_text
    assert engine.last_reason is DarkReason.NOT_DARK
    assert engine.reconciler.active


def test_author_min_height_is_restored():
    engine, doc, sched = make_engine(html_attrs=' style="min-height: 50%"')
    assert doc.document_element.style.get_property("min-height") == "100vh"
    run(sched, engine.resolve())
    assert doc.document_element.style.get_property("min-height") == "50%"


def test_dark_page_resolves_already_dark():
    engine, doc, sched = make_engine(head=DARK_HEAD)
    assert run(sched, engine.resolve()) is VisualState.RESOLVED_ALREADY_DARK
    assert doc.document_element.get_attribute("data-darkmode-pro") == "already-dark"
    assert "invert(1)" not in doc.get_element_by_id(engine.config.id).text_content
    assert not engine.reconciler.active


def test_disabled_site_never_runs_heuristic():
    engine, doc, sched = make_engine(enabled=False)
    assert engine.get_state() is VisualState.DISABLED
    assert run(sched, engine.resolve()) is VisualState.DISABLED
    assert engine.heuristic_runs == 0
    assert doc.get_element_by_id(engine.config.id) is None
    assert not doc.document_element.has_attribute("data-darkmode-pro")


def test_concurrent_resolve_runs_once():
    engine, _, sched = make_engine()

    async def both():
        return await asyncio.gather(engine.resolve(), engine.resolve())

    assert run(sched, both()) == [VisualState.RESOLVED_ON, VisualState.RESOLVED_ON]
    assert engine.heuristic_runs == 1
    assert engine.renderer.render_count == 1
    assert not engine.resolving


def test_resolved_state_is_locked():
    engine, doc, sched = make_engine()
    run(sched, engine.resolve())
    # page turns dark later: still ON until disabled
    late = doc.create_element("style")
    late.text_content = "body { background-color: #111; color: #eee; }"
    doc.head.append_child(late)
    assert run(sched, engine.resolve()) is VisualState.RESOLVED_ON
    assert engine.heuristic_runs == 1


def test_disable_during_resolution_skips_render():
    engine, doc, sched = make_engine()

    async def scenario():
        task = asyncio.ensure_future(engine.resolve())
        await asyncio.sleep(0)
        engine.disable()
        return await task

    assert run(sched, scenario()) is VisualState.DISABLED
    assert engine.heuristic_runs == 0
    assert doc.get_element_by_id(engine.config.id) is None
    assert not doc.document_element.has_class(PENDING)


def test_disable_clears_marks_and_artifacts():
    store = enabled_store()
    engine, doc, sched = make_engine('<div id="bg" style="background-image: url(a.png)"></div>', store=store)
    run(sched, engine.resolve())
    bg = doc.get_element_by_id("bg")
    assert bg.get_attribute("data-dm-bg-fixed") == "true"
    engine.disable()
    assert engine.get_state() is VisualState.DISABLED
    assert not bg.has_attribute("data-dm-bg-fixed")
    for element_id in (engine.config.id, engine.config.mask_id, engine.config.tone_mask_id):
        assert doc.get_element_by_id(element_id) is None
    assert not engine.reconciler.active
    assert PersistenceLayer(store, "www.example.com").load().enabled is False


def test_enable_from_disabled_resolves_and_persists():
    store = MemoryKeyValueStore()
    engine, _, sched = make_engine(store=store)
    run(sched, engine.enable())
    assert engine.get_state() is VisualState.RESOLVED_ON
    assert PersistenceLayer(store, "example.com").load().enabled is True


def test_enable_when_resolved_rerenders_without_heuristic():
    engine, _, sched = make_engine()
    run(sched, engine.resolve())
    run(sched, engine.enable())
    assert engine.heuristic_runs == 1
    assert engine.renderer.render_count == 2


def test_toggle_round_trip():
    engine, doc, sched = make_engine()
    run(sched, engine.resolve())
    run(sched, engine.toggle())
    assert engine.get_state() is VisualState.DISABLED
    run(sched, engine.toggle())
    assert engine.get_state() is VisualState.RESOLVED_ON
    assert engine.heuristic_runs == 2


def test_update_with_video_suppresses_tone():
    engine, doc, sched = make_engine('<video width="640" height="360"></video>')
    run(sched, engine.resolve())
    snapshot = engine.update({"sepia": 50})
    assert snapshot.sepia == 50
    assert doc.get_element_by_id(engine.config.tone_mask_id) is None
    assert "contrast(" not in doc.get_element_by_id(engine.config.id).text_content


def test_update_without_video_shows_tone():
    engine, doc, sched = make_engine()
    run(sched, engine.resolve())
    engine.update({"sepia": 50, "enabled": False})
    tone = doc.get_element_by_id(engine.config.tone_mask_id)
    assert "background:rgba(255,214,170,0.12)" in tone.style.css_text
    assert engine.is_enabled() is True


def test_update_while_disabled_only_persists():
    store = MemoryKeyValueStore()
    engine, doc, _ = make_engine(store=store)
    snapshot = engine.update({"brightness": 70})
    assert snapshot.state == "off"
    assert doc.get_element_by_id(engine.config.mask_id) is None
    assert PersistenceLayer(store, "example.com").load().brightness == 70


def test_reset_returns_defaults_and_disables():
    engine, doc, sched = make_engine()
    run(sched, engine.resolve())
    engine.update({"contrast": 150})
    snapshot = engine.reset()
    assert snapshot.to_dict() == {
        "enabled": False,
        "brightness": 92,
        "contrast": 95,
        "sepia": 12,
        "grayscale": 0,
        "state": "off",
    }
    assert doc.get_element_by_id(engine.config.id) is None


def test_events_published():
    engine, _, sched = make_engine(enabled=False)
    seen = []
    engine.bus.subscribe(EngineEvent.STATE_CHANGED, lambda evt: seen.append(evt.payload))
    rendered = []
    engine.bus.subscribe(EngineEvent.RENDERED, lambda evt: rendered.append(evt.payload["state"]))
    run(sched, engine.enable())
    assert seen == [{"from": "off", "to": "pending"}, {"from": "pending", "to": "on"}]
    assert rendered[-1] == "on"


def test_attach_engine_is_idempotent_until_destroyed():
    doc, sched = make_document()
    first = attach_engine(doc, MemoryKeyValueStore(), scheduler=sched)
    assert attach_engine(doc, scheduler=sched) is first
    assert doc.services.get(ENGINE_SERVICE_KEY) is first
    first.destroy()
    assert doc.services.try_get(ENGINE_SERVICE_KEY) is None
    assert attach_engine(doc, scheduler=sched) is not first


def test_preboot_guard_is_replaced_on_resolve():
    store = MemoryKeyValueStore({"darkmode_pro_cache_example.com": '{"enabled": true}'})
    doc, sched = make_document()
    assert mount_preboot_guard(doc, PersistenceLayer(store, doc.hostname)) is True
    assert doc.get_element_by_id("darkmode-pro-preboot") is not None
    engine = attach_engine(doc, store, scheduler=sched)
    assert engine.get_state() is VisualState.PENDING
    run(sched, engine.resolve())
    assert doc.get_element_by_id("darkmode-pro-preboot") is None
    assert not doc.document_element.has_attribute("style")


def test_preboot_guard_skipped_for_disabled_site():
    doc, _ = make_document()
    assert mount_preboot_guard(doc, PersistenceLayer(MemoryKeyValueStore(), doc.hostname)) is False
    assert not doc.document_element.has_class(PENDING)


def test_document_still_loading_delays_resolution():
    engine, doc, sched = make_engine(ready_state="loading")

    async def scenario():
        task = asyncio.ensure_future(engine.resolve())
        for _ in range(5):
            await asyncio.sleep(0)
        assert not task.done()
        doc.set_ready_state("interactive")
        return await task

    assert run(sched, scenario()) is VisualState.RESOLVED_ON


def test_dark_page_with_pseudo_element_rules_stays_untouched():
    head = "<style>a::before { content: '' } body { background-color: #111; color: #eee }</style>"
    engine, doc, sched = make_engine(head=head)
    assert run(sched, engine.resolve()) is VisualState.RESOLVED_ALREADY_DARK
    assert engine.last_reason is DarkReason.DARK_BACKGROUND


def test_injected_sheet_reaches_the_cascade():
    engine, doc, sched = make_engine()
    run(sched, engine.resolve())
    root_style = doc.computed_style(doc.document_element)
    assert "invert(1)" in root_style.get_property_value("filter")
    assert root_style.background_color == "rgb(255, 255, 255)"


def test_bootstrap_after_resolution_does_not_remount_guard():
    engine, doc, sched = make_engine()
    run(sched, engine.resolve())
    engine.bootstrap()
    assert engine.get_state() is VisualState.RESOLVED_ON
    assert not doc.document_element.has_class(PENDING)
    assert doc.get_element_by_id(engine.config.pending_style_id) is None
    assert "invert(1)" in doc.computed_style(doc.document_element).get_property_value("filter")


def test_destroy_during_resolution_returns_state_to_waiters():
    engine, doc, sched = make_engine()

    async def scenario():
        waiters = [asyncio.ensure_future(engine.resolve()) for _ in range(2)]
        await asyncio.sleep(0)
        engine.destroy()
        return await asyncio.gather(*waiters)

    assert run(sched, scenario()) == [VisualState.DISABLED, VisualState.DISABLED]
    assert engine.heuristic_runs == 0
    assert not engine.resolving
    assert doc.get_element_by_id(engine.config.id) is None
    assert not doc.document_element.has_class(PENDING)


def test_update_after_event_loop_closed_defers_callbacks():
    doc = parse_html(
        f"<html><head>{WHITE_HEAD}</head><body>{WHITE_PAGE}</body></html>", url="https://example.com/"
    )
    engine = attach_engine(doc, enabled_store())
    assert isinstance(engine.scheduler, AsyncioScheduler)
    assert asyncio.run(engine.resolve()) is VisualState.RESOLVED_ON

    snapshot = engine.update({"sepia": 50})
    assert snapshot.sepia == 50
    assert engine.scheduler.parked() >= 1

    late = doc.create_element("div", {"style": "background-image: url(late.png)"})

    async def next_session():
        doc.body.append_child(late)
        await engine.scheduler.sleep(150)

    asyncio.run(next_session())
    assert engine.scheduler.parked() == 0
    assert late.get_attribute("data-dm-bg-fixed") == "true"
