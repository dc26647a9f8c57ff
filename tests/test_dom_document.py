import pytest

from darkmode.dom.document import DARK_SCHEME_QUERY
from darkmode.dom.loader import parse_html

from factories import make_document


def test_skeleton_is_completed_for_fragments():
    doc = parse_html("<p>bare</p>", url="https://Sub.Example.com:8443/x")
    assert doc.head.tag_name == "head"
    assert doc.body.query_selector("p").text_content == "bare"
    assert doc.hostname == "sub.example.com"
    assert doc.origin == "https://sub.example.com:8443"
    assert parse_html("<p></p>").origin == "null"


def test_wrappers_are_identity_stable():
    doc, _ = make_document("<img><img>")
    first, second = doc.query_selector_all("img")
    assert first is not second
    assert first != second
    assert doc.query_selector("img") is first
    assert len({first, second}) == 2


def test_create_append_remove_records_mutations():
    doc, _ = make_document()
    seen = []
    observer = doc.create_mutation_observer(lambda records, _obs: seen.extend(records))
    observer.observe(doc.document_element, child_list=True, subtree=True, attribute_filter=("class",))
    el = doc.create_element("div", {"class": "a b", "id": "new"})
    assert el.class_list == ["a", "b"]
    assert not el.is_connected
    doc.body.append_child(el)
    el.set_attribute("title", "ignored")
    el.add_class("c")
    el.remove()
    assert doc.flush_mutations() == 1
    assert [r.type for r in seen] == ["childList", "attributes", "childList"]
    assert seen[0].added_nodes == (el,)
    assert seen[1].old_value == "a b"
    assert seen[2].removed_nodes == (el,)
    assert doc.flush_mutations() == 0


def test_observer_batches_through_scheduler():
    doc, sched = make_document()
    batches = []
    observer = doc.create_mutation_observer(lambda records, _obs: batches.append(len(records)))
    observer.observe(doc.body, child_list=True)
    for _ in range(3):
        doc.body.append_child(doc.create_element("span"))
    assert batches == []
    sched.advance(0)
    assert batches == [3]
    observer.disconnect()
    doc.body.append_child(doc.create_element("span"))
    sched.run_until_idle()
    assert batches == [3]


def test_observe_requires_a_kind():
    doc, _ = make_document()
    observer = doc.create_mutation_observer(lambda *_: None)
    with pytest.raises(TypeError):
        observer.observe(doc.body)


def test_bounding_size_rules():
    doc, _ = make_document(
        '<video id="v"></video><canvas id="c" width="64" style="height: 32px"></canvas>'
        '<img id="i"><div id="gone" style="display: none"><video id="inner"></video></div>'
    )
    assert doc.bounding_size(doc.get_element_by_id("v")) == (300.0, 150.0)
    assert doc.bounding_size(doc.get_element_by_id("c")) == (64.0, 32.0)
    assert doc.bounding_size(doc.get_element_by_id("i")) == (0.0, 0.0)
    assert doc.bounding_size(doc.get_element_by_id("gone")) == (0.0, 0.0)
    detached = doc.create_element("video")
    assert doc.bounding_size(detached) == (0.0, 0.0)


def test_ready_state_callbacks():
    doc, sched = make_document(ready_state="loading")
    calls = []
    doc.on_ready(lambda: calls.append("late"))
    assert calls == []
    doc.set_ready_state("interactive")
    assert calls == ["late"]
    doc.on_ready(lambda: calls.append("soon"))
    sched.advance(0)
    assert calls == ["late", "soon"]


def test_prefers_dark_media_query():
    doc, _ = make_document()
    query = doc.match_media("(prefers-color-scheme:  DARK)")
    assert query is doc.match_media(DARK_SCHEME_QUERY)
    assert query.matches is False
    changes = []
    query.add_listener(lambda q: changes.append(q.matches))
    doc.set_prefers_dark(True)
    doc.set_prefers_dark(True)
    assert changes == [True]
    assert doc.match_media("(min-width: 600px)").matches is False


def test_shadow_roots_are_encapsulated():
    doc, _ = make_document('<div id="host"></div>')
    host = doc.get_element_by_id("host")
    shadow = host.attach_shadow()
    assert host.attach_shadow() is shadow
    inner = shadow.append_child(doc.create_element("p", {"id": "inner"}))
    assert doc.get_element_by_id("inner") is None
    assert shadow.get_element_by_id("inner") is inner
    assert inner.is_connected
    assert inner.root_node() is shadow
    assert inner.style_parent is host
    assert doc.shadow_hosts == [host]


def test_wrappers_keep_identity_while_held_and_are_released_after():
    import gc

    doc, _ = make_document("".join(f"<p>{i}</p>" for i in range(40)), head="")
    first = doc.query_selector("p")
    assert doc.query_selector_all("p")[0] is first
    gc.collect()
    baseline = doc.wrapper_count
    paragraphs = doc.query_selector_all("p")
    assert doc.wrapper_count == baseline + 39
    del paragraphs
    gc.collect()
    assert doc.wrapper_count == baseline
    assert doc.query_selector("p") is first


def test_disabled_flag_survives_dropped_wrapper():
    import gc

    doc, _ = make_document(head='<style id="theme">body { background-color: #000 }</style>')
    doc.get_element_by_id("theme").disabled = True
    gc.collect()
    assert doc.get_element_by_id("theme").disabled is True
    doc.get_element_by_id("theme").disabled = False
    assert doc.computed_style(doc.body).background_color == "rgb(0, 0, 0)"
