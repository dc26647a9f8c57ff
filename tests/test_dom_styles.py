from darkmode.dom.styles import parse_declarations, parse_px, parse_stylesheet

from factories import make_document


def test_parse_declarations_handles_important_and_comments():
    decls = parse_declarations("color: red; /* note */ min-height: 100vh !important; broken; :x")
    assert [(d.prop, d.value, d.important) for d in decls] == [
        ("color", "red", False),
        ("min-height", "100vh", True),
    ]


def test_background_shorthand_is_expanded():
    decls = {d.prop: d.value for d in parse_declarations("background: #fff url(hero.jpg) no-repeat")}
    assert decls == {"background-image": "url(hero.jpg)", "background-color": "#fff"}
    plain = {d.prop: d.value for d in parse_declarations("background: rgb(1, 2, 3)")}
    assert plain == {"background-image": "none", "background-color": "rgb(1, 2, 3)"}


def test_stylesheet_skips_at_rules_and_keeps_is_lists():
    rules = parse_stylesheet(
        "@media print { body { color: red } }\n"
        "html, :is(img, video) { filter: none }\n"
        "p {}"
    )
    assert len(rules) == 1
    assert rules[0].selectors == ("html", ":is(img, video)")


def test_parse_px():
    assert parse_px("48px") == 48.0
    assert parse_px("12") == 12.0
    assert parse_px("50%") is None
    assert parse_px(None) is None


def test_cascade_order_and_importance():
    doc, _ = make_document(
        '<p id="p" style="color: blue">x</p><span id="s" style="color: blue !important">y</span>',
        head="<style>p { color: red } p { color: lime !important } span { color: red !important }</style>",
    )
    assert doc.computed_style(doc.get_element_by_id("p")).color == "rgb(0, 255, 0)"
    assert doc.computed_style(doc.get_element_by_id("s")).color == "rgb(0, 0, 255)"


def test_inheritance_and_initial_values():
    doc, _ = make_document('<div style="visibility: hidden"><em id="e">x</em></div>', head="")
    style = doc.computed_style(doc.get_element_by_id("e"))
    assert style.visibility == "hidden"
    assert style.background_color == "rgba(0, 0, 0, 0)"
    assert style.color == "rgb(0, 0, 0)"
    assert doc.computed_style(doc.head).display == "none"


def test_disabled_sheet_drops_out_of_cascade():
    doc, _ = make_document(head='<style id="theme">body { background-color: #000 }</style>')
    assert doc.computed_style(doc.body).background_color == "rgb(0, 0, 0)"
    doc.get_element_by_id("theme").disabled = True
    assert doc.computed_style(doc.body).background_color == "rgba(0, 0, 0, 0)"


def test_cache_invalidated_by_mutation():
    doc, _ = make_document('<p id="p">x</p>', head="")
    p = doc.get_element_by_id("p")
    assert doc.computed_style(p).display == "block"
    p.style.set_property("display", "none")
    assert doc.computed_style(p).display == "none"


def test_unsupported_selectors_are_skipped():
    doc, _ = make_document('<p id="p">x</p>', head="<style>p::before { color: red } p { color: lime }</style>")
    assert doc.computed_style(doc.get_element_by_id("p")).color == "rgb(0, 255, 0)"


def test_inline_style_editing():
    doc, _ = make_document('<div id="d" style="color: red"></div>')
    style = doc.get_element_by_id("d").style
    style.set_property("min-height", "100vh", "important")
    assert style.get_property("min-height") == "100vh"
    assert style.css_text == "color: red; min-height: 100vh !important"
    assert style.remove_property("color") == "red"
    assert style.remove_property("color") == ""
    style.remove_property("min-height")
    assert not doc.get_element_by_id("d").has_attribute("style")


def test_pseudo_element_selectors_are_dropped_at_parse_time():
    rules = parse_stylesheet("a::before, a { color: red } p:after { color: blue } li::marker {}")
    assert [r.selectors for r in rules] == [("a",)]


def test_unmatchable_selector_is_skipped_when_matching():
    doc, _ = make_document('<p id="p">x</p>', head="")
    resolver = doc.style_resolver
    p = doc.get_element_by_id("p")
    assert resolver._matches(p, ("p::selection", "p")) is True
    assert resolver._matches(p, ("p::selection",)) is False


def test_style_text_is_read_back_from_parsed_and_written_sheets():
    doc, _ = make_document('<p id="p">x</p>', head='<style id="author">p { color: red }</style>')
    assert doc.get_element_by_id("author").text_content == "p { color: red }"
    late = doc.create_element("style")
    late.text_content = "p { color: darkslategray }"
    doc.head.append_child(late)
    assert late.text_content == "p { color: darkslategray }"
    assert doc.computed_style(doc.get_element_by_id("p")).color == "rgb(47, 79, 79)"


def test_sheet_cache_is_bounded_and_releasable():
    from darkmode.dom.styles import SHEET_CACHE_LIMIT

    doc, _ = make_document('<p id="p">x</p>', head="")
    sheet = doc.create_element("style")
    doc.head.append_child(sheet)
    p = doc.get_element_by_id("p")
    for shade in range(SHEET_CACHE_LIMIT + 10):
        sheet.text_content = f"p {{ color: rgb({shade}, 0, 0) }}"
        assert doc.computed_style(p).color == f"rgb({shade}, 0, 0)"
    assert doc.style_resolver.cached_sheets <= SHEET_CACHE_LIMIT
    doc.release_caches()
    assert doc.style_resolver.cached_sheets == 0
    assert doc.computed_style(p).color == f"rgb({SHEET_CACHE_LIMIT + 9}, 0, 0)"
