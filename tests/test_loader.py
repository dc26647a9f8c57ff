from darkmode.dom.loader import load_html_file, parse_html, serialize

PAGE = (
    "<!DOCTYPE html><html><head></head><body>"
    '<div id="outer"><template shadowrootmode="open">'
    '<p id="in-outer">a</p><span id="inner-host"><template shadowrootmode="open">'
    '<b id="deep">b</b></template></span>'
    "</template></div>"
    '<template id="plain"><i>kept</i></template>'
    "</body></html>"
)


def test_declarative_shadow_roots_are_hydrated():
    doc = parse_html(PAGE)
    outer = doc.get_element_by_id("outer")
    assert outer.shadow_root is not None
    assert doc.get_element_by_id("in-outer") is None
    inner_host = outer.shadow_root.get_element_by_id("inner-host")
    assert inner_host.shadow_root.get_element_by_id("deep").text_content == "b"
    assert len(doc.shadow_hosts) == 2
    # templates without shadowrootmode stay plain templates
    assert doc.get_element_by_id("plain") is not None


def test_serialize_emits_templates_without_side_effects():
    doc = parse_html(PAGE)
    before = str(doc.soup)
    html = serialize(doc)
    assert html.count('shadowrootmode="open"') == 2
    assert 'id="deep"' in html
    assert str(doc.soup) == before
    again = parse_html(html)
    assert again.get_element_by_id("outer").shadow_root.get_element_by_id("inner-host").shadow_root is not None


def test_load_html_file(tmp_path):
    path = tmp_path / "page.html"
    path.write_text("<p id='x'>hi</p>", encoding="utf-8")
    doc = load_html_file(path, url="https://example.com/")
    assert doc.get_element_by_id("x").text_content == "hi"
    assert doc.hostname == "example.com"
