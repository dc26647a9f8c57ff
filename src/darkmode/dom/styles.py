"""Inline styles, style sheet parsing and the computed-style cascade.

The cascade is deliberately small. It covers the properties the engine reads
(colors, color scheme, background image, display, visibility, box size,
filter) with these rules:

 - Initial values, then inherited values (``color``, ``color-scheme``,
   ``visibility``) from the parent element or the shadow host.
 - Rules from every enabled ``<style>`` element in the element's own tree
   scope (document or shadow root), in source order.
 - Inline declarations after normal rule declarations.
 - ``!important`` rule declarations, then ``!important`` inline ones.

Specificity is not modelled; source order decides between normal rules.
Pseudo-element selectors (``a::before``, legacy ``p:first-line``) style boxes
that do not exist in this model and are dropped when a sheet is parsed.
Selectors soupsieve rejects at match time are skipped.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Iterator, List, Mapping, Optional, Tuple

from soupsieve import SelectorSyntaxError

from darkmode.design.color import normalize_color

if TYPE_CHECKING:  # pragma: no cover
    from .document import Document
    from .nodes import Element

__all__ = [
    "Declaration",
    "StyleRule",
    "InlineStyle",
    "ComputedStyle",
    "StyleResolver",
    "parse_declarations",
    "parse_stylesheet",
]

_logger = logging.getLogger(__name__)

_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)
_URL_RE = re.compile(r"url\([^)]*\)", re.IGNORECASE)
_PX_RE = re.compile(r"^(-?\d+(?:\.\d+)?)(px)?$")
_PSEUDO_ELEMENT_RE = re.compile(
    r"::|:(?:before|after|first-line|first-letter)(?![\w-])", re.IGNORECASE
)

INHERITED = ("color", "color-scheme", "visibility")
INITIAL_VALUES: Dict[str, str] = {
    "background-color": "rgba(0, 0, 0, 0)",
    "background-image": "none",
    "color": "rgb(0, 0, 0)",
    "color-scheme": "normal",
    "display": "block",
    "visibility": "visible",
    "filter": "none",
    "mix-blend-mode": "normal",
}
# distinct sheet texts kept parsed; engine sheets change with every filter update
SHEET_CACHE_LIMIT = 64
HIDDEN_TAGS = frozenset({"head", "style", "script", "template", "title", "meta", "link", "noscript"})
COLOR_PROPERTIES = frozenset({"color", "background-color"})


@dataclass(frozen=True)
class Declaration:
    prop: str
    value: str
    important: bool = False


@dataclass(frozen=True)
class StyleRule:
    selectors: Tuple[str, ...]
    declarations: Tuple[Declaration, ...]


def parse_declarations(text: str) -> List[Declaration]:
    out: List[Declaration] = []
    for chunk in _COMMENT_RE.sub("", text or "").split(";"):
        if ":" not in chunk:
            continue
        prop, value = chunk.split(":", 1)
        prop = prop.strip().lower()
        value = value.strip()
        if not prop or not value:
            continue
        important = False
        lowered = value.lower()
        if lowered.endswith("!important"):
            important = True
            value = value[: -len("!important")].rstrip()
        out.extend(_expand(prop, value, important))
    return out


def _expand(prop: str, value: str, important: bool) -> Iterator[Declaration]:
    if prop != "background":
        yield Declaration(prop, value, important)
        return
    url = _URL_RE.search(value)
    yield Declaration("background-image", url.group(0) if url else "none", important)
    remainder = _URL_RE.sub(" ", value)
    color = next((t for t in _value_tokens(remainder) if normalize_color(t) is not None), "transparent")
    yield Declaration("background-color", color, important)


def _value_tokens(value: str) -> List[str]:
    """Whitespace-separated tokens, keeping ``rgb( ... )`` style groups whole."""
    tokens: List[str] = []
    depth = 0
    buf: List[str] = []
    for ch in value:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth = max(0, depth - 1)
        if (ch.isspace() or ch == ",") and depth == 0:
            if buf:
                tokens.append("".join(buf))
                buf = []
            continue
        buf.append(ch)
    if buf:
        tokens.append("".join(buf))
    return tokens


def _split_rules(source: str) -> Iterator[Tuple[str, str]]:
    depth = 0
    start = 0
    head = ""
    for idx, ch in enumerate(source):
        if ch == "{":
            if depth == 0:
                head = source[start:idx].strip()
                start = idx + 1
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                yield head, source[start:idx]
                start = idx + 1
            elif depth < 0:
                depth = 0
                start = idx + 1
    # trailing unbalanced text is ignored


def parse_stylesheet(text: str) -> List[StyleRule]:
    """Parse top-level rules; at-rule blocks (``@media`` and friends) are skipped."""
    rules: List[StyleRule] = []
    for head, body in _split_rules(_COMMENT_RE.sub("", text or "")):
        if not head or head.startswith("@"):
            continue
        selectors = tuple(_split_selector_list(head))
        decls = tuple(parse_declarations(body))
        if selectors and decls:
            rules.append(StyleRule(selectors, decls))
    return rules


def _split_selector_list(head: str) -> List[str]:
    # commas inside :is(...) must not split the list
    parts: List[str] = []
    depth = 0
    buf: List[str] = []
    for ch in head:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth = max(0, depth - 1)
        if ch == "," and depth == 0:
            parts.append("".join(buf).strip())
            buf = []
            continue
        buf.append(ch)
    if buf:
        parts.append("".join(buf).strip())
    return [p for p in parts if p and not _PSEUDO_ELEMENT_RE.search(p)]


class InlineStyle:
    """View over an element's ``style`` attribute.

    Writes go through ``Element.set_attribute`` so attribute mutations are
    observed exactly as a browser would report them.
    """

    def __init__(self, element: "Element") -> None:
        self._element = element

    def _entries(self) -> Dict[str, Declaration]:
        entries: Dict[str, Declaration] = {}
        for decl in parse_declarations(self._element.get_attribute("style") or ""):
            entries[decl.prop] = decl
        return entries

    @property
    def css_text(self) -> str:
        return self._element.get_attribute("style") or ""

    @css_text.setter
    def css_text(self, value: str) -> None:
        self._element.set_attribute("style", value)

    def get_property(self, prop: str) -> str:
        decl = self._entries().get(prop.lower())
        return decl.value if decl else ""

    def set_property(self, prop: str, value: str, priority: str = "") -> None:
        entries = self._entries()
        entries[prop.lower()] = Declaration(prop.lower(), value, priority == "important")
        self._write(entries)

    def remove_property(self, prop: str) -> str:
        entries = self._entries()
        removed = entries.pop(prop.lower(), None)
        if removed is None:
            return ""
        self._write(entries)
        return removed.value

    def _write(self, entries: Mapping[str, Declaration]) -> None:
        if not entries:
            self._element.remove_attribute("style")
            return
        text = "; ".join(
            f"{d.prop}: {d.value}{' !important' if d.important else ''}" for d in entries.values()
        )
        self._element.set_attribute("style", text)


class ComputedStyle(Mapping[str, str]):
    """Read-only resolved property map."""

    def __init__(self, values: Dict[str, str]) -> None:
        self._values = values

    def __getitem__(self, key: str) -> str:
        return self._values[key]

    def __iter__(self):
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def get_property_value(self, prop: str) -> str:
        return self._values.get(prop, "")

    @property
    def background_color(self) -> str:
        return self._values.get("background-color", INITIAL_VALUES["background-color"])

    @property
    def background_image(self) -> str:
        return self._values.get("background-image", "none")

    @property
    def color(self) -> str:
        return self._values.get("color", INITIAL_VALUES["color"])

    @property
    def color_scheme(self) -> str:
        return self._values.get("color-scheme", "normal")

    @property
    def display(self) -> str:
        return self._values.get("display", "block")

    @property
    def visibility(self) -> str:
        return self._values.get("visibility", "visible")


def parse_px(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    match = _PX_RE.match(value.strip().lower())
    if not match:
        return None
    return float(match.group(1))


class StyleResolver:
    """Computes styles for elements of one document, cached per mutation generation."""

    def __init__(self, document: "Document") -> None:
        self._document = document
        self._sheet_cache: Dict[str, List[StyleRule]] = {}
        self._cache: Dict["Element", ComputedStyle] = {}
        self._generation = -1

    def clear(self) -> None:
        """Forget parsed sheets and computed styles."""
        self._sheet_cache.clear()
        self._cache.clear()
        self._generation = -1

    @property
    def cached_sheets(self) -> int:
        return len(self._sheet_cache)

    def _rules_for(self, element: "Element") -> Iterator[StyleRule]:
        for sheet in self._document.style_sheets_for(element):
            text = sheet.text_content
            rules = self._sheet_cache.get(text)
            if rules is None:
                if len(self._sheet_cache) >= SHEET_CACHE_LIMIT:
                    self._sheet_cache.clear()
                rules = parse_stylesheet(text)
                self._sheet_cache[text] = rules
            yield from rules

    def _matches(self, element: "Element", selectors: Tuple[str, ...]) -> bool:
        for selector in selectors:
            try:
                if element.matches(selector):
                    return True
            except (SelectorSyntaxError, NotImplementedError):
                # NotImplementedError: soupsieve refuses pseudo-elements
                _logger.debug("skipping unsupported selector %r", selector)
        return False

    def compute(self, element: "Element") -> ComputedStyle:
        generation = self._document.style_generation
        if generation != self._generation:
            self._cache.clear()
            self._generation = generation
        cached = self._cache.get(element)
        if cached is not None:
            return cached

        values = dict(INITIAL_VALUES)
        if element.tag_name in HIDDEN_TAGS:
            values["display"] = "none"
        parent = element.style_parent
        if parent is not None:
            parent_style = self.compute(parent)
            for prop in INHERITED:
                values[prop] = parent_style.get_property_value(prop) or values[prop]

        important: List[Declaration] = []
        for rule in self._rules_for(element):
            if not self._matches(element, rule.selectors):
                continue
            for decl in rule.declarations:
                if decl.important:
                    important.append(decl)
                else:
                    values[decl.prop] = decl.value
        inline = parse_declarations(element.get_attribute("style") or "")
        for decl in inline:
            if not decl.important:
                values[decl.prop] = decl.value
        for decl in important + [d for d in inline if d.important]:
            values[decl.prop] = decl.value

        for prop in COLOR_PROPERTIES:
            normalized = normalize_color(values[prop])
            if normalized is not None:
                values[prop] = normalized
        values["color-scheme"] = values["color-scheme"].strip().lower()

        style = ComputedStyle(values)
        self._cache[element] = style
        return style
