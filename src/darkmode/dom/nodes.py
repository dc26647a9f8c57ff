"""Identity-based element wrappers over BeautifulSoup tags.

``bs4.Tag`` compares and hashes by markup, so two identical ``<img>`` tags are
"equal". The engine tracks nodes by identity (marked backgrounds, visited
shadow roots), therefore every tag is exposed through exactly one ``Element``
wrapper, cached by the owning ``Document``. Wrappers use default object
identity for ``==`` and ``hash``.

All structural and attribute writes go through the wrapper so the document can
record mutation records and invalidate cached computed styles.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterator, List, Optional, Union

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PreformattedString

from .styles import InlineStyle

if TYPE_CHECKING:  # pragma: no cover
    from .document import Document

__all__ = ["Element", "ShadowRoot", "Node"]


class Element:
    __slots__ = ("_document", "_tag", "shadow_root", "_disabled", "__weakref__")

    def __init__(self, document: "Document", tag: Tag) -> None:
        self._document = document
        self._tag = tag
        self.shadow_root: Optional[ShadowRoot] = None
        self._disabled = False

    def __repr__(self) -> str:  # pragma: no cover - debug aid
        ident = f"#{self.id}" if self.id else ""
        return f"<Element {self.tag_name}{ident}>"

    # Identity -----------------------------------------------------------
    @property
    def tag(self) -> Tag:
        return self._tag

    @property
    def document(self) -> "Document":
        return self._document

    @property
    def tag_name(self) -> str:
        return (self._tag.name or "").lower()

    @property
    def id(self) -> str:
        return self.get_attribute("id") or ""

    # Attributes ---------------------------------------------------------
    def get_attribute(self, name: str) -> Optional[str]:
        value = self._tag.attrs.get(name)
        if value is None:
            return None
        if isinstance(value, list):
            return " ".join(value)
        return str(value)

    def has_attribute(self, name: str) -> bool:
        return name in self._tag.attrs

    def set_attribute(self, name: str, value: str) -> None:
        old = self.get_attribute(name)
        text = str(value)
        if name == "class":
            self._tag[name] = text.split()
        else:
            self._tag[name] = text
        self._document._record_attribute(self, name, old)

    def remove_attribute(self, name: str) -> None:
        if name not in self._tag.attrs:
            return
        old = self.get_attribute(name)
        del self._tag[name]
        self._document._record_attribute(self, name, old)

    @property
    def class_list(self) -> List[str]:
        return (self.get_attribute("class") or "").split()

    def has_class(self, name: str) -> bool:
        return name in self.class_list

    def add_class(self, name: str) -> None:
        classes = self.class_list
        if name not in classes:
            classes.append(name)
            self.set_attribute("class", " ".join(classes))

    def remove_class(self, name: str) -> None:
        classes = self.class_list
        if name in classes:
            classes = [c for c in classes if c != name]
            if classes:
                self.set_attribute("class", " ".join(classes))
            else:
                self.remove_attribute("class")

    @property
    def style(self) -> InlineStyle:
        return InlineStyle(self)

    @property
    def disabled(self) -> bool:
        """Style-sheet disabled flag; only meaningful for ``<style>`` elements."""
        return self._disabled

    @disabled.setter
    def disabled(self, value: bool) -> None:
        if bool(value) != self._disabled:
            self._disabled = bool(value)
            self._document._pin(self, self._disabled)
            self._document._invalidate_styles()

    # Text -----------------------------------------------------------------
    @property
    def text_content(self) -> str:
        # get_text() only yields plain strings; <style> holds Stylesheet and
        # <template> holds TemplateString, comments and doctypes are excluded
        return "".join(
            str(node)
            for node in self._tag.descendants
            if isinstance(node, NavigableString) and not isinstance(node, PreformattedString)
        )

    @text_content.setter
    def text_content(self, value: str) -> None:
        if self.text_content == value:
            return
        removed = [self._document.wrap(t) for t in self._tag.find_all(True, recursive=False)]
        self._tag.clear()
        if value:
            self._tag.string = value
        self._document._record_child_list(self, (), tuple(removed))

    @property
    def inner_text(self) -> str:
        """Rendered text approximation: script and style contents are skipped."""
        parts: List[str] = []
        for text in self._tag.find_all(string=True):
            if isinstance(text, PreformattedString):
                continue
            parent = text.parent
            if parent is not None and parent.name in ("script", "style", "template", "noscript"):
                continue
            parts.append(str(text))
        return " ".join("".join(parts).split())

    # Tree -----------------------------------------------------------------
    @property
    def parent(self) -> Optional["Element"]:
        parent = self._tag.parent
        if parent is None or isinstance(parent, BeautifulSoup):
            return None
        return self._document.wrap(parent)

    @property
    def parent_node(self) -> Optional["Node"]:
        parent = self.parent
        if parent is not None:
            return parent
        if self._tag.parent is not None:
            return self._document._root_node_of_fragment(self._tag.parent)
        return None

    @property
    def style_parent(self) -> Optional["Element"]:
        """Parent for inheritance: the parent element, or the shadow host at a shadow boundary."""
        parent = self.parent
        if parent is not None:
            return parent
        node = self.parent_node
        if isinstance(node, ShadowRoot):
            return node.host
        return None

    @property
    def children(self) -> List["Element"]:
        return [self._document.wrap(t) for t in self._tag.find_all(True, recursive=False)]

    def descendants(self) -> Iterator["Element"]:
        for tag in self._tag.find_all(True):
            yield self._document.wrap(tag)

    def append_child(self, child: "Element") -> "Element":
        self._document._insert(self, child, None)
        return child

    def insert_before(self, child: "Element", reference: Optional["Element"]) -> "Element":
        self._document._insert(self, child, reference)
        return child

    def remove(self) -> None:
        self._document._detach(self)

    def contains(self, other: Optional["Element"]) -> bool:
        if other is None:
            return False
        if other is self:
            return True
        return any(parent is self._tag for parent in other._tag.parents)

    def root_node(self) -> "Node":
        """Owning ``Document`` or ``ShadowRoot``; a detached subtree returns its topmost element."""
        top: Tag = self._tag
        while top.parent is not None:
            top = top.parent
        if isinstance(top, BeautifulSoup):
            return self._document._root_node_of_fragment(top) or self
        return self._document.wrap(top)

    @property
    def is_connected(self) -> bool:
        root = self.root_node()
        if isinstance(root, ShadowRoot):
            return root.host.is_connected
        return root is self._document

    # Selectors --------------------------------------------------------------
    def matches(self, selector: str) -> bool:
        """Raises ``soupsieve.SelectorSyntaxError`` for invalid selectors and
        ``NotImplementedError`` for pseudo-elements, as soupsieve does."""
        return bool(self._tag.css.match(selector))

    def closest(self, selector: str) -> Optional["Element"]:
        node: Optional[Element] = self
        while node is not None:
            if node.matches(selector):
                return node
            node = node.parent
        return None

    def query_selector(self, selector: str) -> Optional["Element"]:
        found = self._tag.select_one(selector)
        return self._document.wrap(found) if found is not None else None

    def query_selector_all(self, selector: str) -> List["Element"]:
        return [self._document.wrap(t) for t in self._tag.select(selector)]

    # Shadow DOM ---------------------------------------------------------------
    def attach_shadow(self) -> "ShadowRoot":
        if self.shadow_root is None:
            self.shadow_root = ShadowRoot(self._document, self)
            self._document._register_shadow_host(self)
        return self.shadow_root


class ShadowRoot:
    """Encapsulated tree attached to a host element.

    Its children live in a private ``BeautifulSoup`` fragment, so neither
    document selectors nor document style sheets reach into it.
    """

    def __init__(self, document: "Document", host: Element) -> None:
        self._document = document
        self.host = host
        self.fragment = BeautifulSoup("", "html.parser")
        document._register_fragment(self.fragment, self)

    def __repr__(self) -> str:  # pragma: no cover - debug aid
        return f"<ShadowRoot host={self.host!r}>"

    @property
    def children(self) -> List[Element]:
        return [self._document.wrap(t) for t in self.fragment.find_all(True, recursive=False)]

    def descendants(self) -> Iterator[Element]:
        for tag in self.fragment.find_all(True):
            yield self._document.wrap(tag)

    def append_child(self, child: Element) -> Element:
        self._document._insert(self, child, None)
        return child

    def get_element_by_id(self, element_id: str) -> Optional[Element]:
        found = self.fragment.find(attrs={"id": element_id})
        return self._document.wrap(found) if isinstance(found, Tag) else None

    def query_selector(self, selector: str) -> Optional[Element]:
        found = self.fragment.select_one(selector)
        return self._document.wrap(found) if found is not None else None

    def query_selector_all(self, selector: str) -> List[Element]:
        return [self._document.wrap(t) for t in self.fragment.select(selector)]

    def contains(self, other: Optional[Element]) -> bool:
        if other is None:
            return False
        return any(parent is self.fragment for parent in other.tag.parents)


Node = Union[Element, ShadowRoot, "Document"]
