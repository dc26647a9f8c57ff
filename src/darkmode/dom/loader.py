"""HTML in, HTML out.

``parse_html`` builds a ``Document`` with BeautifulSoup's ``html.parser`` and
hydrates declarative shadow roots (``<template shadowrootmode="open">``) into
real ``ShadowRoot`` objects. ``serialize`` writes the live tree back out,
re-emitting every shadow root as a declarative template so the result can be
loaded again.
"""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import List, Optional, Tuple, Union

from bs4 import BeautifulSoup, Tag

from darkmode.services.scheduler import Scheduler

from .document import Document
from .nodes import Element, ShadowRoot

__all__ = ["parse_html", "load_html_file", "serialize"]

_logger = logging.getLogger(__name__)

_SHADOW_ATTRS = ("shadowrootmode", "shadowroot")


def parse_html(
    markup: str,
    *,
    url: str = "about:blank",
    scheduler: Optional[Scheduler] = None,
    ready_state: str = "complete",
    prefers_dark: bool = False,
) -> Document:
    soup = BeautifulSoup(markup, "html.parser")
    document = Document(
        soup, url=url, scheduler=scheduler, ready_state=ready_state, prefers_dark=prefers_dark
    )
    hydrated = _hydrate(document, soup)
    if hydrated:
        _logger.debug("hydrated %d declarative shadow roots", hydrated)
    return document


def load_html_file(path: Union[str, Path], **kwargs) -> Document:
    text = Path(path).read_text(encoding="utf-8")
    return parse_html(text, **kwargs)


def _hydrate(document: Document, container: Tag) -> int:
    count = 0
    for template in list(container.find_all("template")):
        if template.parent is None:
            continue  # already moved into an outer shadow root
        mode = next((template.get(a) for a in _SHADOW_ATTRS if template.get(a)), None)
        if not mode or isinstance(template.parent, BeautifulSoup):
            continue
        host = document.wrap(template.parent)
        template.extract()
        if host.shadow_root is not None:
            continue
        shadow = host.attach_shadow()
        for child in list(template.contents):
            shadow.fragment.append(child.extract())
        count += 1 + _hydrate(document, shadow.fragment)
    return count


def _shadow_depth(host: Element) -> int:
    depth = 0
    node = host.root_node()
    while isinstance(node, ShadowRoot):
        depth += 1
        node = node.host.root_node()
    return depth


def serialize(document: Document) -> str:
    """Render the document, shadow roots included, without mutating it observably."""
    injected: List[Tuple[Element, Tag]] = []
    hosts = sorted(document.shadow_hosts, key=_shadow_depth, reverse=True)
    try:
        # innermost first so outer copies pick up nested templates
        for host in hosts:
            shadow = host.shadow_root
            if shadow is None:
                continue
            template = document.soup.new_tag("template")
            template["shadowrootmode"] = "open"
            for child in shadow.fragment.contents:
                template.append(copy.copy(child))
            host.tag.insert(0, template)
            injected.append((host, template))
        return str(document.soup)
    finally:
        for _, template in injected:
            template.extract()
