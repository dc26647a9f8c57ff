"""Document model backed by BeautifulSoup.

Identity-stable element wrappers, a small style cascade, shadow roots and a
mutation observer with scheduler-driven delivery.
"""

from .document import Document, MediaQueryList  # noqa: F401
from .nodes import Element, ShadowRoot  # noqa: F401
from .observer import MutationObserver, MutationRecord  # noqa: F401
from .loader import parse_html, load_html_file, serialize  # noqa: F401
