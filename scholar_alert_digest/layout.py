"""Where paper fields live inside an alert email.

A Layout lists, per field, the structural query that finds it in the parsed
document. Queries of one layout must return their matches in document order
and aligned by position: the i-th title, url, author and abstract belong to
the same paper.
"""
from __future__ import annotations

from dataclasses import dataclass

import soupsieve

from scholar_alert_digest.errors import ExtractionError


@dataclass(frozen=True)
class FieldQuery:
    """CSS selector, optionally followed by a hop to a following sibling.

    With ``sibling`` set, each matched node is replaced by its
    ``position``-th (1-based) following sibling with that tag name, or by
    None if there are not that many.
    """
    selector: str
    attr: str | None = None
    sibling: str | None = None
    position: int = 1

    def select(self, doc):
        try:
            nodes = doc.select(self.selector)
        except soupsieve.SelectorSyntaxError as e:
            raise ExtractionError(f"invalid structural query {self.selector!r}: {e}") from e

        if self.sibling:
            nodes = [self._nth_sibling(node) for node in nodes]
        return [self._value(node) for node in nodes]

    def _nth_sibling(self, node):
        siblings = node.find_next_siblings(self.sibling, limit=self.position)
        if len(siblings) < self.position:
            return None
        return siblings[self.position - 1]

    def _value(self, node):
        if node is None:
            return None
        if self.attr:
            return node.get(self.attr)
        return node.get_text()


@dataclass(frozen=True)
class Layout:
    title: FieldQuery
    url: FieldQuery
    author: FieldQuery | None = None
    abstract: FieldQuery | None = None


# <h3><a href="https://scholar.google.com/scholar_url?url=...">Title</a></h3>
# <div>Authors - Venue, Year</div>
# <div class="gse_alrt_sni">Abstract snippet</div>
SCHOLAR_LAYOUT = Layout(
    title=FieldQuery("h3 > a"),
    url=FieldQuery("h3 > a[href]", attr="href"),
    author=FieldQuery("h3:has(> a)", sibling="div", position=1),
    abstract=FieldQuery("h3:has(> a)", sibling="div", position=2),
)
