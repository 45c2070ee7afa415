"""Aggregation of papers from many alert emails by paper title."""
import logging

from scholar_alert_digest.errors import ExtractionError
from scholar_alert_digest.layout import SCHOLAR_LAYOUT
from scholar_alert_digest.models import Stats
from scholar_alert_digest.parser import extract_papers_from_msg

LOGGER = logging.getLogger(__name__)


def merge_papers(first, second):
    """Returns a copy of first with frequency and refs of second added."""
    merged = first.model_copy(deep=True)
    merged.freq += second.freq
    merged.refs.extend(ref.model_copy() for ref in second.refs)
    return merged


class AggregatedPapers:
    """
    Papers keyed by title. A title seen again only bumps freq and collects
    refs; everything else is kept from the first observation.
    """

    def __init__(self, papers=()):
        self._papers = {}
        for paper in papers:
            self.add(paper)

    def add(self, paper):
        existing = self._papers.get(paper.title)
        if existing is None:
            self._papers[paper.title] = paper.model_copy(deep=True)
        else:
            self._papers[paper.title] = merge_papers(existing, paper)

    def merge(self, other):
        for title in other:
            self.add(other[title])

    def sorted_keys(self):
        """Titles, most frequent first; equal frequencies keep discovery order."""
        # sorted() is stable, dicts keep insertion order
        return sorted(self._papers, key=lambda title: -self._papers[title].freq)

    def sorted_papers(self):
        return [self._papers[title] for title in self.sorted_keys()]

    def total_freq(self):
        return sum(paper.freq for paper in self._papers.values())

    def __getitem__(self, title):
        return self._papers[title]

    def __contains__(self, title):
        return title in self._papers

    def __iter__(self):
        return iter(self._papers)

    def __len__(self):
        return len(self._papers)

    def __repr__(self):
        return f"AggregatedPapers({len(self)} titles)"


def extract_papers_from_msgs(messages, include_authors=False, include_refs=True,
                             layout=SCHOLAR_LAYOUT):
    """
    Extracts papers from every message and aggregates them by title.
    A message that fails extraction is counted in Stats.extraction_errors and
    skipped, it never aborts the batch.
    Returns (Stats, AggregatedPapers).
    """
    messages = list(messages)
    stats = Stats(messages_processed=len(messages))
    aggregated = AggregatedPapers()

    for message in messages:
        try:
            papers = extract_papers_from_msg(message, include_authors=include_authors, layout=layout)
        except ExtractionError as e:
            LOGGER.warning("Failed to extract papers: %s", e)
            stats.extraction_errors += 1
            continue

        stats.titles_extracted += len(papers)
        for paper in papers:
            if not include_refs:
                paper.refs = []
            aggregated.add(paper)

    LOGGER.info(
        "%d messages processed, %d titles extracted (%d unique), %d errors",
        stats.messages_processed, stats.titles_extracted, len(aggregated), stats.extraction_errors,
    )
    return stats, aggregated
