import logging
import re
from urllib.parse import unquote_plus

from bs4 import BeautifulSoup
from bs4.builder import ParserRejectedMarkup

from scholar_alert_digest.errors import ExtractionError, URLResolutionError
from scholar_alert_digest.layout import SCHOLAR_LAYOUT
from scholar_alert_digest.models import Abstract, Paper, Ref
from scholar_alert_digest.subject import find_dash, normalize_and_split

LOGGER = logging.getLogger(__name__)

# TLD may be any run of Unicode letters, e.g. scholar.google.рф
SCHOLAR_URL_PREFIX = re.compile(r"http(s)?://scholar\.google\.[^\W\d_]+/scholar_url\?url=")
_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")

# Abstract first line: up to N runes, or N + LOOKAHEAD if a space is near.
FIRST_LINE_N = 80
FIRST_LINE_LOOKAHEAD = 10


def extract_paper_url(scholar_url):
    """
    Returns the actual paper URL hidden in a Scholar redirect link.
    Tracking parameters after the first '&' are dropped. The URL itself is
    not validated, only unescaped.
    """
    match = SCHOLAR_URL_PREFIX.search(scholar_url or "")
    if match is None:
        raise URLResolutionError(
            f"url {scholar_url!r} does not have prefix {SCHOLAR_URL_PREFIX.pattern!r}"
        )
    long_url = scholar_url[match.end():].split("&", 1)[0]

    if _BAD_ESCAPE.search(long_url):
        raise URLResolutionError(f"invalid percent-escape in {long_url!r}")
    try:
        return unquote_plus(long_url, errors="strict")
    except UnicodeDecodeError as e:
        raise URLResolutionError(f"can not unescape {long_url!r}: {e}") from e


def separate_first_line(text, n=FIRST_LINE_N, lookahead=FIRST_LINE_LOOKAHEAD):
    """
    Splits text into a short first line and the rest.
    The first line is at most n + lookahead characters long. The cut is made
    on the last whitespace seen, if it is within lookahead of the n-th
    character, otherwise exactly after n + lookahead characters.
    """
    text = text.replace("\n", "")
    if len(text.encode("utf-8")) < n:
        return text, ""

    limit = min(len(text), n + lookahead)
    last_space = None
    for i in range(limit):
        if text[i].isspace():
            last_space = i

    cut = limit
    if last_space is not None and abs(n - last_space) < lookahead:
        cut = last_space + 1
    return text[:cut].rstrip(), text[cut:]


def _starts_word(prev):
    # ASCII letters, digits and '_' continue a word, as do non-ASCII
    # letters and digits; other non-ASCII characters only break on spaces.
    if prev < "\x80":
        return not (prev.isalnum() or prev == "_")
    if prev.isalpha() or prev.isdigit():
        return False
    return prev.isspace()


def capitalize_words(text):
    """'1st o'brien-smith' -> '1st O'Brien-Smith'"""
    chars = []
    prev = " "
    for char in text:
        chars.append(char.upper() if _starts_word(prev) else char)
        prev = char
    return "".join(chars)


def extract_paper_author(publication):
    """'A Smith, B JONES - Journal, 2020' -> 'A Smith, B Jones'"""
    author = publication
    pos = find_dash(publication)
    if pos >= 0:
        author = publication[:pos].rstrip()
    return capitalize_words(author.lower())


def parse_html(body):
    if not body:
        raise ExtractionError("no html body found")
    try:
        return BeautifulSoup(body, "html.parser")
    except ParserRejectedMarkup as e:
        raise ExtractionError(f"malformed HTML body: {e}") from e


def _at(values, i):
    if values is None or i >= len(values) or values[i] is None:
        return ""
    return values[i]


def extract_papers_from_msg(message, include_authors=False, layout=SCHOLAR_LAYOUT):
    """
    Parses the HTML body of a single Google Scholar alert into Papers.
    Raises ExtractionError if the message as a whole can not be processed.
    Papers whose link can not be resolved are skipped.
    """
    subject = message.subject
    src_type = normalize_and_split(subject)
    source = src_type[0] if len(src_type) == 2 else ""

    try:
        doc = parse_html(message.body_html)
    except ExtractionError as e:
        raise ExtractionError(f"message {message.id} ({subject!r}): {e}") from e

    titles = layout.title.select(doc)
    urls = layout.url.select(doc)
    if len(titles) != len(urls):
        raise ExtractionError(
            f"structural mismatch: titles {len(titles)} != {len(urls)} urls in {subject!r}"
        )

    authors = None
    if include_authors and layout.author is not None:
        authors = layout.author.select(doc)
    abstracts = layout.abstract.select(doc) if layout.abstract is not None else None

    papers = []
    for i, raw_title in enumerate(titles):
        title = (raw_title or "").strip()
        if not title:
            LOGGER.debug("Skipping untitled paper #%d in %r", i, subject)
            continue

        try:
            url = extract_paper_url(urls[i])
        except URLResolutionError as e:
            LOGGER.warning("Skipping paper %r in %r: %s", title, subject, e)
            continue

        author = ""
        if authors is not None:
            author = extract_paper_author(_at(authors, i))

        first, rest = separate_first_line(_at(abstracts, i).strip())
        papers.append(Paper(
            title=title,
            url=url,
            author=author,
            abstract=Abstract(first_line=first, rest=rest),
            source=source,
            refs=[Ref(message_id=message.id, source_label=source)],
            freq=1,
        ))
    return papers
