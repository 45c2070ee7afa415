import json
import logging
import os
from datetime import datetime

import mistune
import pandas as pd
from jinja2 import Environment, FileSystemLoader, select_autoescape

from scholar_alert_digest.subject import normalize_and_split

LOGGER = logging.getLogger(__name__)

TEMPLATES_DIR = os.path.join(os.path.dirname(__file__), "templates")
DIGEST_TEMPLATE = "digest.md.j2"
COMPACT_TEMPLATE = "compact.md.j2"
ARCHIVE_TEMPLATE = "archive.md.j2"
PAGE_TEMPLATE = "page.html"

COMPACT_STYLE = """
ul { list-style-type: none; margin: 0; padding: 0 0 0 20px; }
#archive>ul { list-style-type: circle; }
.wide { max-width: 60%; margin-left: 1em; padding: 0.2em 0 0.5em 0; }
"""

FORMATS = ("md", "html", "json", "jsonl")


def mail_anchor(message_id, text):
    return (
        f"<a target='_blank' href='https://mail.google.com/mail/#inbox/{message_id}'>"
        f"{text}</a>"
    )


def md_link_text(text):
    """Escapes brackets, so a title can be used as Markdown link text."""
    return text.replace("[", r"\[").replace("]", r"\]")


def _environment():
    # Markdown templates end with .j2 and are not autoescaped, page.html is.
    env = Environment(
        loader=FileSystemLoader(TEMPLATES_DIR),
        autoescape=select_autoescape(['html', 'xml']),
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["mail_anchor"] = mail_anchor
    env.filters["md_link_text"] = md_link_text
    return env


env = _environment()


def generate_markdown_report(stats, unread, read=None, compact=False):
    """
    Renders the Markdown report: stats and new (unread) papers, followed by an
    archive of old (read) papers, if any were given.
    """
    template = env.get_template(COMPACT_TEMPLATE if compact else DIGEST_TEMPLATE)
    markdown = template.render(
        date=datetime.now().astimezone().isoformat(timespec="seconds"),
        stats=stats,
        papers=unread.sorted_papers(),
    )
    if read is not None:
        markdown += "\n" + env.get_template(ARCHIVE_TEMPLATE).render(papers=read.sorted_papers())
    return markdown


def generate_html_report(stats, unread, read=None, compact=False):
    """Renders the Markdown report to HTML and wraps it in a page."""
    markdown = generate_markdown_report(stats, unread, read, compact=compact)
    # raw HTML in the Markdown (<details>, ref anchors) is kept as is
    body = mistune.create_markdown(escape=False)(markdown)
    return env.get_template(PAGE_TEMPLATE).render(
        title="scholar alert digest",
        style=COMPACT_STYLE if compact else "",
        body=body,
    )


def generate_json_report(stats, unread, read=None):
    LOGGER.debug("formatting papers in JSON")
    report = {
        "stats": stats.model_dump(),
        "unread": [p.to_dict() for p in unread.sorted_papers()],
        "read": [p.to_dict() for p in read.sorted_papers()] if read is not None else [],
    }
    return json.dumps(report, ensure_ascii=False) + "\n"


def generate_jsonl_report(stats, unread, read=None):
    """One paper per line, unread papers first."""
    LOGGER.debug("formatting papers in JSONL")
    papers = unread.sorted_papers()
    if read is not None:
        papers += read.sorted_papers()
    return "".join(json.dumps(p.to_dict(), ensure_ascii=False) + "\n" for p in papers)


def render(fmt, stats, unread, read=None, compact=False):
    """Renders the aggregated papers in one of FORMATS."""
    if fmt == "md":
        return generate_markdown_report(stats, unread, read, compact=compact)
    if fmt == "html":
        return generate_html_report(stats, unread, read, compact=compact)
    if fmt == "json":
        return generate_json_report(stats, unread, read)
    if fmt == "jsonl":
        return generate_jsonl_report(stats, unread, read)
    raise ValueError(f"unsupported report format {fmt!r}, expected one of {', '.join(FORMATS)}")


def save_report(content, report_dir="reports", fmt="md", output_filename_base="scholar_digest_report"):
    """Saves the rendered report to a timestamped file in report_dir."""
    os.makedirs(report_dir, exist_ok=True)
    report_file = os.path.join(
        report_dir,
        f"{output_filename_base}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.{fmt}",
    )
    with open(report_file, 'w', encoding='utf-8') as f:
        f.write(content)
    LOGGER.info("Report saved to: %s", report_file)
    return report_file


def subjects_table(messages):
    """
    Counts messages per (alert type, source), most frequent first.
    Subjects in an unknown format are logged and left out.
    """
    rows = []
    for message in messages:
        src_type = normalize_and_split(message.subject)
        if len(src_type) != 2:
            LOGGER.warning("subject %r can not be split into source and alert type", message.subject)
            continue
        rows.append({"type": src_type[1], "source": src_type[0]})

    df = pd.DataFrame(rows, columns=["type", "source"])
    counts = df.groupby(["type", "source"]).size().reset_index(name="emails")
    counts.sort_values(by=["emails", "type", "source"], ascending=[False, True, True], inplace=True)
    return counts.reset_index(drop=True)
