from __future__ import annotations

import html
from urllib.parse import quote

import pytest

from scholar_alert_digest.models import Message


def scholar_link(url: str, host: str = "scholar.google.com") -> str:
    """Wraps url into a Scholar redirect link, tracking parameters included."""
    return (
        f"https://{host}/scholar_url?url={quote(url, safe='')}"
        "&hl=en&sa=X&d=1234&scisig=AAGBfm0&oi=scholaralrt"
    )


def alert_html(*entries: dict) -> str:
    """Builds an alert body laid out the way Scholar does it.

    Each entry has title, url and optional authors/snippet; an entry with
    authors=None gets no sibling divs at all.
    """
    items = []
    for entry in entries:
        item = (
            '<h3 style="font-weight:normal;margin:0;font-size:17px;line-height:20px;">'
            f'<a href="{html.escape(entry["url"])}" class="gse_alrt_title">{html.escape(entry["title"])}</a></h3>'
        )
        if entry.get("authors") is not None:
            item += (
                f'<div style="color:#006621;line-height:18px">{html.escape(entry["authors"])}</div>'
                f'<div class="gse_alrt_sni" style="line-height:17px">{html.escape(entry.get("snippet", ""))}</div>'
                '<div style="width:auto"><table><tbody><tr><td>Save</td></tr></tbody></table></div><br>'
            )
        items.append(item)
    return (
        "<!doctype html><html><head></head><body>"
        '<div style="font-family:arial,sans-serif;font-size:13px;">'
        '<h3 style="font-weight:lighter;font-size:18px;line-height:20px;"></h3>'
        + "\n".join(items)
        + "</div></body></html>"
    )


SAMPLE_HTML = """
<!doctype html><html xmlns="http://www.w3.org/1999/xhtml"><head><style>body{background-color:#fff}.gse_alrt_title{text-decoration:none}</style></head><body><div style="font-family:arial,sans-serif;font-size:13px;line-height:16px;color:#222;width:100%;max-width:600px">
<h3 style="font-weight:lighter;font-size:18px;line-height:20px;"></h3><h3 style="font-weight:normal;font-size:18px;line-height:20px;"></h3>

<h3 style="font-weight:normal;margin:0;font-size:17px;line-height:20px;">
    <a href="https://scholar.google.com/scholar_url?url=https://www.sciencedirect.com/science/article/pii/S0021979725012470&amp;hl=zh-CN&amp;sa=X&amp;d=2852679260432743142&amp;oi=scholaralrt&amp;pos=0&amp;folt=rel" class="gse_alrt_title" style="font-size:17px;color:#1a0dab;line-height:22px">
    Importance of local coordination microenvironment in regulating CO2 electroreduction catalyzed by Cr-corrole-based single-atom catalysts
    </a>
</h3>
<div style="color:#006621;line-height:18px">L Yang, B Li, RY Wang, M Yang, YL Tang, HY Wang… - Journal of Colloid and …, 2025</div>
<div class="gse_alrt_sni" style="line-height:17px">
    Single-atom catalysts (SACs) with MN 4 active sites are a promising type of <br>electrocatalyst for CO 2 reduction reactions (CO 2 RR). Here, we designed a novel <br>corrole-based CO 2 RR single-atom catalyst Cr-N 4-Cz with a metal center supported …
</div>
<div style="width:auto"><table cellpadding="0" cellspacing="0" border="0"><tbody><tr><td><!-- share --></td></tr></tbody></table></div><br>

<h3 style="font-weight:normal;margin:0;font-size:17px;line-height:20px;">
    <a href="https://scholar.google.com/scholar_url?url=https://pubs.acs.org/doi/abs/10.1021/jacs.5c05752&amp;hl=zh-CN&amp;sa=X&amp;d=14672776144934924665&amp;oi=scholaralrt&amp;pos=1&amp;folt=rel" class="gse_alrt_title" style="font-size:17px;color:#1a0dab;line-height:22px">
    Single-Atom Ru-Triggered Lattice Oxygen Redox Mechanism for Enhanced Acidic Water Oxidation
    </a>
</h3>
<div style="color:#006621;line-height:18px">M Qi, X Du, X Shi, S Wang, B Lu, J Chen, S Mao… - Journal of the American …, 2025</div>
<div class="gse_alrt_sni" style="line-height:17px">
    Activating the oxygen anionic redox presents a promising avenue for developing <br>highly active oxygen evolution reaction (OER) electrocatalysts for proton-exchange <br>membrane water electrolyzers (PEMWE). Here, we engineered a lattice-confined Ru …
</div>
<div style="width:auto"><table cellpadding="0" cellspacing="0" border="0"><tbody><tr><td><!-- share --></td></tr></tbody></table></div><br>

<h3 style="font-weight:normal;margin:0;font-size:17px;line-height:20px;">
    <span style="font-size:13px;font-weight:normal;color:#1a0dab;vertical-align:2px">[HTML]</span>
    <a href="https://scholar.google.com/scholar_url?url=https://pubs.acs.org/doi/full/10.1021/acscatal.5c01614&amp;hl=zh-CN&amp;sa=X&amp;d=16729684550490019008&amp;oi=scholaralrt&amp;pos=5&amp;folt=rel" class="gse_alrt_title" style="font-size:17px;color:#1a0dab;line-height:22px">
    Ionomer-Modulated Electrochemical Interface Leading to Improved Selectivity and Stability of Cu2O-Derived Catalysts for CO2 Electroreduction
    </a>
</h3>
<div style="color:#006621;line-height:18px">MLJ Peerlings, MET Vink-van Ittersum, JW de Rijk… - ACS Catalysis, 2025</div>
<div class="gse_alrt_sni" style="line-height:17px">
    Copper is an attractive catalyst for the electrochemical reduction of CO2 to high value <br>C2+ products such as ethylene and ethanol. However, the activity, selectivity and <br>stability of Cu-based catalysts must be improved for industrial applications. In this …
</div>

</div></body></html>
"""

SAMPLE_TITLES = [
    "Importance of local coordination microenvironment in regulating CO2 electroreduction "
    "catalyzed by Cr-corrole-based single-atom catalysts",
    "Single-Atom Ru-Triggered Lattice Oxygen Redox Mechanism for Enhanced Acidic Water Oxidation",
    "Ionomer-Modulated Electrochemical Interface Leading to Improved Selectivity and Stability "
    "of Cu2O-Derived Catalysts for CO2 Electroreduction",
]


@pytest.fixture
def sample_message() -> Message:
    return Message(
        id="18f0a1",
        subject="Zhang Wei - new related research",
        body_html=SAMPLE_HTML.encode("utf-8"),
    )


@pytest.fixture
def make_message():
    def _make(message_id: str, *entries: dict, subject: str = "Jane Doe - new articles") -> Message:
        return Message(id=message_id, subject=subject, body_html=alert_html(*entries).encode("utf-8"))
    return _make


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv("SAD_CONFIG", raising=False)
    monkeypatch.delenv("SAD_LABEL", raising=False)
