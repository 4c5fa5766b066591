from __future__ import annotations

import threading
from typing import Callable, Dict, List, Union

import pytest

from filing_monitor.config import Settings
from filing_monitor.fetcher import Fetcher
from filing_monitor.models import FilingCategory
from filing_monitor.notifier import Notification
from filing_monitor.parsers.listing import build_listing_url

CIK = "0001045810"
ARCHIVE = "https://www.sec.gov/Archives/edgar/data/1045810"
NEW_INDEX = f"{ARCHIVE}/000104581024000003/0001045810-24-000003-index.htm"
OLD_INDEX = f"{ARCHIVE}/000104581023000012/0001045810-23-000012-index.htm"
NEW_XML = f"{ARCHIVE}/000104581024000003/information_table.xml"
OLD_XML = f"{ARCHIVE}/000104581023000012/information_table.xml"
G_INDEX = f"{ARCHIVE}/000095017024000101/0000950170-24-000101-index.htm"


class FakeResponse:
    def __init__(self, status_code: int = 200, text: str = "") -> None:
        self.status_code = status_code
        self.text = text


Route = Union[str, FakeResponse, Exception, List[Union[str, FakeResponse, Exception]]]


class FakeSession:
    """Minimal stand-in for ``requests.Session`` serving canned responses."""

    def __init__(self, routes: Dict[str, Route] | None = None) -> None:
        self.routes: Dict[str, Route] = dict(routes or {})
        self.headers: Dict[str, str] = {}
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def get(self, url: str, timeout: float | None = None) -> FakeResponse:
        with self._lock:
            self.calls.append(url)
            route = self.routes.get(url)
            if isinstance(route, list):
                route = route.pop(0) if len(route) > 1 else route[0]
        if route is None:
            return FakeResponse(404, "Not Found")
        if isinstance(route, Exception):
            raise route
        if isinstance(route, str):
            return FakeResponse(200, route)
        return route

    def calls_to(self, url: str) -> int:
        return sum(1 for call in self.calls if call == url)


class RecordingNotifier:
    def __init__(self, error: Exception | None = None) -> None:
        self.sent: List[Notification] = []
        self.error = error

    def send(self, notification: Notification) -> None:
        if self.error is not None:
            raise self.error
        self.sent.append(notification)


def listing_row(category: str, href: str, date: str) -> str:
    return (
        "<tr>"
        f'<td nowrap="nowrap">{category}</td>'
        f'<td nowrap="nowrap"><a href="{href}" id="documentsbutton">&nbsp;Documents</a></td>'
        '<td class="small">Acc-no: 0001045810-24-000003 (34 Act) Size: 12 KB</td>'
        f"<td>{date}</td>"
        '<td><a href="/cgi-bin/browse-edgar?action=getcompany&amp;filenum=028-21283">028-21283</a></td>'
        "</tr>"
    )


def listing_page(*rows: str) -> str:
    return (
        "<html><body>"
        '<table class="tableFile2" summary="Results">'
        "<tr><th>Filings</th><th>Format</th><th>Description</th>"
        "<th>Filing Date</th><th>File/Film Number</th></tr>"
        + "".join(rows)
        + "</table></body></html>"
    )


def relative(url: str) -> str:
    return url.replace("https://www.sec.gov", "")


def rendered_view(xml_url: str) -> str:
    """The stylesheet view the registry links ahead of the raw information table."""

    folder, _, name = xml_url.rpartition("/")
    return f"{folder}/xslForm13F_X02/{name}"


def index_page(xml_url: str | None = None, *, rendered: bool = False) -> str:
    rows = [
        '<tr><td>1</td><td>PRIMARY DOCUMENT</td>'
        '<td><a href="/Archives/edgar/data/1045810/primary_doc.xml">primary_doc.xml</a></td>'
        "<td>13F-HR</td><td>2 KB</td></tr>"
    ]
    if xml_url:
        if rendered:
            rows.append(
                '<tr><td>2</td><td>INFORMATION TABLE</td>'
                f'<td><a href="{relative(rendered_view(xml_url))}">information_table.html</a></td>'
                "<td>INFORMATION TABLE</td><td>&nbsp;</td></tr>"
            )
        rows.append(
            '<tr><td>2</td><td>INFORMATION TABLE</td>'
            f'<td><a href="{relative(xml_url)}">information_table.xml</a></td>'
            "<td>INFORMATION TABLE</td><td>5 KB</td></tr>"
        )
    rows.append(
        '<tr><td>&nbsp;</td><td>Complete submission text file</td>'
        '<td><a href="/Archives/edgar/data/1045810/0001045810-24-000003.txt">'
        "0001045810-24-000003.txt</a></td><td>&nbsp;</td><td>9 KB</td></tr>"
    )
    return (
        '<html><body><table class="tableFile" summary="Document Format Files">'
        "<tr><th>Seq</th><th>Description</th><th>Document</th><th>Type</th><th>Size</th></tr>"
        + "".join(rows)
        + "</table></body></html>"
    )


def info_table(*positions: tuple[str, str, str]) -> str:
    entries = "".join(
        "<infoTable>"
        f"<nameOfIssuer>{name}</nameOfIssuer>"
        "<titleOfClass>COM</titleOfClass>"
        "<cusip>000000000</cusip>"
        f"<value>{value}</value>"
        f"<shrsOrPrnAmt><sshPrnamt>{shares}</sshPrnamt><sshPrnamtType>SH</sshPrnamtType></shrsOrPrnAmt>"
        "<investmentDiscretion>SOLE</investmentDiscretion>"
        "<votingAuthority><Sole>0</Sole><Shared>0</Shared><None>0</None></votingAuthority>"
        "</infoTable>"
        for name, shares, value in positions
    )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<informationTable xmlns="http://www.sec.gov/edgar/document/thirteenf/informationtable">'
        f"{entries}</informationTable>"
    )


def holdings_listing_url(category: FilingCategory = FilingCategory.HOLDINGS_REPORT, count: int = 10) -> str:
    return build_listing_url(CIK, category, count)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        entity_cik=CIK,
        entity_name="NVIDIA",
        user_agent="filing-monitor tests tests@example.com",
        listing_count=10,
        backoff_delay=0.0,
        history_backend="memory",
        run_on_startup=False,
    )


@pytest.fixture
def make_fetcher() -> Callable[..., Fetcher]:
    def _make(session: FakeSession, **kwargs) -> Fetcher:
        kwargs.setdefault("backoff_delay", 0.0)
        kwargs.setdefault("sleep", lambda _delay: None)
        return Fetcher("filing-monitor tests tests@example.com", session=session, **kwargs)

    return _make


@pytest.fixture
def thirteen_f_routes() -> Dict[str, Route]:
    """Two consecutive 13F-HR filings, the newest listed first."""

    return {
        holdings_listing_url(): listing_page(
            listing_row("13F-HR", relative(NEW_INDEX), "2024-02-14"),
            listing_row("13F-HR", relative(OLD_INDEX), "2023-11-14"),
        ),
        NEW_INDEX: index_page(NEW_XML),
        OLD_INDEX: index_page(OLD_XML),
        NEW_XML: info_table(
            ("ARM HOLDINGS PLC", "2000000", "150300000"),
            ("NANO X IMAGING LTD", "1000000", "6400000"),
        ),
        OLD_XML: info_table(
            ("ARM HOLDINGS PLC", "1968000", "147077000"),
            ("SOUNDHOUND AI INC", "1730770", "3669232"),
        ),
    }
