"""Vendor report decoder.

Turns one ``GenerateReport`` response page into ``RawTargetRecord`` values.

Expected XML structure (namespaces omitted)::

    <Envelope>
      <Body>
        <GenerateReportResponse>
          <GenerateReportResult>
            <DataRows>
              <ReportResults>
                <Rows>
                  <ReportResultData><Value>0</Value></ReportResultData>
                  <ReportResultData><Value i:nil="true"/></ReportResultData>
                  ...
                </Rows>
              </ReportResults>
              ...
            </DataRows>
          </GenerateReportResult>
        </GenerateReportResponse>
      </Body>
    </Envelope>

The tokenizer is ElementTree's event-driven ``XMLPullParser``; the
``ReportCursor`` state machine consumes its ``start``/``end`` events and
knows nothing about the tokenizer, so it can be driven directly in tests.
"""

from __future__ import annotations

import codecs
import xml.etree.ElementTree as ET
from typing import List, Optional, Union

from app.core.exceptions import ReportDecodeError
from app.core.logging import get_logger
from app.schemas.subscriber import TARGET_COLUMNS, Origin, RawTargetRecord

logger = get_logger(__name__)

_LATIN1_FALLBACK = "subsync-latin1-fallback"

# UTF-8 text that was decoded as Latin-1/cp1252 and encoded again.
_MOJIBAKE_FIXES: dict[str, str] = {
    "\u00c3\u00a4": "\u00e4",  # ä
    "\u00c3\u00a5": "\u00e5",  # å
    "\u00c3\u00b6": "\u00f6",  # ö
    "\u00c3\u201e": "\u00c4",  # Ä
    "\u00c3\u2026": "\u00c5",  # Å
    "\u00c3\u2013": "\u00d6",  # Ö
    # Same capitals when the bad round trip went through Latin-1, not cp1252
    "\u00c3\u0084": "\u00c4",
    "\u00c3\u0085": "\u00c5",
    "\u00c3\u0096": "\u00d6",
    "\u00c3\u00a9": "\u00e9",  # é
    "\u00c3\u00a1": "\u00e1",  # á
    "\u00c3\u00ad": "\u00ed",  # í
    "\u00c3\u00b3": "\u00f3",  # ó
    "\u00c3\u00ba": "\u00fa",  # ú
    "\u00c3\u00b1": "\u00f1",  # ñ
}


def _latin1_fallback(exc: UnicodeError) -> tuple[str, int]:
    """Codec error handler: reinterpret invalid UTF-8 bytes as Latin-1."""
    if not isinstance(exc, UnicodeDecodeError):
        raise exc
    return exc.object[exc.start : exc.end].decode("latin-1"), exc.end


codecs.register_error(_LATIN1_FALLBACK, _latin1_fallback)


def decode_payload(payload: Union[bytes, str]) -> str:
    """Decode raw page bytes as UTF-8, repairing legacy Latin-1 bytes."""
    if isinstance(payload, bytes):
        text = payload.decode("utf-8", errors=_LATIN1_FALLBACK)
    else:
        text = payload
    return text.lstrip("\ufeff")


def repair_text(value: str) -> str:
    """Replace known double-encoded sequences with the intended letter."""
    if "\u00c3" not in value:
        return value
    for broken, fixed in _MOJIBAKE_FIXES.items():
        value = value.replace(broken, fixed)
    return value


def _local_name(tag: str) -> str:
    """Strip a ``{namespace}`` prefix from an ElementTree tag or attribute."""
    return tag.rsplit("}", 1)[-1] if "}" in tag else tag.split(":")[-1]


def _is_nil(elem: ET.Element) -> bool:
    return any(
        _local_name(name) == "nil" and value.strip().lower() == "true"
        for name, value in elem.attrib.items()
    )


class ReportCursor:
    """Parse cursor for one report page.

    Tracks whether we are inside ``DataRows``, a ``ReportResults`` block,
    its ``Rows`` list and a ``Value`` cell, plus the index of the current
    column.  A cursor must not be shared between pages.
    """

    def __init__(self) -> None:
        self.in_data_rows = False
        self.in_block = False
        self.in_rows = False
        self.in_cell = False
        self.cell_is_nil = False
        self.field_index = 0
        self.cell_value: Optional[str] = None
        self.current: Optional[RawTargetRecord] = None
        self.records: List[RawTargetRecord] = []

    def handle(self, event: str, tag: str, elem: ET.Element) -> None:
        """Advance the state machine by one ``(event, tag)`` pair."""
        if event == "start":
            self._on_start(tag, elem)
        elif event == "end":
            self._on_end(tag, elem)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _on_start(self, tag: str, elem: ET.Element) -> None:
        if tag == "DataRows":
            self.in_data_rows = True
        elif tag == "ReportResults" and self.in_data_rows:
            self.in_block = True
            self.current = RawTargetRecord()
        elif tag == "Rows" and self.in_block:
            self.in_rows = True
            self.field_index = 0
        elif tag == "ReportResultData" and self.in_rows:
            self.cell_value = None
        elif tag == "Value" and self.in_rows:
            self.in_cell = True
            self.cell_is_nil = _is_nil(elem)

    def _on_end(self, tag: str, elem: ET.Element) -> None:
        if tag == "Value" and self.in_cell:
            if not self.cell_is_nil:
                text = "".join(elem.itertext())
                self.cell_value = repair_text(text.strip())
            self.in_cell = False
            self.cell_is_nil = False
        elif tag == "ReportResultData" and self.in_rows:
            self._assign(self.cell_value)
            self.field_index += 1
        elif tag == "Rows" and self.in_rows:
            self.in_rows = False
        elif tag == "ReportResults" and self.in_block:
            self._finalize()
            elem.clear()
        elif tag == "DataRows":
            self.in_data_rows = False

    def _assign(self, value: Optional[str]) -> None:
        record = self.current
        if record is None:
            return
        record.raw_fields.append(value)
        if self.field_index < len(TARGET_COLUMNS):
            setattr(record, TARGET_COLUMNS[self.field_index], value)

    def _finalize(self) -> None:
        if self.current is not None:
            self.current.origin = Origin.TARGET
            self.records.append(self.current)
        self.current = None
        self.in_block = False
        self.in_rows = False


class ReportDecoder:
    """Decoder for vendor report pages.

    Malformed XML raises ``ReportDecodeError``; retrying is up to the
    caller, who has to request the page again anyway.
    """

    def decode(
        self, payload: Union[bytes, str], source: str = "page"
    ) -> List[RawTargetRecord]:
        """Decode one complete report page.

        Args:
            payload: Raw response body.
            source: Label used in log and error messages.

        Returns:
            One record per ``<ReportResults>`` block, in document order.
        """
        cursor = ReportCursor()
        parser = ET.XMLPullParser(events=("start", "end"))

        try:
            parser.feed(decode_payload(payload))
            self._drain(parser, cursor)
            parser.close()
            self._drain(parser, cursor)
        except ET.ParseError as exc:
            logger.error("Failed to parse report %s: %s", source, exc)
            raise ReportDecodeError(f"Malformed report {source}: {exc}") from exc

        logger.debug(
            "Report decode complete for %s: %d records", source, len(cursor.records)
        )
        return cursor.records

    @staticmethod
    def _drain(parser: ET.XMLPullParser, cursor: ReportCursor) -> None:
        for event, elem in parser.read_events():
            cursor.handle(event, _local_name(elem.tag), elem)


def decode_report(payload: Union[bytes, str], source: str = "page") -> List[RawTargetRecord]:
    """Convenience wrapper around a fresh ``ReportDecoder``."""
    return ReportDecoder().decode(payload, source)
