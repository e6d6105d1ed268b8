#!/usr/bin/env python3
"""
Generate mock data for the subscriber reconciliation engine.

Creates:
  - data/source_subscribers.json      (source subscribers with subscriptions)
  - data/vendor_report_page_NNN.xml   (GenerateReport response pages, 100 rows each)
  - data/discrepancy_manifest.json    (manifest of every planted discrepancy)

The vendor pages contain nil cells, capitalised ``True`` flags and
double-encoded names, like the real report does.

Run with ``--seed-db`` to also insert the source rows into DATABASE_URL.

Reproducible: uses random.seed(42).
"""

from __future__ import annotations

import argparse
import json
import random
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Optional
from xml.sax.saxutils import escape

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
SEED = 42

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = PROJECT_ROOT / "data"

PAGE_SIZE = 100
SUBSCRIBER_COUNT = 240
VENDOR_PAYMENT_METHOD = "vendor"
OTHER_PAYMENT_METHODS = ["card", "invoice", "direct_debit"]

REPORT_NAMESPACE = "urn:uuid:e657a351-ae8c-42c5-b083-ebe5dcda5c0b"
XSI_NAMESPACE = "http://www.w3.org/2001/XMLSchema-instance"

FIRST_NAMES = ["Anna", "Björn", "Maria", "Sören", "Åsa", "Erik", "Linnéa", "Jörgen", "Karin", "Olof"]
LAST_NAMES = ["Andersson", "Öberg", "Lindström", "Nilsson", "Ågren", "Berg", "Sjöström", "Holm"]

DATE_START = datetime(2022, 1, 1)

# How many of each discrepancy to plant
PLANTED = {
    "create": 6,
    "remove": 5,
    "plan_change": 4,
    "reference_update": 3,
    "suspend": 4,
    "cancel": 4,
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _personal_number(rng: random.Random) -> str:
    year = rng.randint(1950, 2003)
    return f"{year}{rng.randint(1, 12):02d}{rng.randint(1, 28):02d}{rng.randint(1000, 9999)}"


def _double_encode(text: str) -> str:
    """What a UTF-8 name looks like after a Latin-1 round trip."""
    return text.encode("utf-8").decode("latin-1")


def _name(rng: random.Random, garble: bool) -> str:
    name = f"{rng.choice(FIRST_NAMES)} {rng.choice(LAST_NAMES)}"
    return _double_encode(name) if garble else name


# ---------------------------------------------------------------------------
# Source side
# ---------------------------------------------------------------------------


def generate_source_subscribers(rng: random.Random) -> list[dict[str, Any]]:
    """Subscribers with a nested subscription, in the source supplier shape."""
    subscribers = []
    seen: set[str] = set()
    for i in range(1, SUBSCRIBER_COUNT + 1):
        pnr = _personal_number(rng)
        while pnr in seen:
            pnr = _personal_number(rng)
        seen.add(pnr)
        start = DATE_START + timedelta(days=rng.randint(0, 700))
        subscribers.append(
            {
                "id": i,
                "personal_number": pnr,
                "subscription": {
                    "id": 1000 + i,
                    "payment_method": VENDOR_PAYMENT_METHOD,
                    "status": "active",
                    "subscription_type": rng.choice(["standard", "standard", "locked"]),
                    "end_date": (start + timedelta(days=365)).date().isoformat(),
                },
            }
        )
    return subscribers


# ---------------------------------------------------------------------------
# Vendor side
# ---------------------------------------------------------------------------


def _vendor_row(
    rng: random.Random,
    customer_ref: int,
    id_number: Optional[str],
    *,
    active: str = "True",
    collections: Optional[int] = 0,
    unpaid: Optional[int] = 0,
) -> list[Optional[str]]:
    reg = DATE_START + timedelta(days=rng.randint(0, 700))
    return [
        None,  # row_number, filled in when paging
        "1",
        str(customer_ref),
        id_number,
        _name(rng, garble=rng.random() < 0.15),
        f"C-{customer_ref}",
        reg.date().isoformat(),
        (reg + timedelta(days=1)).date().isoformat(),
        None if rng.random() < 0.8 else (reg + timedelta(days=365)).date().isoformat(),
        active,
        str(rng.randint(0, 24)),
        None if unpaid is None else str(unpaid),
        None if collections is None else str(collections),
        rng.choice(["Paid", "Paid", "Sent", None]),
    ]


def generate_vendor_rows(
    rng: random.Random, subscribers: list[dict], manifest: dict[str, list]
) -> list[list[Optional[str]]]:
    """Vendor report rows for *subscribers*, with planted discrepancies.

    Mutates *subscribers* where a discrepancy needs a source-side change
    (plan changes switch the payment method).
    """
    pool = list(subscribers)
    rng.shuffle(pool)

    def take(n: int) -> list[dict]:
        taken, pool[:] = pool[:n], pool[n:]
        return taken

    missing = take(PLANTED["create"])
    ref_update = take(PLANTED["reference_update"])
    plan_change = take(PLANTED["plan_change"])
    suspend = [s for s in pool if s["subscription"]["subscription_type"] == "locked"][
        : PLANTED["suspend"]
    ]
    for s in suspend:
        pool.remove(s)
    cancel = [s for s in pool if s["subscription"]["subscription_type"] != "locked"][
        : PLANTED["cancel"]
    ]
    for s in cancel:
        pool.remove(s)

    rows: list[list[Optional[str]]] = []
    for s in missing:
        manifest["create"].append(s["personal_number"])

    for s in ref_update:
        # Vendor holds the customer under the source id but lost the identifier
        rows.append(_vendor_row(rng, s["id"], None))
        manifest["reference_update"].append(s["id"])

    for s in plan_change:
        s["subscription"]["payment_method"] = rng.choice(OTHER_PAYMENT_METHODS)
        rows.append(_vendor_row(rng, 50_000 + s["id"], s["personal_number"], active="True"))
        manifest["plan_change"].append(s["personal_number"])

    for s in suspend:
        rows.append(
            _vendor_row(rng, 50_000 + s["id"], s["personal_number"], collections=rng.randint(2, 5), unpaid=2)
        )
        manifest["suspend"].append(s["personal_number"])

    for s in cancel:
        rows.append(
            _vendor_row(rng, 50_000 + s["id"], s["personal_number"], collections=rng.randint(2, 5), unpaid=1)
        )
        manifest["cancel"].append(s["personal_number"])

    for s in pool:
        collections = rng.choice([0, 0, 0, 1, None])
        unpaid = rng.choice([0, 0, 1, None])
        rows.append(
            _vendor_row(rng, 50_000 + s["id"], s["personal_number"], collections=collections, unpaid=unpaid)
        )

    for _ in range(PLANTED["remove"]):
        pnr = _personal_number(rng)
        rows.append(_vendor_row(rng, rng.randint(90_000, 99_999), pnr, active="false"))
        manifest["remove"].append(pnr)

    rng.shuffle(rows)
    for i, row in enumerate(rows, start=1):
        row[0] = str(i)
    return rows


def render_report_page(rows: list[list[Optional[str]]]) -> str:
    """Render rows as a GenerateReport SOAP response."""
    blocks = []
    for row in rows:
        cells = []
        for value in row:
            if value is None:
                cells.append('<ReportResultData><Value i:nil="true"/></ReportResultData>')
            else:
                cells.append(f"<ReportResultData><Value>{escape(value)}</Value></ReportResultData>")
        blocks.append(f"<ReportResults><Rows>{''.join(cells)}</Rows></ReportResults>")

    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        '<s:Envelope xmlns:s="http://schemas.xmlsoap.org/soap/envelope/">'
        "<s:Body>"
        f'<GenerateReportResponse xmlns="{REPORT_NAMESPACE}">'
        f'<GenerateReportResult xmlns:i="{XSI_NAMESPACE}">'
        f"<DataRows>{''.join(blocks)}</DataRows>"
        "</GenerateReportResult>"
        "</GenerateReportResponse>"
        "</s:Body>"
        "</s:Envelope>"
    )


def paginate(rows: list, page_size: int = PAGE_SIZE) -> list[list]:
    return [rows[i : i + page_size] for i in range(0, len(rows), page_size)]


def generate_dataset(seed: int = SEED) -> dict[str, Any]:
    """Build the whole dataset in memory."""
    rng = random.Random(seed)
    manifest: dict[str, list] = {key: [] for key in PLANTED}
    subscribers = generate_source_subscribers(rng)
    rows = generate_vendor_rows(rng, subscribers, manifest)
    return {"subscribers": subscribers, "vendor_rows": rows, "manifest": manifest}


# ---------------------------------------------------------------------------
# Optional DB seeding
# ---------------------------------------------------------------------------


def add_source_rows(db, subscribers: list[dict]) -> int:
    """Add the source subscribers and their subscriptions to *db* and commit."""
    from app.models.subscriber import Subscriber, Subscription

    for s in subscribers:
        sub = s["subscription"]
        db.add(
            Subscription(
                id=sub["id"],
                payment_method=sub["payment_method"],
                status=sub["status"],
                subscription_type=sub["subscription_type"],
                end_date=datetime.fromisoformat(sub["end_date"]),
            )
        )
        db.add(
            Subscriber(
                id=s["id"],
                personal_number=s["personal_number"],
                subscription_id=sub["id"],
            )
        )
    db.commit()
    return len(subscribers)


def seed_database(subscribers: list[dict]) -> int:
    """Insert the source rows into the configured database."""
    sys.path.insert(0, str(PROJECT_ROOT))
    from app.core.database import Base, SessionLocal, engine

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        return add_source_rows(db, subscribers)
    finally:
        db.close()


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--seed-db", action="store_true", help="insert source rows into the DB")
    args = parser.parse_args()

    DATA_DIR.mkdir(parents=True, exist_ok=True)

    print("=" * 70)
    print("Subscriber Reconciler - Mock Data Generator")
    print(f"Seed: {SEED}")
    print("=" * 70)

    dataset = generate_dataset()

    print("\n[1/3] Writing source subscribers...")
    source_path = DATA_DIR / "source_subscribers.json"
    with open(source_path, "w") as f:
        json.dump(dataset["subscribers"], f, indent=2)
    print(f"  -> {source_path.name}: {len(dataset['subscribers'])} subscribers")

    print("\n[2/3] Writing vendor report pages...")
    pages = paginate(dataset["vendor_rows"])
    for n, page in enumerate(pages):
        page_path = DATA_DIR / f"vendor_report_page_{n:03d}.xml"
        with open(page_path, "w", encoding="utf-8") as f:
            f.write(render_report_page(page))
        print(f"  -> {page_path.name}: {len(page)} rows")

    print("\n[3/3] Writing discrepancy manifest...")
    manifest_path = DATA_DIR / "discrepancy_manifest.json"
    with open(manifest_path, "w") as f:
        json.dump(dataset["manifest"], f, indent=2)

    print("\n" + "=" * 70)
    print("PLANTED DISCREPANCIES")
    print("=" * 70)
    for key, values in dataset["manifest"].items():
        print(f"  {key:<17}: {len(values)}")

    if args.seed_db:
        count = seed_database(dataset["subscribers"])
        print(f"\nSeeded {count} source subscribers into the database")

    print("\nDone!")


if __name__ == "__main__":
    main()
