"""Tests for the CSV and PDF export generators."""
import csv
import io
from datetime import datetime

import pdfplumber
import pytest

from app.crm.errors import EmptyInputError
from app.crm.modules.customers.export import CSV_HEADER, export_filename, to_csv, to_pdf
from app.crm.modules.customers.models import CustomerRecord


def _record(i: int, **overrides) -> CustomerRecord:
    ts = datetime(2025, 1, 15, 10, 30, 0)
    data = dict(
        id=i,
        first_name="Jo",
        last_name="Li",
        email=f"cust{i:03d}@example.com",
        phone="555-0101",
        address="1 Main St",
        owner_id=1,
        created_at=ts,
        updated_at=ts,
    )
    data.update(overrides)
    return CustomerRecord(**data)


def _pdf_pages(data: bytes) -> list[str]:
    with pdfplumber.open(io.BytesIO(data)) as pdf:
        return [page.extract_text() or "" for page in pdf.pages]


class TestToCsv:
    def test_empty_input_is_an_error(self):
        with pytest.raises(EmptyInputError):
            to_csv([])

    def test_header_and_rows_in_input_order(self):
        r1 = _record(7, first_name="Ann", last_name="Ng")
        r2 = _record(3, first_name="Bob", last_name="Ek")

        lines = to_csv([r1, r2]).decode("utf-8").splitlines()

        assert lines[0] == "ID,First Name,Last Name,Email,Phone,Address,Date Created"
        assert lines[1] == "7,Ann,Ng,cust007@example.com,555-0101,1 Main St,2025-01-15 10:30:00"
        assert lines[2] == "3,Bob,Ek,cust003@example.com,555-0101,1 Main St,2025-01-15 10:30:00"
        assert len(lines) == 3

    def test_special_characters_are_quoted(self):
        r = _record(1, address='Unit 2, "The Mill"\nRiver Rd', last_name="O'Neil")

        rows = list(csv.reader(io.StringIO(to_csv([r]).decode("utf-8"))))

        assert rows[0] == CSV_HEADER
        assert rows[1][5] == 'Unit 2, "The Mill"\nRiver Rd'
        assert rows[1][2] == "O'Neil"
        assert b'"Unit 2, ""The Mill""' in to_csv([r])

    def test_non_ascii_is_utf8(self):
        r = _record(1, first_name="Zoë", address="Straße 5")
        assert "Zoë".encode("utf-8") in to_csv([r])


class TestToPdf:
    def test_empty_input_renders_zero_total(self):
        data = to_pdf([])

        assert data.startswith(b"%PDF")
        pages = _pdf_pages(data)
        assert len(pages) == 1
        assert "Customer List" in pages[0]
        assert "Total Customers: 0" in pages[0]

    def test_single_page_layout(self):
        data = to_pdf([_record(1), _record(2)], generated_at=datetime(2025, 2, 1, 8, 0, 0))
        text = _pdf_pages(data)[0]

        assert "Generated on: 2025-02-01 08:00:00 UTC" in text
        for title in ("ID", "Name", "Email", "Phone"):
            assert title in text
        assert "Jo Li" in text
        assert "Total Customers: 2" in text

    def test_eighteen_rows_fit_on_first_page(self):
        assert len(_pdf_pages(to_pdf([_record(i) for i in range(1, 19)]))) == 1

    def test_overflow_spans_pages_with_every_record_once(self):
        records = [_record(i) for i in range(1, 46)]

        pages = _pdf_pages(to_pdf(records))

        assert len(pages) > 1
        text = "\n".join(pages)
        for r in records:
            assert text.count(r.email) == 1
        assert text.count("Total Customers: 45") == 1
        assert "Total Customers: 45" in pages[-1]
        # Continuation pages carry no repeated header.
        assert "Customer List" not in pages[1]

    def test_long_values_are_clipped_to_column(self):
        r = _record(1, email="a-very-long-mailbox-name-that-overflows@some-long-domain.example.com")
        text = _pdf_pages(to_pdf([r]))[0]
        assert "a-very-long-mailbox" in text
        assert "some-long-domain.example.com" not in text

    def test_calls_are_independent(self):
        a = to_pdf([_record(1)], generated_at=datetime(2025, 1, 1))
        b = to_pdf([_record(2)], generated_at=datetime(2025, 1, 1))
        assert "cust001@example.com" in _pdf_pages(a)[0]
        assert "cust001@example.com" not in _pdf_pages(b)[0]


def test_export_filename_pattern():
    assert export_filename("csv", datetime(2025, 3, 4, 5, 6, 7)) == "customers_20250304050607.csv"
    assert export_filename("pdf").startswith("customers_")
    assert export_filename("pdf").endswith(".pdf")
