"""
Tests for the header-sniffing CSV importer.
"""

from csv_import import (
    ColumnRoles,
    decode_upload,
    infer_columns,
    parse_amount,
    parse_csv,
    split_fields,
)


class TestParseAmount:
    """Leading-number parsing used for imported and submitted amounts."""

    def test_plain_numbers(self):
        assert parse_amount("12.50") == 12.5
        assert parse_amount("-9.00") == -9.0
        assert parse_amount(".5") == 0.5
        assert parse_amount(7) == 7.0

    def test_trailing_text_is_ignored(self):
        assert parse_amount("  42.10 USD") == 42.1
        assert parse_amount("1e3x") == 1000.0

    def test_non_numeric_is_none(self):
        assert parse_amount("abc") is None
        assert parse_amount("$12.00") is None
        assert parse_amount("") is None
        assert parse_amount(None) is None


class TestColumnInference:
    """Header roles come from case-insensitive substring matches."""

    def test_common_headers(self):
        roles = infer_columns(["Date", "Description", "Amount", "Category"])
        assert roles == ColumnRoles(amount=2, description=1, date=0, category=3)

    def test_bank_synonyms(self):
        roles = infer_columns(["Transaction Date", "Payee", "Withdrawal", "Type"])
        assert roles == ColumnRoles(amount=2, description=1, date=0, category=3)

    def test_last_matching_header_wins(self):
        roles = infer_columns(["Posted Date", "Amount", "Transaction Date", "Debit"])
        assert roles.date == 2
        assert roles.amount == 3

    def test_header_can_take_several_roles(self):
        roles = infer_columns(["Date", "Merchant Type", "Amount"])
        assert roles.description == 1
        assert roles.category == 1

    def test_unknown_headers_have_no_role(self):
        assert infer_columns(["Foo", "Bar"]) == ColumnRoles()

    def test_split_strips_whitespace_and_quotes(self):
        assert split_fields(' "Coffee Shop" , 12.50 ,"Dining"\r') == ["Coffee Shop", "12.50", "Dining"]


class TestParseCsv:
    """Row filtering and record construction."""

    def test_single_row(self):
        rows = parse_csv('Date,Description,Amount,Category\n2024-01-05,"Coffee Shop",12.50,Dining\n')
        assert len(rows) == 1
        row = rows[0]
        assert row.amount == 12.5
        assert row.description == "Coffee Shop"
        assert row.date == "2024-01-05"
        assert row.category == "Dining"

    def test_negative_amount_becomes_positive(self):
        rows = parse_csv("Date,Description,Amount\n2024-01-06,Refund,-9.00\n")
        assert rows[0].amount == 9.0

    def test_non_numeric_amount_drops_row(self):
        rows = parse_csv("Date,Description,Amount\n2024-01-06,Mystery,abc\n2024-01-07,Bus,2.75\n")
        assert [r.description for r in rows] == ["Bus"]

    def test_overflowing_amount_drops_row(self):
        rows = parse_csv("Date,Description,Amount\n2024-01-01,Huge,1e999\n2024-01-02,Bus,-1e999\n2024-01-03,Tea,2.00\n")
        assert [r.description for r in rows] == ["Tea"]

    def test_zero_amount_drops_row(self):
        assert parse_csv("Date,Description,Amount\n2024-01-06,Free sample,0.00\n") == []

    def test_short_row_is_skipped(self):
        rows = parse_csv("Date,Description,Amount,Category\n2024-01-05,Coffee,3.00\n2024-01-06,Tea,2.00,Dining\n")
        assert [r.description for r in rows] == ["Tea"]

    def test_missing_description_or_date_drops_row(self):
        text = "Date,Description,Amount\n,Coffee,3.00\n2024-01-05,,3.00\n"
        assert parse_csv(text) == []

    def test_category_defaults(self):
        without_column = parse_csv("Date,Description,Amount\n2024-01-05,Coffee,3.00\n")
        assert without_column[0].category == "Imported"

        empty_cell = parse_csv("Date,Description,Amount,Category\n2024-01-05,Coffee,3.00,\n")
        assert empty_cell[0].category == "Imported"

    def test_no_amount_column_imports_nothing(self):
        assert parse_csv("Date,Description\n2024-01-05,Coffee\n") == []

    def test_blank_lines_and_crlf(self):
        text = "Date,Description,Amount\r\n\r\n2024-01-05,Coffee,3.00\r\n   \r\n"
        rows = parse_csv(text)
        assert len(rows) == 1
        assert rows[0].amount == 3.0

    def test_empty_input(self):
        assert parse_csv("") == []
        assert parse_csv("Date,Description,Amount\n") == []

    def test_decode_drops_bom(self):
        assert decode_upload("\ufeffDate,Amount".encode("utf-8")) == "Date,Amount"
