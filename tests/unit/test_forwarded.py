"""Unit tests for forwarded-content extraction."""

import time

from mailsift.extraction import distinct_sub_messages, extract_forwarded
from mailsift.models import ExtractionStrategy


class TestExtractForwarded:
    """Test suite for extract_forwarded."""

    def test_gmail_forward_found_by_both_strategies(self, forwarded_body: str) -> None:
        """A banner followed by a header block is reported once per strategy."""
        extracted = extract_forwarded(forwarded_body)

        assert {e.strategy for e in extracted} == {
            ExtractionStrategy.HEADER_BLOCK,
            ExtractionStrategy.MARKER,
        }
        for sub in extracted:
            assert sub.from_ == "Bob Partner <bob@partner.org>"
            assert sub.to == "Alice <alice@example.com>"
            assert sub.subject == "Contract draft"
            assert sub.date == "Mon, 6 May 2024 at 10:00"
            assert sub.body is not None and "review the attached contract" in sub.body

    def test_apple_mail_banner_with_cc(self) -> None:
        """Test the 'Begin forwarded message:' banner and a Cc header."""
        body = (
            "FYI\n\n"
            "Begin forwarded message:\n\n"
            "From: Carol <carol@vendor.io>\n"
            "Subject: Invoice\n"
            "Date: May 5, 2024\n"
            "To: billing@example.com\n"
            "Cc: finance@example.com\n\n"
            "Invoice attached.\n"
        )

        marked = [e for e in extract_forwarded(body) if e.strategy is ExtractionStrategy.MARKER]

        assert len(marked) == 1
        assert marked[0].to == "billing@example.com"
        assert marked[0].cc == "finance@example.com"

    def test_outlook_original_message_maps_sent_to_date(self) -> None:
        """Test the Outlook banner and its 'Sent:' header."""
        body = (
            "-----Original Message-----\n"
            "From: Frank <frank@corp.com>\n"
            "Sent: Monday, May 6, 2024 9:00 AM\n"
            "To: grace@example.com\n"
            "Subject: Budget\n\n"
            "Numbers inside.\n"
        )

        marked = [e for e in extract_forwarded(body) if e.strategy is ExtractionStrategy.MARKER]

        assert len(marked) == 1
        assert marked[0].date == "Monday, May 6, 2024 9:00 AM"
        assert marked[0].to == "grace@example.com"

    def test_html_forward_is_flattened(self) -> None:
        """Test that header lines separated by <br> are recognised."""
        body = (
            "<div>---------- Forwarded message ---------<br>"
            "From: <b>Dan</b> &lt;dan@x.org&gt;<br>"
            "Date: Tue, 7 May 2024<br>"
            "Subject: Hi<br>"
            "To: &lt;eve@example.com&gt;<br><br>"
            "Body text here</div>"
        )

        extracted = extract_forwarded(body)

        assert extracted
        assert all(e.to == "<eve@example.com>" for e in extracted)
        assert all(e.from_ == "Dan <dan@x.org>" for e in extracted)

    def test_quoted_header_block(self) -> None:
        """Test header lines prefixed with quote markers."""
        body = "Reply above\n\n> From: a@b.com\n> To: c@d.com\n>\n> quoted body\n"

        extracted = extract_forwarded(body)

        assert len(extracted) == 1
        assert extracted[0].strategy is ExtractionStrategy.HEADER_BLOCK
        assert extracted[0].to == "c@d.com"

    def test_two_forwards_in_one_body(self) -> None:
        """Test that each embedded message is reported separately."""
        body = (
            "---------- Forwarded message ---------\n"
            "From: A <a@one.com>\n"
            "To: b@two.com\n"
            "Subject: First\n\n"
            "text one\n"
            "---------- Forwarded message ---------\n"
            "From: C <c@three.com>\n"
            "To: d@four.com\n"
            "Subject: Second\n\n"
            "text two\n"
        )

        extracted = extract_forwarded(body)

        assert {e.to for e in extracted} == {"b@two.com", "d@four.com"}
        assert len([e for e in extracted if e.strategy is ExtractionStrategy.MARKER]) == 2

    def test_banner_without_from_yields_no_marker_result(self) -> None:
        """A banner section lacking a From header is not a marker match."""
        body = "---------- Forwarded message ---------\nSubject: x\nTo: y@z.com\n\nbody\n"

        extracted = extract_forwarded(body)

        assert [e.strategy for e in extracted] == [ExtractionStrategy.HEADER_BLOCK]
        assert extracted[0].from_ is None

    def test_ordinary_bodies_yield_nothing(self) -> None:
        """Test bodies without embedded messages."""
        assert extract_forwarded("") == []
        assert extract_forwarded("Hello,\nJust a note. From: me\n\nThanks") == []
        assert extract_forwarded("<p>Newsletter</p>") == []

    def test_single_plain_header_block(self) -> None:
        """A lone From/To/Subject/Date block without a banner yields one result."""
        body = (
            "See the note below.\n\n"
            "From: Heidi <heidi@vendor.io>\n"
            "To: ivan@example.com\n"
            "Subject: Renewal\n"
            "Date: Wed, 8 May 2024 14:30\n\n"
            "The renewal quote is attached.\n"
        )

        extracted = extract_forwarded(body)

        assert len(extracted) == 1
        sub = extracted[0]
        assert sub.strategy is ExtractionStrategy.HEADER_BLOCK
        assert sub.from_ == "Heidi <heidi@vendor.io>"
        assert sub.to == "ivan@example.com"
        assert sub.subject == "Renewal"
        assert sub.date == "Wed, 8 May 2024 14:30"
        assert sub.body == "The renewal quote is attached."

    def test_folded_header_lines_are_joined(self) -> None:
        body = (
            "From: Bob <bob@partner.org>\n"
            "To: Alice <alice@example.com>,\n"
            "\tCarol <carol@example.com>\n"
            "Subject: Kickoff\n\n"
            "Agenda inside.\n"
        )

        extracted = extract_forwarded(body)

        assert [e.to for e in extracted] == ["Alice <alice@example.com>, Carol <carol@example.com>"]

    def test_long_header_run_without_blank_line(self) -> None:
        """Scanning thousands of header-like lines stays fast and finds no block."""
        body = "To: x@example.com\n" * 10_000

        started = time.perf_counter()
        extracted = extract_forwarded(body)
        elapsed = time.perf_counter() - started

        assert extracted == []
        assert elapsed < 2.0


class TestDistinctSubMessages:
    """Test suite for distinct_sub_messages."""

    def test_collapses_strategy_duplicates(self, forwarded_body: str) -> None:
        """The same forward found by both strategies is shown once."""
        extracted = extract_forwarded(forwarded_body)

        distinct = distinct_sub_messages(extracted)

        assert len(extracted) == 2
        assert len(distinct) == 1
        assert distinct[0].strategy is ExtractionStrategy.HEADER_BLOCK
