"""Locked-counter sequence allocation and daily document codes."""

from datetime import date

from ledger_kernel.services.sequence_service import SequenceService


class TestSequenceService:

    def test_first_value_is_one(self, session, db_tables):
        service = SequenceService(session)
        assert service.current_value("TEST-A") is None
        assert service.next_value("TEST-A") == 1
        assert service.current_value("TEST-A") == 1

    def test_strictly_increasing(self, session, db_tables):
        service = SequenceService(session)
        values = [service.next_value("TEST-B") for _ in range(5)]
        assert values == [1, 2, 3, 4, 5]

    def test_names_are_independent(self, session, db_tables):
        service = SequenceService(session)
        service.next_value("TEST-C")
        service.next_value("TEST-C")
        assert service.next_value("TEST-D") == 1

    def test_document_code_format(self, session, db_tables):
        service = SequenceService(session)
        on = date(2024, 3, 7)
        assert service.next_document_code("PO", on) == "PO-20240307-0001"
        assert service.next_document_code("PO", on) == "PO-20240307-0002"

    def test_document_code_restarts_each_day(self, session, db_tables):
        service = SequenceService(session)
        service.next_document_code("SO", date(2024, 3, 7))
        assert service.next_document_code("SO", date(2024, 3, 8)) == "SO-20240308-0001"

    def test_rollback_returns_value(self, session, db_tables):
        service = SequenceService(session)
        service.next_value("TEST-E")
        session.commit()
        service.next_value("TEST-E")
        session.rollback()
        assert service.next_value("TEST-E") == 2
