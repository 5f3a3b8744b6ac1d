from __future__ import annotations

import logging
from contextlib import contextmanager

import pytest

from ledger_import.domain.cancellation import CancellationToken
from ledger_import.domain.exceptions import ImportAbortedError, RowSourceError, SourceChangedError
from ledger_import.domain.models import ImportOutcome, RawRow, SubmissionResult
from ledger_import.domain.reporting.collector import ReportCollector
from ledger_import.domain.transform.request_builder import RecordTransformer
from ledger_import.infra.sources.csv_row_source import CsvRowSource
from ledger_import.usecases.import_pipeline import ImportPipeline, PipelineState


def make_row(index: int, **overrides) -> RawRow:
    values = {
        "Source": "Recharge",
        "SourceType": "Income",
        "Amount0": "10.00",
        "CoA0": "3-ABC1234-5678",
        "Description0": f"Debit {index}",
        "Direction0": "Debit",
        "Amount1": "10.00",
        "CoA1": "3-XYZ9876-0000",
        "Description1": f"Credit {index}",
        "Direction1": "Credit",
    }
    values.update(overrides)
    return RawRow(index=index, line_no=index + 2, values=values)


class DummySource:
    def __init__(self, rows, on_row=None, fail_open=False):
        self.rows = rows
        self.on_row = on_row
        self.fail_open = fail_open
        self.opened = 0
        self.closed = 0

    @contextmanager
    def open(self):
        if self.fail_open:
            raise RowSourceError("Cannot open source file in.csv", path="in.csv")
        self.opened += 1
        try:
            yield self._iter(self.opened)
        finally:
            self.closed += 1

    def _iter(self, pass_no):
        for row in self.rows:
            if self.on_row is not None:
                self.on_row(pass_no, row)
            yield row


class DummyClient:
    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.requests = []

    def createTransaction(self, request):
        self.requests.append(request)
        if self.responses:
            response = self.responses.pop(0)
            if isinstance(response, Exception):
                raise response
            return response
        return SubmissionResult(success=True, transaction_id=f"txn-{len(self.requests)}", status_code=200)


def make_pipeline(source, client=None, report=None):
    return ImportPipeline(
        source=source,
        logger=logging.getLogger("ledgerImport.test"),
        run_id="test-run",
        client=client,
        transformer=RecordTransformer(),
        report=report,
    )


def test_invalid_row_blocks_every_submission(caplog):
    source = DummySource([make_row(0), make_row(1, Amount0="0.00"), make_row(2)])
    client = DummyClient()
    pipeline = make_pipeline(source, client)

    with caplog.at_level(logging.ERROR, logger="ledgerImport.test"):
        result = pipeline.run()

    assert result.outcome == ImportOutcome.FILE_INVALID
    assert client.requests == []
    assert result.rows_validated == 3
    assert [r.record_index for r in result.invalid_rows] == [1]
    assert pipeline.state == PipelineState.FILE_INVALID
    assert "Validation errors found in row 1" in caplog.text
    assert "Amount0 must be between 0.01 and 1000000000" in caplog.text


def test_valid_file_is_submitted_in_order():
    source = DummySource([make_row(0), make_row(1), make_row(2)])
    client = DummyClient()
    pipeline = make_pipeline(source, client)

    result = pipeline.run()

    assert result.outcome == ImportOutcome.SUCCEEDED
    assert [o.record_index for o in result.outcomes] == [0, 1, 2]
    assert [r.transfers[0].description for r in client.requests] == ["Debit 0", "Debit 1", "Debit 2"]
    assert result.submitted == 3
    assert pipeline.state == PipelineState.DONE


def test_source_is_opened_per_pass_and_closed():
    source = DummySource([make_row(0)])
    pipeline = make_pipeline(source, DummyClient())

    pipeline.run()

    assert source.opened == 2
    assert source.closed == 2


def test_rejection_does_not_stop_the_run(caplog):
    source = DummySource([make_row(0), make_row(1), make_row(2)])
    client = DummyClient(
        [
            SubmissionResult(success=True, transaction_id="a", status_code=200),
            SubmissionResult(success=False, status_code=400, message="bad segment"),
            SubmissionResult(success=True, transaction_id="c", status_code=200),
        ]
    )
    pipeline = make_pipeline(source, client)

    with caplog.at_level(logging.INFO, logger="ledgerImport.test"):
        result = pipeline.run()

    assert result.outcome == ImportOutcome.SUCCEEDED
    assert result.submitted == 2
    assert result.rejected == 1
    assert len(client.requests) == 3
    assert "Transaction id a imported from record 0 successfully" in caplog.text
    assert "Transaction imported from record 1 failed with status code 400, message bad segment" in caplog.text


def test_client_exception_aborts_the_run():
    source = DummySource([make_row(0), make_row(1), make_row(2)])
    client = DummyClient(
        [
            SubmissionResult(success=True, transaction_id="a", status_code=200),
            ConnectionError("connection reset"),
        ]
    )
    pipeline = make_pipeline(source, client)

    with pytest.raises(ImportAbortedError) as exc:
        pipeline.run()

    assert exc.value.record_index == 1
    assert isinstance(exc.value.__cause__, ConnectionError)
    assert exc.value.result.outcome == ImportOutcome.FATAL
    assert [o.record_index for o in exc.value.result.outcomes] == [0]
    assert len(client.requests) == 2
    assert pipeline.state == PipelineState.FATAL
    assert source.closed == source.opened


def test_cancel_between_submissions_keeps_sent_rows():
    token = CancellationToken()

    def on_row(pass_no, row):
        if pass_no == 2 and row.index == 1:
            token.cancel()

    source = DummySource([make_row(0), make_row(1), make_row(2)], on_row=on_row)
    client = DummyClient()
    pipeline = make_pipeline(source, client)

    result = pipeline.run(token)

    assert result.outcome == ImportOutcome.CANCELLED
    assert len(client.requests) == 1
    assert [o.record_index for o in result.outcomes] == [0]
    assert pipeline.state == PipelineState.CANCELLED


def test_cancel_during_validation_submits_nothing():
    token = CancellationToken()

    def on_row(pass_no, row):
        if pass_no == 1 and row.index == 1:
            token.cancel()

    source = DummySource([make_row(0), make_row(1)], on_row=on_row)
    client = DummyClient()
    pipeline = make_pipeline(source, client)

    result = pipeline.run(token)

    assert result.outcome == ImportOutcome.CANCELLED
    assert client.requests == []
    assert source.opened == 1


def test_source_error_propagates_before_any_row():
    pipeline = make_pipeline(DummySource([], fail_open=True), DummyClient())

    with pytest.raises(RowSourceError):
        pipeline.run()

    assert pipeline.state == PipelineState.FATAL


def test_run_requires_client():
    pipeline = make_pipeline(DummySource([make_row(0)]))

    with pytest.raises(ValueError):
        pipeline.run()


def test_validate_only_never_needs_client():
    source = DummySource([make_row(0), make_row(1, Source="")])
    pipeline = make_pipeline(source)

    result = pipeline.validate_only()

    assert result.outcome == ImportOutcome.FILE_INVALID
    assert result.invalid_rows[0].violations == ["Source is required"]
    assert source.opened == 1


def test_report_collects_row_statuses():
    report = ReportCollector(run_id="test-run", command="import")
    source = DummySource([make_row(0), make_row(1)])
    client = DummyClient([SubmissionResult(success=False, status_code=409, message="duplicate")])
    pipeline = make_pipeline(source, client, report=report)

    pipeline.run()
    envelope = report.build()

    assert envelope.status == "SUCCEEDED"
    assert envelope.summary.rows_total == 2
    assert envelope.summary.rows_rejected == 1
    assert envelope.summary.rows_submitted == 1
    assert [item.status for item in envelope.items] == ["REJECTED", "OK"]
    assert envelope.items[0].payload["source"] == "Recharge"


def test_validate_file_is_truthy_only_for_clean_files():
    pipeline = make_pipeline(DummySource([]))

    clean = pipeline.validate_file([make_row(0), make_row(1)], CancellationToken())
    dirty = pipeline.validate_file([make_row(0), make_row(1, Direction0="Up")], CancellationToken())

    assert clean and clean.rows_total == 2
    assert not dirty
    assert dirty.invalid_rows[0].violations == ["Direction0 must be one of Credit, Debit"]


class ChangingSource(DummySource):
    def __init__(self, first, second):
        super().__init__(first)
        self.second = second

    def _iter(self, pass_no):
        yield from (self.rows if pass_no == 1 else self.second)


def test_row_broken_between_passes_aborts_before_sending():
    source = ChangingSource([make_row(0), make_row(1)], [make_row(0), make_row(1, Amount0=None)])
    client = DummyClient()
    report = ReportCollector(run_id="test-run", command="import")
    pipeline = make_pipeline(source, client, report=report)

    with pytest.raises(ImportAbortedError) as exc:
        pipeline.run()

    assert isinstance(exc.value.__cause__, SourceChangedError)
    assert exc.value.record_index == 1
    assert exc.value.result.outcome == ImportOutcome.FATAL
    assert len(client.requests) == 1
    assert pipeline.state == PipelineState.FATAL
    failed = report.build().items[-1]
    assert failed.status == "FAILED"
    assert failed.payload is None
    assert failed.diagnostics[0].code == "SOURCE_CHANGED"


def test_row_appended_between_passes_is_never_sent():
    source = ChangingSource([make_row(0)], [make_row(0), make_row(1)])
    client = DummyClient()
    pipeline = make_pipeline(source, client)

    with pytest.raises(ImportAbortedError) as exc:
        pipeline.run()

    assert "was not present during validation" in str(exc.value.__cause__)
    assert len(client.requests) == 1


def test_delimiter_only_line_makes_file_invalid(tmp_path):
    header = "Source,SourceType,Amount0,CoA0,Description0,Direction0,Amount1,CoA1,Description1,Direction1"
    line = "Recharge,Income,10.00,3-A,Debit,Debit,10.00,3-B,Credit,Credit"
    csv_path = tmp_path / "in.csv"
    csv_path.write_text("\n".join([header, line, ",,,,,,,,,", line]) + "\n", encoding="utf-8")
    client = DummyClient()
    pipeline = make_pipeline(CsvRowSource(str(csv_path)), client)

    result = pipeline.run()

    assert result.outcome == ImportOutcome.FILE_INVALID
    assert result.rows_validated == 3
    assert [r.record_index for r in result.invalid_rows] == [1]
    assert client.requests == []


def test_unreadable_bytes_stop_validation(tmp_path):
    csv_path = tmp_path / "in.csv"
    csv_path.write_bytes(b"Source,SourceType\nRecharge,Income\nRecharge,\xff\xfe\n")
    pipeline = make_pipeline(CsvRowSource(str(csv_path)))

    with pytest.raises(RowSourceError) as exc:
        pipeline.validate_only()

    assert exc.value.code == "SOURCE_FORMAT_ERROR"
    assert pipeline.state == PipelineState.FATAL
