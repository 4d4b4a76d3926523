"""
Unit tests for the status protocol codec.
"""

import io

import pytest

from drivewipe.exceptions import ProtocolError
from drivewipe.protocol.codec import (
    LineBuffer,
    ProtocolWriter,
    decode_line,
    encode_line,
    quote,
    unquote,
)
from drivewipe.protocol.records import (
    CompleteLine,
    Destination,
    DeviceLine,
    Disposition,
    PlanLine,
    ProgressLine,
    ResultLine,
    TestLine,
    WipeState,
)


class TestEncodeLine:
    """Wire format of each record type."""

    def test_device(self):
        line = encode_line(DeviceLine('ST3500418AS', '9VM1ABCD', 500107862016))
        assert line == "Device: m'ST3500418AS' s'9VM1ABCD' z'500107862016'\n"

    def test_plan(self):
        line = encode_line(PlanLine(('SM', 'BB', 'PT', 'FM')))
        assert line == "Plan: SM, BB, PT, FM\n"

    def test_test_with_unknown_total(self):
        line = encode_line(TestLine('SMART', 'SM', 1))
        assert line == "Test: n'SMART' s'SM' c'1/?'\n"

    def test_test_with_total(self):
        line = encode_line(TestLine('Partition', 'PT', 5, 6))
        assert line == "Test: n'Partition' s'PT' c'5/6'\n"

    def test_progress_is_padded(self):
        assert encode_line(ProgressLine(0.0)) == "Progress:  0.00%\n"
        assert encode_line(ProgressLine(45.5)) == "Progress: 45.50%\n"
        assert encode_line(ProgressLine(100.0)) == "Progress: 100.00%\n"

    def test_result(self, started_at, finished_at):
        line = encode_line(ResultLine(True, 0, started_at, finished_at))
        assert line == (
            "Result: p'true' s'0' start'2026-03-02T10:00:00-05:00'"
            " finish'2026-03-02T10:42:07-05:00'\n"
        )

    def test_complete(self):
        disposition = Disposition(WipeState.WIPED, Destination.KEEP, 'No errors')
        line = encode_line(CompleteLine(disposition))
        assert line == (
            "Complete: d'Wiped' r'No errors' c'Green'"
            " t'Mark with green dot for reuse'\n"
        )

    def test_complete_destroy(self):
        disposition = Disposition(WipeState.UNWIPED, Destination.DESTROY, 'Badblocks failure')
        line = encode_line(CompleteLine(disposition))
        assert "c'Red' t'Mark with large X for destruction'" in line

    # ------------------------------------------------------------------
    # Rejections
    # ------------------------------------------------------------------

    def test_rejects_empty_plan(self):
        with pytest.raises(ProtocolError, match="at least one"):
            encode_line(PlanLine(()))

    @pytest.mark.parametrize('code', ['sm', 'S', 'SMT', 'S1', 'S,M'])
    def test_rejects_bad_plan_code(self, code):
        with pytest.raises(ProtocolError, match="Invalid test code"):
            encode_line(PlanLine(('SM', code)))

    def test_rejects_bad_test_code(self):
        with pytest.raises(ProtocolError):
            encode_line(TestLine('SMART', "S'", 1))

    @pytest.mark.parametrize('percent', [-0.01, 100.01])
    def test_rejects_progress_out_of_range(self, percent):
        with pytest.raises(ProtocolError, match="out of range"):
            encode_line(ProgressLine(percent))

    @pytest.mark.parametrize('percent', [12.345, 0.001, 99.999])
    def test_rejects_progress_finer_than_the_wire(self, percent):
        with pytest.raises(ProtocolError, match="two decimals"):
            encode_line(ProgressLine(percent))

    @pytest.mark.parametrize('size', [-1, 1.5, True])
    def test_rejects_bad_device_size(self, size):
        with pytest.raises(ProtocolError, match="size"):
            encode_line(DeviceLine('ST3500418AS', '9VM1ABCD', size))

    @pytest.mark.parametrize('sequence, total, match', [
        (-1, None, "sequence"),
        (1, -6, "total"),
        (2.0, 6, "sequence"),
    ])
    def test_rejects_bad_count(self, sequence, total, match):
        with pytest.raises(ProtocolError, match=match):
            encode_line(TestLine('Partition', 'PT', sequence, total))

    @pytest.mark.parametrize('record', [
        DeviceLine('', '', 0),
        TestLine('SMART', 'SM', 0, 0),
        ProgressLine(12.34),
        ProgressLine.from_fraction(0.123456),
    ])
    def test_accepted_records_survive_exactly(self, record):
        assert decode_line(encode_line(record)) == record

    def test_rejects_unknown_object(self):
        with pytest.raises(ProtocolError, match="Cannot encode"):
            encode_line("Progress: 1.00%")


class TestDecodeLine:

    def test_round_trip_every_record(self, sample_records):
        for record in sample_records:
            assert decode_line(encode_line(record)) == record

    def test_accepts_line_without_newline(self):
        assert decode_line("Progress: 12.34%") == ProgressLine(12.34)

    def test_plan_codes_are_a_tuple(self):
        assert decode_line("Plan: SM, ST, BB, SM, PT, FM").codes == (
            'SM', 'ST', 'BB', 'SM', 'PT', 'FM'
        )

    def test_negative_exit_status(self, started_at, finished_at):
        record = ResultLine(False, -9, started_at, finished_at)
        assert decode_line(encode_line(record)).exit_status == -9

    def test_complete_maps_color_to_destination(self):
        record = decode_line(
            "Complete: d'Unwiped' r'SMART Failure' c'Yellow'"
            " t'Mark with small H for controller harvest'"
        )
        assert record.disposition.destination is Destination.HARVEST
        assert record.disposition.wipe_state is WipeState.UNWIPED
        assert record.disposition.reason == 'SMART Failure'

    # ------------------------------------------------------------------
    # Rejections
    # ------------------------------------------------------------------

    def test_no_separator(self):
        with pytest.raises(ProtocolError, match="Unknown input"):
            decode_line("garbage without separator")

    def test_unknown_type(self):
        with pytest.raises(ProtocolError, match="Unknown record type"):
            decode_line("Status: running")

    def test_type_is_case_sensitive(self):
        with pytest.raises(ProtocolError):
            decode_line("progress: 10.00%")

    @pytest.mark.parametrize('line', [
        "Progress: 10%",
        "Progress: abc",
        "Progress: 101.00%",
        "Plan: SM BB",
        "Plan: ",
        "Device: m'x' s'y'",
        "Device: m'x' s'y' z'big'",
        "Test: n'SMART' s'SM' c'1'",
        "Result: p'yes' s'0' start'2026-03-02T10:00:00' finish'2026-03-02T10:00:00'",
        "Complete: d'Wiped' r'No errors' c'Blue' t'x'",
        "Device: m'unterminated s'y' z'1'",
    ])
    def test_malformed_value(self, line):
        with pytest.raises(ProtocolError):
            decode_line(line)

    def test_bad_timestamp(self):
        with pytest.raises(ProtocolError, match="Invalid timestamp"):
            decode_line("Result: p'true' s'0' start'yesterday' finish'today'")


class TestQuoting:

    @pytest.mark.parametrize('value', [
        '',
        'plain',
        "Maxtor 6Y080L0 'special'",
        'back\\slash',
        'line one\nline two',
        'carriage\rreturn',
        "\\'\n\\",
    ])
    def test_quote_round_trip(self, value):
        quoted = quote(value)
        assert quoted.startswith("'") and quoted.endswith("'")
        assert '\n' not in quoted
        assert unquote(quoted[1:-1]) == value

    def test_escaped_values_survive_a_device_line(self):
        record = DeviceLine("WDC 'Caviar'\nBlue", 'S\\N 42', 0)
        line = encode_line(record)
        assert line.count('\n') == 1
        assert decode_line(line) == record

    def test_unknown_escape(self):
        with pytest.raises(ProtocolError, match="Unknown escape"):
            unquote('bad\\x')


class TestLineBuffer:

    def test_holds_partial_line(self):
        buffer = LineBuffer()
        assert buffer.feed(b"Progress: 1") == []
        assert buffer.pending == b"Progress: 1"
        assert buffer.feed(b"2.00%\nProg") == ["Progress: 12.00%"]
        assert buffer.pending == b"Prog"

    def test_several_lines_in_one_chunk(self):
        buffer = LineBuffer()
        assert buffer.feed(b"a: 1\nb: 2\n\n") == ["a: 1", "b: 2", ""]
        assert buffer.pending == b""

    def test_split_multibyte_character(self):
        buffer = LineBuffer()
        data = "Device: m'Ünïcode' s'x' z'1'\n".encode('utf-8')
        split = data.index('Ü'.encode('utf-8')) + 1
        assert buffer.feed(data[:split]) == []
        assert buffer.feed(data[split:]) == ["Device: m'Ünïcode' s'x' z'1'"]


class TestProtocolWriter:

    def test_writes_and_flushes(self):
        stream = io.StringIO()
        writer = ProtocolWriter(stream)
        writer.write(PlanLine(('SM', 'BB')))
        writer.write(ProgressLine.from_fraction(0.5))
        assert stream.getvalue() == "Plan: SM, BB\nProgress: 50.00%\n"
