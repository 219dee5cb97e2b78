"""Tests for HL7 v2.x parser."""
import pytest
from datetime import datetime, timedelta

from app.core.exceptions import MessageParseError
from app.domains.messages.hl7 import HL7Parser, HL7BatchParser, is_hl7_timestamp, parse_hl7_datetime


# Sample ADT^A01 (Admit) message
SAMPLE_ADT_A01 = """MSH|^~\\&|EPIC|HOSPITAL|MEDCODE|CODING|20251215120000||ADT^A01|MSG00001|P|2.5
PID|1||12345678^^^MRN||Smith^John^A||19800515|M|||123 Main St^^Chicago^IL^60601
PV1|1|I|4N^401^A^^^N||||1234567^Jones^Mary^MD|||SUR||||||||V123456789^^^VISIT|||||||||||||||||||||||||20251215100000"""

# Sample ORU^R01 (Observation Result) message
SAMPLE_ORU_R01 = """MSH|^~\\&|LAB|HOSPITAL|MEDCODE|CODING|20251216080000||ORU^R01|MSG00003|P|2.5
PID|1||12345678^^^MRN||Smith^John^A||19800515|M
PV1|1|I|4N^401^A|||||||||||||||V123456789^^^VISIT
ORC|RE|ORD001|FIL001||CM||||20251216070000|^Ordering^Doctor
OBR|1|ORD001|FIL001|80053^METABOLIC PANEL^CPT|||20251216070000||||||||^Ordering^Doctor||||||20251216080000|||F||||||LAB
OBX|1|NM|2345-7^GLUCOSE^LN||95|mg/dL|70-100|N|||F|||20251216075500
OBX|2|NM|2160-0^CREATININE^LN||1.1|mg/dL|0.7-1.3|N|||F|||20251216075500"""

# Sample batch file with multiple messages
SAMPLE_BATCH = SAMPLE_ADT_A01 + "\n" + SAMPLE_ORU_R01


def assert_recent(timestamp: datetime):
    assert abs(datetime.now() - timestamp) < timedelta(minutes=1)


class TestHL7Parser:
    """Tests for HL7Parser class."""

    def setup_method(self):
        self.parser = HL7Parser()

    def test_parse_adt_a01_message_header(self):
        """Test parsing ADT^A01 message header."""
        result = self.parser.parse(SAMPLE_ADT_A01)

        assert result.metadata.control_id == "MSG00001"
        assert result.metadata.message_type == "ADT^A01"
        assert result.metadata.message_code == "ADT"
        assert result.metadata.trigger_event == "A01"
        assert result.metadata.sending_application == "EPIC"
        assert result.metadata.sending_facility == "HOSPITAL"
        assert result.metadata.receiving_application == "MEDCODE"
        assert result.metadata.receiving_facility == "CODING"
        assert result.metadata.processing_id == "P"
        assert result.metadata.version_id == "2.5"
        assert result.metadata.timestamp == datetime(2025, 12, 15, 12, 0, 0)

    def test_msh_fields_are_numbered_from_the_field_separator(self):
        result = self.parser.parse("MSH|^~\\&|APP|FAC|APP|FAC|20231201120000||ADT^A01|MSG001|P|2.5")

        msh = result.segments["MSH"]
        assert msh[0] == "MSH"
        assert msh[1] == "|"
        assert msh[2] == "^~\\&"
        assert msh[9] == "ADT^A01"
        assert msh[12] == "2.5"
        assert result.metadata.message_type == "ADT^A01"
        assert result.metadata.version_id == "2.5"

    def test_parse_patient_fields_are_opaque_strings(self):
        result = self.parser.parse(SAMPLE_ADT_A01)

        pid = result.segments["PID"]
        assert pid[3] == "12345678^^^MRN"
        assert pid[5] == "Smith^John^A"
        assert pid[7] == "19800515"
        assert pid[8] == "M"

    def test_repeating_segments_are_preserved(self):
        result = self.parser.parse(SAMPLE_ORU_R01)

        assert result.count("OBX") == 2
        assert result.segments["OBX"][1] == "1"
        assert result.get_segment("OBX", 2).fields[3] == "2160-0^CREATININE^LN"
        assert result.get_segment("OBX", 3) is None
        assert result.segment_names == ["MSH", "PID", "PV1", "ORC", "OBR", "OBX"]

    def test_parse_empty_message(self):
        result = self.parser.parse("")

        assert result.is_empty
        assert result.metadata.message_type == "Unknown"
        assert result.metadata.control_id == "Unknown"
        assert_recent(result.metadata.timestamp)

    def test_parse_invalid_message(self):
        """Test parsing text that is not HL7 does not crash."""
        result = self.parser.parse("This is not HL7")

        assert result.segment_names == ["This is not HL7"]
        assert result.metadata.version_id == "Unknown"
        assert_recent(result.metadata.timestamp)

    def test_parse_short_msh_reports_unknown(self):
        result = self.parser.parse("MSH|^~\\&|TEST")

        assert result.metadata.sending_application == "TEST"
        assert result.metadata.message_type == "Unknown"
        assert result.metadata.version_id == "Unknown"

    def test_parse_handles_different_line_endings(self):
        unix = self.parser.parse(SAMPLE_ADT_A01)
        windows = self.parser.parse(SAMPLE_ADT_A01.replace("\n", "\r\n"))
        classic = self.parser.parse(SAMPLE_ADT_A01.replace("\n", "\r"))

        assert unix.segment_names == windows.segment_names == classic.segment_names
        assert windows.segments["PV1"] == unix.segments["PV1"]

    def test_parse_skips_blank_lines(self):
        result = self.parser.parse("\n\n" + SAMPLE_ADT_A01.replace("\n", "\n\n") + "\n  \n")

        assert result.segment_names == ["MSH", "PID", "PV1"]

    def test_parse_non_string_raises_parse_error(self):
        with pytest.raises(MessageParseError) as exc_info:
            self.parser.parse(None)

        assert str(exc_info.value).startswith("Failed to parse message:")

    def test_generate_round_trips_raw_text(self):
        result = self.parser.parse(SAMPLE_ORU_R01)

        assert self.parser.generate(result) == SAMPLE_ORU_R01.replace("\n", "\r")

    def test_load_segments_from_field_lists(self):
        document = {
            "MSH": ["MSH", "^~\\&", "APP", "FAC", "APP", "FAC", "20231201120000", "", "ADT^A01", "MSG001", "P", "2.5"],
            "OBX": [["OBX", "1", "NM"], ["OBX", "2", "ST"]],
        }

        result = self.parser.load_segments(document)

        assert result.metadata.message_type == "ADT^A01"
        assert result.segments["MSH"][1] == "|"
        assert result.count("OBX") == 2
        assert result.raw == "MSH|^~\\&|APP|FAC|APP|FAC|20231201120000||ADT^A01|MSG001|P|2.5\rOBX|1|NM\rOBX|2|ST"

    def test_load_segments_from_objects(self):
        document = {
            "MSH": {"MSH.9": "ORU^R01", "MSH.10": "CTRL1", "MSH.12": "2.4"},
            "PID": {"PID.3": "12345", "PID.5": "Doe^Jane"},
        }

        result = self.parser.load_segments(document)

        assert result.metadata.message_type == "ORU^R01"
        assert result.metadata.control_id == "CTRL1"
        assert result.metadata.version_id == "2.4"
        assert "PID|||12345||Doe^Jane" in result.raw

    def test_load_segments_rejects_scalar_segments(self):
        with pytest.raises(MessageParseError):
            self.parser.load_segments({"PID": "12345"})


class TestParseHL7Datetime:

    def test_full_timestamp(self):
        assert parse_hl7_datetime("20231201120530") == datetime(2023, 12, 1, 12, 5, 30)

    def test_date_only_defaults_time_to_midnight(self):
        assert parse_hl7_datetime("20231201") == datetime(2023, 12, 1)

    def test_non_digits_are_ignored(self):
        assert parse_hl7_datetime("2023-12-01 12:00") == datetime(2023, 12, 1, 12, 0)

    @pytest.mark.parametrize("value", ["", None, "2023", "abcdefgh", "20231301"])
    def test_unreadable_values_fall_back_to_now(self, value):
        assert_recent(parse_hl7_datetime(value))

    @pytest.mark.parametrize("value", ["20231201", "20231201120000", "20231201120000.1234+0100"])
    def test_is_hl7_timestamp_accepts_ts_values(self, value):
        assert is_hl7_timestamp(value) is True

    @pytest.mark.parametrize("value", ["2023", "2023-12-01", "20230230", "20231201 1200"])
    def test_is_hl7_timestamp_rejects_other_values(self, value):
        assert is_hl7_timestamp(value) is False


class TestHL7BatchParser:
    """Tests for HL7BatchParser class."""

    def setup_method(self):
        self.parser = HL7BatchParser()

    def test_parse_single_message(self):
        """Test parsing file with single message."""
        results = self.parser.parse_file_content(SAMPLE_ADT_A01)

        assert len(results) == 1
        assert results[0].metadata.control_id == "MSG00001"

    def test_parse_batch_file(self):
        """Test parsing file with multiple messages."""
        results = self.parser.parse_file_content(SAMPLE_BATCH)

        assert len(results) == 2
        assert results[0].metadata.message_code == "ADT"
        assert results[1].metadata.message_code == "ORU"
        assert results[1].count("OBX") == 2

    def test_parse_empty_content(self):
        """Test parsing empty content."""
        results = self.parser.parse_file_content("")
        assert len(results) == 0

    def test_parse_handles_different_line_endings(self):
        """Test parser handles various line endings."""
        windows = SAMPLE_BATCH.replace("\n", "\r\n")
        results = self.parser.parse_file_content(windows)
        assert len(results) == 2

    def test_envelope_segments_are_dropped(self):
        content = "\n".join([
            "FHS|^~\\&|EPIC|HOSPITAL",
            "BHS|^~\\&|EPIC|HOSPITAL",
            SAMPLE_ADT_A01,
            SAMPLE_ORU_R01,
            "BTS|2",
            "FTS|1",
        ])

        results = self.parser.parse_file_content(content)

        assert [r.metadata.control_id for r in results] == ["MSG00001", "MSG00003"]
        assert results[1].segment_names == ["MSH", "PID", "PV1", "ORC", "OBR", "OBX"]

    def test_split_messages_keeps_message_text(self):
        messages = self.parser.split_messages(SAMPLE_BATCH)

        assert messages == [SAMPLE_ADT_A01.replace("\n", "\r"), SAMPLE_ORU_R01.replace("\n", "\r")]

    def test_lines_before_first_msh_form_their_own_message(self):
        messages = self.parser.split_messages("PID|1||123\n" + SAMPLE_ADT_A01)

        assert len(messages) == 2
        assert messages[0] == "PID|1||123"
