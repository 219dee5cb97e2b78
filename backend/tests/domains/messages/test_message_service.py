"""Tests for message editing and regeneration."""
import pytest

from app.core.exceptions import InvalidFieldValueError, InvalidPathError, MessageParseError
from app.domains.messages.hl7 import HL7Parser, resolve
from app.domains.messages.service import MessageService


SAMPLE_MESSAGE = "\r".join([
    "MSH|^~\\&|APP|FAC|APP|FAC|20231201120000||ORU^R01|MSG001|P|2.5",
    "PID|1||12345||Doe^Jane||19800101|F",
    "OBX|1|NM|GLU||95",
    "OBX|2|NM|CRE||1.1",
])


class TestMessageService:

    def setup_method(self):
        self.service = MessageService(HL7Parser())
        self.message = self.service.parse(SAMPLE_MESSAGE)

    def test_generate_reproduces_input_text(self):
        assert self.service.generate(self.message) == SAMPLE_MESSAGE

    def test_edit_field_sets_value(self):
        edited = self.service.edit_field(self.message, "PID.8", "M")

        assert resolve(edited, "PID.8") == "M"
        assert edited.raw == SAMPLE_MESSAGE.replace("19800101|F", "19800101|M")

    def test_edit_field_leaves_input_untouched(self):
        self.service.edit_field(self.message, "PID.8", "M")

        assert resolve(self.message, "PID.8") == "F"
        assert self.message.raw == SAMPLE_MESSAGE

    def test_edit_field_pads_short_segments(self):
        edited = self.service.edit_field(self.message, "PID.11", "Chicago")

        assert edited.segments["PID"][9:12] == ["", "", "Chicago"]

    def test_edit_field_appends_missing_segment(self):
        edited = self.service.edit_field(self.message, "PV1.2", "I")

        assert edited.segment_names[-1] == "PV1"
        assert edited.segments["PV1"] == ["PV1", "", "I"]

    def test_edit_field_targets_occurrence(self):
        edited = self.service.edit_field(self.message, "OBX[2].5", "1.3")

        assert resolve(edited, "OBX[1].5") == "95"
        assert resolve(edited, "OBX[2].5") == "1.3"

    def test_edit_header_field_refreshes_metadata(self):
        edited = self.service.edit_field(self.message, "MSH.10", "MSG002")

        assert edited.metadata.control_id == "MSG002"
        assert edited.raw.startswith("MSH|^~\\&|APP|FAC|APP|FAC|20231201120000||ORU^R01|MSG002|")

    @pytest.mark.parametrize("path", ["PID", "PID.0", "MSH.1", "PID.3.1", "OBX[3].5", "PID..3"])
    def test_edit_field_rejects_invalid_paths(self, path):
        with pytest.raises(InvalidPathError):
            self.service.edit_field(self.message, path, "X")

    @pytest.mark.parametrize("value", ["a|b", "a\rb", "a\nb"])
    def test_edit_field_rejects_delimiters(self, value):
        with pytest.raises(InvalidFieldValueError):
            self.service.edit_field(self.message, "PID.5", value)

    def test_edit_field_on_loaded_document(self):
        message = self.service.load({"MSH": {"MSH.9": "ADT^A01"}, "PID": {"PID.3": "12345"}})

        edited = self.service.edit_field(message, "PID.5", "Doe")

        assert resolve(edited, "PID.3") == "12345"
        assert resolve(edited, "PID.5") == "Doe"
        assert edited.metadata.message_type == "ADT^A01"


class TestLoadInput:

    def setup_method(self):
        self.service = MessageService(HL7Parser())

    def test_nothing_provided(self):
        assert self.service.load_input() is None

    def test_raw_message(self):
        message = self.service.load_input(raw_message=SAMPLE_MESSAGE)
        assert message.metadata.control_id == "MSG001"

    def test_segment_document_wins(self):
        message = self.service.load_input(
            raw_message=SAMPLE_MESSAGE,
            parsed_message={"PID": ["PID", "1", "", "99999"]},
        )

        assert resolve(message, "PID.3") == "99999"
        assert not message.has_segment("MSH")

    def test_bad_document_raises_parse_error(self):
        with pytest.raises(MessageParseError):
            self.service.load_input(parsed_message={"PID": 42})


class TestParseBatch:

    def setup_method(self):
        self.service = MessageService(HL7Parser())

    def test_one_result_per_message(self):
        second = SAMPLE_MESSAGE.replace("MSG001", "MSG002")

        messages = self.service.parse_batch(SAMPLE_MESSAGE + "\n" + second)

        assert [m.metadata.control_id for m in messages] == ["MSG001", "MSG002"]
        assert messages[1].raw == second
