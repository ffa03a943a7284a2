"""Tests for row <-> record conversion."""

from clinicsheet.data.row_codec import deserialize_codes, record_to_row, row_to_record, serialize_codes
from clinicsheet.models.lookups import NEUTRAL_CPT_COLOR
from clinicsheet.models.sheet_row import CptEntry, SheetRow


class TestCptColumns:
    def test_serialize(self):
        entries = (CptEntry("90837", "#ff0000"), CptEntry("90791", "#00ff00"))
        assert serialize_codes(entries) == ("90837,90791", "#ff0000,#00ff00")
        assert serialize_codes(None) == (None, None)

    def test_missing_colors_become_neutral(self):
        entries = deserialize_codes("90837, 90791", "#ff0000")
        assert entries == (CptEntry("90837", "#ff0000"), CptEntry("90791", NEUTRAL_CPT_COLOR))

    def test_blank_codes(self):
        assert deserialize_codes("", None) is None
        assert deserialize_codes(" , ", None) is None


def test_record_keeps_every_field():
    row = SheetRow(
        id="r1",
        patient_id="A123",
        cpt_code=(CptEntry("90837", "#ff0000"),),
        collected_from_patient="00",
        claim_status="Claim Sent",
        claim_status_color="#3b82f6",
    )
    record = row_to_record(row)
    assert "id" not in record
    assert record["cpt_code"] == "90837"
    assert record_to_row("r1", record) == row
