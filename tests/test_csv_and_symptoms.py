import csv
import io

import pytest

from rmatrack.importer.csv_io import normalize_row, read_csv, to_csv
from rmatrack.symptoms import SymptomClassifier, default_classifier


def test_csv_quotes_commas_quotes_and_newlines():
    rows = [{"siteName": "Site, A", "notes": 'said "hi"\nthen left', "cost": None}]
    columns = (("Site", "siteName"), ("Notes", "notes"), ("Cost", "cost"))
    text = to_csv(rows, columns)
    assert text.startswith("Site,Notes,Cost\n")
    assert '"Site, A"' in text
    parsed = list(csv.reader(io.StringIO(text)))
    assert parsed[1] == ["Site, A", 'said "hi"\nthen left', ""]


def test_read_csv_strips_bom_and_maps_headers():
    rows = read_csv("\ufeffRMA #,Site Name,Case Status,Priority,Serial #\nR-1,Cinema 1,closed,urgent,SN1\n")
    data = normalize_row(rows[0])
    assert data == {
        "rmaNumber": "R-1",
        "siteName": "Cinema 1",
        "caseStatus": "Completed",
        "priority": "High",
        "serialNumber": "SN1",
    }


def test_normalize_row_drops_placeholders_and_rejects_bad_enums():
    assert normalize_row({"Site Name": "N/A", "productName": " CP2220 ", "Unknown Column": "x"}) == {
        "productName": "CP2220"
    }
    with pytest.raises(ValueError):
        normalize_row({"Status": "misplaced"})


@pytest.mark.parametrize("text", [
    "Prism chipped", "DMD error", "Red DMD temperature sensor error", "IMB marriage", None, "", "N/A",
])
def test_symptom_text_is_detected(text):
    assert default_classifier.is_symptom_description(text)


def test_replaced_part_name_display():
    assert default_classifier.resolve_replaced_part_name("Prism chipped", "Prism Assembly") == "Prism Assembly"
    assert default_classifier.resolve_replaced_part_name("003-005678-01", "Lamp") == "Lamp"
    assert default_classifier.resolve_replaced_part_name("Light Engine", "Lamp") == "Light Engine"
    assert default_classifier.resolve_replaced_part_name(None, None) == "N/A"


def test_classifier_patterns_are_configurable():
    classifier = SymptomClassifier(patterns=("smoke",), compound_rules=(("no", "image"),))
    assert classifier.is_symptom_description("Smoke from vent")
    assert classifier.is_symptom_description("No image on screen")
    assert not classifier.is_symptom_description("DMD error")
