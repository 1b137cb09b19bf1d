from __future__ import annotations

from apps.worker.steps.step01_scan_type import SCAN_RULES, classify_scan
from packages.shared.models import ScanType


class TestScanClassification:
    def test_each_modality(self):
        assert classify_scan("CT ABDOMEN PELVIS WITH CONTRAST") == ScanType.CT
        assert classify_scan("Computed tomography of the head") == ScanType.CT
        assert classify_scan("MRI brain without contrast") == ScanType.MRI
        assert classify_scan("Chest X-ray, 2 views") == ScanType.XRAY
        assert classify_scan("XR knee") == ScanType.XRAY
        assert classify_scan("Ultrasound guided biopsy") == ScanType.ULTRASOUND
        assert classify_scan("US renal") == ScanType.ULTRASOUND
        assert classify_scan("PET/CT whole body") == ScanType.CT

    def test_first_rule_wins(self):
        assert classify_scan("Ultrasound correlation with prior CT") == ScanType.CT
        assert [scan for _pattern, scan in SCAN_RULES][0] == ScanType.CT

    def test_words_containing_modality_letters_do_not_match(self):
        # "act", "bus", "pet" inside longer words
        assert classify_scan("Patient was transported by bus; exact findings compete") is None

    def test_empty(self):
        assert classify_scan(None) is None
        assert classify_scan("") is None
        assert classify_scan("Procedure note without modality") is None

    def test_value_is_display_label(self):
        assert classify_scan("portable xray").value == "X-Ray"
