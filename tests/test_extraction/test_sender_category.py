from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from freight_extract.extraction.errors import PatternLibraryError
from freight_extract.extraction.models import SenderCategory
from freight_extract.extraction.sender_category import SenderCategoryDetector, detect_sender_category


@pytest.mark.parametrize(
    ("identity", "expected"),
    [
        ("ops@maersk.com", SenderCategory.MAERSK),
        ("maersk.com", SenderCategory.MAERSK),
        ("Maersk Line <Noreply@Maersk.com>", SenderCategory.MAERSK),
        ("noreply@hlag.com", SenderCategory.HAPAG),
        ("docs@cma-cgm.com", SenderCategory.CMA_CGM),
        ("export@msc.com", SenderCategory.MSC),
        ("ops@oocl.com", SenderCategory.COSCO),
        ("bookings@one-line.com", SenderCategory.ONE_LINE),
        ("entries@expeditors.com", SenderCategory.CUSTOMS_BROKER),
        ("team@flexport.com", SenderCategory.FREIGHT_FORWARDER),
        ("gate@apm-terminals.com", SenderCategory.TERMINAL),
        ("dispatch@jbhunt.com", SenderCategory.TRUCKING),
        ("notices@bnsf.com", SenderCategory.RAIL),
        ("info@zimshipping.com", SenderCategory.OTHER_CARRIER),
        ("friend@example.com", SenderCategory.OTHER),
    ],
)
def test_detect(identity: str, expected: SenderCategory) -> None:
    assert detect_sender_category(identity) == expected


@pytest.mark.parametrize("identity", [None, "", "   "])
def test_empty_identity_is_other(identity) -> None:
    assert detect_sender_category(identity) == SenderCategory.OTHER


def test_true_sender_wins_when_specific() -> None:
    detector = SenderCategoryDetector.from_yaml()

    assert detector.detect_with_fallback("me@example.com", "ops@maersk.com") == SenderCategory.MAERSK
    assert detector.detect_with_fallback("ops@maersk.com", "friend@example.com") == SenderCategory.MAERSK
    assert detector.detect_with_fallback("noreply@hlag.com", None) == SenderCategory.HAPAG


def test_first_table_wins(tmp_path: Path) -> None:
    path = tmp_path / "categories.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "categories": {
                    "trucking": [r"transport"],
                    "rail": [r"rail"],
                    "not_a_category": [r"x"],
                }
            }
        ),
        encoding="utf-8",
    )

    detector = SenderCategoryDetector.from_yaml(path)

    assert detector.categories == [SenderCategory.TRUCKING, SenderCategory.RAIL]
    assert detector.detect("ops@railtransport.com") == SenderCategory.TRUCKING


def test_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(PatternLibraryError):
        SenderCategoryDetector.from_yaml(tmp_path / "missing.yaml")


def test_carrier_tags() -> None:
    assert SenderCategory.HAPAG.carrier_tag == "hapag-lloyd"
    assert SenderCategory.MAERSK.is_carrier
    assert not SenderCategory.TERMINAL.is_carrier
    assert SenderCategory.OTHER.carrier_tag is None
