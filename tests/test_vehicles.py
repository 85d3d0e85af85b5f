import pytest

from fare_engine.vehicles import (
    DEFAULT_PACKAGE_ID,
    LOCAL_PACKAGES,
    normalize_package_id,
    normalize_vehicle_id,
    package_display_name,
)


@pytest.mark.unit
class TestNormalizeVehicleId:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("sedan", "sedan"),
            ("  Sedan ", "sedan"),
            ("Innova Crysta", "innova_crysta"),
            ("innova", "innova_crysta"),
            ("MPV", "innova_hycross"),
            ("Innova Hycross", "innova_hycross"),
            ("hi-cross", "innova_hycross"),
            ("Tempo Traveller 12 Seater", "tempo_traveller"),
            ("Dzire CNG", "dzire_cng"),
            ("cng", "dzire_cng"),
            ("Luxury Sedan!", "luxury_sedan"),
        ],
    )
    def test_spellings_collapse_to_one_key(self, raw, expected):
        assert normalize_vehicle_id(raw) == expected

    def test_is_idempotent(self):
        for raw in ("Innova Crysta", "MPV", "Etios (AC)"):
            once = normalize_vehicle_id(raw)
            assert normalize_vehicle_id(once) == once

    @pytest.mark.parametrize("raw", ["", "   ", "!!!"])
    def test_rejects_unusable_ids(self, raw):
        with pytest.raises(ValueError):
            normalize_vehicle_id(raw)


@pytest.mark.unit
class TestNormalizePackageId:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("8hrs-80km", "8hrs-80km"),
            ("8hr_80km", "8hrs-80km"),
            ("08hrs-80km", "8hrs-80km"),
            ("4hrs-40km", "4hrs-40km"),
            ("04hr_40km", "4hrs-40km"),
            ("4 hours", "4hrs-40km"),
            ("10hrs_100km", "10hrs-100km"),
            ("10 Hours / 100 KM", "10hrs-100km"),
        ],
    )
    def test_known_spellings(self, raw, expected):
        assert normalize_package_id(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "weekend-special"])
    def test_unknown_falls_back_to_default(self, raw):
        assert normalize_package_id(raw) == DEFAULT_PACKAGE_ID

    def test_package_limits(self):
        assert (LOCAL_PACKAGES["8hrs-80km"].hours, LOCAL_PACKAGES["8hrs-80km"].km) == (8, 80)
        assert package_display_name("10hr_100km") == "10 Hours / 100 KM"
