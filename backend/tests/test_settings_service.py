from decimal import Decimal

import pytest

from salonpos.errors import ValidationError
from salonpos.models import Setting
from salonpos.services import settings_service


class TestDefaults:
    def test_defaults_come_from_config(self, db_session):
        assert settings_service.get_costing_method() == "FIFO"
        assert settings_service.get_tax_rate() == Decimal("0.10")
        assert settings_service.get_shortfall_costing() == "Zero"

    def test_config_override(self, app, db_session):
        app.config["COSTING_METHOD"] = "weighted_average"
        try:
            assert settings_service.get_costing_method() == "WeightedAverage"
        finally:
            app.config["COSTING_METHOD"] = "FIFO"

    def test_get_settings(self, db_session):
        assert settings_service.get_settings() == {
            "costingMethod": "FIFO",
            "taxRate": "0.10",
            "shortfallCosting": "Zero",
            "availableCostingMethods": ["FIFO", "WeightedAverage"],
            "availableShortfallCosting": ["Zero", "LastAverageCost"],
        }


class TestCostingMethod:
    def test_set_is_normalized_and_stored(self, db_session):
        assert settings_service.set_costing_method("weighted-average") == "WeightedAverage"
        db_session.commit()

        assert db_session.get(Setting, "costingMethod").value == "WeightedAverage"
        assert settings_service.get_costing_method() == "WeightedAverage"

    def test_unknown_method_is_rejected(self, db_session):
        with pytest.raises(ValidationError):
            settings_service.set_costing_method("LIFO")
        assert db_session.get(Setting, "costingMethod") is None


class TestTaxRate:
    def test_set_and_read_back(self, db_session):
        assert settings_service.set_tax_rate("0.075") == Decimal("0.075")
        assert settings_service.get_tax_rate() == Decimal("0.075")

    @pytest.mark.parametrize("raw", ["-0.01", "1.5", "ten percent", "NaN"])
    def test_out_of_range_or_garbage(self, db_session, raw):
        with pytest.raises(ValidationError):
            settings_service.set_tax_rate(raw)


class TestShortfallCosting:
    def test_set_is_case_insensitive(self, db_session):
        assert settings_service.set_shortfall_costing(" lastaveragecost ") == "LastAverageCost"
        assert settings_service.get_shortfall_costing() == "LastAverageCost"

    def test_unknown_policy(self, db_session):
        with pytest.raises(ValidationError):
            settings_service.set_shortfall_costing("Fail")
