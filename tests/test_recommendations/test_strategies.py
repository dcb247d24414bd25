"""
Tests for recommendations/strategies.py: individual strategy scores and the
weighted aggregate.
"""

from datetime import datetime, timezone

import pytest

from inventory_oracle.config import WeightingsConfig
from inventory_oracle.models.component import (
    Component,
    ComponentSpecification,
    CurrentRating,
    UsageFrequency,
    UsageMetrics,
    VoltageRange,
)
from inventory_oracle.recommendations.strategies import (
    ScoringContext,
    ScoringStrategy,
    build_default_strategies,
    score_availability,
    score_category,
    score_manufacturer,
    score_price,
    score_specifications,
    score_user_preference,
    weighted_score,
)

CTX = ScoringContext()
CREATED = datetime(2026, 4, 12, tzinfo=timezone.utc)


def _part(component_id: str, name: str, **kwargs) -> Component:
    fields = {
        "category": "Microcontroller",
        "manufacturer": "Espressif",
        "quantity": 10,
        "purchase_price": 8.5,
    }
    fields.update(kwargs)
    return Component(id=component_id, name=name, created_at=CREATED, **fields)


class TestSimpleStrategies:
    def test_category_and_manufacturer(self, esp32, esp32_s3, bme280):
        assert score_category(esp32, esp32_s3, CTX) == 100.0
        assert score_category(esp32, bme280, CTX) == 0.0
        assert score_manufacturer(esp32, esp32_s3, CTX) == 100.0
        assert score_manufacturer(esp32, bme280, CTX) == 0.0

    @pytest.mark.parametrize("qty, expected", [(0, 0.0), (1, 20.0), (4, 80.0), (5, 100.0), (50, 100.0)])
    def test_availability(self, esp32, qty, expected):
        candidate = _part("c", "Candidate", quantity=qty)
        assert score_availability(esp32, candidate, CTX) == expected

    def test_price(self, esp32):
        assert score_price(esp32, _part("c", "C", purchase_price=8.5), CTX) == 100.0
        cheaper = _part("c", "C", purchase_price=4.25)
        assert score_price(esp32, cheaper, CTX) == pytest.approx(50.0)
        pricier = _part("c", "C", purchase_price=30.0)
        assert score_price(esp32, pricier, CTX) == 0.0

    def test_price_unknown_is_neutral(self, esp32):
        assert score_price(esp32, _part("c", "C", purchase_price=None), CTX) == 50.0
        free = _part("o", "O", purchase_price=0.0)
        assert score_price(free, esp32, CTX) == 50.0

    def test_user_preference(self, esp32, esp32_s3):
        def ctx(freq):
            return ScoringContext(
                metrics={"esp32-s3": UsageMetrics(component_id="esp32-s3", usage_frequency=freq)}
            )

        assert score_user_preference(esp32, esp32_s3, ctx(UsageFrequency.HIGH)) == 100.0
        assert score_user_preference(esp32, esp32_s3, ctx(UsageFrequency.MEDIUM)) == 75.0
        assert score_user_preference(esp32, esp32_s3, ctx(UsageFrequency.LOW)) == 25.0
        assert score_user_preference(esp32, esp32_s3, ctx(None)) == 50.0
        assert score_user_preference(esp32, esp32_s3, CTX) == 50.0


class TestSpecifications:
    def test_no_required_specs(self, esp32, esp32_s3):
        assert score_specifications(esp32, esp32_s3, CTX) == 50.0

    def test_candidate_without_specs(self, esp32, rp2040):
        ctx = ScoringContext(required_specs=esp32.specifications)
        assert score_specifications(esp32, rp2040, ctx) == 25.0

    def test_full_match(self, esp32, esp32_s3):
        ctx = ScoringContext(required_specs=esp32.specifications)
        assert score_specifications(esp32, esp32_s3, ctx) == 100.0

    def test_partial_match(self, esp32, arduino_uno):
        ctx = ScoringContext(required_specs=esp32.specifications)
        # voltage 0, current 0, protocols 2 of 3; no platform list on the Uno
        expected = (0.0 + 0.0 + 200.0 / 3) / 3
        assert score_specifications(esp32, arduino_uno, ctx) == pytest.approx(expected)

    def test_current_tolerance(self, esp32):
        required = ComponentSpecification(current=CurrentRating(max=1.0))
        candidate = _part(
            "c", "C", specifications=ComponentSpecification(current=CurrentRating(max=0.8))
        )
        assert score_specifications(esp32, candidate, ScoringContext(required_specs=required)) == 100.0
        strict = ScoringContext(required_specs=required, current_tolerance=0.9)
        assert score_specifications(esp32, candidate, strict) == 0.0

    def test_no_comparable_fields(self, esp32):
        required = ComponentSpecification(voltage=VoltageRange(min=3.3, max=3.3))
        candidate = _part(
            "c", "C", specifications=ComponentSpecification(protocols=["I2C"])
        )
        assert score_specifications(esp32, candidate, ScoringContext(required_specs=required)) == 50.0

    def test_protocol_match_is_case_insensitive(self, esp32):
        required = ComponentSpecification(protocols=["I2C", "SPI"])
        candidate = _part(
            "c", "C", specifications=ComponentSpecification(protocols=["i2c", "spi", "can"])
        )
        assert score_specifications(esp32, candidate, ScoringContext(required_specs=required)) == 100.0


class TestWeightedScore:
    def test_default_strategy_names(self):
        names = [s.name for s in build_default_strategies()]
        assert names == [
            "category", "manufacturer", "availability", "price", "specifications", "user_preference",
        ]

    def test_weights_from_config(self):
        strategies = build_default_strategies(WeightingsConfig(category=0.5))
        assert strategies[0].weight == 0.5

    @pytest.mark.parametrize(
        "weights",
        [
            WeightingsConfig(),
            WeightingsConfig(category=3, manufacturer=0, availability=0, price=0, specifications=0, user_preference=0),
            WeightingsConfig(category=0.01, manufacturer=7, availability=2, price=0.5, specifications=0, user_preference=1),
        ],
    )
    def test_score_stays_in_range(self, esp32, components, weights):
        strategies = build_default_strategies(weights)
        ctx = ScoringContext(required_specs=esp32.specifications)
        for candidate in components:
            assert 0 <= weighted_score(esp32, candidate, strategies, ctx) <= 100

    def test_out_of_range_strategy_is_clamped(self, esp32, esp32_s3):
        strategies = [
            ScoringStrategy("wild", 1.0, lambda o, c, ctx: 250.0),
            ScoringStrategy("negative", 1.0, lambda o, c, ctx: -40.0),
        ]
        assert weighted_score(esp32, esp32_s3, strategies, CTX) == 50

    def test_zero_total_weight(self, esp32, esp32_s3):
        strategies = [ScoringStrategy("off", 0.0, lambda o, c, ctx: 100.0)]
        assert weighted_score(esp32, esp32_s3, strategies, CTX) == 0

    def test_favourite_part_from_same_family(self, esp32):
        twin = _part("twin", "ESP32 Twin", quantity=5)
        metrics = {"twin": UsageMetrics(component_id="twin", usage_frequency=UsageFrequency.HIGH)}
        # everything perfect except the neutral specification score
        score = weighted_score(esp32, twin, build_default_strategies(), ScoringContext(metrics=metrics))
        assert score == 90
