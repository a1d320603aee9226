"""Tests for configuration settings."""
import pytest

from questvault.config import Settings, settings


def test_settings_defaults():
    """Test default settings values."""
    assert settings.review.base_interval_minutes == 1
    assert settings.review.growth_factor == 2.0
    assert settings.review.mastery_threshold == 4
    assert settings.plan.units_per_batch == 20
    assert settings.plan.duration_periods == 4
    assert settings.plan.period_length_days == 7
    assert settings.study.pass_score == 80
    assert settings.study.max_mistakes == 3
    assert settings.study.completion_xp == 300
    assert settings.study.completion_points == 100


@pytest.mark.parametrize(
    "section,field,value",
    [
        ("review", "growth_factor", 1.0),
        ("review", "mastery_threshold", 0),
        ("review", "base_interval_minutes", 0),
        ("plan", "units_per_batch", 0),
        ("plan", "duration_periods", 0),
        ("study", "pass_score", 101),
        ("study", "max_mistakes", 0),
    ],
)
def test_validate_rejects_bad_values(section, field, value):
    candidate = Settings()
    setattr(getattr(candidate, section), field, value)

    with pytest.raises(ValueError):
        candidate.validate()
