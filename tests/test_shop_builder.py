import pytest

from shop_builder import (
    CONFIG_MODELS, ComponentConfigError, ComponentType, default_config,
    next_order, parse_type, reorder_plan, validate_config,
)


@pytest.mark.parametrize("component_type", list(ComponentType))
def test_defaults_are_valid(component_type):
    config = default_config(component_type)
    assert validate_config(component_type, config) == config


def test_every_type_has_a_config_model():
    assert set(CONFIG_MODELS) == set(ComponentType)


def test_unknown_keys_dropped():
    assert validate_config(ComponentType.HERO, {"title": "Hi", "extra": True}) == {"title": "Hi"}


def test_limits():
    with pytest.raises(ComponentConfigError, match="columns"):
        validate_config(ComponentType.PRODUCT_GRID, {"columns": 7})
    with pytest.raises(ComponentConfigError):
        validate_config(ComponentType.HERO, {"background_color": "red"})
    with pytest.raises(ComponentConfigError):
        validate_config(ComponentType.VIDEO_EMBED, {"aspect_ratio": "21:9"})


def test_parse_type():
    assert parse_type("HERO") is ComponentType.HERO
    with pytest.raises(ComponentConfigError, match="Invalid component type"):
        parse_type("hero")


def test_ordering():
    assert next_order([]) == 0
    assert next_order([0, 4, 2]) == 5
    assert reorder_plan(["a", "b", "c"], ["c", "a", "b"]) == {"c": 0, "a": 1, "b": 2}
    with pytest.raises(ComponentConfigError):
        reorder_plan(["a", "b"], ["a", "a"])
    with pytest.raises(ComponentConfigError):
        reorder_plan(["a", "b"], ["a", "x"])
