"""Variant key codec, stock lookup and display formatting."""
import itertools

from variants import (
    available_stock, build_key, canonical_key, display_value, format_key,
    is_color_axis, parse_key, parse_stock, reconcile_stock,
    regenerate_combinations, stock_for, stock_status, total_stock,
)


class TestKeyCodec:

    def test_key_is_sorted_by_attribute_name(self):
        assert build_key({"Size": "M", "Color": "Red"}) == "Color:Red,Size:M"

    def test_key_ignores_input_order(self):
        pairs = [("Size", "M"), ("Color", "Red"), ("Material", "Cotton")]
        keys = {build_key(dict(p)) for p in itertools.permutations(pairs)}
        assert keys == {"Color:Red,Material:Cotton,Size:M"}

    def test_empty_selection(self):
        assert build_key({}) == ""
        assert parse_key("") == {}
        assert parse_key(None) == {}

    def test_unicode_round_trip(self):
        selection = {"Màu sắc": "Đỏ tươi", "Kích thước": "Lớn"}
        key = build_key(selection)
        assert key == "Kích thước:Lớn,Màu sắc:Đỏ tươi"
        assert parse_key(key) == selection

    def test_parse_splits_on_first_colon(self):
        assert parse_key("Ratio:16:9") == {"Ratio": "16:9"}

    def test_parse_tolerates_missing_separator(self):
        assert parse_key("InvalidKey") == {"": "InvalidKey"}
        assert parse_key("Size:M,,Color:Red") == {"Size": "M", "Color": "Red"}

    def test_canonical_key(self):
        assert canonical_key("Size:M,Color:Red") == "Color:Red,Size:M"
        assert canonical_key(" Color:Red,Size:M ") == "Color:Red,Size:M"
        assert canonical_key("SizeM") == "SizeM"
        assert canonical_key("Size:M,Size:L") == "Size:M,Size:L"
        assert canonical_key(None) == ""

    def test_canonical_key_strips_each_segment(self):
        assert canonical_key("Color:Red, Size:M") == "Color:Red,Size:M"
        assert canonical_key(" Size : M ,Color:Red") == "Color:Red,Size:M"
        assert canonical_key("Size:M, Size :L") == "Size:M, Size :L"


class TestStockLookup:

    def test_parse_never_raises(self):
        assert parse_stock(None) == {}
        assert parse_stock("not json") == {}
        assert parse_stock("[1, 2]") == {}
        assert parse_stock(42) == {}
        assert parse_stock('{"Size:M": 3}') == {"Size:M": 3}

    def test_parse_drops_non_integer_counts(self):
        raw = {"a:1": 2, "a:2": "3", "a:3": True, "a:4": 4.0, "a:5": 4.5}
        assert parse_stock(raw) == {"a:1": 2, "a:4": 4}

    def test_missing_key_is_zero(self):
        stock = {"Color:Red,Size:M": 10}
        assert stock_for(stock, "Color:Red,Size:M") == 10
        assert stock_for(stock, "Color:Blue,Size:M") == 0
        assert stock_for(None, "Color:Red,Size:M") == 0
        assert stock_for(stock, None) == 0

    def test_never_negative(self):
        assert stock_for({"Size:M": -5}, "Size:M") == 0

    def test_general_stock_without_axes(self):
        product = {"stock": 100, "variants": [], "variant_stock": {}}
        assert available_stock(product) == 100
        assert available_stock(product, "Size:M") == 100

    def test_variant_stock_with_axes(self):
        product = {
            "stock": 100,
            "variants": [{"name": "Size", "values": ["M"]}],
            "variant_stock": {"Size:M": 3},
        }
        assert available_stock(product, "Size:M") == 3
        assert available_stock(product) == 0
        assert total_stock(product) == 3
        assert stock_status(product, "Size:M") == "low_stock"
        assert stock_status(product, "Size:L") == "out_of_stock"
        assert stock_status({"stock": 50}) == "in_stock"


class TestCombinations:

    axes = [
        {"name": "Size", "values": ["S", "M"]},
        {"name": "Color", "values": [{"name": "Red", "color": "#FF0000"}, "Blue"]},
    ]

    def test_cartesian_product(self):
        assert sorted(regenerate_combinations(self.axes)) == [
            "Color:Blue,Size:M",
            "Color:Blue,Size:S",
            "Color:Red,Size:M",
            "Color:Red,Size:S",
        ]

    def test_no_axes(self):
        assert regenerate_combinations([]) == []
        assert regenerate_combinations(None) == []
        assert regenerate_combinations([{"name": "Size", "values": []}]) == []

    def test_reconcile_keeps_fills_and_drops(self):
        existing = {"Color:Red,Size:S": 4, "Color:Green,Size:S": 9}
        reconciled = reconcile_stock(self.axes, existing)
        assert reconciled["Color:Red,Size:S"] == 4
        assert reconciled["Color:Blue,Size:M"] == 0
        assert "Color:Green,Size:S" not in reconciled
        assert len(reconciled) == 4

    def test_display_value_and_color_axis(self):
        assert display_value({"name": "Red", "color": "#FF0000"}) == "Red"
        assert display_value("M") == "M"
        assert is_color_axis("Màu sắc")
        assert is_color_axis("Colour")
        assert not is_color_axis("Size")


class TestFormatKey:

    def test_human_readable(self):
        assert format_key("Size:M,Color:Red") == "Size: M, Color: Red"
        assert format_key("Size:Extra Large,Color:Light Blue") == "Size: Extra Large, Color: Light Blue"

    def test_malformed_parts_shown_raw(self):
        assert format_key("SizeM,màuxanh") == "SizeM, màuxanh"
        assert format_key("") == ""

    def test_keeps_diacritics(self):
        assert format_key("Màu sắc:Đỏ tươi") == "Màu sắc: Đỏ tươi"
