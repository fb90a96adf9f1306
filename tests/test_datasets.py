"""Tests for data sets and the data decorator."""

import pytest

from testharness.core.attributes import DATA_SETS_ATTR, data, get_data_sets
from testharness.core.datasets import DataSets, build_data_sets


class TestDataSetsExpansion:
    """Tests for expanding data sets into bindings."""

    def test_cartesian_product(self):
        """Test that variables combine into every pair."""
        data_sets = DataSets()
        data_sets.add(("a", [1, 2]))
        data_sets.add(("b", [3, 4]))

        bindings = list(data_sets)

        assert len(bindings) == 4
        assert bindings[0] == ("a: 1, b: 3", {"a": 1, "b": 3})
        assert [label for label, _ in bindings] == [
            "a: 1, b: 3",
            "a: 1, b: 4",
            "a: 2, b: 3",
            "a: 2, b: 4",
        ]

    def test_labels_sort_variable_names(self):
        """Test that labels list variables by name."""
        data_sets = DataSets()
        data_sets.add(("zeta", ["z"]))
        data_sets.add(("alpha", ["a"]))

        assert list(data_sets) == [("alpha: 'a', zeta: 'z'", {"zeta": "z", "alpha": "a"})]

    def test_empty_domain_is_transparent(self):
        """Test that a variable without values does not remove bindings."""
        data_sets = DataSets()
        data_sets.add(("a", [1, 2]))
        data_sets.add(("b", []))

        assert list(data_sets) == [("a: 1", {"a": 1}), ("a: 2", {"a": 2})]

    def test_only_empty_domains(self):
        """Test that only empty variables expand to nothing."""
        data_sets = DataSets()
        data_sets.add(("a", []))
        assert list(data_sets) == []

    def test_value_sets_before_matrix(self):
        """Test that value sets come first, verbatim."""
        data_sets = DataSets()
        data_sets.add(("n", [1]))
        data_sets.add({"empty": "", "plain": "text"})

        assert list(data_sets) == [
            ("empty", ""),
            ("plain", "text"),
            ("n: 1", {"n": 1}),
        ]

    def test_generator_runs_on_each_expansion(self):
        """Test that generators are called lazily, once per expansion."""
        calls = []

        def generate():
            calls.append(1)
            return {"generated": len(calls)}

        data_sets = DataSets()
        data_sets.add(generate)
        assert calls == []

        assert list(data_sets) == [("generated", 1)]
        assert list(data_sets) == [("generated", 2)]

    def test_generator_returning_variable(self):
        """Test that a generator may produce a variable domain."""
        data_sets = DataSets()
        data_sets.add(lambda: ("x", [1, 2]))
        assert [label for label, _ in data_sets] == ["x: 1", "x: 2"]

    def test_value_set_must_be_mapping(self):
        """Test that values which are not mappings are rejected when added."""
        with pytest.raises(TypeError):
            DataSets().add("a string")
        with pytest.raises(TypeError):
            DataSets().add(42)

    def test_generator_result_must_be_mapping_or_variable(self):
        """Test that a generator producing another shape fails on expansion."""
        data_sets = DataSets()
        data_sets.add(lambda: "a string")
        with pytest.raises(TypeError):
            list(data_sets)

    def test_invalid_variable_shape(self):
        """Test that a variable must be a (name, values) pair."""
        with pytest.raises(ValueError):
            DataSets().add(("a", [1], "extra"))


class TestDataSetsKeep:
    """Tests for keep()."""

    def test_keep_drops_unmarked(self):
        """Test that unmarked data sets yield nothing once kept."""
        data_sets = DataSets()
        data_sets.add({"one": 1})
        kept = data_sets.keep()
        assert len(kept) == 0
        assert list(kept) == []

    def test_keep_retains_marked(self):
        """Test that data sets added with keep survive."""
        data_sets = DataSets()
        data_sets.add({"one": 1}, {"keep": True})
        data_sets.add({"two": 2})
        assert list(data_sets.keep()) == [("one", 1)]


class TestDataSetsEquality:
    """Tests for equality and hashing."""

    def test_equal_with_same_additions(self):
        """Test that identical additions compare and hash equal."""
        first = DataSets().append(("a", [1, 2])).append({"x": [1]})
        second = DataSets().append(("a", [1, 2])).append({"x": [1]})
        assert first == second
        assert hash(first) == hash(second)

    def test_order_matters(self):
        """Test that reordering variables breaks equality."""
        first = DataSets().append(("a", [1])).append(("b", [2]))
        second = DataSets().append(("b", [2])).append(("a", [1]))
        assert first != second

    def test_options_matter(self):
        """Test that the same data set under different options is not equal."""
        kept = DataSets()
        kept.add({"one": 1}, {"keep": True})
        plain = DataSets()
        plain.add({"one": 1}, {})

        assert kept != plain
        assert hash(kept) != hash(plain)

    def test_usable_as_dict_key(self):
        """Test that data sets can key a mapping."""
        table = {DataSets().append(("a", [1])): "found"}
        assert table[DataSets().append(("a", [1]))] == "found"


class TestBuildDataSets:
    """Tests for the data() argument forms."""

    def register(self, *args, **kwargs):
        data_sets = DataSets()
        build_data_sets(*args, **kwargs)(data_sets)
        return data_sets

    def test_label_and_value(self):
        """Test data("label", value)."""
        assert list(self.register("empty string", "")) == [("empty string", "")]

    def test_mapping(self):
        """Test data({label: value})."""
        assert list(self.register({"a": 1, "b": 2})) == [("a", 1), ("b", 2)]

    def test_variable(self):
        """Test data("name", [values])."""
        assert list(self.register("n", [1, 2])) == [("n: 1", {"n": 1}), ("n: 2", {"n": 2})]

    def test_keep_option(self):
        """Test that keep is recorded in the options."""
        data_sets = self.register({"a": 1}, keep=True)
        assert list(data_sets.keep()) == [("a", 1)]

    def test_too_many_arguments(self):
        """Test that more than two positional arguments is an error."""
        with pytest.raises(TypeError):
            build_data_sets("a", 1, 2)


class TestDataDecorator:
    """Tests for the data decorator."""

    def test_stacked_decorators_follow_source_order(self):
        """Test that the topmost decorator's data comes first."""

        @data("first", 1)
        @data("second", 2)
        def test_method(self, value):
            pass

        assert list(get_data_sets(test_method)) == [("first", 1), ("second", 2)]

    def test_undecorated_function(self):
        """Test that plain functions have no data sets."""

        def test_method(self):
            pass

        assert get_data_sets(test_method) is None
        assert not hasattr(test_method, DATA_SETS_ATTR)
