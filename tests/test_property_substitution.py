"""Tests for ${name} substitution."""
import pytest

from constants import FailureKind
from resolution.properties import PropertyResolutionError, PropertyResolver, has_references, project_builtins


class TestPropertyResolver:
    def test_nested_references(self):
        resolver = PropertyResolver({"a": "${b}-x", "b": "${c}", "c": "1.0"})
        assert resolver.substitute("v${a}") == "v1.0-x"

    def test_builtins_and_pom_alias(self):
        resolver = PropertyResolver({}, project_builtins("g", "a", "2", ("pg", "pa", "9")))
        assert resolver.substitute("${project.version}") == "2"
        assert resolver.substitute("${pom.groupId}") == "g"
        assert resolver.substitute("${project.parent.version}") == "9"

    def test_declared_property_shadows_builtin(self):
        resolver = PropertyResolver({"project.version": "override"}, project_builtins("g", "a", "2"))
        assert resolver.substitute("${project.version}") == "override"

    def test_undefined_property(self):
        resolver = PropertyResolver({"a": "${missing}"})
        with pytest.raises(PropertyResolutionError) as excinfo:
            resolver.substitute("${a}")
        assert excinfo.value.kind == FailureKind.UNRESOLVED_PROPERTY
        assert excinfo.value.name == "missing"

    def test_cycle_fails_deterministically(self):
        resolver = PropertyResolver({"a": "${b}", "b": "${c}", "c": "${a}"})
        for _ in range(2):
            with pytest.raises(PropertyResolutionError) as excinfo:
                resolver.substitute("${a}")
            assert excinfo.value.kind == FailureKind.PROPERTY_CYCLE
            assert str(excinfo.value) == "Property cycle: a -> b -> c -> a"

    def test_self_reference_is_a_cycle(self):
        with pytest.raises(PropertyResolutionError) as excinfo:
            PropertyResolver({"x": "${x}"}).substitute("${x}")
        assert excinfo.value.cycle

    def test_same_name_twice_in_one_value_is_not_a_cycle(self):
        resolver = PropertyResolver({"v": "1", "pair": "${v}.${v}"})
        assert resolver.substitute("${pair}") == "1.1"

    def test_try_substitute(self):
        resolver = PropertyResolver({})
        assert resolver.try_substitute("${nope}") is None
        assert resolver.try_substitute(None) is None
        assert resolver.try_substitute("plain") == "plain"

    def test_has_references(self):
        assert has_references("${a}")
        assert not has_references("1.0")
        assert not has_references(None)
