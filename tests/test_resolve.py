import sys

from dispatch.ingest import AssertionUnit
from dispatch.resolve import JustificationUnit, Resolver, Step, base_case, combine, resolve


def _j(deps=(), via=()):
    return JustificationUnit(frozenset(deps), tuple(Step(a, m) for a, m in via))


def test_formula_without_derivations_is_its_own_premise():
    assert set(resolve("F", {})) == {_j({"F"})}
    assert resolve("F", {"G": [AssertionUnit("a", "axiom", ())]}) == [base_case("F")]


def test_single_zero_premise_assertion():
    index = {"F": [AssertionUnit("a", "axiom", ())]}
    assert set(resolve("F", index)) == {_j({"F"}), _j((), [("a", "axiom")])}


def test_chain_keeps_dependency_order_in_via():
    index = {
        "F": [AssertionUnit("a1", "axiom", ("G",))],
        "G": [AssertionUnit("a2", "axiom", ())],
    }
    result = set(resolve("F", index))
    assert _j((), [("a2", "axiom"), ("a1", "axiom")]) in result
    assert result == {
        _j({"F"}),
        _j({"G"}, [("a1", "axiom")]),
        _j((), [("a2", "axiom"), ("a1", "axiom")]),
    }


def test_multi_premise_cartesian_expansion():
    g_alts = [_j({"G"}), _j({"X"}, [("g1", "axiom")])]
    h_alts = [_j({"H"}), _j({"Y"}, [("h1", "axiom")]), _j({"Z"}, [("h2", None)])]
    unit = AssertionUnit("a", "conjecture", ("G", "H"))

    combined = combine(unit, {"G": g_alts, "H": h_alts})

    assert len(combined) == 6
    expected = {
        g.merge(h).extend(Step("a", "conjecture"))
        for g in g_alts
        for h in h_alts
    }
    assert set(combined) == expected
    # G's steps come before H's steps, the rule's own step last
    assert _j({"X", "Y"}, [("g1", "axiom"), ("h1", "axiom"), ("a", "conjecture")]) in combined


def test_multi_premise_through_resolve():
    index = {
        "F": [AssertionUnit("a", "conjecture", ("G", "H"))],
        "G": [AssertionUnit("g1", "axiom", ("X",))],
        "H": [AssertionUnit("h1", "axiom", ("Y",)), AssertionUnit("h2", "tool-cid", ("Z",))],
    }
    result = resolve("F", index)
    assert len(result) == 1 + 6
    assert _j({"X", "Z"}, [("g1", "axiom"), ("h2", "tool-cid"), ("a", "conjecture")]) in result


def test_dependencies_absent_from_index_stay_in_base_form():
    unit = AssertionUnit("a", "axiom", ("P", "Q"))
    assert combine(unit, {}) == [_j({"P", "Q"}, [("a", "axiom")])]
    assert combine(AssertionUnit("a", "axiom", ("P",)), {}) == [_j({"P"}, [("a", "axiom")])]


def test_repeated_dependency_is_combined_once():
    unit = AssertionUnit("a", "axiom", ("G", "G"))
    alts = {"G": [_j({"G"}), _j((), [("g", "axiom")])]}
    assert combine(unit, alts) == [
        _j({"G"}, [("a", "axiom")]),
        _j((), [("g", "axiom"), ("a", "axiom")]),
    ]


def test_cycle_drops_the_cyclic_assertion():
    index = {
        "F": [AssertionUnit("a1", "axiom", ("G",))],
        "G": [AssertionUnit("a2", "axiom", ("F",))],
    }
    result = set(resolve("F", index))
    assert _j({"F"}) in result
    # nothing may pass through a2: it would derive F from F
    assert all(Step("a2", "axiom") not in u.via for u in result)
    assert result == {_j({"F"}), _j({"G"}, [("a1", "axiom")])}


def test_self_dependency_is_dropped_but_siblings_survive():
    index = {
        "F": [
            AssertionUnit("loop", "axiom", ("F",)),
            AssertionUnit("ok", "axiom", ()),
        ],
    }
    assert set(resolve("F", index)) == {_j({"F"}), _j((), [("ok", "axiom")])}


def test_longer_cycle_is_cut_where_it_closes():
    # T -> F -> G -> T: g is dropped while expanding G under path (T, F, G)
    index = {
        "T": [AssertionUnit("t", "axiom", ("F",))],
        "F": [AssertionUnit("f", "axiom", ("G",))],
        "G": [AssertionUnit("g", "axiom", ("T",))],
    }
    result = resolve("T", index)
    assert all(Step("g", "axiom") not in u.via for u in result)


def test_equal_alternatives_collapse():
    index = {
        "F": [
            AssertionUnit("a", "axiom", ("P",)),
            AssertionUnit("a", "axiom", ("P",)),
        ],
    }
    result = resolve("F", index)
    assert result == [_j({"F"}), _j({"P"}, [("a", "axiom")])]


def test_resolve_is_deterministic():
    index = {
        "F": [AssertionUnit("a", "conjecture", ("G", "H")), AssertionUnit("b", "axiom", ())],
        "G": [AssertionUnit("g", "axiom", ())],
        "H": [AssertionUnit("h", None, ("G",))],
    }
    first = resolve("F", index)
    second = resolve("F", index)
    assert first == second
    assert set(first) == set(second)


def test_shared_premise_is_computed_once():
    index = {
        "F": [AssertionUnit("a", "axiom", ("G", "H"))],
        "G": [AssertionUnit("g", "axiom", ("S",))],
        "H": [AssertionUnit("h", "axiom", ("S",))],
        "S": [AssertionUnit("s", "axiom", ())],
    }
    resolver = Resolver(index)
    result = resolver.resolve("F")
    assert set(resolver.memo) == {"F", "G", "H", "S"}
    assert _j((), [("s", "axiom"), ("g", "axiom"), ("s", "axiom"), ("h", "axiom"), ("a", "axiom")]) in result


def _stack_depth():
    frame, depth = sys._getframe(), 0
    while frame is not None:
        depth += 1
        frame = frame.f_back
    return depth


def test_chain_depth_is_not_bounded_by_recursion_limit():
    depth = 400
    index = {f"F{i}": [AssertionUnit("a", "axiom", (f"F{i + 1}",))] for i in range(depth)}
    limit = sys.getrecursionlimit()
    sys.setrecursionlimit(_stack_depth() + 100)
    try:
        result = resolve("F0", index)
    finally:
        sys.setrecursionlimit(limit)
    assert len(result) == depth + 1
    assert _j({f"F{depth}"}, [("a", "axiom")] * depth) in result


def test_to_dict_sorts_dependencies():
    unit = _j({"b", "a"}, [("x", None)])
    assert unit.to_dict() == {"dependencies": ["a", "b"], "via": [{"agent": "x", "mode": None}]}
