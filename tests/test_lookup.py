import json

import pytest

from dispatch.lookup import load_assertion_list, lookup, result_document, write_result
from dispatch.objstore import RetrievalError
from dispatch.signing import fingerprint


def test_lookup_end_to_end(graph, store, alice, bob, tmp_path):
    tool = graph.tool("abella")
    a1 = graph.derive(alice, "goal", ["lemma", "hyp"], "axiom")
    a2 = graph.derive(bob, "lemma", [], {"/": tool})
    forged = graph.assertion(bob, graph.production("goal", [], "axiom"), signature="00" * 64)

    goal = graph.formula("goal")
    units = lookup(goal, [a1, a2, forged], store)

    out = write_result(tmp_path / "results", goal, units)
    assert out == tmp_path / "results" / f"{goal}.json"
    doc = json.loads(out.read_text(encoding="utf-8"))

    fa, fb = fingerprint(alice["public-key"]), fingerprint(bob["public-key"])
    lemma, hyp = graph.formula("lemma"), graph.formula("hyp")
    assert doc == [
        {"dependencies": [goal], "via": []},
        {"dependencies": sorted([lemma, hyp]), "via": [{"agent": fa, "mode": "axiom"}]},
        {"dependencies": [hyp], "via": [{"agent": fb, "mode": tool}, {"agent": fa, "mode": "axiom"}]},
    ]
    assert out.read_text(encoding="utf-8").endswith("]\n")


def test_lookup_without_assertions_yields_the_base_case(graph, store):
    goal = graph.formula("goal")
    assert result_document(lookup(goal, [], store)) == [{"dependencies": [goal], "via": []}]


def test_lookup_fails_without_writing_when_content_is_missing(graph, store, tmp_path):
    with pytest.raises(RetrievalError):
        lookup(graph.formula("goal"), ["bafymissingassertion"], store)
    assert not (tmp_path / "results").exists()


def test_lookup_rejects_malformed_target(store):
    with pytest.raises(ValueError):
        lookup("not a cid", [], store)


def test_load_assertion_list(tmp_path):
    path = tmp_path / "assertions.json"
    path.write_text(json.dumps(["bafyone12345", "bafytwo12345"]), encoding="utf-8")
    assert load_assertion_list(path) == ["bafyone12345", "bafytwo12345"]


@pytest.mark.parametrize("content", ['{"a": 1}', '["ok", 3]', '"bafyone12345"'])
def test_load_assertion_list_rejects_other_shapes(tmp_path, content):
    path = tmp_path / "assertions.json"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(ValueError, match="JSON array"):
        load_assertion_list(path)
