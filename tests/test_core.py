import base64

import pytest

from dispatch.core import (
    DAG_JSON_CODEC,
    canonical_json_bytes,
    compute_cid,
    is_link,
    iter_links,
    link_target,
    make_link,
    normalize_cid,
    parse_damf_reference,
    unique_in_order,
)


def _decode(cid: str) -> bytes:
    body = cid[1:].upper()
    return base64.b32decode(body + "=" * (-len(body) % 8))


def test_canonical_json_is_sorted_and_compact():
    assert canonical_json_bytes({"b": 1, "a": [1, {"d": "é", "c": None}]}) == '{"a":[1,{"c":null,"d":"é"}],"b":1}'.encode("utf-8")


def test_canonical_json_rejects_floats():
    with pytest.raises(ValueError, match=r"\.x\[1\]"):
        canonical_json_bytes({"x": [1, 2.5]})


def test_cid_ignores_key_order():
    a = {"format": "tool", "content": "coq"}
    b = {"content": "coq", "format": "tool"}
    assert compute_cid(a) == compute_cid(b)
    assert compute_cid(a) != compute_cid({"format": "tool", "content": "lean"})


def test_cid_layout():
    cid = compute_cid({"format": "tool", "content": "coq"})
    assert cid.startswith("b")
    assert cid == cid.lower()
    raw = _decode(cid)
    # version 1, dag-json (0x0129 as varint), sha2-256, 32-byte digest
    assert raw[:5] == bytes([0x01, 0xA9, 0x02, 0x12, 0x20])
    assert len(raw) == 5 + 32
    assert DAG_JSON_CODEC == 0x0129
    assert normalize_cid(cid) == cid


def test_normalize_cid_rejects_path_like_values():
    for bad in ("", "  ", "../etc/passwd", "a/b", "short"):
        with pytest.raises(ValueError):
            normalize_cid(bad)
    assert normalize_cid("  bafyabcdefgh  ") == "bafyabcdefgh"


def test_links():
    link = make_link("bafyabcdefgh")
    assert link == {"/": "bafyabcdefgh"}
    assert is_link(link)
    assert link_target(link) == "bafyabcdefgh"
    assert not is_link({"/": "bafyabcdefgh", "extra": 1})
    assert not is_link({"/": ""})
    assert not is_link({"/": 3})
    assert not is_link("bafyabcdefgh")
    with pytest.raises(ValueError):
        link_target({"cid": "bafyabcdefgh"})


def test_iter_links_walks_nested_structures():
    obj = {
        "format": "sequent",
        "dependencies": [make_link("bafyaaaaaaaa"), make_link("bafybbbbbbbb")],
        "conclusion": {"/": "bafycccccccc"},
        "meta": {"nested": [{"deep": make_link("bafydddddddd")}]},
    }
    assert sorted(iter_links(obj)) == ["bafyaaaaaaaa", "bafybbbbbbbb", "bafycccccccc", "bafydddddddd"]
    assert list(iter_links({"content": "no links"})) == []


def test_damf_references():
    assert parse_damf_reference("damf:bafyabcdefgh") == "bafyabcdefgh"
    assert parse_damf_reference("bafyabcdefgh") is None
    assert parse_damf_reference({"/": "bafyabcdefgh"}) is None
    with pytest.raises(ValueError):
        parse_damf_reference("damf:")


def test_unique_in_order():
    assert unique_in_order(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]
