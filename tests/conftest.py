import pathlib
import sys
from typing import Any, Dict, Iterable, Optional

import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import dispatch`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))


class GraphBuilder:
    """Writes small claim graphs into a store, naming formulas by their content."""

    def __init__(self, store):
        from dispatch.core import make_link

        self.store = store
        self._link = make_link
        self.language = store.put({"format": "language", "content": "test-logic"})
        self.formulas: Dict[str, str] = {}

    def formula(self, name: str) -> str:
        if name not in self.formulas:
            self.formulas[name] = self.store.put({
                "format": "formula",
                "language": self._link(self.language),
                "content": name,
                "context": [],
            })
        return self.formulas[name]

    def tool(self, name: str) -> str:
        return self.store.put({"format": "tool", "content": name})

    def sequent(self, conclusion: str, deps: Iterable[str] = ()) -> str:
        return self.store.put({
            "format": "sequent",
            "dependencies": [self._link(self.formula(d)) for d in deps],
            "conclusion": self._link(self.formula(conclusion)),
        })

    def production(self, conclusion: str, deps: Iterable[str] = (), mode: Any = "axiom") -> str:
        return self.store.put({
            "format": "production",
            "sequent": self._link(self.sequent(conclusion, deps)),
            "mode": mode,
        })

    def assertion(self, keys: Dict[str, str], claim_cid: str, signature: Optional[str] = None) -> str:
        from dispatch.signing import sign_claim

        return self.store.put({
            "format": "assertion",
            "agent": keys["public-key"],
            "claim": self._link(claim_cid),
            "signature": signature if signature is not None else sign_claim(keys["private-key"], claim_cid),
        })

    def derive(self, keys: Dict[str, str], conclusion: str, deps: Iterable[str] = (), mode: Any = "axiom") -> str:
        return self.assertion(keys, self.production(conclusion, deps, mode))


@pytest.fixture()
def store():
    from dispatch.objstore import MemoryObjectStore

    return MemoryObjectStore()


@pytest.fixture()
def graph(store) -> GraphBuilder:
    return GraphBuilder(store)


@pytest.fixture(scope="session")
def alice() -> Dict[str, str]:
    from dispatch.signing import generate_agent_keypair

    return generate_agent_keypair()


@pytest.fixture(scope="session")
def bob() -> Dict[str, str]:
    from dispatch.signing import generate_agent_keypair

    return generate_agent_keypair()


@pytest.fixture()
def config_dir(tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch) -> pathlib.Path:
    """Temporary config directory with no DISPATCH_* environment leaking in."""
    for var in ("DISPATCH_STORE_DIRS", "DISPATCH_GATEWAY", "DISPATCH_TIMEOUT_SECONDS",
                "DISPATCH_RESULTS_DIR", "DISPATCH_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    d = tmp_path / "config"
    d.mkdir()
    monkeypatch.setenv("DISPATCH_CONFIG_DIR", str(d))
    return d
