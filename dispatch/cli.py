#!/usr/bin/env python3
"""dispatch command-line tool

Capabilities:
- lookup: every alternative justification of a formula under a list of assertions
- publish: publish a JSON input document as content-addressed records
- get: print a stored record (optionally shape-checked)
- create-agent: generate an agent key profile
- set-gateway: configure the gateway used to complete missing objects
- show-config: print the effective configuration
"""

from __future__ import annotations

import argparse
import json
import logging
import pathlib
import sys
from typing import List, Optional

from dispatch.config import ConfigError, DispatchConfig, ProfileStore, load_config
from dispatch.lookup import load_assertion_list, lookup, write_result
from dispatch.objstore import LocalObjectStore, RetrievalError
from dispatch.publish import PublishError, publish
from dispatch.records import MalformedRecordError, is_of_specified_types, parse_record
from dispatch.signing import generate_agent_keypair

logger = logging.getLogger("dispatch")


def _config(args: argparse.Namespace) -> DispatchConfig:
    cfg = getattr(args, "_config", None)
    if cfg is None:
        cfg = load_config(pathlib.Path(args.config_dir) if getattr(args, "config_dir", "") else None)
        args._config = cfg
    return cfg


def cmd_lookup(args: argparse.Namespace) -> int:
    cfg = _config(args)
    assertion_cids = load_assertion_list(pathlib.Path(args.assertions))
    with LocalObjectStore.from_config(cfg) as store:
        units = lookup(args.formula, assertion_cids, store)
    out_dir = pathlib.Path(args.out_dir or cfg.results_dir.get())
    out_path = write_result(out_dir, args.formula, units)
    print(f"the result of lookup for the formula: {args.formula} was output in the file {out_path}")
    return 0


def cmd_publish(args: argparse.Namespace) -> int:
    cfg = _config(args)
    document = json.loads(pathlib.Path(args.input).read_text(encoding="utf-8"))
    with LocalObjectStore.from_config(cfg) as store:
        cid = publish(document, store, ProfileStore(cfg.config_dir))
    print(cid)
    return 0


def cmd_get(args: argparse.Namespace) -> int:
    cfg = _config(args)
    with LocalObjectStore.from_config(cfg) as store:
        obj = store.get(args.cid)
        if args.check:
            parse_record(obj)
            if not is_of_specified_types(obj, store):
                print(f"{args.cid} is not one of the publishable record formats", file=sys.stderr)
                return 2
    print(json.dumps(obj, indent=2, ensure_ascii=False))
    return 0


def cmd_create_agent(args: argparse.Namespace) -> int:
    cfg = _config(args)
    profiles = ProfileStore(cfg.config_dir)
    path = profiles.write("agents", args.name, generate_agent_keypair(args.key_type))
    print(f"agent profile {args.name} written to {path}")
    return 0


def cmd_set_gateway(args: argparse.Namespace) -> int:
    cfg = _config(args)
    cfg.set("gateway", args.url.strip())
    path = cfg.save()
    print(f"gateway set to {args.url.strip()} in {path}")
    return 0


def cmd_show_config(args: argparse.Namespace) -> int:
    cfg = _config(args)
    print(cfg.to_yaml(), end="")
    return 0


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="dispatch")
    ap.add_argument("--config-dir", default="", help="Configuration directory (default: ~/.config/dispatch)")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = ap.add_subparsers(dest="cmd", required=True)

    lk = sub.add_parser("lookup", help="Resolve every justification of a formula")
    lk.add_argument("formula", help="CID of the target formula")
    lk.add_argument("assertions", help="JSON file holding a list of assertion CIDs")
    lk.add_argument("--out-dir", default="", help="Result directory (default: results_dir config)")
    lk.set_defaults(func=cmd_lookup)

    p = sub.add_parser("publish", help="Publish a JSON input document")
    p.add_argument("input", help="Path to the input document")
    p.set_defaults(func=cmd_publish)

    g = sub.add_parser("get", help="Print a stored record")
    g.add_argument("cid")
    g.add_argument("--check", action="store_true", help="Fail unless the record has a known shape")
    g.set_defaults(func=cmd_get)

    ca = sub.add_parser("create-agent", help="Generate an agent key profile")
    ca.add_argument("name")
    ca.add_argument("--key-type", default="ed25519", choices=["ed25519", "ed448"])
    ca.set_defaults(func=cmd_create_agent)

    sg = sub.add_parser("set-gateway", help="Set the gateway used to fetch missing objects")
    sg.add_argument("url")
    sg.set_defaults(func=cmd_set_gateway)

    sc = sub.add_parser("show-config", help="Print the effective configuration")
    sc.set_defaults(func=cmd_show_config)
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        cfg = _config(args)
        level = "debug" if args.verbose else cfg.log_level.get()
        logging.basicConfig(level=level.upper(), format="%(levelname)s: %(name)s: %(message)s")
        return args.func(args)
    except (ConfigError, RetrievalError, MalformedRecordError, PublishError, ValueError, OSError) as ex:
        print(f"ERROR: {ex}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
