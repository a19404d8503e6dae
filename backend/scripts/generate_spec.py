#!/usr/bin/env python
"""Write or verify the OpenAPI document served at /openapi.json.

Usage:
  python -m scripts.generate_spec                       # print the document hash
  python -m scripts.generate_spec --out openapi.json     # write the document
  python -m scripts.generate_spec --check openapi.json   # exit 1 when the file is stale
"""
from __future__ import annotations
import argparse, json, hashlib, pathlib, sys

from permit_hub.openapi import build_openapi_spec


def canonical_json(spec: dict) -> str:
    return json.dumps(spec, indent=2, sort_keys=True) + '\n'


def spec_hash(spec: dict) -> str:
    blob = json.dumps(spec, sort_keys=True, separators=(',', ':')).encode()
    return hashlib.sha256(blob).hexdigest()


def main(argv: list[str]) -> int:
    p = argparse.ArgumentParser(description='Generate the permit hub OpenAPI document')
    group = p.add_mutually_exclusive_group()
    group.add_argument('--out', help='write the document to this path')
    group.add_argument('--check', help='compare this file with the generated document')
    args = p.parse_args(argv)

    spec = build_openapi_spec()
    if args.out:
        out_path = pathlib.Path(args.out)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(canonical_json(spec))
        print(f'wrote {out_path} ({len(spec["paths"])} paths)')
    elif args.check:
        current = pathlib.Path(args.check)
        if not current.exists() or current.read_text() != canonical_json(spec):
            print(f'{current} is stale; regenerate with --out {current}')
            return 1
        print(f'{current} is up to date')
    else:
        print(spec_hash(spec))
    return 0


if __name__ == '__main__':  # pragma: no cover
    sys.exit(main(sys.argv[1:]))
