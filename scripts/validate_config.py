#!/usr/bin/env python3
"""Check a client config with the same rules the runtime applies."""

import argparse
import pathlib
import sys

sys.path.insert(0, str(pathlib.Path(__file__).resolve().parent.parent))

from authcall.config.loader import load_config


def main(argv=None):
    ap = argparse.ArgumentParser(description="Validate an authcall YAML config")
    ap.add_argument("--config", required=True)
    args = ap.parse_args(argv)
    cfg_path = pathlib.Path(args.config)
    try:
        config = load_config(str(cfg_path))
    except (OSError, ValueError) as e:
        print("[ERROR] Config invalid:", e)
        sys.exit(2)
    print("[OK] Config valid:", cfg_path, "base_url:", config.service.base_url)


if __name__ == "__main__":
    main()
