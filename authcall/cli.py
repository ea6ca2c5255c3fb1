#!/usr/bin/env python3
import argparse
import json
import sys

from authcall.errors import AuthCallError, UserSuspendedError
from authcall.runner import run_once
from authcall.utils import get_logger

logger = get_logger(__name__)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Perform an authenticated call against the service")
    parser.add_argument("--config", required=True, help="Path to YAML config")
    parser.add_argument("--method", default="GET", help="HTTP method")
    parser.add_argument("--path", required=True, help="Endpoint path relative to service.base_url")
    parser.add_argument("--data", default=None, help="JSON request body")
    parser.add_argument("--async", dest="use_async", action="store_true", help="Use the callback-driven call mode")
    parser.add_argument("--wait-timeout", type=float, default=None, help="Seconds to wait for an async result")
    parser.add_argument(
        "--wait-for-connection",
        type=int,
        default=0,
        metavar="ATTEMPTS",
        help="Probe connectivity up to ATTEMPTS times before calling",
    )
    args = parser.parse_args(argv)

    payload = json.loads(args.data) if args.data else None
    try:
        result = run_once(
            args.config,
            args.method,
            args.path,
            payload=payload,
            use_async=args.use_async,
            wait_timeout=args.wait_timeout,
            wait_connection_attempts=args.wait_for_connection,
        )
    except UserSuspendedError as e:
        logger.error("call refused, account suspended: %s", e)
        return 2
    except AuthCallError as e:
        logger.error("call failed: %s cause=%r", e, e.__cause__)
        return 1

    print(json.dumps(result, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
