"""Local stand-in for the Claude Code CLI used by session integration tests."""

from __future__ import annotations

import argparse
import os
import sys
import time


def main(argv: list[str] | None = None) -> int:
    """Echo how the session invoked us, then exit as configured by env vars."""

    parser = argparse.ArgumentParser()
    parser.add_argument("--print", action="store_true")
    parser.add_argument("--dangerously-skip-permissions", action="store_true")
    parser.add_argument("--session-id", default=None)
    parser.add_argument("--resume", default=None)
    parser.add_argument("prompt")
    args = parser.parse_args(argv)

    if args.session_id and args.resume:
        parser.error("--session-id and --resume are mutually exclusive")
    mode = "create" if args.session_id else "resume"
    token = args.session_id or args.resume or ""

    print(f"mode={mode} token={token}", flush=True)
    print(f"unattended={int(args.dangerously_skip_permissions)}", flush=True)
    print(f"prompt={args.prompt}", flush=True)

    delay = float(os.getenv("FRINK_ECHO_SLEEP_SECONDS", "0") or 0)
    if delay > 0:
        time.sleep(delay)

    exit_code = int(os.getenv("FRINK_ECHO_EXIT_CODE", "0") or 0)
    if exit_code:
        print("echo assistant failure", file=sys.stderr, flush=True)
    return exit_code


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
