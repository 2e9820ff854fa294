#!/usr/bin/env python3
"""Start the delivery zone API with uvicorn, honouring the PORT environment variable."""

import os
import sys

import uvicorn


def _port() -> int:
    raw = os.environ.get("PORT", "8000")
    try:
        return int(raw)
    except ValueError:
        print(f"Warning: Invalid PORT value '{raw}', using default 8000", file=sys.stderr)
        return 8000


def main() -> None:
    src_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), "src")
    if os.path.isdir(src_path) and src_path not in sys.path:
        sys.path.insert(0, src_path)

    port = _port()
    print(f"Starting delivery zone API on port {port}...", file=sys.stderr)
    uvicorn.run(
        "deliveryzones.main:app",
        host="0.0.0.0",
        port=port,
        proxy_headers=True,
        forwarded_allow_ips="*",
    )


if __name__ == "__main__":
    main()
