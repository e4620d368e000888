#!/usr/bin/env python3
"""
Deploy a BlockWeave registry.

Signing credentials and the target store come from blockweave.yaml,
.env or the environment (PRIVATE_KEY / BLOCKWEAVE_ACCOUNT,
BLOCKWEAVE_STORE_DIR).

Usage:
    python scripts/deploy.py [fractal|simple]
"""

import sys
from pathlib import Path

# Add blockweave to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from blockweave.config import load_settings, signing_account
from blockweave.deploy import deploy


def main():
    kind = sys.argv[1] if len(sys.argv) > 1 else None

    settings = load_settings()
    account = signing_account(settings)
    if account is None:
        print("No signing account configured. Set PRIVATE_KEY or BLOCKWEAVE_ACCOUNT.")
        sys.exit(1)

    try:
        deployment = deploy(settings, account, kind=kind)
    except ValueError as e:
        print(f"Deployment failed: {e}")
        sys.exit(1)

    print(f"BlockWeave {deployment.kind} registry deployed to: {deployment.address}")
    print(f"  Owner: {deployment.owner}")
    print(f"  Store: {deployment.store_dir}")


if __name__ == "__main__":
    main()
