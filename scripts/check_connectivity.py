"""Verify connectivity to the node and the pool contract."""

import asyncio
import os
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from dhtrader.chain.client import ChainClient
from dhtrader.config import AppConfig, Secrets, load_config
from dhtrader.errors import DHTraderError


async def check_node(config: AppConfig, secrets: Secrets) -> bool:
    """Resolve the manager account and read the fund composition."""
    print(f"Checking node at {config.chain.rpc_url}...")
    try:
        async with await ChainClient.connect(config.chain, secrets) as client:
            print(f"  Manager account: {client.manager}")
            print(f"  Nonce: {await client.get_nonce()}")
            assets = await client.read_snapshot()
            print(f"  Pool {client.contract.address} holds {len(assets)} assets")
            for symbol, asset in sorted(assets.items()):
                print(f"    {symbol:<8} {asset.balance:>20.6f} @ {asset.rate:.6f}")
            missing = [s for s in config.rebalancing.expected_shares if s not in assets]
            if missing:
                print(f"  Missing target symbols: {missing}")
                return False
        print("  Node: OK")
        return True
    except DHTraderError as e:
        print(f"  Node: FAILED - {type(e).__name__}: {e}")
        return False


def main():
    print("=" * 50)
    print("dhtrader - Connectivity Check")
    print("=" * 50)

    config = load_config(Path(os.getenv("DHTRADER_CONFIG", "config/settings.yaml")))
    secrets = Secrets()

    if asyncio.run(check_node(config, secrets)):
        print("\nAll checks passed. Ready to rebalance.")
    else:
        print("\nSome checks failed. Fix the issues above.")
        sys.exit(1)


if __name__ == "__main__":
    main()
