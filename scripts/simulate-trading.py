#!/usr/bin/env python3
"""
Trade Traffic Simulation Script for the Microgrid Trading Service

Creates a stream of peer-to-peer trades between the baseline community
members, then executes or cancels a share of them, and reports the market
statistics at the end.
"""

import requests
import random
import time
import json
import argparse
from typing import Any, Dict, List, Optional
import logging

from microgrid.core.security import create_access_token

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Configuration
BASE_URL = "http://localhost:8000/api/v1/microgrid"

# Baseline households and their typical trade sizes
MEMBER_PROFILES = {
    "mem_a1": {"household": "Villa 12 · Mehta Family", "max_kwh": 8.0},
    "mem_a2": {"household": "Villa 05 · Banerjees", "max_kwh": 6.0},
    "mem_a3": {"household": "Villa 08 · Murthys", "max_kwh": 4.0},
    "mem_b1": {"household": "Tower B · Apt 1803", "max_kwh": 5.0},
    "mem_b2": {"household": "Tower C · Apt 2101", "max_kwh": 3.0},
}

# Price band in credits per kWh
PRICE_RANGE = (4.0, 7.0)


class TradingSimulator:
    """Trade traffic generator"""

    def __init__(self, base_url: str = BASE_URL, token: Optional[str] = None, seed: Optional[int] = None):
        self.base_url = base_url.rstrip("/")
        self.session = requests.Session()
        self.random = random.Random(seed)
        if token:
            self.session.headers.update({"Authorization": f"Bearer {token}"})

    def _post_action(self, action: str, trade: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            response = self.session.post(f"{self.base_url}/trading/", json={"action": action, "trade": trade})

            if response.status_code == 200:
                return response.json()["data"]
            logger.error(f"Trade {action} failed: {response.status_code} - {response.text}")
            return None

        except requests.RequestException as e:
            logger.error(f"Error sending trade {action}: {e}")
            return None

    def random_trade(self) -> Dict[str, Any]:
        """Draw a trade between two distinct members"""
        seller_id, buyer_id = self.random.sample(list(MEMBER_PROFILES), 2)
        seller = MEMBER_PROFILES[seller_id]
        return {
            "buyerId": buyer_id,
            "sellerId": seller_id,
            "fromHousehold": seller["household"],
            "toHousehold": MEMBER_PROFILES[buyer_id]["household"],
            "amountKwh": round(self.random.uniform(0.5, seller["max_kwh"]), 1),
            "pricePerKwh": round(self.random.uniform(*PRICE_RANGE), 2),
        }

    def run(self, count: int, execute_ratio: float = 0.7, delay: float = 0.5) -> Dict[str, Any]:
        """Create ``count`` trades and resolve each one"""
        results = {"created": 0, "executed": 0, "cancelled": 0, "failed": 0}
        created: List[str] = []

        logger.info(f"Starting trade simulation: {count} trades, execute ratio {execute_ratio}")
        start = time.time()

        for index in range(count):
            trade = self._post_action("create_trade", self.random_trade())
            if trade is None:
                results["failed"] += 1
                continue
            results["created"] += 1
            created.append(trade["id"])

            if delay > 0:
                time.sleep(delay)

            if (index + 1) % 10 == 0:
                logger.info(f"Created {index + 1}/{count} trades")

        for trade_id in created:
            action = "execute_trade" if self.random.random() < execute_ratio else "cancel_trade"
            if self._post_action(action, {"id": trade_id}) is None:
                # Already settled by the live simulation
                results["failed"] += 1
            elif action == "execute_trade":
                results["executed"] += 1
            else:
                results["cancelled"] += 1

        results["duration_seconds"] = round(time.time() - start, 2)
        logger.info("Simulation completed!")
        logger.info(f"Results: {json.dumps(results, indent=2)}")
        return results

    def market_summary(self) -> Optional[Dict[str, Any]]:
        try:
            response = self.session.get(f"{self.base_url}/trading/market")
            response.raise_for_status()
            return response.json()["data"]
        except requests.RequestException as e:
            logger.error(f"Error fetching market data: {e}")
            return None


def main():
    """Main function"""
    parser = argparse.ArgumentParser(description="Microgrid Trade Traffic Simulator")
    parser.add_argument("--base-url", default=BASE_URL, help="Microgrid API base URL")
    parser.add_argument("--token", help="Bearer token (minted locally from JWT settings when omitted)")
    parser.add_argument("--user-id", default="trading-simulator", help="Subject for a locally minted token")
    parser.add_argument("--count", type=int, default=20, help="Number of trades to create")
    parser.add_argument("--execute-ratio", type=float, default=0.7, help="Share of trades to execute")
    parser.add_argument("--delay", type=float, default=0.5, help="Delay between requests (seconds)")
    parser.add_argument("--seed", type=int, help="Random seed for reproducible traffic")

    args = parser.parse_args()

    token = args.token or create_access_token({"sub": args.user_id, "role": "user"})
    simulator = TradingSimulator(args.base_url, token, args.seed)

    try:
        simulator.run(args.count, args.execute_ratio, args.delay)
        market = simulator.market_summary()
        if market:
            logger.info(f"Market price {market['currentPrice']} over {market['settledTrades']} settled trades")
    except KeyboardInterrupt:
        logger.info("Simulation interrupted by user")


if __name__ == "__main__":
    main()
