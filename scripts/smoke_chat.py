"""Smoke test: set a PIN, ask for a trade, confirm it, check the portfolio.

Usage:
    QUOTE_PROVIDER=static uvicorn trade_chat.api.main:app --port 8000
    python scripts/smoke_chat.py [--base-url http://localhost:8000] [--user smoke-user]

Asserts:
    - No 500 responses
    - The trade request gets a PIN challenge
    - The PIN executes the trade and the portfolio reflects it
"""
import sys
import uuid
import argparse
import requests

SMOKE_PIN = "2468"


def call(method: str, url: str, headers: dict, label: str, **kwargs) -> dict:
    print(f"\n{'='*60}")
    print(f"[TEST] {label}")
    print(f"  {method} {url}")

    resp = requests.request(method, url, headers=headers, timeout=30, **kwargs)
    if resp.status_code >= 500:
        print(f"  [FAIL] Got {resp.status_code}: {resp.text[:300]}")
        sys.exit(1)

    data = resp.json()
    print(f"  Status: {resp.status_code}  X-Request-ID: {resp.headers.get('X-Request-ID')}")
    if "reply_text" in data:
        print(f"  Reply: {data['reply_text'][:160]}")
    data["_status"] = resp.status_code
    return data


def main():
    parser = argparse.ArgumentParser(description="Trade chat smoke test")
    parser.add_argument("--base-url", default="http://localhost:8000")
    parser.add_argument("--user", default=f"smoke-{uuid.uuid4().hex[:6]}")
    parser.add_argument("--symbol", default="AAPL")
    args = parser.parse_args()

    base = args.base_url.rstrip("/")
    headers = {"X-Dev-User": args.user, "Content-Type": "application/json"}
    session_id = f"smoke-{uuid.uuid4().hex[:8]}"

    data = call("PUT", f"{base}/api/v1/users/me/pin", headers, "Set PIN", json={"pin": SMOKE_PIN})
    if data["_status"] != 200:
        print("  [FAIL] Could not set PIN")
        sys.exit(1)

    data = call("POST", f"{base}/api/v1/chat/message", headers, f"Buy 2 {args.symbol}",
                json={"session_id": session_id, "message": f"buy 2 shares of {args.symbol}"})
    if not data.get("awaiting_pin"):
        print("  [FAIL] Expected a PIN challenge")
        sys.exit(1)

    data = call("POST", f"{base}/api/v1/chat/message", headers, "Confirm with PIN",
                json={"session_id": session_id, "pin": SMOKE_PIN})
    trade = data.get("trade_result")
    if not trade:
        print(f"  [FAIL] Trade not executed ({data.get('error_code')})")
        sys.exit(1)

    data = call("GET", f"{base}/api/v1/portfolio", headers, "Portfolio")
    held = {h["symbol"]: h["quantity"] for h in data["holdings"]}
    if held.get(args.symbol) != trade["remaining_quantity"]:
        print(f"  [FAIL] Portfolio shows {held.get(args.symbol)}, expected {trade['remaining_quantity']}")
        sys.exit(1)

    print(f"\n[PASS] Smoke test complete: total value {data['aggregate']['total_holding_value']}")


if __name__ == "__main__":
    main()
