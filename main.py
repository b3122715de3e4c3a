from __future__ import annotations
import argparse
import json
import logging
import sys
import time
from typing import Any, Dict, Optional

import requests

from config import DEFAULT_BASE_URL

# -----------------------------
# Simple HTTP client helpers
# -----------------------------
def _request(method: str, base_url: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    url = f"{base_url.rstrip('/')}{path}"
    r = requests.request(method, url, json=payload, timeout=60)
    if r.status_code >= 400:
        try:
            detail = r.json().get("detail", r.text)
        except ValueError:
            detail = r.text[:1000]
        raise RuntimeError(f"HTTP {r.status_code} from {url}: {detail}")
    return r.json()

# -----------------------------
# API wrappers
# -----------------------------
def connect(base_url: str, identity: str) -> Dict[str, Any]:
    return _request("POST", base_url, "/v1/sessions", {"identity": identity})

def start_round(base_url: str, identity: str) -> Dict[str, Any]:
    return _request("POST", base_url, f"/v1/sessions/{identity}/rounds")

def submit_answer(base_url: str, identity: str, text: str) -> Dict[str, Any]:
    return _request("POST", base_url, f"/v1/sessions/{identity}/answer", {"text": text})

def acknowledge(base_url: str, identity: str) -> Dict[str, Any]:
    return _request("POST", base_url, f"/v1/sessions/{identity}/acknowledge")

def force_reset(base_url: str, identity: str) -> Dict[str, Any]:
    return _request("POST", base_url, f"/v1/sessions/{identity}/reset")

def get_state(base_url: str, identity: str) -> Dict[str, Any]:
    return _request("GET", base_url, f"/v1/sessions/{identity}")

# -----------------------------
# Pretty printers
# -----------------------------
def print_result(res: Dict[str, Any]) -> None:
    result = res["result"]
    verdict = res["verdict"]
    print("\n===== RESULT =====")
    if result["is_winner"]:
        print(f"NOT BASIC!  +${result['win_amount']}")
    else:
        print("Y O U  A R E  B A S I C !  You lose this round.")
    print(f"Final score:     {verdict['score']:.3f}")
    diag = verdict.get("diagnostics", {})
    for key in ("ai_detection_score", "coherence_score"):
        if key in diag:
            print(f"{key.replace('_', ' ').title() + ':':<17}{float(diag[key]):.3f}")
    if diag.get("explanation"):
        print(f"Explanation:     {diag['explanation']}")
    if verdict["used_fallback"]:
        print(f"(Evaluator unavailable, simulated verdict used: {diag.get('error')})")
    print(f"Bank: ${res['balance']}   Consecutive wins: {result['streak']}")
    print("=" * 18)

# -----------------------------
# Interactive play loop
# -----------------------------
def interactive_play(base_url: str, identity: str) -> None:
    st = connect(base_url, identity)
    print(f"\nConnected as {identity}. Bank: ${st['balance']}  Consecutive wins: {st['streak']}")

    while True:
        choice = input("\nPlay a round for $1? [Y/n/reset] ").strip().lower()
        if choice in ("n", "no", "q"):
            break
        if choice == "reset":
            print(json.dumps(force_reset(base_url, identity), indent=2))
            continue
        try:
            rnd = start_round(base_url, identity)
        except RuntimeError as e:
            print(f"Could not start round: {e}")
            if "402" in str(e):
                print("Game over: you've run out of money!")
                break
            continue

        started = time.monotonic()
        print(f"\nQuestion: {rnd['prompt']}")
        print(f"You have {rnd['deadline_seconds']:.0f} seconds.")
        answer = input("Your answer: ").strip()
        if time.monotonic() - started > rnd["deadline_seconds"] or not answer:
            # The server's countdown settles the round; wait for it.
            state = get_state(base_url, identity)
            while state["state"] == "QUESTION_ACTIVE":
                time.sleep(0.5)
                state = get_state(base_url, identity)
            print("TIME'S UP! TOO SLOW!")
            print(f"Bank: ${state['balance']}   Consecutive wins: {state['streak']}")
        else:
            try:
                print_result(submit_answer(base_url, identity, answer))
            except RuntimeError as e:
                print(f"Answer failed: {e}")
                if input("Force reset now? [y/N] ").strip().lower() == "y":
                    print(json.dumps(force_reset(base_url, identity), indent=2))
                continue

        state = get_state(base_url, identity)
        if state["state"] == "RESULT":
            state = acknowledge(base_url, identity)
        if state["state"] == "TERMINATED":
            print("Game over: you've run out of money!")
            break

# -----------------------------
# Run server (programmatically)
# -----------------------------
def run_server(port: int, host: str = "127.0.0.1", reload: bool = True) -> None:
    try:
        import uvicorn
    except ImportError:
        print("uvicorn not installed. Run: pip install -e .")
        sys.exit(1)
    uvicorn.run("api:app", host=host, port=port, reload=reload)

# -----------------------------
# Health checker
# -----------------------------
def health_check(base_url: str) -> None:
    print(f"Checking server at {base_url} ...")
    try:
        r = requests.get(f"{base_url.rstrip('/')}/docs", timeout=10)
        r.raise_for_status()
        print("/docs reachable")

        st = connect(base_url, "health-check")
        print(f"JSON API ok (balance={st['balance']})")
    except (requests.RequestException, RuntimeError) as e:
        print(f"Health check failed: {e}")
        sys.exit(1)

# -----------------------------
# CLI
# -----------------------------
def parse_args(argv=None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Are You Basic? wager game: server + client in one file")
    p.add_argument("--log-level", default="INFO", help="Logging level")

    sub = p.add_subparsers(dest="cmd", required=True)

    ps = sub.add_parser("serve", help="Start the FastAPI server (uvicorn)")
    ps.add_argument("--port", type=int, default=8001, help="Port to bind")
    ps.add_argument("--host", type=str, default="127.0.0.1", help="Host to bind")
    ps.add_argument("--no-reload", action="store_true", help="Disable auto-reload")

    pp = sub.add_parser("play", help="Play rounds interactively against a running server")
    pp.add_argument("--identity", type=str, required=True, help="Player wallet address / identity")
    pp.add_argument("--base-url", type=str, default=DEFAULT_BASE_URL, help="API base URL")

    ph = sub.add_parser("health", help="Check server availability")
    ph.add_argument("--base-url", type=str, default=DEFAULT_BASE_URL, help="API base URL")

    return p.parse_args(argv)

def main(argv=None) -> None:
    args = parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.cmd == "serve":
        run_server(port=args.port, host=args.host, reload=(not args.no_reload))
        return

    if args.cmd == "play":
        try:
            requests.get(f"{args.base_url.rstrip('/')}/docs", timeout=5).raise_for_status()
        except requests.RequestException:
            print("Could not reach the server. Is it running?\n"
                  "    Start it in another terminal:\n"
                  "    python main.py serve --port 8001")
            sys.exit(1)
        interactive_play(args.base_url, args.identity)
        return

    if args.cmd == "health":
        health_check(args.base_url)
        return

if __name__ == "__main__":
    main()
