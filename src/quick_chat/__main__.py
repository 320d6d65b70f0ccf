"""
Main entry point for the Quick Chat application.

Can be called with: python -m quick_chat

Automatically opens the app in your browser once the server is reachable.
Disable with --no-open or QUICK_CHAT_NO_BROWSER=1. With --console, chat from
the terminal against an already running server instead.
"""

import argparse
import logging
import os
import threading
import time
import urllib.error
import urllib.request
import webbrowser

import uvicorn


def main():
    """Main entry point for the Quick Chat application."""
    parser = argparse.ArgumentParser(
        description="Quick Chat - streaming chat with tool calls"
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host to bind the server to (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to run the server on (default: 8000)",
    )
    parser.add_argument(
        "--no-open",
        action="store_true",
        help="Do not automatically open the browser",
    )
    parser.add_argument(
        "--console",
        action="store_true",
        help="Chat from the terminal with the server on --port",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    url = f"http://localhost:{args.port}"

    if args.console:
        from .console import run_console

        run_console(url)
        return

    logging.getLogger(__name__).info("Starting chat server...")
    logging.getLogger(__name__).info(
        f"Open {url} in your browser to start chatting"
    )

    # Auto-open the browser once the server is reachable (best-effort)
    def _open_when_ready(url: str, timeout: float = 15.0, interval: float = 0.2):
        deadline = time.time() + timeout
        while time.time() < deadline:
            try:
                with urllib.request.urlopen(f"{url}/healthz", timeout=1):
                    pass
            except (urllib.error.URLError, TimeoutError, ConnectionError):
                time.sleep(interval)
                continue
            try:
                webbrowser.open(url, new=1)
            except webbrowser.Error as e:
                logging.getLogger(__name__).warning(f"Could not open browser: {e}")
            return

    should_open = not args.no_open and os.environ.get("QUICK_CHAT_NO_BROWSER") != "1"
    if should_open:
        threading.Thread(target=_open_when_ready, args=(url,), daemon=True).start()
    uvicorn.run("quick_chat.app:app", host=args.host, port=args.port)


if __name__ == "__main__":
    main()
