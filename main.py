"""
Feedback Rewards - Web Server Entry Point
=========================================

Run this to start the JSON API:
    python main.py

Then open http://127.0.0.1:8000/docs in your browser.
"""

import os

import uvicorn


def main():
    """Start the web server."""
    host = os.getenv("HOST", "127.0.0.1")
    port = int(os.getenv("PORT", "8000"))

    print("\n" + "=" * 50)
    print("   Feedback Rewards - API Server")
    print("=" * 50)
    print(f"\n   Starting server at http://{host}:{port}")
    print("   Press Ctrl+C to stop\n")

    uvicorn.run(
        "feedback_rewards.web.app:app",
        host=host,
        port=port,
        reload=os.getenv("RELOAD", "").lower() in ("1", "true", "yes"),
        log_level="info"
    )


if __name__ == "__main__":
    main()
