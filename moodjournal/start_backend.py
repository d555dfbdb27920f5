#!/usr/bin/env python3
"""
Backend startup wrapper.

    python -m moodjournal.start_backend
"""
import os
import sys

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))


def main() -> None:
    import uvicorn

    print("[Backend] Starting Mood Journal Backend")
    print(f"[Backend] Server: http://localhost:{PORT}")
    print("[Backend] Press CTRL+C to stop")
    try:
        uvicorn.run(
            "moodjournal.main:app",
            host=HOST,
            port=PORT,
            reload=False,
            log_level="info",
            access_log=True,
        )
    except KeyboardInterrupt:
        print("\n[Backend] Shutting down...")
        sys.exit(0)


if __name__ == "__main__":
    main()
