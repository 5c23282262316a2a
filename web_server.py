"""Web server entry point for the map-intelligente app"""

import os
import socket

import uvicorn
from dotenv import load_dotenv

# Load environment variables from .env file BEFORE building the app
load_dotenv()

from map_web.main import create_app


def _port_in_use(host: str, port: int) -> bool:
    """Return True if the given port is already in use."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        try:
            s.bind((host, port))
            return False
        except OSError:
            return True


def _get_available_port(host: str, preferred: int, max_tries: int = 10) -> int:
    """Return preferred port if free, otherwise the first free port in [preferred, preferred+max_tries)."""
    for p in range(preferred, preferred + max_tries):
        if not _port_in_use(host, p):
            return p
    raise RuntimeError(
        f"None of the ports {preferred}-{preferred + max_tries - 1} are available. "
        "Stop the process using the port or set WEB_PORT to a different number."
    )


if __name__ == "__main__":
    host = os.getenv("WEB_HOST", "0.0.0.0")
    preferred_port = int(os.getenv("WEB_PORT", "8000"))
    port = _get_available_port(host, preferred_port)
    if port != preferred_port:
        print(f"Port {preferred_port} is in use; using port {port} instead.")

    print(f"Local server will be available at: http://localhost:{port}")
    if not (os.getenv("MAP_PASSWORD_ADMIN") or os.getenv("MAP_PASSWORD_USER") or os.getenv("MAP_PASSWORD")):
        print("No MAP_PASSWORD_* set: only registered accounts can log in.")

    uvicorn.run(create_app(), host=host, port=port, reload=False)
