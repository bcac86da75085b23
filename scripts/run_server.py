"""
Run VaultGate

Helper script to start the FastAPI server.
"""

import logging

import uvicorn
from vaultgate.config import settings


def main():
    """Start the VaultGate API."""
    logging.basicConfig(level=settings.log_level)

    print("=" * 60)
    print("  VaultGate API")
    print("  Starting FastAPI server...")
    print("=" * 60)
    print(f"\nService will run at: http://{settings.host}:{settings.port}")
    print(f"API docs available at: http://{settings.host}:{settings.port}/docs")
    print("\nPress Ctrl+C to stop\n")

    uvicorn.run(
        "vaultgate.server:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
