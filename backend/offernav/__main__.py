"""Run the API and the /nav Socket.IO namespace with uvicorn."""

from __future__ import annotations

import os

import uvicorn


def main() -> None:
	uvicorn.run(
		"offernav.main:socket_app",
		host=os.environ.get("HOST", "127.0.0.1"),
		port=int(os.environ.get("PORT", "8000")),
		log_config=None,
	)


if __name__ == "__main__":
	main()
