from __future__ import annotations

import logging
import os

import uvicorn


def main() -> None:
    logging.basicConfig(
        level=os.getenv("CALPILOT_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    host = os.getenv("CALPILOT_HOST", "0.0.0.0")
    port = int(os.getenv("CALPILOT_PORT", "4000"))
    uvicorn.run("calpilot.web_app:create_app", host=host, port=port, reload=False, factory=True)


if __name__ == "__main__":
    main()
