"""Run the proxy with uvicorn: ``python -m speckit_proxy``."""

import uvicorn

from speckit_proxy.config import load_config


def main() -> None:
    config = load_config()
    uvicorn.run("speckit_proxy.main:app", host="0.0.0.0", port=config.port)


if __name__ == "__main__":
    main()
