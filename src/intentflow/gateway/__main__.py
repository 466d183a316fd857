"""HTTP 网关入口 -- python -m intentflow.gateway"""

import uvicorn

from intentflow.core.config import get_gateway_host, get_gateway_port


def main() -> None:
    uvicorn.run(
        "intentflow.gateway.main:app",
        host=get_gateway_host(),
        port=get_gateway_port(),
        log_config=None,
    )


if __name__ == "__main__":
    main()
