"""以 uvicorn 运行 HTTP/SSE 传输层：python -m stream_relay [--host H] [--port P]"""

import argparse

import uvicorn

from stream_relay.api.app import create_app


def main() -> None:
    parser = argparse.ArgumentParser(description="Stream Relay server")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8787)
    args = parser.parse_args()
    uvicorn.run(create_app(), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
