from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Any, Callable, cast

import yaml

from vertex_gateway.client import build_http_client
from vertex_gateway.converter import generated_text
from vertex_gateway.errors import GatewayError
from vertex_gateway.schemas.chat import ChatMessage, ChatRequest, ChatResponse
from vertex_gateway.service import build_gateway_service
from vertex_gateway.settings import get_settings

NO_RESPONSE_MESSAGE = "No response was generated."


def render_yaml(payload: Any) -> str:
    return yaml.safe_dump(payload, sort_keys=False).rstrip()


def _build_ask_request(args: argparse.Namespace) -> ChatRequest:
    options: dict[str, Any] = {}
    if args.temperature is not None:
        options["temperature"] = args.temperature
    if args.max_tokens is not None:
        options["maxOutputTokens"] = args.max_tokens
    if args.top_p is not None:
        options["topP"] = args.top_p
    if args.top_k is not None:
        options["topK"] = args.top_k
    return ChatRequest(
        messages=[ChatMessage(role="user", content=args.prompt)],
        options=options or None,
    )


async def _ask(request: ChatRequest) -> ChatResponse:
    settings = get_settings()
    async with build_http_client(settings) as http_client:
        _, service = build_gateway_service(settings, http_client)
        return await service.handle(request)


def cmd_serve(args: argparse.Namespace) -> int:
    from vertex_gateway.main import run

    run(host=args.host, port=args.port)
    return 0


def cmd_ask(args: argparse.Namespace) -> int:
    request = _build_ask_request(args)
    try:
        response = asyncio.run(_ask(request))
    except GatewayError as exc:
        sys.stderr.write(f"error: {exc.message}\n")
        return 1

    if args.raw:
        sys.stdout.write(render_yaml(response.to_wire()) + "\n")
        return 0

    text = generated_text(response)
    if text is None:
        sys.stdout.write(NO_RESPONSE_MESSAGE + "\n")
    else:
        sys.stdout.write(text + "\n")
    return 0


def cmd_config_show(_: argparse.Namespace) -> int:
    settings = get_settings()
    sys.stdout.write(render_yaml(settings.model_dump()) + "\n")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vertex-gateway",
        description="Serve or query the Vertex AI Gemini gateway.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_cmd = subparsers.add_parser("serve", help="Run the HTTP gateway.")
    serve_cmd.add_argument("--host", default=None)
    serve_cmd.add_argument("--port", type=int, default=None)
    serve_cmd.set_defaults(handler=cmd_serve)

    ask_cmd = subparsers.add_parser(
        "ask", help="Send one prompt through the gateway and print the answer."
    )
    ask_cmd.add_argument("prompt")
    ask_cmd.add_argument("--temperature", type=float, default=None)
    ask_cmd.add_argument("--max-tokens", type=int, default=None)
    ask_cmd.add_argument("--top-p", type=float, default=None)
    ask_cmd.add_argument("--top-k", type=int, default=None)
    ask_cmd.add_argument(
        "--raw",
        action="store_true",
        help="Print the whole chat response as YAML.",
    )
    ask_cmd.set_defaults(handler=cmd_ask)

    config_cmd = subparsers.add_parser(
        "config-show", help="Print the effective gateway settings."
    )
    config_cmd.set_defaults(handler=cmd_config_show)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    handler = cast(Callable[[argparse.Namespace], int], args.handler)

    try:
        return handler(args)
    except Exception as exc:  # pragma: no cover
        parser.exit(2, f"error: {exc}\n")


if __name__ == "__main__":
    raise SystemExit(main())
