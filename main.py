import argparse
import sys

import uvicorn
from dotenv import load_dotenv
from fastapi.routing import APIRoute

load_dotenv()

from cougarcs.config.config import AppConfig
from cougarcs.config.logging_config import configure_logging
from cougarcs.server.bootstrap import build_app


def cmd_serve(args: argparse.Namespace) -> None:
	cfg = AppConfig()
	configure_logging(cfg.log_level)
	app = build_app(cfg)
	uvicorn.run(
		app,
		host=args.host or cfg.host,
		port=args.port or cfg.port,
		log_level=cfg.log_level.lower(),
		# the pipeline writes its own access log
		access_log=False,
	)


def cmd_routes(args: argparse.Namespace) -> None:
	cfg = AppConfig()
	app = build_app(cfg)
	for route in app.routes:
		if not isinstance(route, APIRoute):
			continue
		methods = ",".join(sorted(route.methods or []))
		print(f"{methods}\t{route.path}")


def build_arg_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(description="CougarCS backend HTTP server")
	sub = parser.add_subparsers(dest="command", required=True)

	p_srv = sub.add_parser("serve", help="Run the HTTP server")
	p_srv.add_argument("--host", help="Bind address (default: HOST or 0.0.0.0)")
	p_srv.add_argument("--port", type=int, help="Bind port (default: PORT or 8080)")
	p_srv.set_defaults(func=cmd_serve)

	p_routes = sub.add_parser("routes", help="List the routes the server dispatches to")
	p_routes.set_defaults(func=cmd_routes)
	return parser


def main() -> None:
	parser = build_arg_parser()
	args = parser.parse_args()
	try:
		func = args.func
	except AttributeError:
		parser.print_help(sys.stderr)
		sys.exit(2)
	func(args)


if __name__ == "__main__":
	main()
