"""Command line entry point: serve the API or run one trigger without HTTP."""

from __future__ import annotations

import argparse
import asyncio
import json
from typing import Any, Dict, Optional, Sequence

from ledgerboard.infra import http
from ledgerboard.obs import logging as obs_logging


async def _run_job(args: argparse.Namespace) -> Dict[str, Any]:
	from ledgerboard.domain.leaderboard import jobs as leaderboard_jobs
	from ledgerboard.domain.notifications import jobs as notification_jobs

	tokens = obs_logging.bind_context(trigger=args.command)
	try:
		if args.command == "sync":
			return await leaderboard_jobs.sync_leaderboards(max_blocks=args.max_blocks)
		if args.command == "snapshot":
			return await leaderboard_jobs.snapshot_weekly()
		if args.command == "rollover":
			return await leaderboard_jobs.rollover_weekly()
		return await notification_jobs.dispatch_notifications(batch_limit=args.batch_limit)
	finally:
		obs_logging.reset_context(tokens)
		await http.close_client()


def build_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(prog="ledgerboard")
	sub = parser.add_subparsers(dest="command", required=True)

	serve = sub.add_parser("serve", help="Run the HTTP API")
	serve.add_argument("--host", default="0.0.0.0")
	serve.add_argument("--port", type=int, default=8000)

	sync = sub.add_parser("sync", help="Index both ranking streams, then finalize")
	sync.add_argument("--max-blocks", type=int, default=None)

	sub.add_parser("snapshot", help="Snapshot completed weekly windows")
	sub.add_parser("rollover", help="Finalize and refresh the current-window record")

	notify = sub.add_parser("notify", help="Deliver due reminders")
	notify.add_argument("--batch-limit", type=int, default=None)
	return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
	args = build_parser().parse_args(argv)
	if args.command == "serve":
		import uvicorn

		uvicorn.run("ledgerboard.main:app", host=args.host, port=args.port)
		return 0
	obs_logging.configure_logging()
	result = asyncio.run(_run_job(args))
	print(json.dumps(result, default=str))
	return 0 if result.get("ok", True) else 1


if __name__ == "__main__":
	raise SystemExit(main())
