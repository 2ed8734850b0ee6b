import json
import logging

from ledgerboard.obs.logging import JSONLogFormatter, bind_context, reset_context


def _record(**extra) -> logging.LogRecord:
	record = logging.LogRecord("ledgerboard.test", logging.INFO, __file__, 1, "notif.webhook_event", None, None)
	for key, value in extra.items():
		setattr(record, key, value)
	return record


def test_formatter_redacts_tokens_and_urls():
	payload = json.loads(
		JSONLogFormatter().format(_record(fid=7, token="tok-7", delivery_url="https://push.example", reason="x" * 400))
	)

	assert payload["msg"] == "notif.webhook_event"
	assert payload["fid"] == 7
	assert payload["token"] == "[redacted]"
	assert payload["delivery_url"] == "[redacted]"
	assert len(payload["reason"]) < 300


def test_formatter_includes_bound_context():
	tokens = bind_context(request_id="req-1", trigger="notifications")
	try:
		payload = json.loads(JSONLogFormatter().format(_record()))
	finally:
		reset_context(tokens)

	assert payload["request_id"] == "req-1"
	assert payload["trigger"] == "notifications"
	assert "request_id" not in json.loads(JSONLogFormatter().format(_record()))
