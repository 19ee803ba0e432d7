from __future__ import annotations

import logging

from inbox.core.logging import _rotated_name, setup_logging


def test_setup_logging_writes_to_rotating_file(tmp_path, make_settings):
  log_path = setup_logging(make_settings(debug=True), log_dir=tmp_path)
  try:
    logging.getLogger("inbox.tests").info("summary tick")
    for handler in logging.getLogger().handlers:
      handler.flush()

    assert log_path.parent == tmp_path
    assert "summary tick" in log_path.read_text(encoding="utf-8")
    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("apscheduler").level == logging.WARNING
  finally:
    for handler in logging.getLogger().handlers:
      handler.close()
    logging.basicConfig(force=True)


def test_rotated_backups_use_dash_suffix():
  assert _rotated_name("/var/log/inbox_1.log.1") == "/var/log/inbox_1.log-1"
  assert _rotated_name("/var/log/inbox_1.log") == "/var/log/inbox_1.log"
