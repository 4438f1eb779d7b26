import json

import pytest

from autotest_tools.report_tools import allure_utils
from autotest_tools.report_tools.allure_utils import (
    MASK,
    AllureReportProcessor,
    attach_container_logs,
    attach_secret_files,
)


@pytest.fixture
def attachments(monkeypatch):
    captured = []
    monkeypatch.setattr(
        allure_utils.allure,
        "attach",
        lambda body, name=None, attachment_type=None: captured.append((name, body)),
    )
    return captured


def test_secret_values_are_masked(attachments, tmp_path):
    secret = tmp_path / "neo4j_auth.txt"
    secret.write_text("neo4j/newSecretPassword", encoding="utf-8")

    attach_secret_files({"neo4j_auth_file": secret, "absent": tmp_path / "absent.txt"})

    name, body = attachments[0]
    assert "newSecretPassword" not in body
    summary = json.loads(body)
    assert summary["neo4j_auth_file"] == {"path": str(secret), "exists": True, "value": MASK}
    assert summary["absent"]["exists"] is False


def test_container_logs_are_truncated(attachments):
    attach_container_logs("db", "x" * (allure_utils.MAX_LOG_ATTACHMENT_LENGTH + 10))
    attach_container_logs("empty", "")

    name, body = attachments[0]
    assert name.endswith("db")
    assert body.startswith("... [Truncated")
    assert attachments[1][1] == "<empty>"


def test_summary_counts_statuses(tmp_path):
    for index, status in enumerate(["passed", "passed", "failed", "broken", "skipped"]):
        (tmp_path / f"{index}-result.json").write_text(
            json.dumps({"status": status, "start": 0, "stop": 1000}),
            encoding="utf-8",
        )
    (tmp_path / "bad-result.json").write_text("{not json", encoding="utf-8")

    summary = AllureReportProcessor(tmp_path).generate_summary()

    assert (summary.total, summary.passed, summary.failed, summary.broken, summary.skipped) == (5, 2, 1, 1, 1)
    assert summary.pass_rate == 40.0
    assert summary.duration_ms == 5000
