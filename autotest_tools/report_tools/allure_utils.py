"""
================================================================================
Allure Report Utilities
================================================================================

This module provides utilities for enhancing Allure test reports with
container-level details, custom attachments, and report processing.

Features:
- Attachment helpers for compose descriptors, container logs and config files
- Secret-safe attachments (values are never written to the report)
- Report post-processing
- History management
- Summary generation

================================================================================
"""

import json
import shutil
from pathlib import Path
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field
from datetime import datetime
import subprocess

import allure
from loguru import logger


# Container logs can be several MB when a server fails repeatedly
MAX_LOG_ATTACHMENT_LENGTH = 50000

MASK = "***MASKED***"


# ================================================================================
# Attachment Helpers
# ================================================================================

def attach_json(data: Any, name: str = "Data"):
    """
    Attach JSON data to Allure report.

    Args:
        data: Data to attach (will be JSON serialized)
        name: Attachment name
    """
    json_str = json.dumps(data, indent=2, default=str)
    allure.attach(
        json_str,
        name=name,
        attachment_type=allure.attachment_type.JSON
    )


def attach_text(text: str, name: str = "Text"):
    """
    Attach text content to Allure report.

    Args:
        text: Text to attach
        name: Attachment name
    """
    allure.attach(
        text,
        name=name,
        attachment_type=allure.attachment_type.TEXT
    )


def attach_yaml(text: str, name: str = "YAML"):
    """Attach YAML content to Allure report."""
    allure.attach(
        text,
        name=name,
        attachment_type=allure.attachment_type.YAML
    )


def attach_file_content(path: Path, name: Optional[str] = None):
    """
    Attach the content of a text file produced during the test.

    Missing or unreadable files are reported as a text note instead of
    failing the test from inside the reporting code.

    Args:
        path: File to attach
        name: Attachment name (defaults to the file name)
    """
    path = Path(path)
    name = name or path.name
    try:
        content = path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        logger.debug(f"Cannot attach {path}: {e}")
        attach_text(f"<unavailable: {e}>", name=name)
        return
    attach_text(content, name=name)


def attach_compose_descriptor(path: Path, bindings: Optional[Dict[str, str]] = None):
    """
    Attach a compose descriptor and the variable bindings used to launch it.

    Args:
        path: Compose descriptor path
        bindings: Environment bindings passed to docker compose
    """
    path = Path(path)
    with allure.step(f"📄 Compose descriptor: {path.name}"):
        try:
            attach_yaml(path.read_text(encoding="utf-8"), name=path.name)
        except OSError as e:
            attach_text(f"<unavailable: {e}>", name=path.name)
        if bindings:
            attach_json(bindings, name="🔧 Compose Variables")


def attach_secret_files(secrets: Dict[str, Path]):
    """
    Record which secret files were provided, masking their values.

    Args:
        secrets: Mapping of secret name to file path
    """
    summary = {
        name: {"path": str(path), "exists": Path(path).exists(), "value": MASK}
        for name, path in secrets.items()
    }
    attach_json(summary, name="🔑 Secret Files")


def attach_container_logs(service: str, logs: str):
    """
    Attach the logs of a compose service, truncated to a sane size.

    Args:
        service: Compose service name
        logs: Collected log output
    """
    content = logs or "<empty>"
    if len(content) > MAX_LOG_ATTACHMENT_LENGTH:
        content = (
            f"... [Truncated, full length: {len(content)} chars] ...\n\n"
            f"{content[-MAX_LOG_ATTACHMENT_LENGTH:]}"
        )
    attach_text(content, name=f"📜 Logs: {service}")


# ================================================================================
# Report Processing
# ================================================================================

@dataclass
class TestResultSummary:
    """Summary of test execution results."""
    __test__ = False

    total: int = 0
    passed: int = 0
    failed: int = 0
    broken: int = 0
    skipped: int = 0
    unknown: int = 0
    duration_ms: int = 0
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    @property
    def pass_rate(self) -> float:
        """Calculate pass rate percentage."""
        if self.total == 0:
            return 0.0
        return (self.passed / self.total) * 100

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "total": self.total,
            "passed": self.passed,
            "failed": self.failed,
            "broken": self.broken,
            "skipped": self.skipped,
            "unknown": self.unknown,
            "pass_rate": f"{self.pass_rate:.2f}%",
            "duration_ms": self.duration_ms,
            "timestamp": self.timestamp,
        }


class AllureReportProcessor:
    """
    Processes Allure results and generates reports.

    Provides methods for analyzing results, generating summaries,
    and managing report history.
    """

    def __init__(
        self,
        results_dir: Path,
        report_dir: Optional[Path] = None,
        history_dir: Optional[Path] = None
    ):
        """
        Initialize processor.

        Args:
            results_dir: Allure results directory
            report_dir: Output report directory
            history_dir: History data directory
        """
        self.results_dir = Path(results_dir)
        self.report_dir = Path(report_dir or self.results_dir.parent / "allure-report")
        self.history_dir = Path(history_dir or self.results_dir.parent / "allure-history")

    def parse_results(self) -> List[Dict[str, Any]]:
        """
        Parse Allure result files.

        Returns:
            List of test result dictionaries
        """
        results = []

        for result_file in self.results_dir.glob("*-result.json"):
            try:
                with open(result_file, encoding="utf-8") as f:
                    results.append(json.load(f))
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Failed to parse {result_file}: {e}")

        return results

    def generate_summary(self) -> TestResultSummary:
        """
        Generate summary from results.

        Returns:
            TestResultSummary object
        """
        results = self.parse_results()
        summary = TestResultSummary()
        summary.total = len(results)

        for result in results:
            status = result.get("status", "unknown")
            if status == "passed":
                summary.passed += 1
            elif status == "failed":
                summary.failed += 1
            elif status == "broken":
                summary.broken += 1
            elif status == "skipped":
                summary.skipped += 1
            else:
                summary.unknown += 1

            start = result.get("start", 0)
            stop = result.get("stop", 0)
            summary.duration_ms += (stop - start)

        return summary

    def copy_history(self):
        """Copy history from previous report to results."""
        history_source = self.report_dir / "history"
        history_dest = self.results_dir / "history"

        if history_source.exists():
            if history_dest.exists():
                shutil.rmtree(history_dest)
            shutil.copytree(history_source, history_dest)
            logger.info("Copied history from previous report")

    def generate_report(self) -> bool:
        """
        Generate Allure HTML report.

        Returns:
            True if successful
        """
        self.copy_history()

        cmd = [
            "allure", "generate",
            str(self.results_dir),
            "-o", str(self.report_dir),
            "--clean"
        ]

        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except FileNotFoundError:
            logger.warning("Allure command not found. Install allure-commandline.")
            return False

        if result.returncode == 0:
            logger.info(f"Report generated at {self.report_dir}")
            return True

        logger.error(f"Report generation failed: {result.stderr}")
        return False

    def save_history(self):
        """Save current history for future reports."""
        history_source = self.report_dir / "history"

        if history_source.exists():
            self.history_dir.mkdir(parents=True, exist_ok=True)

            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            backup_dir = self.history_dir / timestamp
            shutil.copytree(history_source, backup_dir)

            current_dir = self.history_dir / "current"
            if current_dir.exists():
                shutil.rmtree(current_dir)
            shutil.copytree(history_source, current_dir)

            logger.info(f"History saved to {self.history_dir}")

    def log_summary(self):
        """Log the execution summary."""
        summary = self.generate_summary()

        logger.info("=" * 60)
        logger.info("TEST EXECUTION SUMMARY")
        logger.info("=" * 60)
        logger.info(f"Total Tests:    {summary.total}")
        logger.info(f"Passed:         {summary.passed}")
        logger.info(f"Failed:         {summary.failed}")
        logger.info(f"Broken:         {summary.broken}")
        logger.info(f"Skipped:        {summary.skipped}")
        logger.info(f"Pass Rate:      {summary.pass_rate:.2f}%")
        logger.info(f"Duration:       {summary.duration_ms / 1000:.2f}s")
        logger.info("=" * 60)


# ================================================================================
# Convenience Functions
# ================================================================================

def generate_allure_report(
    results_dir: str,
    output_dir: Optional[str] = None,
    open_report: bool = False
) -> bool:
    """
    Generate Allure report from results.

    Args:
        results_dir: Path to allure-results directory
        output_dir: Optional output directory
        open_report: Whether to open report in browser

    Returns:
        True if successful
    """
    processor = AllureReportProcessor(
        Path(results_dir),
        Path(output_dir) if output_dir else None
    )

    success = processor.generate_report()

    if success:
        processor.log_summary()
        processor.save_history()

        if open_report:
            subprocess.run(["allure", "open", str(processor.report_dir)])

    return success
