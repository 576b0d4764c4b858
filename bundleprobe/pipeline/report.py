# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Run report serialization.

The report is a single JSON document: final state, exit code, per-step
timings, the failing step with the tool's verbatim output, and the SHA256
of both input archives so a result can be tied to the exact bundle tested.
"""

import json
from pathlib import Path
from typing import Any

from bundleprobe import __version__
from bundleprobe.logging.logger import get_logger
from bundleprobe.pipeline.models import PipelineReport
from bundleprobe.utils.filesystem import atomic_write

logger = get_logger(__name__)


def report_to_dict(report: PipelineReport) -> dict[str, Any]:
    setup = report.setup_result
    return {
        "bundleprobe_version": __version__,
        "state": report.state.value,
        "succeeded": report.succeeded,
        "exit_code": report.exit_code,
        "failed_step": report.failed_step,
        "error": report.error,
        "output": report.output,
        "steps": [
            {
                "step": record.step,
                "succeeded": record.succeeded,
                "elapsed_seconds": round(record.elapsed_seconds, 3),
                "detail": record.detail,
            }
            for record in report.steps
        ],
        "setup": (
            None
            if setup is None
            else {"passed": setup.passed, "exit_code": setup.exit_code}
        ),
        "archives": {
            role: {"file": digest.file, "sha256": digest.sha256}
            for role, digest in sorted(report.archive_digests.items())
        },
    }


def write_report(report: PipelineReport, path: Path) -> Path:
    """Write the report as pretty-printed JSON, atomically."""
    content = json.dumps(report_to_dict(report), indent=2, sort_keys=True) + "\n"
    atomic_write(path, content)
    logger.info("Report written", extra={"path": str(path), "state": report.state.value})
    return path
