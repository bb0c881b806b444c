"""报告生成工具。"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Iterable

from image_studio.core.models import ProcessingResult

HEADER = ["input_path", "output_path", "status", "error"]


def write_csv_report(results: Iterable[ProcessingResult], report_path: Path) -> Path:
    """将处理结果写入 CSV 报告。"""

    with report_path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle)
        writer.writerow(HEADER)
        for record in results:
            writer.writerow(
                [
                    str(record.input_path),
                    str(record.output_path) if record.output_path else "",
                    "ok" if record.success else "failed",
                    record.error or "",
                ]
            )
    return report_path
