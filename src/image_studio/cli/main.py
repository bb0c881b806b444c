"""命令行入口。"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)
from rich.table import Table

from image_studio.core.config import (
    DEFAULT_NAMING_TEMPLATE,
    SIZE_PRESETS,
    CropConfig,
    ResizeConfig,
    find_preset,
    resolve_scale,
)
from image_studio.core.exceptions import ImageStudioError
from image_studio.core.models import BatchResult, CropRegion, ImageFile
from image_studio.core.progress import ProcessingProgress
from image_studio.core.report import write_csv_report
from image_studio.core.scanner import collect_inputs, list_supported_images
from image_studio.core.session import CropSession
from image_studio.processing.image_loader import read_metadata
from image_studio.processing.pipeline import batch_resize, crop
from image_studio.utils.logging import setup_logging

app = typer.Typer(help="批量图片缩放与多区域裁剪工具。")
console = Console()
LOGGER = logging.getLogger(__name__)


def _parse_region(value: str, index: int) -> CropRegion:
    parts = value.split(",")
    if len(parts) != 4:
        raise typer.BadParameter("区域必须形如 LEFT,TOP,WIDTH,HEIGHT")
    try:
        left, top, width, height = (float(part) for part in parts)
    except ValueError as exc:
        raise typer.BadParameter("区域坐标必须为数字") from exc
    if width <= 0 or height <= 0:
        raise typer.BadParameter("区域宽高必须大于 0")
    return CropRegion(id=f"region-{index}", left=left, top=top, width=width, height=height)


def _load_session(path: Path, source: Path) -> tuple[list[CropRegion], int]:
    """从会话 JSON 读取区域与旋转角度，区域按当前图片尺寸重新校验。"""

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise typer.BadParameter(f"无法读取会话文件: {path}") from exc

    metadata = read_metadata(source)
    if metadata is None:
        raise typer.BadParameter(f"无法读取图片: {source}")

    session = CropSession()
    session.set_files([_image_file(source, metadata.width, metadata.height, metadata.size)])
    try:
        session.restore(data)
    except (ImageStudioError, KeyError, TypeError, ValueError) as exc:
        raise typer.BadParameter(f"会话文件内容非法: {exc}") from exc
    return session.regions.permanent_regions(), session.view.rotation


def _image_file(path: Path, width: int, height: int, size: int) -> ImageFile:
    return ImageFile(path=path, name=path.name, extension=path.suffix.lower(), size=size, width=width, height=height)


def _build_progress_callback(progress: Progress, description: str):
    task_id: Optional[int] = None

    def callback(update: ProcessingProgress) -> None:
        nonlocal task_id
        if update.total_files == 0:
            return
        if task_id is None:
            task_id = progress.add_task(description, total=update.total_files)
        progress.update(task_id, completed=update.current_index)
        if not update.is_complete:
            progress.log(f"完成 {update.current_file}")

    return callback


def _make_progress() -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TimeElapsedColumn(),
        TimeRemainingColumn(),
    )


def _summarize(result: BatchResult, report: Optional[Path]) -> None:
    typer.echo(
        f"处理完成：成功 {len(result.completed)} 个，失败 {len(result.failed)} 个，耗时 {result.total_time_ms:.0f} ms。"
    )
    for record in result.failed:
        typer.echo(f"  失败 {record.input_path.name}: {record.error}")
    if report is not None:
        try:
            write_csv_report(result.all_results(), report)
        except OSError as exc:
            LOGGER.error("写入报告失败：%s", exc)
        else:
            typer.echo(f"报告文件：{report}")


@app.command("resize")
def resize_cli(  # noqa: PLR0913
    source: List[Path] = typer.Argument(..., help="源图片文件或目录，可指定多个"),
    output: Path = typer.Option(..., "--output", "-o", help="输出目录"),
    width: Optional[int] = typer.Option(None, "--width", "-W", help="目标宽度，留空按比例自动计算"),
    height: Optional[int] = typer.Option(None, "--height", "-H", help="目标高度，留空按比例自动计算"),
    preset: Optional[str] = typer.Option(None, "--preset", help="尺寸预设名称，如 'Full HD'"),
    scale_mode: str = typer.Option("pixels", "--scale-mode", help="pixels / percentage / max_fit"),
    percentage: float = typer.Option(100.0, "--percentage", help="percentage 模式下的缩放百分比"),
    fit: str = typer.Option("inside", "--fit", help="fill / contain / cover / inside / outside"),
    kernel: str = typer.Option("lanczos3", "--kernel", help="lanczos3 / lanczos2 / bicubic / bilinear / nearest"),
    image_format: str = typer.Option("jpeg", "--format", "-f", help="输出格式 jpeg / png / webp / tiff"),
    quality: int = typer.Option(100, "--quality", "-q", min=1, max=100, help="输出质量 1~100"),
    strip_metadata: bool = typer.Option(False, "--strip-metadata", help="去除 EXIF/ICC 元数据"),
    prefix: str = typer.Option("", "--prefix", help="输出文件名前缀"),
    suffix: str = typer.Option("", "--suffix", help="输出文件名后缀"),
    background_color: str = typer.Option("#000000", "--background-color", help="contain 模式背景色 (HEX)"),
    conflict_strategy: str = typer.Option("overwrite", "--on-conflict", help="文件名冲突策略 overwrite/rename/skip"),
    report: Optional[Path] = typer.Option(None, "--report", help="写入 CSV 报告的路径"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出调试日志"),
) -> None:
    """批量缩放图片。"""

    setup_logging(logging.DEBUG if verbose else logging.INFO)

    files = collect_inputs([p.expanduser() for p in source])
    if not files:
        typer.echo("没有找到可处理的图片。")
        raise typer.Exit(code=1)

    if preset:
        try:
            chosen = find_preset(preset)
        except ImageStudioError as exc:
            raise typer.BadParameter(str(exc)) from exc
        width, height = chosen.width, chosen.height

    reference_size = None
    if scale_mode == "percentage":
        metadata = read_metadata(files[0])
        if metadata is None:
            raise typer.BadParameter(f"无法读取参考图片尺寸: {files[0]}")
        reference_size = (metadata.width, metadata.height)

    try:
        width, height, fit = resolve_scale(
            scale_mode,
            width=width,
            height=height,
            percentage=percentage,
            reference_size=reference_size,
            fit=fit,
        )
    except ImageStudioError as exc:
        raise typer.BadParameter(str(exc)) from exc

    config = ResizeConfig(
        output_dir=output.expanduser().resolve(),
        width=width,
        height=height,
        fit=fit,
        kernel=kernel,
        format=image_format,
        quality=quality,
        preserve_metadata=not strip_metadata,
        prefix=prefix,
        suffix=suffix,
        background_color=background_color,
        conflict_strategy=conflict_strategy,
    )

    with _make_progress() as progress:
        result = batch_resize(files, config, progress_callback=_build_progress_callback(progress, "缩放图片"))

    _summarize(result, report)
    if result.failed:
        raise typer.Exit(code=1)


@app.command("crop")
def crop_cli(  # noqa: PLR0913
    source: Path = typer.Argument(..., help="源图片文件"),
    output: Path = typer.Option(..., "--output", "-o", help="输出目录"),
    region: List[str] = typer.Option([], "--region", "-r", help="裁剪区域 LEFT,TOP,WIDTH,HEIGHT，可重复"),
    session_file: Optional[Path] = typer.Option(None, "--session", help="导出的会话 JSON（包含区域与旋转）"),
    rotation: Optional[int] = typer.Option(None, "--rotation", help="裁剪前的顺时针旋转角度 0/90/180/270（使用 --session 时取会话中的角度）"),
    template: str = typer.Option(DEFAULT_NAMING_TEMPLATE, "--template", "-t", help="命名模板，支持 {original} 与 {index}"),
    image_format: str = typer.Option("jpeg", "--format", "-f", help="输出格式 jpeg / png / webp / tiff"),
    quality: int = typer.Option(95, "--quality", "-q", min=1, max=100, help="输出质量 1~100"),
    strip_metadata: bool = typer.Option(False, "--strip-metadata", help="去除 EXIF/ICC 元数据"),
    conflict_strategy: str = typer.Option("overwrite", "--on-conflict", help="文件名冲突策略 overwrite/rename/skip"),
    report: Optional[Path] = typer.Option(None, "--report", help="写入 CSV 报告的路径"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出调试日志"),
) -> None:
    """按多个区域裁剪一张图片。"""

    setup_logging(logging.DEBUG if verbose else logging.INFO)
    source = source.expanduser()

    regions = [_parse_region(value, idx) for idx, value in enumerate(region, start=1)]
    session_rotation = 0
    if session_file is not None:
        if rotation is not None:
            raise typer.BadParameter("--rotation 不能与 --session 同时使用，会话中的区域只对其保存的旋转角度有效")
        session_regions, session_rotation = _load_session(session_file, source)
        regions.extend(session_regions)

    if not regions:
        raise typer.BadParameter("至少需要一个裁剪区域（--region 或 --session）")

    config = CropConfig(
        output_dir=output.expanduser().resolve(),
        regions=tuple(regions),
        format=image_format,
        quality=quality,
        preserve_metadata=not strip_metadata,
        naming_template=template,
        rotation=session_rotation if rotation is None else rotation,
        conflict_strategy=conflict_strategy,
    )

    with _make_progress() as progress:
        result = crop(source, config, progress_callback=_build_progress_callback(progress, "裁剪区域"))

    _summarize(result, report)
    if result.failed:
        raise typer.Exit(code=1)


@app.command("list")
def list_cli(folder: Path = typer.Argument(..., help="图片目录")) -> None:
    """列出目录中受支持的图片。"""

    for path in list_supported_images(folder.expanduser()):
        typer.echo(str(path))


@app.command("info")
def info_cli(path: Path = typer.Argument(..., help="图片文件")) -> None:
    """显示图片元数据（尺寸已按 EXIF 方向校正）。"""

    metadata = read_metadata(path.expanduser())
    if metadata is None:
        typer.echo(f"无法读取图片: {path}")
        raise typer.Exit(code=1)

    table = Table(show_header=False)
    table.add_row("文件", str(path))
    table.add_row("尺寸", f"{metadata.width} x {metadata.height}")
    table.add_row("格式", metadata.format)
    table.add_row("大小", f"{metadata.size} bytes")
    table.add_row("透明通道", "是" if metadata.has_alpha else "否")
    console.print(table)


@app.command("presets")
def presets_cli(category: Optional[str] = typer.Option(None, "--category", help="standard / social / print")) -> None:
    """列出内置尺寸预设。"""

    table = Table("名称", "宽", "高", "分类")
    for preset in SIZE_PRESETS:
        if category and preset.category != category:
            continue
        table.add_row(preset.name, str(preset.width), str(preset.height), preset.category)
    console.print(table)


if __name__ == "__main__":
    app()
