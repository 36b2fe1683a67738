import asyncio
import logging
import os
import shutil
from pathlib import Path
from typing import List, Optional

from mediabot.config import FFMPEG_TIMEOUT_SECONDS, FONT_DIRS
from mediabot.errors import WatermarkError

logger = logging.getLogger("mediabot.editor")

POSITIONS = {
    "top-left": "x=50:y=50",
    "top-right": "x=W-tw-50:y=50",
    "bottom-left": "x=50:y=H-th-50",
    "bottom-right": "x=W-tw-50:y=H-th-50",
    "center": "x=(W-tw)/2:y=(H-th)/2",
}
DEFAULT_POSITION = "bottom-right"

_ffmpeg_semaphore = asyncio.Semaphore(1)


def escape_drawtext(text: str) -> str:
    # single quotes cannot be escaped inside a quoted drawtext value
    return (
        str(text)
        .replace("\\", "\\\\")
        .replace("'", "’")
        .replace(":", "\\:")
        .replace("%", "\\%")
    )


def position_expr(position: Optional[str]) -> str:
    return POSITIONS.get(position or DEFAULT_POSITION, POSITIONS[DEFAULT_POSITION])


def resolve_font(font: Optional[str]) -> Optional[str]:
    """Map a font name like ``DejaVuSans-Bold`` to a font file, if one is installed."""
    if not font:
        return None
    if os.path.isfile(font):
        return font
    for directory in FONT_DIRS:
        candidate = os.path.join(directory, f"{font}.ttf")
        if os.path.isfile(candidate):
            return candidate
    return None


def generate_watermark_filter(settings: dict) -> str:
    module = settings.get("module")
    style_class = settings.get("style_class")
    if style_class is not None:
        try:
            flt = style_class.generate_filter(settings)
            logger.info(f"Using {module} module filter generation")
            return flt
        except NotImplementedError:
            pass
        except Exception as e:
            logger.warning(f"{module} filter generation failed, falling back to default: {e}")

    size = settings.get("fontSize") or settings.get("size") or 24
    color = settings.get("color") or settings.get("textColor") or "white"
    opacity = settings.get("opacity", 0.48)
    text = escape_drawtext(settings.get("text") or "")

    flt = (
        f"drawtext=text='{text}':fontsize={size}:fontcolor={color}@{opacity}:"
        f"{position_expr(settings.get('position'))}"
    )
    # Add shadow for better visibility
    flt += ":shadowcolor=black@0.5:shadowx=2:shadowy=2"

    font = resolve_font(settings.get("font") or settings.get("fontFamily"))
    if font:
        flt += f":fontfile='{font}'"

    logger.info(f"Generated filter: {flt}")
    return flt


async def run_ffmpeg_async(cmd: List[str]) -> None:
    async with _ffmpeg_semaphore:
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            raise WatermarkError("ffmpeg is not installed")
        stdout, stderr = await proc.communicate()
        if proc.returncode != 0:
            err_text = stderr.decode(errors="replace").strip()
            logger.error("FFmpeg stderr:\n" + err_text)
            raise WatermarkError(f"ffmpeg failed with exit code {proc.returncode}\n{err_text[-1500:]}")


def build_watermark_command(input_path, output_path, video_filter: str) -> List[str]:
    return [
        "ffmpeg",
        "-y",
        "-i", str(input_path),
        "-vf", video_filter,
        "-c:v", "libx264",
        "-preset", "fast",
        "-crf", "23",
        "-c:a", "copy",
        "-avoid_negative_ts", "make_zero",
        str(output_path),
    ]


async def add_watermark(input_path, output_path, settings: dict) -> Path:
    """
    Burns the watermark described by ``settings`` into ``input_path``.
    Returns the output path; raises WatermarkError when FFmpeg fails.
    """
    input_path, output_path = Path(input_path), Path(output_path)
    if not input_path.exists():
        raise WatermarkError("Input video file not found")

    video_filter = generate_watermark_filter(settings)
    cmd = build_watermark_command(input_path, output_path, video_filter)
    logger.info(f"Running ffmpeg command: {' '.join(cmd)}")

    try:
        await asyncio.wait_for(run_ffmpeg_async(cmd), timeout=FFMPEG_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        output_path.unlink(missing_ok=True)
        raise WatermarkError(f"FFmpeg timed out after {FFMPEG_TIMEOUT_SECONDS}s")
    except WatermarkError:
        if output_path.exists():
            output_path.unlink()
            logger.info(f"Deleted incomplete file: {output_path}")
        raise

    logger.info(f"Watermark added, saved to {output_path}")
    return output_path


def check_ffmpeg() -> bool:
    if shutil.which("ffmpeg"):
        logger.info("FFmpeg is installed and working")
        return True
    logger.error(
        "FFmpeg not found! Please install FFmpeg: "
        "Ubuntu/Debian: sudo apt install ffmpeg | macOS: brew install ffmpeg"
    )
    return False


async def get_video_duration(filepath) -> float | None:
    cmd = [
        "ffprobe",
        "-v", "error",
        "-show_entries", "format=duration",
        "-of", "default=noprint_wrappers=1:nokey=1",
        str(filepath),
    ]
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError:
        logger.warning("ffprobe not available")
        return None
    stdout, _ = await proc.communicate()
    try:
        return float(stdout.strip())
    except (ValueError, TypeError):
        logger.warning(f"Failed to get duration for {filepath}")
        return None
