import pytest

from mediabot import editor
from mediabot.downloader import describe_download_error
from mediabot.errors import WatermarkError


def test_position_expr_defaults_to_bottom_right():
    assert editor.position_expr(None) == editor.POSITIONS["bottom-right"]
    assert editor.position_expr("sideways") == editor.POSITIONS["bottom-right"]
    assert editor.position_expr("center") == "x=(W-tw)/2:y=(H-th)/2"


def test_resolve_font(tmp_path, monkeypatch):
    font = tmp_path / "Custom.ttf"
    font.write_bytes(b"")
    monkeypatch.setattr(editor, "FONT_DIRS", (str(tmp_path),))
    assert editor.resolve_font("Custom") == str(font)
    assert editor.resolve_font(str(font)) == str(font)
    assert editor.resolve_font("Missing") is None
    assert editor.resolve_font(None) is None


def test_build_watermark_command():
    cmd = editor.build_watermark_command("in.mp4", "out.mp4", "drawtext=text='x'")
    assert cmd[:4] == ["ffmpeg", "-y", "-i", "in.mp4"]
    assert cmd[cmd.index("-vf") + 1] == "drawtext=text='x'"
    assert cmd[-1] == "out.mp4"


async def test_add_watermark_runs_ffmpeg(tmp_path, monkeypatch):
    source = tmp_path / "in.mp4"
    source.write_bytes(b"video")
    output = tmp_path / "out.mp4"
    calls = []

    async def fake_run(cmd):
        calls.append(cmd)
        output.write_bytes(b"done")

    monkeypatch.setattr(editor, "run_ffmpeg_async", fake_run)
    result = await editor.add_watermark(source, output, {"text": "Sam"})
    assert result == output
    assert "drawtext=text='Sam'" in calls[0][calls[0].index("-vf") + 1]


async def test_add_watermark_removes_partial_output(tmp_path, monkeypatch):
    source = tmp_path / "in.mp4"
    source.write_bytes(b"video")
    output = tmp_path / "out.mp4"

    async def failing_run(cmd):
        output.write_bytes(b"partial")
        raise WatermarkError("ffmpeg failed with exit code 1")

    monkeypatch.setattr(editor, "run_ffmpeg_async", failing_run)
    with pytest.raises(WatermarkError):
        await editor.add_watermark(source, output, {"text": "Sam"})
    assert not output.exists()


async def test_add_watermark_requires_input(tmp_path):
    with pytest.raises(WatermarkError, match="not found"):
        await editor.add_watermark(tmp_path / "missing.mp4", tmp_path / "out.mp4", {})


def test_check_ffmpeg(monkeypatch):
    monkeypatch.setattr(editor.shutil, "which", lambda name: "/usr/bin/ffmpeg")
    assert editor.check_ffmpeg() is True
    monkeypatch.setattr(editor.shutil, "which", lambda name: None)
    assert editor.check_ffmpeg() is False


async def test_add_watermark_without_ffmpeg_on_path(tmp_path, monkeypatch):
    source = tmp_path / "in.mp4"
    source.write_bytes(b"video")
    empty_bin = tmp_path / "bin"
    empty_bin.mkdir()
    monkeypatch.setenv("PATH", str(empty_bin))

    with pytest.raises(WatermarkError, match="not installed") as excinfo:
        await editor.add_watermark(source, tmp_path / "out.mp4", {"text": "hi"})
    assert "FFmpeg failed or is not installed" in describe_download_error(excinfo.value)
