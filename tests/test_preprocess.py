import subprocess

import pytest

from bunkr_transfer import preprocess
from bunkr_transfer.preprocess import prepare_uploads, split_video
from bunkr_transfer.types import PreprocessError


def test_small_and_non_video_files_pass_through(write_file):
    doc = write_file("big.zip", 500)
    clip = write_file("small.mp4", 50)

    def splitter(path, max_size):
        raise AssertionError("nothing should be split")

    prepared = prepare_uploads([doc, clip], max_size=100, splitter=splitter)
    assert prepared.paths == [doc, clip]
    assert prepared.temporary == []


def test_oversized_video_is_split_and_cleaned_up(write_file, tmp_path):
    clip = write_file("long.mp4", 250)
    other = write_file("notes.txt", 10)
    parts = [write_file(f"long_part_{i:03d}.mp4", 90) for i in range(3)]

    prepared = prepare_uploads([clip, other], max_size=100, splitter=lambda p, m: parts)

    assert prepared.paths == [*parts, other]
    assert prepared.temporary == parts
    prepared.cleanup()
    assert not any(p.exists() for p in parts)
    assert clip.exists()


def test_disabled_preprocessing(write_file):
    clip = write_file("long.mp4", 250)
    prepared = prepare_uploads([clip], max_size=100, enabled=False)
    assert prepared.paths == [clip]


def test_split_failure_is_recorded(write_file):
    clip = write_file("long.mp4", 250)

    def splitter(path, max_size):
        raise PreprocessError("ffmpeg exploded")

    prepared = prepare_uploads([clip], max_size=100, splitter=splitter)
    assert prepared.paths == []
    assert prepared.failed == {clip: "ffmpeg exploded"}


class FakeRun:
    def __init__(self, duration="120.0", split_rc=0, make_parts=3):
        self.calls = []
        self.duration = duration
        self.split_rc = split_rc
        self.make_parts = make_parts

    def __call__(self, cmd, **kwargs):
        self.calls.append(cmd)
        if cmd[0] == "ffprobe":
            return subprocess.CompletedProcess(cmd, 0, stdout=f"{self.duration}\n", stderr="")
        pattern = cmd[-1]
        for i in range(self.make_parts):
            with open(pattern.replace("%03d", f"{i:03d}"), "wb") as f:
                f.write(b"v" * 10)
        return subprocess.CompletedProcess(cmd, self.split_rc, stdout="", stderr="boom" if self.split_rc else "")


def test_split_video_runs_ffprobe_then_ffmpeg(write_file, monkeypatch):
    clip = write_file("movie.mp4", 250)
    fake = FakeRun()
    monkeypatch.setattr(preprocess.subprocess, "run", fake)

    parts = split_video(clip, 100)

    assert [p.name for p in parts] == ["movie_part_000.mp4", "movie_part_001.mp4", "movie_part_002.mp4"]
    assert fake.calls[0][0] == "ffprobe"
    ffmpeg = fake.calls[1]
    assert ffmpeg[0] == "ffmpeg"
    assert ffmpeg[ffmpeg.index("-segment_time") + 1] == "40.000"
    assert ffmpeg[ffmpeg.index("-c") + 1] == "copy"


def test_split_video_failure(write_file, monkeypatch):
    clip = write_file("movie.mp4", 250)
    monkeypatch.setattr(preprocess.subprocess, "run", FakeRun(split_rc=1, make_parts=0))
    with pytest.raises(PreprocessError, match="boom"):
        split_video(clip, 100)


def test_probe_garbage(write_file, monkeypatch):
    clip = write_file("movie.mp4", 250)
    monkeypatch.setattr(preprocess.subprocess, "run", FakeRun(duration="N/A"))
    with pytest.raises(PreprocessError, match="ffprobe"):
        split_video(clip, 100)
