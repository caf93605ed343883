"""Tests for visual track planning, segment encoding and concatenation."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from vexport.exceptions import ConcatError, ProcessError, SegmentEncodeError, SegmentMissingError
from vexport.render.runner import FFmpegRunner
from vexport.render.segments import (
    BLACK_SOURCE,
    Concatenator,
    SegmentEncoder,
    concat_list_entry,
    plan_visual_track,
)
from vexport.utils.media_info import get_video_info


def _touching_runner() -> MagicMock:
    """Runner mock that 'succeeds' by creating the output file (last argument)."""
    runner = MagicMock(spec=FFmpegRunner)

    def _run(label, args):
        Path(args[-1]).write_bytes(b"segment")
    runner.run.side_effect = _run
    return runner


class TestPlanVisualTrack:
    """Tests for timeline layout of clips."""

    def test_back_to_back_clips_keep_order(self, make_clip, temp_output_dir):
        """Adjacent clips become consecutive segments with no filler."""
        clips = [make_clip(0, 5, "/media/a.mp4"), make_clip(5, 10, "/media/b.mp4")]

        plans = plan_visual_track(clips, str(temp_output_dir))

        assert [p.source_name for p in plans] == ["/media/a.mp4", "/media/b.mp4"]
        assert [p.timeline_start for p in plans] == [0.0, 5.0]
        assert plans[-1].timeline_end == pytest.approx(10.0)

    def test_clips_sorted_by_timeline_start(self, make_clip, temp_output_dir):
        """Job order does not matter; the index still names the job position."""
        clips = [make_clip(5, 10, "/media/b.mp4"), make_clip(0, 5, "/media/a.mp4")]

        plans = plan_visual_track(clips, str(temp_output_dir))

        assert [p.source_name for p in plans] == ["/media/a.mp4", "/media/b.mp4"]
        assert [p.index for p in plans] == [1, 0]

    def test_gaps_filled_with_black(self, make_clip, temp_output_dir):
        """A leading gap and a gap between clips become black segments."""
        clips = [make_clip(1, 3, "/media/a.mp4"), make_clip(5, 6, "/media/b.mp4")]

        plans = plan_visual_track(clips, str(temp_output_dir))

        assert [p.is_gap for p in plans] == [True, False, True, False]
        assert plans[0].duration == pytest.approx(1.0)
        assert plans[2].timeline_start == pytest.approx(3.0)
        assert plans[2].duration == pytest.approx(2.0)
        assert plans[2].source_name == BLACK_SOURCE
        assert plans[-1].timeline_end == pytest.approx(6.0)

    def test_segment_paths_unique(self, make_clip, temp_output_dir):
        """Every planned segment gets its own file."""
        clips = [make_clip(0, 1), make_clip(2, 3), make_clip(3, 4)]

        plans = plan_visual_track(clips, str(temp_output_dir))

        paths = [p.output_path for p in plans]
        assert len(set(paths)) == len(paths)


class TestSegmentEncoder:
    """Tests for per-clip segment encoding."""

    def test_clip_args(self, make_clip, settings):
        """Trim, fill-crop, constant frame rate and no audio."""
        encoder = SegmentEncoder(MagicMock(), 1920, 1080, 30, settings)
        clip = make_clip(0, 4, "/media/a.mp4", source_start=2.5)

        args = encoder.build_clip_args(clip, clip.source_duration, "/tmp/seg.mp4")

        assert args[:6] == ["-ss", "2.5", "-i", "/media/a.mp4", "-t", "4.0"]
        vf = args[args.index("-vf") + 1]
        assert vf == "scale=1920:1080:force_original_aspect_ratio=increase,crop=1920:1080,setsar=1"
        assert args[args.index("-fps_mode") + 1] == "cfr"
        assert args[args.index("-r") + 1] == "30"
        assert args[args.index("-crf") + 1] == "18"
        assert args[args.index("-preset") + 1] == "fast"
        assert "-an" in args
        assert args[-1] == "/tmp/seg.mp4"

    def test_gap_args_match_clip_encoding(self, settings):
        """Black filler uses the same codec settings so concat can stream-copy."""
        encoder = SegmentEncoder(MagicMock(), 1280, 720, 25, settings)

        args = encoder.build_gap_args(1.5, "/tmp/gap.mp4")

        assert args[:4] == ["-f", "lavfi", "-i", "color=c=black:s=1280x720:r=25:d=1.5"]
        clip_tail = encoder._output_args("/tmp/gap.mp4")
        assert args[-len(clip_tail):] == clip_tail

    def test_encode_failure_names_clip(self, make_clip, settings, temp_output_dir):
        """ffmpeg failure becomes SegmentEncodeError with index and file."""
        runner = MagicMock(spec=FFmpegRunner)
        runner.run.side_effect = ProcessError("segment-1", 1, stderr="Invalid data found")
        encoder = SegmentEncoder(runner, 1280, 720, 30, settings)
        clips = [make_clip(0, 2, "/media/a.mp4"), make_clip(2, 4, "/media/broken.mov")]
        plan = plan_visual_track(clips, str(temp_output_dir))[1]

        with pytest.raises(SegmentEncodeError) as exc_info:
            encoder.encode(plan)

        assert exc_info.value.index == 1
        assert "broken.mov" in exc_info.value.message
        assert "Invalid data found" in exc_info.value.message

    def test_missing_output_detected(self, make_clip, settings, temp_output_dir):
        """A zero exit status without an output file is still an error."""
        encoder = SegmentEncoder(MagicMock(spec=FFmpegRunner), 1280, 720, 30, settings)
        plan = plan_visual_track([make_clip(0, 2, "/media/a.mp4")], str(temp_output_dir))[0]

        with pytest.raises(SegmentMissingError) as exc_info:
            encoder.encode(plan)

        assert exc_info.value.index == 0
        assert "a.mp4" in exc_info.value.message

    def test_encode_returns_output_path(self, make_clip, settings, temp_output_dir):
        """Successful encodes return the segment path."""
        encoder = SegmentEncoder(_touching_runner(), 1280, 720, 30, settings)
        plan = plan_visual_track([make_clip(0, 2)], str(temp_output_dir))[0]

        assert encoder.encode(plan) == plan.output_path


class TestConcatenator:
    """Tests for the concat demuxer stage."""

    def test_list_entry_uses_forward_slashes(self):
        """Windows separators are normalized and quotes escaped."""
        assert concat_list_entry("C:\\tmp\\seg 0.mp4") == "file 'C:/tmp/seg 0.mp4'"
        assert concat_list_entry("/tmp/it's.mp4") == "file '/tmp/it'\\''s.mp4'"

    def test_concat_writes_ordered_list(self, temp_output_dir):
        """The list file preserves segment order and output is stream copied."""
        runner = _touching_runner()
        segments = [str(temp_output_dir / f"seg_{i}.mp4") for i in range(3)]

        output = Concatenator(runner).concat(segments, str(temp_output_dir))

        list_text = (temp_output_dir / "segments.txt").read_text().splitlines()
        assert list_text == [f"file '{s}'" for s in segments]
        label, args = runner.run.call_args.args
        assert label == "concat"
        assert args[:6] == ["-f", "concat", "-safe", "0", "-i", str(temp_output_dir / "segments.txt")]
        assert args[args.index("-c") + 1] == "copy"
        assert output == str(temp_output_dir / "concat.mp4")

    def test_concat_failure(self, temp_output_dir):
        """ffmpeg failure becomes ConcatError."""
        runner = MagicMock(spec=FFmpegRunner)
        runner.run.side_effect = ProcessError("concat", 1, stderr="Unsafe file name")

        with pytest.raises(ConcatError, match="Unsafe file name"):
            Concatenator(runner).concat(["/tmp/a.mp4"], str(temp_output_dir))


@pytest.mark.requires_ffmpeg
class TestSegmentsWithFfmpeg:
    """Segment + concat against a real ffmpeg."""

    def test_two_sources_concatenate_to_ten_seconds(self, source_video, settings, temp_output_dir):
        """Two 5s clips from different files join into 10s at the target size."""
        from vexport.schemas.export import ExportClip

        a = source_video("a.mp4", duration=6, size="640x360")
        b = source_video("b.mp4", duration=6, size="480x640")
        clips = [
            ExportClip(file_path=str(a), source_start=0, source_end=5, timeline_start=0, timeline_end=5),
            ExportClip(file_path=str(b), source_start=1, source_end=6, timeline_start=5, timeline_end=10),
        ]
        runner = FFmpegRunner("ffmpeg")
        encoder = SegmentEncoder(runner, 320, 240, 25, settings)
        plans = plan_visual_track(clips, str(temp_output_dir))

        paths = [encoder.encode(plan) for plan in plans]
        output = Concatenator(runner).concat(paths, str(temp_output_dir))

        info = get_video_info(output)
        assert info["width"] == 320
        assert info["height"] == 240
        assert info["duration"] == pytest.approx(10.0, abs=0.15)
        assert info["has_audio"] is False
