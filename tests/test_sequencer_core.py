"""Tests for sequencer math: resolution, media fitting, volume, track choice, project documents."""

import pytest

from engui.core.audio_mixing import (
    calculate_final_volume,
    clamp_volume,
    gain_to_volume,
    is_valid_volume,
    volume_to_gain,
)
from engui.core.media_fitting import (
    FIT_CACHE_SIZE,
    Dimensions,
    FitResult,
    aspect_ratios_equal,
    clear_fit_cache,
    fit_cache_size,
    fit_media,
    get_aspect_ratio,
    needs_downscaling,
    needs_upscaling,
    safe_fit_media,
)
from engui.core.project_io import (
    ProjectDataError,
    create_empty_project,
    export_filename,
    export_project,
    import_project,
    validate_project_data,
)
from engui.core.resolution import get_resolution
from engui.core.track_selection import find_available_audio_track, has_overlap
from engui.models.domain import VideoKeyFrameEntity, VideoTrackEntity

# ============================================================================
# Resolution
# ============================================================================


class TestResolution:
    """Test get_resolution."""

    @pytest.mark.parametrize(
        "aspect_ratio,preset,expected",
        [
            ("16:9", "480p", (854, 480)),
            ("16:9", "1080p", (1920, 1080)),
            ("9:16", "720p", (720, 1280)),
            ("1:1", "480p", (480, 480)),
        ],
    )
    def test_table(self, aspect_ratio, preset, expected):
        """Dimensions come from the fixed table."""
        config = get_resolution(aspect_ratio, preset)
        assert (config.width, config.height) == expected

    def test_defaults_to_1080p(self):
        """Preset defaults to 1080p."""
        assert get_resolution("9:16").height == 1920

    @pytest.mark.parametrize("aspect_ratio,preset", [("4:3", "720p"), ("16:9", "4k")])
    def test_unknown_values_raise(self, aspect_ratio, preset):
        """Unknown ratio or preset raises ValueError."""
        with pytest.raises(ValueError):
            get_resolution(aspect_ratio, preset)


# ============================================================================
# Media fitting
# ============================================================================


class TestFitMedia:
    """Test fit_media modes."""

    @pytest.fixture(autouse=True)
    def empty_cache(self):
        clear_fit_cache()
        yield
        clear_fit_cache()

    def test_contain_wide_media_letterboxes(self):
        """A 2:1 image in a 16:9 canvas fills the width, bars top and bottom."""
        result = fit_media(Dimensions(2000, 1000), Dimensions(1920, 1080))
        assert result.width == 1920
        assert result.height == 960
        assert result.x == 0
        assert result.y == 60
        assert result.scale == pytest.approx(0.96)

    def test_contain_tall_media_pillarboxes(self):
        """A square image in a 16:9 canvas fills the height."""
        result = fit_media(Dimensions(500, 500), Dimensions(1920, 1080))
        assert (result.width, result.height) == (1080, 1080)
        assert result.x == 420
        assert result.y == 0

    def test_cover_crops(self):
        """Cover fills the canvas and overflows the other side."""
        result = fit_media(Dimensions(500, 500), Dimensions(1920, 1080), "cover")
        assert (result.width, result.height) == (1920, 1920)
        assert result.y == -420

    def test_fill_stretches(self):
        """Fill ignores aspect ratio."""
        result = fit_media(Dimensions(10, 700), Dimensions(1280, 720), "fill")
        assert result == FitResult(1280, 720, 0, 0, 1)

    @pytest.mark.parametrize(
        "media,canvas,mode",
        [
            (Dimensions(0, 100), Dimensions(100, 100), "contain"),
            (Dimensions(100, 100), Dimensions(100, -1), "contain"),
            (Dimensions(100, 100), Dimensions(100, 100), "zoom"),
        ],
    )
    def test_invalid_input_raises(self, media, canvas, mode):
        """Non-positive dimensions and unknown modes raise ValueError."""
        with pytest.raises(ValueError):
            fit_media(media, canvas, mode)

    def test_safe_fit_falls_back_to_canvas(self):
        """safe_fit_media never raises."""
        result = safe_fit_media(None, Dimensions(1280, 720))
        assert result == FitResult(1280, 720, 0, 0, 1)

    def test_cache_is_bounded(self):
        """Least recently used entries are evicted beyond the cache size."""
        for width in range(1, FIT_CACHE_SIZE + 11):
            fit_media(Dimensions(width, 10), Dimensions(100, 100))
        assert fit_cache_size() == FIT_CACHE_SIZE

    def test_scaling_helpers(self):
        """Up/downscaling checks compare each side."""
        canvas = Dimensions(1920, 1080)
        assert needs_upscaling(Dimensions(1280, 1080), canvas)
        assert needs_downscaling(Dimensions(1920, 2000), canvas)
        assert not needs_upscaling(canvas, canvas)
        assert aspect_ratios_equal(get_aspect_ratio(canvas), 1.776)


# ============================================================================
# Volume
# ============================================================================


class TestVolume:
    """Test volume math."""

    def test_track_and_keyframe_multiply(self):
        """50% track at 150% keyframe gives 75%."""
        assert calculate_final_volume(50, 150) == pytest.approx(75)

    def test_missing_keyframe_volume_is_unity(self):
        """No keyframe volume leaves the track volume unchanged."""
        assert calculate_final_volume(80) == pytest.approx(80)

    def test_muted_is_zero(self):
        """Muting wins over any volume."""
        assert calculate_final_volume(200, 200, muted=True) == 0

    def test_gain_conversion_and_clamp(self):
        """Gain is volume / 100; clamping keeps 0-200."""
        assert volume_to_gain(150) == 1.5
        assert gain_to_volume(0.5) == 50
        assert clamp_volume(250) == 200
        assert clamp_volume(-5) == 0

    @pytest.mark.parametrize("value,valid", [(0, True), (200, True), (201, False), (True, False), ("50", False)])
    def test_is_valid_volume(self, value, valid):
        assert is_valid_volume(value) is valid


# ============================================================================
# Audio track selection
# ============================================================================


def make_track(track_id: str, track_type: str, order: int = 0) -> VideoTrackEntity:
    return VideoTrackEntity(id=track_id, project_id="p1", type=track_type, label=track_id, order=order)


def make_keyframe(track_id: str, timestamp: int, duration: int) -> VideoKeyFrameEntity:
    return VideoKeyFrameEntity(
        id=f"{track_id}-{timestamp}",
        track_id=track_id,
        timestamp=timestamp,
        duration=duration,
        data_type="music",
        media_id="m",
        url="/a.mp3",
    )


class TestTrackSelection:
    """Test find_available_audio_track."""

    def test_touching_clips_do_not_overlap(self):
        """Intervals are half-open."""
        keyframes = [make_keyframe("t1", 0, 1000)]
        assert not has_overlap(keyframes, 1000, 500)
        assert has_overlap(keyframes, 999, 500)

    def test_music_before_voiceover(self):
        """A free music track wins even when listed after voiceover."""
        tracks = [make_track("voice", "voiceover"), make_track("music", "music")]
        assert find_available_audio_track(tracks, [], 0, 1000).id == "music"

    def test_falls_back_to_voiceover(self):
        """Busy music means the voiceover track is used."""
        tracks = [make_track("music", "music"), make_track("voice", "voiceover")]
        keyframes = [make_keyframe("music", 500, 1000)]
        assert find_available_audio_track(tracks, keyframes, 0, 1000).id == "voice"

    def test_lower_order_first(self):
        """Tracks of the same type are tried by order."""
        tracks = [make_track("m2", "music", order=2), make_track("m1", "music", order=1)]
        assert find_available_audio_track(tracks, [], 0, 1000).id == "m1"

    def test_video_tracks_are_ignored(self):
        """Only audio tracks are candidates."""
        tracks = [make_track("video", "video"), make_track("music", "music")]
        keyframes = [make_keyframe("music", 0, 5000)]
        assert find_available_audio_track(tracks, keyframes, 1000, 1000) is None


# ============================================================================
# Project documents
# ============================================================================


class TestProjectDocuments:
    """Test export_project, validate_project_data and import_project."""

    def test_export_then_import_copies_content(self):
        """Imported projects get new ids but keep tracks and keyframes."""
        project = create_empty_project("Demo", user_id="user-1")
        video = project.tracks[0]
        video.keyframes.append(make_keyframe(video.id, 0, 2000))

        document = export_project(project)
        assert document["version"] == "1.0"
        assert document["keyframes"][video.id][0]["data"]["type"] == "music"

        copy = import_project(document, user_id="user-2")
        assert copy.id != project.id
        assert copy.user_id == "user-2"
        assert [t.type for t in copy.tracks] == ["video", "music", "voiceover"]
        assert copy.tracks[0].id != video.id
        assert copy.tracks[0].keyframes[0].track_id == copy.tracks[0].id
        assert copy.tracks[0].keyframes[0].duration == 2000

    @pytest.mark.parametrize(
        "document,message",
        [
            (None, "Invalid data format"),
            ({"project": {}}, "Missing or invalid version"),
            (
                {"version": "1.0", "project": {"title": "x"}, "tracks": [], "keyframes": {}},
                "Project missing required fields (title, aspectRatio, duration)",
            ),
            (
                {
                    "version": "1.0",
                    "project": {"title": "x", "aspectRatio": "16:9", "duration": 1000},
                    "tracks": {},
                    "keyframes": {},
                },
                "Missing or invalid tracks data",
            ),
        ],
    )
    def test_validation_messages(self, document, message):
        assert validate_project_data(document) == message

    def test_import_null_track_fields(self):
        """Null order and volume take their defaults."""
        document = {
            "version": "1.0",
            "project": {"title": "x", "aspectRatio": "16:9", "duration": 1000},
            "tracks": [{"type": "music", "order": None, "volume": None}],
            "keyframes": {},
        }
        track = import_project(document).tracks[0]
        assert (track.order, track.volume) == (0, 100)

    def test_import_invalid_raises(self):
        """import_project raises ProjectDataError with the validation message."""
        with pytest.raises(ProjectDataError, match="Missing or invalid version"):
            import_project({"project": {}})

    def test_export_filename(self):
        """Non-alphanumerics become underscores."""
        assert export_filename("My Film: Cut 2", 1700000000000) == "My_Film__Cut_2_1700000000000.json"
