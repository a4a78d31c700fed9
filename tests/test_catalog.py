"""Tests for catalog id allocation, re-analysis merging and clip edits."""

from __future__ import annotations

import pytest

from brollindex.catalog import (
    CatalogIndex,
    delete_clip,
    find_orphans,
    merge_video,
    next_video_id,
    remove_previews,
    remove_video_entries,
    tag_counts,
    update_clip,
)
from brollindex.exceptions import CatalogIntegrityError
from brollindex.types import Clip, ClipTags, VideoAsset


def _asset(video_id: str, filename: str = "pour.mp4") -> VideoAsset:
    return VideoAsset(
        id=video_id,
        filename=filename,
        title=filename.rsplit(".", 1)[0],
        duration="1:00",
        source_path="/videos",
        date_analyzed="2026-01-01",
    )


def _clip(clip_id: str, video_id: str, thumbnail: str | None = None, equipment=None) -> Clip:
    return Clip(
        id=clip_id,
        video_id=video_id,
        start_time="0:10",
        end_time="0:13",
        start_seconds=10.0,
        end_seconds=13.0,
        thumbnail=thumbnail,
        tags=ClipTags(equipment=list(equipment or [])),
    )


def _analyze(index: CatalogIndex, filename: str, n_clips: int, thumbs=None) -> list[Clip]:
    video_id = index.allocate_video_id()
    clips = []
    for _ in range(n_clips):
        clip_id = index.allocate_clip_id()
        thumbnail = None
        if thumbs is not None:
            thumbnail = f"{clip_id}.gif"
            (thumbs / thumbnail).write_bytes(b"GIF89a")
        clips.append(_clip(clip_id, video_id, thumbnail))
    merge_video(index, _asset(video_id, filename), clips, thumbs)
    return clips


class TestIdAllocation:
    def test_first_video_id(self):
        assert next_video_id({}) == "vid_001"

    def test_video_id_uses_max_suffix(self):
        assert next_video_id(["vid_001", "vid_007", "other"]) == "vid_008"

    def test_clip_ids_sequential(self):
        index = CatalogIndex()
        assert [index.allocate_clip_id() for _ in range(3)] == ["clip_0001", "clip_0002", "clip_0003"]

    def test_clip_id_never_reused_after_delete(self):
        index = CatalogIndex()
        clips = _analyze(index, "a.mp4", 3)
        assert delete_clip(index, clips[-1].id)
        assert index.allocate_clip_id() == "clip_0004"

    def test_sequence_survives_roundtrip_after_deleting_newest(self):
        index = CatalogIndex()
        clips = _analyze(index, "a.mp4", 2)
        delete_clip(index, clips[-1].id)
        restored = CatalogIndex.from_dict(index.to_dict())
        assert restored.allocate_clip_id() == "clip_0003"

    def test_sequence_recovered_from_clips_when_missing(self):
        data = {"videos": {"vid_001": _asset("vid_001").to_dict()},
                "clips": [_clip("clip_0042", "vid_001").to_dict()]}
        assert CatalogIndex.from_dict(data).allocate_clip_id() == "clip_0043"

    def test_ids_strictly_increasing_across_reanalysis(self):
        index = CatalogIndex()
        first = _analyze(index, "a.mp4", 2)
        second = _analyze(index, "a.mp4", 2)
        issued = [c.id for c in first + second]
        assert issued == sorted(issued)
        assert len(set(issued)) == 4


class TestMergeVideo:
    def test_reanalysis_is_idempotent(self, tmp_path):
        index = CatalogIndex()
        first = _analyze(index, "pour.mp4", 2, tmp_path)
        second = _analyze(index, "pour.mp4", 3, tmp_path)

        assert len(index.video_ids_for("pour.mp4")) == 1
        assert [c.id for c in index.clips] == [c.id for c in second]
        for clip in first:
            assert not (tmp_path / clip.thumbnail).exists()
        for clip in second:
            assert (tmp_path / clip.thumbnail).exists()

    def test_other_videos_untouched(self):
        index = CatalogIndex()
        kept = _analyze(index, "grind.mp4", 1)
        _analyze(index, "pour.mp4", 1)
        _analyze(index, "pour.mp4", 1)
        assert kept[0] in index.clips
        assert len(index.videos) == 2

    def test_returns_replaced_clips(self):
        index = CatalogIndex()
        _analyze(index, "pour.mp4", 2)
        video_id = index.allocate_video_id()
        replaced = merge_video(index, _asset(video_id), [_clip(index.allocate_clip_id(), video_id)])
        assert [c.id for c in replaced] == ["clip_0001", "clip_0002"]

    def test_foreign_clip_rejected(self):
        index = CatalogIndex()
        with pytest.raises(CatalogIntegrityError):
            merge_video(index, _asset("vid_001"), [_clip("clip_0001", "vid_999")])
        assert index.clips == []
        assert index.videos == {}

    def test_no_orphans_after_merges(self):
        index = CatalogIndex()
        _analyze(index, "a.mp4", 2)
        _analyze(index, "b.mp4", 1)
        _analyze(index, "a.mp4", 1)
        assert find_orphans(index) == []

    def test_remove_unknown_filename_is_noop(self):
        index = CatalogIndex()
        _analyze(index, "a.mp4", 1)
        assert remove_video_entries(index, "missing.mp4") == []
        assert len(index.clips) == 1

    def test_previews_kept_until_removed_explicitly(self, tmp_path):
        index = CatalogIndex()
        old = _analyze(index, "pour.mp4", 1, tmp_path)[0]
        video_id = index.allocate_video_id()
        replaced = merge_video(index, _asset(video_id), [_clip(index.allocate_clip_id(), video_id)])

        assert (tmp_path / old.thumbnail).exists()
        remove_previews(tmp_path, replaced)
        assert not (tmp_path / old.thumbnail).exists()


class TestClipEdits:
    def test_update_sets_user_edited(self):
        index = CatalogIndex()
        clip = _analyze(index, "a.mp4", 1)[0]
        updated = update_clip(index, clip.id, {"userNotes": "great pour", "excluded": True})
        assert updated.user_notes == "great pour"
        assert updated.excluded is True
        assert updated.user_edited is True
        assert index.get_clip(clip.id) is updated

    def test_update_refuses_identity_fields(self):
        index = CatalogIndex()
        clip = _analyze(index, "a.mp4", 1)[0]
        with pytest.raises(ValueError):
            update_clip(index, clip.id, {"videoId": "vid_999"})

    def test_update_flat_tag_fields(self):
        index = CatalogIndex()
        clip = _analyze(index, "a.mp4", 1)[0]
        clip.tags.shot_type = "wide"
        clip.tags.technique = ["pouring"]

        updated = update_clip(index, clip.id, {"shotType": "close-up", "equipment": ["grinder"]})

        assert updated.tags.shot_type == "close-up"
        assert updated.tags.equipment == ["grinder"]
        assert updated.tags.technique == ["pouring"]
        assert updated.user_edited is True
        assert "shotType" not in updated.to_dict()

    def test_update_nested_tags_merges(self):
        index = CatalogIndex()
        clip = _analyze(index, "a.mp4", 1)[0]
        clip.tags.shot_type = "wide"

        updated = update_clip(index, clip.id, {"tags": {"products": ["V60"]}})

        assert updated.tags.products == ["V60"]
        assert updated.tags.shot_type == "wide"

    def test_update_unknown_clip(self):
        with pytest.raises(KeyError):
            update_clip(CatalogIndex(), "clip_0001", {"userNotes": "x"})

    def test_delete_removes_preview(self, tmp_path):
        index = CatalogIndex()
        clip = _analyze(index, "a.mp4", 1, tmp_path)[0]
        assert delete_clip(index, clip.id, tmp_path)
        assert not (tmp_path / clip.thumbnail).exists()
        assert not delete_clip(index, clip.id, tmp_path)


def test_tag_counts_most_common_first():
    index = CatalogIndex()
    index.videos["vid_001"] = _asset("vid_001")
    index.clips = [
        _clip("clip_0001", "vid_001", equipment=["grinder", "kettle"]),
        _clip("clip_0002", "vid_001", equipment=["kettle"]),
        _clip("clip_0003", "vid_001", equipment=["kettle", "scale"]),
    ]
    assert tag_counts(index, "equipment")[0] == ("kettle", 3)
    assert len(tag_counts(index, "equipment", top=2)) == 2


def test_legacy_flat_tags_are_lifted():
    data = {
        "version": "1.0",
        "videos": {"vid_001": {"filename": "a.mp4"}},
        "clips": [{"id": "clip_0001", "videoId": "vid_001", "startTime": "0:02", "endTime": "0:05",
                   "shotType": "macro", "equipment": ["grinder"], "technique": "grinding"}],
    }
    clip = CatalogIndex.from_dict(data).clips[0]
    assert clip.tags.shot_type == "macro"
    assert clip.tags.equipment == ["grinder"]
    assert clip.tags.technique == ["grinding"]
    assert clip.start_seconds == 2.0
    assert "equipment" not in clip.to_dict()


def test_string_tag_values_become_single_item_lists():
    clip = Clip.from_dict({
        "id": "clip_0001",
        "videoId": "vid_001",
        "tags": {"equipment": "grinder", "subjectDescriptors": "dark roast", "products": "V60", "other": ""},
    })
    assert clip.tags.equipment == ["grinder"]
    assert clip.tags.subject_descriptors == ["dark roast"]
    assert clip.tags.products == ["V60"]
    assert clip.tags.other == []


def test_flat_string_tags_are_lifted_whole():
    data = {
        "videos": {"vid_001": {"filename": "a.mp4"}},
        "clips": [{"id": "clip_0001", "videoId": "vid_001", "equipment": "kettle"}],
    }
    index = CatalogIndex.from_dict(data)
    assert index.clips[0].tags.equipment == ["kettle"]
    assert tag_counts(index, "equipment") == [("kettle", 1)]
