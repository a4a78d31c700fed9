"""Per-video analysis loop: upload, classify, filter, render, merge, learn, save."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path

from google import genai

from brollindex.catalog import CatalogIndex, merge_video, remove_previews, tag_counts
from brollindex.classifier import GeminiClassifier
from brollindex.exceptions import SetupError
from brollindex.files import RemoteFileManager
from brollindex.media import FFmpegMediaTool, PreviewOptions
from brollindex.previews import PreviewGenerator
from brollindex.project import ProjectStore
from brollindex.scoring import filter_segments, resolve_minimum_score
from brollindex.taxonomy import Taxonomy, learn_terms, load_or_seed_taxonomy
from brollindex.timecode import format_duration, format_timestamp
from brollindex.types import AnalysisConfig, Clip, ClipTags, Segment, VideoAsset
from brollindex.verbose import BrollPrinter
from brollindex.verifier import ThumbnailVerifier

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    videos_processed: int = 0
    videos_failed: int = 0
    new_clips: int = 0
    total_clips: int = 0
    top_equipment: list[tuple[str, int]] = field(default_factory=list)
    top_techniques: list[tuple[str, int]] = field(default_factory=list)


def clip_from_segment(clip_id: str, video_id: str, segment: Segment, thumbnail: str | None) -> Clip:
    start, end = segment.start_seconds, segment.end_seconds
    return Clip(
        id=clip_id,
        video_id=video_id,
        start_time=format_timestamp(start),
        end_time=format_timestamp(end),
        start_seconds=start,
        end_seconds=end,
        thumbnail=thumbnail,
        tags=ClipTags(
            shot_type=segment.shot_type,
            equipment=list(segment.equipment),
            technique=list(segment.technique),
            subject_descriptors=list(segment.subject_descriptors),
            products=list(segment.products),
            other=list(segment.other),
        ),
        description=segment.description,
        broll_score=segment.broll_score,
        presenter_visible=segment.presenter_visible,
        best_moment=segment.best_moment,
    )


class AnalysisPipeline:
    """Analyze the videos of one project folder into its clip catalog.

    Videos are processed one at a time and the catalog and taxonomy are
    saved after each one, so an interrupted run keeps every finished video.

    Args:
        store: Project storage.
        media: ffmpeg wrapper used for probing.
        file_manager: Uploads and releases videos on the provider.
        classifier: Turns an uploaded video into segments.
        previews: Renders one preview per accepted segment.
        config: Run configuration.
        printer: User-facing progress output.
        verifier: Used by :meth:`verify_catalog`.
    """

    def __init__(
        self,
        store: ProjectStore,
        media: FFmpegMediaTool,
        file_manager: RemoteFileManager,
        classifier: GeminiClassifier,
        previews: PreviewGenerator,
        config: AnalysisConfig | None = None,
        printer: BrollPrinter | None = None,
        verifier: ThumbnailVerifier | None = None,
    ):
        self.store = store
        self.media = media
        self.file_manager = file_manager
        self.classifier = classifier
        self.previews = previews
        self.config = config or AnalysisConfig()
        self.printer = printer or BrollPrinter(enabled=False)
        self.verifier = verifier

    def _info(self, message: str, detail: str = "") -> None:
        logger.info("%s %s", message, detail)
        self.printer.print_step_done(message, detail)

    async def prepare(self) -> None:
        """Setup checks that must pass before any video is touched.

        Raises:
            SetupError: Missing project folder or ffmpeg.
        """
        if not self.store.folder.is_dir():
            raise SetupError(f"Project folder not found: {self.store.folder}")
        version = await self.media.check()
        self._info("FFmpeg found", version)
        self.store.ensure_dirs()

    def select_videos(self, index: CatalogIndex, new_only: bool = False, only_file: str | None = None) -> list[str]:
        videos = self.store.list_videos()
        if only_file is not None:
            videos = [v for v in videos if v == only_file]
            if not videos:
                raise SetupError(f"File not found: {only_file}")
        if new_only:
            indexed = index.indexed_filenames()
            before = len(videos)
            videos = [v for v in videos if v not in indexed]
            self._info("--new-only", f"{before} total videos, {len(videos)} not yet indexed")
        return videos

    async def run(self, new_only: bool = False, only_file: str | None = None) -> RunSummary:
        """Analyze the project's videos.

        A failure inside one video is reported and the run moves on to the
        next; only setup problems abort the run.

        Raises:
            SetupError: Before any work starts.
        """
        await self.prepare()
        taxonomy = load_or_seed_taxonomy(self.store)
        self._info(
            "Taxonomy loaded",
            f"{len(taxonomy.equipment)} equipment, {len(taxonomy.products)} products",
        )
        index = self.store.load_index()
        videos = self.select_videos(index, new_only, only_file)

        summary = RunSummary()
        if not videos:
            self._info("No videos to process")
        else:
            self._info(f"Found {len(videos)} video(s) to process")

        for n, filename in enumerate(videos, 1):
            self.printer.print_step(f"[{n}/{len(videos)}] {filename}")
            logger.info("[%d/%d] %s", n, len(videos), filename)
            t0 = time.perf_counter()
            try:
                added = await self.process_video(filename, index, taxonomy)
            except Exception as e:
                summary.videos_failed += 1
                logger.error("Failed to analyze %s: %s", filename, e)
                self.printer.print_error(f"{filename}: {e}")
                continue
            summary.videos_processed += 1
            summary.new_clips += added
            self.printer.print_step_done(filename, f"{added} clip(s)", elapsed=time.perf_counter() - t0)

        summary.total_clips = len(index.clips)
        summary.top_equipment = tag_counts(index, "equipment")
        summary.top_techniques = tag_counts(index, "technique")
        self._print_summary(summary)
        return summary

    async def process_video(self, filename: str, index: CatalogIndex, taxonomy: Taxonomy) -> int:
        """Analyze one video and commit its clips.

        Returns:
            Number of clips added.
        """
        video_path = self.store.folder / filename
        video_id = index.allocate_video_id()

        duration = await self.media.probe_duration(video_path)
        self._info("Duration", format_duration(duration))

        self._info("Uploading video to Gemini")
        handle = await self.file_manager.upload(video_path)
        try:
            self._info("Classifying video", self.config.model)
            segments = await self.classifier.classify(handle, taxonomy)
        finally:
            await self.file_manager.release(handle)
        self._info(f"Found {len(segments)} candidate segment(s)")

        minimum = resolve_minimum_score(taxonomy.minimum_broll_score, self.config.default_minimum_score)
        accepted = filter_segments(segments, minimum)
        self._info(f"{len(accepted)} clip(s) above score threshold", f">= {minimum}")

        clips = []
        for segment in accepted:
            clip_id = index.allocate_clip_id()
            thumbnail = await self.previews.render(video_path, clip_id, segment.start_seconds, segment.end_seconds)
            if thumbnail is None:
                self.printer.print_warning(f"No preview for {clip_id}")
            clips.append(clip_from_segment(clip_id, video_id, segment, thumbnail))

        asset = VideoAsset(
            id=video_id,
            filename=filename,
            title=Path(filename).stem,
            duration=format_duration(duration),
            source_path=str(self.store.folder),
            date_analyzed=date.today().isoformat(),
        )
        replaced = merge_video(index, asset, clips)
        if replaced:
            self._info("Re-analyze", f"replaced {len(replaced)} prior clip(s) for this video")

        learned = learn_terms(taxonomy, accepted)
        self.store.save_taxonomy(taxonomy)
        if any(learned.values()):
            logger.info("Learned taxonomy terms: %s", learned)
        self._info(
            "Taxonomy updated",
            f"{len(taxonomy.equipment)} equipment, {len(taxonomy.products)} products, "
            f"{len(taxonomy.techniques)} techniques",
        )

        self.store.save_index(index)
        remove_previews(self.store.thumbnails_dir, replaced)
        self._info("Saved to index", f"running total: {len(index.clips)} clips")
        return len(clips)

    def _print_summary(self, summary: RunSummary) -> None:
        stats: dict[str, object] = {
            "Videos processed": summary.videos_processed,
            "Videos failed": summary.videos_failed,
            "New clips found": summary.new_clips,
            "Total clips in index": summary.total_clips,
        }
        for name, count in summary.top_equipment:
            stats[f"equipment: {name}"] = f"{count} clips"
        for name, count in summary.top_techniques:
            stats[f"technique: {name}"] = f"{count} clips"
        self.printer.print_final_summary(stats)

    async def verify_catalog(self) -> dict[str, int]:
        """Run the verifier over every persisted clip with a preview and save the flags."""
        if self.verifier is None:
            raise SetupError("No thumbnail verifier configured")
        await self.prepare()
        index = self.store.load_index()
        clips = [c for c in index.clips if c.thumbnail and not c.excluded]
        video_paths = {
            vid: Path(meta.source_path or self.store.folder) / meta.filename
            for vid, meta in index.videos.items()
        }
        self._info(f"Verifying {len(clips)} preview(s)")
        await self.verifier.verify(clips, self.store.thumbnails_dir, video_paths)
        self.store.save_index(index)

        counts = {
            "checked": len(clips),
            "matched": sum(1 for c in clips if c.verified is True),
            "mismatched": sum(1 for c in clips if c.mismatch is True),
        }
        self.printer.print_final_summary({k.capitalize(): v for k, v in counts.items()})
        return counts


def build_pipeline(
    project: str | Path,
    api_key: str,
    config: AnalysisConfig | None = None,
    printer: BrollPrinter | None = None,
) -> AnalysisPipeline:
    """Wire an :class:`AnalysisPipeline` to Gemini and the local ffmpeg."""
    config = config or AnalysisConfig()
    client = genai.Client(api_key=api_key)
    store = ProjectStore(project)
    media = FFmpegMediaTool()
    options = PreviewOptions(
        fps=config.preview_fps,
        width=config.preview_width,
        max_colors=config.preview_colors,
    )
    return AnalysisPipeline(
        store=store,
        media=media,
        file_manager=RemoteFileManager(client, config),
        classifier=GeminiClassifier(client, config),
        previews=PreviewGenerator(media, store.thumbnails_dir, options),
        config=config,
        printer=printer,
        verifier=ThumbnailVerifier(client, config, frame_extractor=media.extract_frame),
    )
