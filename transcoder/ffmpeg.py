import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from django.conf import settings

from .errors import TranscodeError

logger = logging.getLogger(__name__)

MANIFEST_SUFFIX = ".m3u8"


@dataclass(frozen=True)
class EncodeParams:
    """Single-rendition HLS encode settings."""

    video_codec: str = "libx264"
    audio_codec: str = "aac"
    video_profile: str = "baseline"
    video_level: str = "3.0"
    segment_seconds: int = 10
    start_number: int = 0
    manifest_name: str = "index.m3u8"
    segment_pattern: str = "segment_%03d.ts"

    @classmethod
    def from_settings(cls) -> "EncodeParams":
        return cls(
            video_codec=settings.HLS_VIDEO_CODEC,
            audio_codec=settings.HLS_AUDIO_CODEC,
            video_profile=settings.HLS_VIDEO_PROFILE,
            video_level=settings.HLS_VIDEO_LEVEL,
            segment_seconds=settings.HLS_SEGMENT_SECONDS,
        )


@dataclass
class ArtifactSet:
    """Manifest plus the segments ffmpeg wrote next to it."""

    directory: Path
    manifest: Path
    segments: list[Path] = field(default_factory=list)

    @property
    def files(self) -> list[Path]:
        return [*self.segments, self.manifest]


def manifest_entries(manifest: Path) -> list[str]:
    """URIs listed in a media playlist, in playback order."""
    entries = []
    for line in manifest.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            entries.append(line)
    return entries


def discover_artifacts(output_dir: Path) -> ArtifactSet:
    """
    List what ffmpeg actually produced. Segment names and count are only known
    after the encoder exits, so nothing here assumes a fixed file list.
    """
    files = sorted(p for p in Path(output_dir).iterdir() if p.is_file())
    manifests = [p for p in files if p.suffix.lower() == MANIFEST_SUFFIX]
    if len(manifests) != 1:
        raise TranscodeError(f"Expected exactly one manifest in {output_dir}, found {len(manifests)}")

    manifest = manifests[0]
    segments = [p for p in files if p != manifest]

    listed = manifest_entries(manifest)
    on_disk = {p.name for p in segments}
    missing = [name for name in listed if name not in on_disk]
    unlisted = sorted(on_disk - set(listed))
    if missing or unlisted:
        raise TranscodeError(
            f"Manifest {manifest.name} does not match segments on disk "
            f"(missing: {missing}, not in manifest: {unlisted})"
        )

    # playback order, as the manifest lists them
    by_name = {p.name: p for p in segments}
    return ArtifactSet(directory=Path(output_dir), manifest=manifest, segments=[by_name[n] for n in listed])


class TranscodeEngine:
    def __init__(self, params: EncodeParams | None = None, ffmpeg_bin: str | None = None):
        self.params = params or EncodeParams.from_settings()
        self.ffmpeg_bin = ffmpeg_bin or settings.FFMPEG_BIN

    def build_command(self, input_path: Path, output_dir: Path) -> list[str]:
        p = self.params
        return [
            self.ffmpeg_bin,
            "-y",
            "-i", str(input_path),
            "-c:v", p.video_codec,
            "-c:a", p.audio_codec,
            "-profile:v", p.video_profile,
            "-level", p.video_level,
            "-start_number", str(p.start_number),
            "-hls_time", str(p.segment_seconds),
            "-hls_list_size", "0",   # keep every segment: one static playlist
            "-hls_segment_filename", str(Path(output_dir) / p.segment_pattern),
            "-f", "hls",
            str(Path(output_dir) / p.manifest_name),
        ]

    def transcode(self, input_path: Path, output_dir: Path) -> ArtifactSet:
        """
        Run ffmpeg to completion and return the HLS files it wrote into output_dir.
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        cmd = self.build_command(input_path, output_dir)
        logger.info("FFmpeg cmd: %s", " ".join(cmd))
        try:
            subprocess.run(cmd, check=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        except subprocess.CalledProcessError as e:
            err = e.stderr.decode("utf-8", errors="ignore") if e.stderr else str(e)
            raise TranscodeError(f"ffmpeg exited with status {e.returncode}", diagnostic=err) from e
        except OSError as e:
            raise TranscodeError(f"Cannot run {self.ffmpeg_bin}: {e}") from e

        artifacts = discover_artifacts(output_dir)
        logger.info("Transcoded %s into %d segment(s)", input_path, len(artifacts.segments))
        return artifacts
