"""Volume Inspector — walks a container's persistent storage for malicious payloads.

The filesystem pass (hashing, name and content matching) is synchronous and
runs in an executor. Hash intelligence lookups and submissions are awaited
afterwards against the collected file records.
"""

import asyncio
import hashlib
import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from ..intel.hash_store import HashIntelligenceStore
from ..models.detection import Detection, FileFinding, HashMatch
from ..utils.logging import get_logger
from . import signatures

logger = get_logger("scanner.volume_inspector")

_MB = 1024 * 1024
_CHUNK_SIZE = 65536


@dataclass
class FileRecord:
    """Facts gathered about one walked file."""

    rel_path: str
    name: str
    hash: str
    size: int
    suspicious_name: bool = False
    suspicious_content: bool = False
    bot_dependencies: list[str] = field(default_factory=list)


@dataclass
class VolumeSurvey:
    """Result of the filesystem pass over one volume."""

    npm_sentinel: bool = False
    run_script_suspicious: bool = False
    small_jar: Optional[FileRecord] = None
    cache_hits: list[str] = field(default_factory=list)
    files: list[FileRecord] = field(default_factory=list)


class VolumeInspector:
    """Recursively inspects a volume with explicit skip rules."""

    def __init__(self, hash_store: HashIntelligenceStore, config: dict | None = None):
        cfg = config or {}
        self._hash_store = hash_store
        self._max_jar_size: int = cfg.get("max_jar_size", 5 * _MB)
        self._content_max_bytes: int = cfg.get("content_max_bytes", 10_000_000)
        self._ignored_paths: tuple = tuple(cfg.get("ignored_paths", signatures.IGNORED_PATHS))
        self._ignored_files: set = set(cfg.get("ignored_files", signatures.IGNORED_FILES))
        self._ignored_extensions: set = set(cfg.get("ignored_extensions", signatures.IGNORED_EXTENSIONS))
        self._suspicious_names: set = {n.lower() for n in signatures.SUSPICIOUS_FILENAMES}

    # --- Public API ---

    async def inspect(self, volume_path: str, detection: Detection) -> VolumeSurvey:
        """Walk ``volume_path`` and record every finding on ``detection``."""
        loop = asyncio.get_event_loop()
        survey = await loop.run_in_executor(None, self.survey, volume_path)
        await self._apply(survey, detection)
        return survey

    @staticmethod
    def directory_size(volume_path: str) -> float:
        """Size in MB of the volume's top-level entries."""
        total = 0
        with os.scandir(volume_path) as it:
            for entry in it:
                total += entry.stat(follow_symlinks=False).st_size
        return total / _MB

    def survey(self, volume_path: str) -> VolumeSurvey:
        survey = VolumeSurvey()
        self._check_fixed_paths(volume_path, survey)
        survey.files = self._walk(volume_path)
        return survey

    # --- Filesystem pass ---

    def _check_fixed_paths(self, volume_path: str, survey: VolumeSurvey) -> None:
        survey.npm_sentinel = os.path.isfile(os.path.join(volume_path, ".npm", "npm"))

        run_script = os.path.join(volume_path, "run.sh")
        if os.path.isfile(run_script):
            content = self._read_text(run_script)
            survey.run_script_suspicious = bool(
                content and signatures.contains_suspicious_content(content)
            )

        server_jar = os.path.join(volume_path, "server.jar")
        if os.path.isfile(server_jar):
            size = os.path.getsize(server_jar)
            if size < self._max_jar_size:
                jar_hash = self._hash_file(server_jar)
                if jar_hash is not None:
                    survey.small_jar = FileRecord(
                        rel_path="server.jar", name="server.jar", hash=jar_hash, size=size
                    )

        cache_dir = os.path.join(volume_path, "cache")
        if os.path.isdir(cache_dir):
            try:
                survey.cache_hits = sorted(
                    name for name in os.listdir(cache_dir)
                    if name.startswith(signatures.SUSPICIOUS_CACHE_PREFIXES)
                )
            except OSError as e:
                logger.warning("cache_dir_unreadable", path=cache_dir, error=str(e))

    def _walk(self, volume_path: str) -> list[FileRecord]:
        """Depth-first walk driven by an explicit stack of (directory, relative path)."""
        records: list[FileRecord] = []
        stack: list[tuple[str, str]] = [(volume_path, "")]

        while stack:
            directory, rel_dir = stack.pop()
            try:
                with os.scandir(directory) as it:
                    entries = sorted(it, key=lambda e: e.name)
            except OSError as e:
                logger.warning("directory_unreadable", path=rel_dir or ".", error=str(e))
                continue

            subdirs = []
            for entry in entries:
                rel_path = f"{rel_dir}/{entry.name}" if rel_dir else entry.name
                if self._is_skipped(entry.name, rel_path):
                    continue
                try:
                    if entry.is_symlink():
                        continue
                    if entry.is_dir(follow_symlinks=False):
                        subdirs.append((entry.path, rel_path))
                        continue
                    if not entry.is_file(follow_symlinks=False):
                        continue
                    size = entry.stat(follow_symlinks=False).st_size
                except OSError:
                    continue

                record = self._inspect_file(entry.path, rel_path, entry.name, size)
                if record is not None:
                    records.append(record)

            # Reversed so directories pop in name order
            stack.extend(reversed(subdirs))

        return records

    def _is_skipped(self, name: str, rel_path: str) -> bool:
        if any(rel_path == p or rel_path.startswith(p + "/") for p in self._ignored_paths):
            return True
        if name.lower() in self._suspicious_names or name == signatures.PACKAGE_MANIFEST:
            return False
        return name in self._ignored_files or os.path.splitext(name)[1] in self._ignored_extensions

    def _inspect_file(self, path: str, rel_path: str, name: str, size: int) -> Optional[FileRecord]:
        file_hash = self._hash_file(path)
        if file_hash is None:
            return None

        record = FileRecord(rel_path=rel_path, name=name, hash=file_hash, size=size)
        record.suspicious_name = (
            name.lower() in self._suspicious_names
            or os.path.splitext(name)[1] in signatures.SUSPICIOUS_EXTENSIONS
        )

        if size > self._content_max_bytes:
            return record
        content = self._read_text(path)
        if content is None:
            return record

        record.suspicious_content = signatures.contains_suspicious_content(content)
        if name == signatures.PACKAGE_MANIFEST:
            record.bot_dependencies = self._manifest_bot_dependencies(content, rel_path)
        return record

    @staticmethod
    def _manifest_bot_dependencies(content: str, rel_path: str) -> list[str]:
        try:
            manifest = json.loads(content)
            deps = {
                **(manifest.get("dependencies") or {}),
                **(manifest.get("devDependencies") or {}),
            }
        except (ValueError, AttributeError, TypeError) as e:
            logger.warning("package_manifest_unparseable", path=rel_path, error=str(e))
            return []
        return [dep for dep in deps if signatures.matches_any(dep, signatures.MESSAGING_BOT_LIBRARIES)]

    @staticmethod
    def _hash_file(path: str) -> Optional[str]:
        """Streaming SHA-256 of a file. Returns None if it cannot be read."""
        try:
            sha = hashlib.sha256()
            with open(path, "rb") as f:
                while True:
                    chunk = f.read(_CHUNK_SIZE)
                    if not chunk:
                        break
                    sha.update(chunk)
            return sha.hexdigest()
        except OSError:
            return None

    @staticmethod
    def _read_text(path: str) -> Optional[str]:
        """Read a file as UTF-8 text; binary or unreadable files yield None."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                return f.read()
        except (OSError, UnicodeDecodeError):
            return None

    # --- Intelligence pass ---

    async def _apply(self, survey: VolumeSurvey, detection: Detection) -> None:
        server_id = detection.volume_id

        if survey.npm_sentinel:
            detection.npm.append(".npm/npm suspicious file found")

        if survey.run_script_suspicious:
            detection.suspicious_content.append("Suspicious content in run.sh")
            detection.add_type("Suspicious Shell Script")

        if survey.small_jar is not None:
            jar = survey.small_jar
            detection.files.append(FileFinding(
                path=jar.rel_path, hash=jar.hash, size=jar.size, reason="Suspicious small server.jar",
            ))
            detection.add_type("Small JAR File")
            await self._hash_store.submit(
                jar.hash, jar.rel_path, "Small JAR File", server_id,
                {"size": jar.size, "detectionTime": datetime.now(timezone.utc).isoformat()},
            )

        for name in survey.cache_hits:
            detection.cache.append(f"Suspicious cache file: {name}")
            detection.add_type("Suspicious Cache File")

        for record in survey.files:
            match = await self._hash_store.lookup(record.hash)
            if match:
                detection.hash_matches.append(HashMatch(
                    file_name=record.rel_path,
                    detection_type=match.get("detection_type") or "Unknown",
                    stored_file_name=match.get("file_name"),
                ))
                detection.add_type("Known Malicious File")

            if record.suspicious_name:
                detection.files.append(FileFinding(
                    path=record.rel_path, hash=record.hash, reason="Suspicious filename or extension",
                ))
                detection.add_type("Suspicious File")
                await self._hash_store.submit(record.hash, record.rel_path, "Suspicious Filename", server_id)

            if record.suspicious_content:
                detection.files.append(FileFinding(
                    path=record.rel_path, hash=record.hash, reason="Suspicious content detected",
                ))
                detection.add_type("Suspicious Content")
                await self._hash_store.submit(record.hash, record.rel_path, "Suspicious Content", server_id)

            for dep in record.bot_dependencies:
                detection.add_type("WhatsApp Bot")
                detection.files.append(FileFinding(
                    path=record.rel_path, hash=record.hash, reason=f"WhatsApp dependency found: {dep}",
                ))
                await self._hash_store.submit(record.hash, record.rel_path, "WhatsApp Bot", server_id)
