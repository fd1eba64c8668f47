"""
Generate the content manifest from the R2 bucket.

Lists every object, keeps the ones that follow the
``courses/<category>/<teacher>/<course>/[<section>/]<file>.{pdf,mp3,mp4}``
layout and writes them as a JSON array. Every run rebuilds the whole file.

Run: englishhub-manifest [--output PATH] [--prefix courses/]
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import tempfile
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import quote

from .settings import settings
from .storage import R2Storage

logger = logging.getLogger(__name__)

CONTENT_EXTENSIONS = ("pdf", "mp3", "mp4")


def parse_key(key: str) -> Optional[Dict[str, str]]:
	parts = key.split("/")
	# courses/category/teacher/course/file at minimum
	if parts[0] != "courses" or len(parts) < 5:
		return None
	if any(p.startswith((".", "_")) for p in parts):
		return None
	if any(p == "" for p in parts):
		return None
	file = parts[-1]
	stem, dot, ext = file.rpartition(".")
	if not dot or not stem:
		return None
	if ext.lower() not in CONTENT_EXTENSIONS:
		return None
	return {
		"exam": parts[1],
		"teacher": parts[2],
		"course": parts[3],
		"section": parts[4] if len(parts) > 5 else "main",
		"file": file,
		"ext": ext,
	}


def public_url(base: str, key: str) -> str:
	return f"{base.rstrip('/')}/{quote(key, safe='/')}"


def _iso(value: Any) -> Optional[str]:
	if value is None:
		return None
	if isinstance(value, datetime):
		if value.tzinfo is None:
			value = value.replace(tzinfo=timezone.utc)
		return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
	return str(value)


def build_manifest(objects: Iterable[dict], base_url: str) -> List[Dict[str, Any]]:
	entries = []
	for obj in objects:
		key = obj["Key"]
		parsed = parse_key(key)
		if parsed is None:
			continue
		entries.append({
			**parsed,
			"path": key,
			"urlPath": key,
			"url": public_url(base_url, key),
			"sizeBytes": obj.get("Size", 0),
			"lastModified": _iso(obj.get("LastModified")),
		})
	entries.sort(key=lambda e: e["path"])
	return entries


def dumps(manifest: List[Dict[str, Any]]) -> str:
	return json.dumps(manifest, indent=2, ensure_ascii=False)


def write_manifest(manifest: List[Dict[str, Any]], path: str) -> None:
	directory = os.path.dirname(os.path.abspath(path))
	os.makedirs(directory, exist_ok=True)
	fd, tmp_path = tempfile.mkstemp(prefix=".manifest-", suffix=".json", dir=directory)
	try:
		with os.fdopen(fd, "w", encoding="utf-8") as fh:
			fh.write(dumps(manifest))
		os.replace(tmp_path, path)
	except BaseException:
		if os.path.exists(tmp_path):
			os.remove(tmp_path)
		raise


def summarize(manifest: List[Dict[str, Any]]) -> Dict[str, Any]:
	return {
		"categories": sorted({m["exam"] for m in manifest}),
		"teachers": len({m["teacher"] for m in manifest}),
		"courses": len({f"{m['teacher']}/{m['course']}" for m in manifest}),
		"files": len(manifest),
	}


def generate(storage: R2Storage, output: str, *, prefix: str = "") -> List[Dict[str, Any]]:
	logger.info("listing bucket %s (prefix=%r)", storage.bucket, prefix)
	# Materialize the listing first so a failure part way through writes nothing
	objects = list(storage.iter_objects(prefix))
	logger.info("total objects found: %d", len(objects))
	manifest = build_manifest(objects, storage.public_url)
	write_manifest(manifest, output)
	summary = summarize(manifest)
	logger.info(
		"manifest saved to %s: categories=%s teachers=%d courses=%d files=%d",
		output, ", ".join(summary["categories"]), summary["teachers"], summary["courses"], summary["files"],
	)
	return manifest


def main(argv: Optional[List[str]] = None, storage: Optional[R2Storage] = None) -> int:
	ap = argparse.ArgumentParser(description="Build _manifest.json from the R2 bucket")
	ap.add_argument("--output", default=settings.manifest_path)
	ap.add_argument("--prefix", default="courses/")
	args = ap.parse_args(argv)
	logging.basicConfig(level=settings.log_level.upper(), format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
	try:
		generate(storage or R2Storage(), args.output, prefix=args.prefix)
	except Exception as e:
		logger.error("manifest generation failed: %s", e)
		if not (settings.r2_access_key_id and settings.r2_secret_access_key):
			logger.error("check R2_ACCOUNT_ID, R2_ACCESS_KEY_ID and R2_SECRET_ACCESS_KEY in .env")
		return 1
	return 0


if __name__ == "__main__":
	sys.exit(main())
