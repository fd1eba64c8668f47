"""
Create teachers, courses and lessons from a generated manifest.

Records are grouped by (category, teacher folder, course folder). Running the
import again skips courses and lessons that already exist.

Run: englishhub-import-manifest [--manifest PATH]
"""

from __future__ import annotations

import argparse
import json
import logging
import re
import secrets
import sys
from collections import OrderedDict
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from .db import SessionLocal, init_db
from .models import Account, Course, Lesson
from .routers.auth import hash_password
from .settings import settings

logger = logging.getLogger(__name__)

TEACHER_EMAIL_DOMAIN = "teachers.englishhub.local"

LEVEL_BY_CATEGORY = {
	"toeic": "B1",
	"ielts": "B2",
	"vstep": "B2",
	"giao-tiep": "A2",
	"grammar": "A2",
	"vocabulary": "B1",
}

LESSON_TYPE_BY_EXT = {"pdf": "pdf", "mp3": "audio", "mp4": "video"}


def humanize(folder: str) -> str:
	return re.sub(r"[-_]+", " ", folder).strip()


def slugify(value: str) -> str:
	slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
	return slug or "teacher"


def load_manifest(path: str) -> List[Dict[str, Any]]:
	with open(path, "r", encoding="utf-8-sig") as fh:
		return json.load(fh)


def group_manifest(manifest: List[Dict[str, Any]]) -> "OrderedDict[Tuple[str, str, str], List[Dict[str, Any]]]":
	groups: "OrderedDict[Tuple[str, str, str], List[Dict[str, Any]]]" = OrderedDict()
	for item in sorted(manifest, key=lambda m: (m["exam"], m["teacher"], m["course"], m["section"], m["file"])):
		groups.setdefault((item["exam"], item["teacher"], item["course"]), []).append(item)
	return groups


def get_or_create_teacher(db: Session, folder: str) -> Tuple[Account, bool]:
	email = f"{slugify(folder)}@{TEACHER_EMAIL_DOMAIN}"
	account = db.query(Account).filter(Account.email == email).first()
	if account is None:
		# Random password: these accounts are owners of imported content, not logins
		account = Account(
			email=email,
			password_hash=hash_password(secrets.token_urlsafe(24)),
			role="teacher",
			full_name=humanize(folder),
		)
		db.add(account)
		db.flush()
		logger.info("created teacher %s", email)
		return account, True
	return account, False


def import_manifest(db: Session, manifest: List[Dict[str, Any]]) -> Dict[str, int]:
	stats = {"teachers": 0, "courses": 0, "lessons": 0, "skipped_lessons": 0}
	teachers: Dict[str, Account] = {}
	for (category, teacher_folder, course_folder), items in group_manifest(manifest).items():
		if teacher_folder not in teachers:
			teachers[teacher_folder], created = get_or_create_teacher(db, teacher_folder)
			stats["teachers"] += int(created)
		teacher = teachers[teacher_folder]
		title = humanize(course_folder)
		course = db.query(Course).filter(Course.teacher_id == teacher.id, Course.title == title).first()
		if course is None:
			course = Course(
				teacher_id=teacher.id,
				title=title,
				category=category,
				level=LEVEL_BY_CATEGORY.get(category.lower(), "B1"),
				is_published=True,
			)
			db.add(course)
			db.flush()
			stats["courses"] += 1
		existing_urls = {l.content_url for l in course.lessons}
		order = max([l.order_index for l in course.lessons] or [0])
		for item in items:
			if item["url"] in existing_urls:
				stats["skipped_lessons"] += 1
				continue
			order += 1
			stem = item["file"].rsplit(".", 1)[0]
			course.lessons.append(Lesson(
				title=humanize(stem),
				description=None if item["section"] == "main" else humanize(item["section"]),
				content_type=LESSON_TYPE_BY_EXT.get(item["ext"].lower(), "pdf"),
				content_url=item["url"],
				order_index=order,
				is_free=order == 1,
			))
			existing_urls.add(item["url"])
			stats["lessons"] += 1
		course.total_lessons = len(course.lessons)
	db.commit()
	return stats


def main(argv: Optional[List[str]] = None) -> int:
	ap = argparse.ArgumentParser(description="Import courses and lessons from _manifest.json")
	ap.add_argument("--manifest", default=settings.manifest_path)
	args = ap.parse_args(argv)
	logging.basicConfig(level=settings.log_level.upper(), format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
	try:
		manifest = load_manifest(args.manifest)
	except FileNotFoundError:
		logger.error("manifest not found at %s; run englishhub-manifest first", args.manifest)
		return 1
	logger.info("loaded %d files from manifest", len(manifest))
	init_db()
	db = SessionLocal()
	try:
		stats = import_manifest(db, manifest)
	finally:
		db.close()
	logger.info(
		"import done: teachers=%d courses=%d lessons=%d skipped=%d",
		stats["teachers"], stats["courses"], stats["lessons"], stats["skipped_lessons"],
	)
	return 0


if __name__ == "__main__":
	sys.exit(main())
