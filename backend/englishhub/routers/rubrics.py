from __future__ import annotations
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import NotFound
from ..models import Question, Rubric
from .auth import User, get_current_user, require_roles

router = APIRouter(prefix="/rubrics", tags=["rubrics"])


class Criterion(BaseModel):
	name: str = Field(..., min_length=1)
	weight: float = Field(1.0, ge=0)
	description: Optional[str] = None


class RubricRequest(BaseModel):
	name: str = Field(..., min_length=1, max_length=255)
	criteria: List[Criterion] = Field(default_factory=list)


def _rubric_view(r: Rubric) -> dict:
	return {"id": r.id, "name": r.name, "criteria": r.criteria or []}


@router.get("/")
def list_rubrics(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	return {"data": [_rubric_view(r) for r in db.query(Rubric).order_by(Rubric.name).all()]}


@router.get("/{rubric_id}")
def get_rubric(rubric_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	rubric = db.get(Rubric, rubric_id)
	if not rubric:
		raise NotFound("Rubric not found")
	return _rubric_view(rubric)


@router.post("/", status_code=201)
def create_rubric(req: RubricRequest, user: User = Depends(require_roles("teacher", "admin")), db: Session = Depends(get_db)):
	if db.query(Rubric).filter(Rubric.name == req.name).first():
		raise HTTPException(status_code=409, detail="rubric name already exists")
	rubric = Rubric(name=req.name, criteria=[c.model_dump() for c in req.criteria])
	db.add(rubric)
	db.commit()
	db.refresh(rubric)
	return _rubric_view(rubric)


@router.put("/{rubric_id}")
def update_rubric(
	rubric_id: str,
	req: RubricRequest,
	user: User = Depends(require_roles("teacher", "admin")),
	db: Session = Depends(get_db),
):
	rubric = db.get(Rubric, rubric_id)
	if not rubric:
		raise NotFound("Rubric not found")
	clash = db.query(Rubric).filter(Rubric.name == req.name, Rubric.id != rubric_id).first()
	if clash:
		raise HTTPException(status_code=409, detail="rubric name already exists")
	rubric.name = req.name
	rubric.criteria = [c.model_dump() for c in req.criteria]
	db.commit()
	db.refresh(rubric)
	return _rubric_view(rubric)


@router.delete("/{rubric_id}")
def delete_rubric(rubric_id: str, user: User = Depends(require_roles("teacher", "admin")), db: Session = Depends(get_db)):
	rubric = db.get(Rubric, rubric_id)
	if not rubric:
		raise NotFound("Rubric not found")
	# Essay/recording questions must keep a rubric
	if db.query(Question).filter(Question.rubric_id == rubric_id).first():
		raise HTTPException(status_code=409, detail="rubric is still referenced by questions")
	db.delete(rubric)
	db.commit()
	return {"ok": True}
