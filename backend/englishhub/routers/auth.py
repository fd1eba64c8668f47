import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import OAuth2PasswordRequestForm, OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel
import logging

from ..settings import settings
from sqlalchemy.orm import Session
from ..db import get_db
from ..errors import Forbidden
from ..models import Account, AuthSession

router = APIRouter(prefix="/auth", tags=["auth"])

logger = logging.getLogger(__name__)
logging.getLogger('passlib').setLevel(logging.ERROR)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)

SELF_SERVICE_ROLES = ("learner", "teacher")


class Token(BaseModel):
	access_token: str
	token_type: str = "bearer"


class User(BaseModel):
	id: str
	email: str
	role: str
	full_name: Optional[str] = None


def _to_user(row: Account) -> User:
	return User(id=row.id, email=row.email, role=row.role, full_name=row.full_name)


def hash_password(password: str) -> str:
	# bcrypt only looks at the first 72 bytes
	password_bytes = password.encode('utf-8')[:72]
	return pwd_context.hash(password_bytes.decode('utf-8', errors='ignore'))


def verify_password(plain_password: str, hashed_password: str) -> bool:
	password_bytes = plain_password.encode('utf-8')[:72]
	return pwd_context.verify(password_bytes.decode('utf-8', errors='ignore'), hashed_password)


def authenticate_user(db: Session, email: str, password: str) -> Optional[Account]:
	row = db.query(Account).filter(Account.email == email.strip().lower()).first()
	if row and row.is_active and verify_password(password, row.password_hash):
		return row
	return None


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
	to_encode = data.copy()
	delta = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
	to_encode.update({"exp": datetime.now(timezone.utc) + delta})
	return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


@router.post("/token", response_model=Token)
async def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
	account = authenticate_user(db, form_data.username, form_data.password)
	if not account:
		raise HTTPException(status_code=401, detail="Incorrect email or password")
	# Create a new session id (jti) and persist server-side
	session_id = uuid.uuid4().hex
	access_token = create_access_token({"sub": account.id, "role": account.role, "jti": session_id})
	db.add(AuthSession(session_id=session_id, account_id=account.id))
	db.commit()
	logger.info("login account=%s role=%s", account.id, account.role)
	return Token(access_token=access_token)


def _resolve_token(token: str, db: Session) -> User:
	credentials_exception = HTTPException(
		status_code=401, detail="Could not validate credentials", headers={"WWW-Authenticate": "Bearer"},
	)
	try:
		payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
		account_id: str | None = payload.get("sub")
		jti: str | None = payload.get("jti")
		if account_id is None or jti is None:
			raise credentials_exception
	except JWTError:
		raise credentials_exception
	# The session row must still exist; logout (or an admin) revokes it by deleting the row
	row = db.get(AuthSession, jti)
	if not row or row.account_id != account_id:
		raise credentials_exception
	account = db.get(Account, account_id)
	if not account or not account.is_active:
		raise credentials_exception
	row.last_activity_at = datetime.utcnow()
	db.commit()
	return _to_user(account)


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
	return _resolve_token(token, db)


def get_optional_user(token: Optional[str] = Depends(optional_oauth2_scheme), db: Session = Depends(get_db)) -> Optional[User]:
	if not token:
		return None
	return _resolve_token(token, db)


def require_roles(*roles: str) -> Callable[..., User]:
	def dependency(user: User = Depends(get_current_user)) -> User:
		if user.role not in roles:
			raise Forbidden(f"requires role: {', '.join(roles)}")
		return user
	return dependency


@router.get("/me", response_model=User)
async def me(user: User = Depends(get_current_user)):
	return user


@router.post("/logout")
async def logout(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)):
	user = _resolve_token(token, db)
	jti = jwt.get_unverified_claims(token).get("jti")
	row = db.get(AuthSession, jti)
	if row:
		db.delete(row)
		db.commit()
	logger.info("logout account=%s", user.id)
	return {"ok": True}


class RegisterRequest(BaseModel):
	email: str
	password: str
	full_name: Optional[str] = None
	role: str = "learner"


@router.post("/register", status_code=201, response_model=User)
async def register(req: RegisterRequest, db: Session = Depends(get_db)):
	email = (req.email or "").strip().lower()
	password = req.password or ""
	if not email or not password:
		raise HTTPException(status_code=400, detail="email and password are required")
	if "@" not in email or len(email) > 150:
		raise HTTPException(status_code=400, detail="email is not valid")
	if len(password) < 6:
		raise HTTPException(status_code=400, detail="password must be at least 6 characters")
	if req.role not in SELF_SERVICE_ROLES:
		raise HTTPException(status_code=400, detail=f"role must be one of {list(SELF_SERVICE_ROLES)}")
	# Check exists
	existing = db.query(Account).filter(Account.email == email).first()
	if existing:
		raise HTTPException(status_code=409, detail="email already registered")
	row = Account(email=email, password_hash=hash_password(password), role=req.role, full_name=req.full_name)
	db.add(row)
	db.commit()
	db.refresh(row)
	logger.info("registered account=%s role=%s", row.id, row.role)
	return _to_user(row)
