from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from hotelops import auth
from hotelops.app_factory import create_service_app, limiter
from hotelops.database import get_db
from hotelops.dependencies import ensure_owner_or_roles, get_current_active_user
from hotelops.models import FRONT_OFFICE_ROLES, MANAGEMENT_ROLES, RoleEnum, RoomBooking, User
from hotelops.schemas import RoomBookingRead, Token, UserCreate, UserRead, UserUpdate

app = create_service_app("Users Service", "users")


def _get_user_or_404(db: Session, username: str) -> User:
    user = db.query(User).filter(User.username == username).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


def _ensure_self_or_admin(current_user: User, username: str) -> None:
    if current_user.role != RoleEnum.ADMIN and current_user.username != username:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")


@app.post("/users/register", response_model=UserRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute")
def register_user(request: Request, user_in: UserCreate, db: Session = Depends(get_db)) -> User:
    if db.query(User).filter((User.username == user_in.username) | (User.email == user_in.email)).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username or email already exists")

    # The first admin bootstraps the system; after that staff roles are assigned by an admin.
    admins_exist = db.query(User).filter(User.role == RoleEnum.ADMIN).first() is not None
    if user_in.role != RoleEnum.CUSTOMER and admins_exist:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only admins can assign staff roles")

    user = User(
        name=user_in.name,
        username=user_in.username,
        email=user_in.email,
        phone=user_in.phone,
        role=user_in.role,
        hashed_password=auth.get_password_hash(user_in.password),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@app.post("/users/login", response_model=Token)
@limiter.limit("10/minute")
def login(request: Request, form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)) -> Token:
    user = auth.authenticate_user(db, form_data.username, form_data.password)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Incorrect username or password")

    access_token = auth.issue_token(user)
    return Token(access_token=access_token)


@app.get("/users", response_model=list[UserRead])
@limiter.limit("20/minute")
def list_users(
    request: Request,
    role: RoleEnum | None = None,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> list[User]:
    if current_user.role not in MANAGEMENT_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Managers only")
    query = db.query(User)
    if role is not None:
        query = query.filter(User.role == role)
    return query.order_by(User.username).all()


@app.get("/users/{username}", response_model=UserRead)
@limiter.limit("30/minute")
def get_user(
    request: Request,
    username: str,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> User:
    user = _get_user_or_404(db, username)
    _ensure_self_or_admin(current_user, username)
    return user


@app.put("/users/{username}", response_model=UserRead)
@limiter.limit("10/minute")
def update_user(
    request: Request,
    username: str,
    user_update: UserUpdate,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> User:
    user = _get_user_or_404(db, username)
    _ensure_self_or_admin(current_user, username)

    if user_update.name:
        user.name = user_update.name
    if user_update.email and user_update.email != user.email:
        if db.query(User).filter(User.email == user_update.email, User.id != user.id).first():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already in use")
        user.email = user_update.email
    if user_update.phone is not None:
        user.phone = user_update.phone
    if current_user.role == RoleEnum.ADMIN:
        if user_update.role:
            user.role = user_update.role
        if user_update.is_active is not None:
            user.is_active = user_update.is_active
    if user_update.password:
        user.hashed_password = auth.get_password_hash(user_update.password)

    db.commit()
    db.refresh(user)
    return user


@app.delete("/users/{username}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("5/minute")
def delete_user(
    request: Request,
    username: str,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> None:
    user = _get_user_or_404(db, username)
    _ensure_self_or_admin(current_user, username)
    # Bookings and orders reference the user, so accounts are deactivated rather than removed.
    user.is_active = False
    db.commit()


@app.get("/users/{username}/bookings", response_model=list[RoomBookingRead])
@limiter.limit("30/minute")
def user_booking_history(
    request: Request,
    username: str,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> list[RoomBooking]:
    user = _get_user_or_404(db, username)
    ensure_owner_or_roles(current_user, user.id, FRONT_OFFICE_ROLES)

    return (
        db.query(RoomBooking)
        .filter(RoomBooking.user_id == user.id)
        .order_by(RoomBooking.check_in_date.desc())
        .all()
    )
