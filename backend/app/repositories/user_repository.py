from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.models.user import User, utcnow


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get_by_id(self, user_id: str) -> User | None:
        return self._session.get(User, user_id)

    def get_by_email(self, email: str) -> User | None:
        stmt = select(User).where(User.email == normalize_email(email))
        return self._session.execute(stmt).scalar_one_or_none()

    def add(self, user: User) -> User:
        user.email = normalize_email(user.email)
        self._session.add(user)
        self._session.commit()
        self._session.refresh(user)
        return user

    def update_password_hash(self, user_id: str, password_hash: str) -> None:
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(password_hash=password_hash, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        self._session.execute(stmt)
        self._session.commit()
