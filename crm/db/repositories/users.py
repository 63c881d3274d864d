from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple

from sqlalchemy import case, func, or_, select

from crm.db.enums import AuthProviderEnum, UserRoleEnum
from crm.db.models import OAuthState, User
from crm.db.repositories.base import Repository


class UsersRepository(Repository):
    def get(self, user_id: str) -> Optional[User]:
        return self.session.get(User, user_id)

    def get_by_email(self, email: str) -> Optional[User]:
        stmt = select(User).where(User.email == email.strip().lower())
        return self.session.scalars(stmt).first()

    def get_by_google_id(self, google_id: str) -> Optional[User]:
        stmt = select(User).where(User.google_id == google_id)
        return self.session.scalars(stmt).first()

    def create(self, *, name: str, email: str, **fields) -> User:
        user = User(name=name, email=email.strip().lower(), **fields)
        return self.save(user)

    def update(self, user: User, **fields) -> User:
        for key, value in fields.items():
            setattr(user, key, value)
        return self.save(user)

    def touch_last_login(self, user: User) -> User:
        user.last_login = datetime.now(timezone.utc)
        return self.save(user)

    def list_active(self) -> List[User]:
        stmt = (
            select(User)
            .where(User.is_active.is_(True), User.role != UserRoleEnum.customer)
            .order_by(User.created_at.desc())
        )
        return list(self.session.scalars(stmt).all())

    def upsert_google_user(
        self, *, google_id: str, email: str, name: str, avatar: Optional[str]
    ) -> User:
        user = self.get_by_google_id(google_id)
        if user:
            return user

        user = self.get_by_email(email)
        if user:
            # Link the Google account to the existing local user.
            user.google_id = google_id
            user.avatar = avatar
            return self.save(user)

        return self.create(
            name=name[:50],
            email=email,
            google_id=google_id,
            avatar=avatar,
            provider=AuthProviderEnum.google,
            email_verified=True,
        )

    def upsert_admin(self, *, name: str, email: str, password_hash: str) -> User:
        user = self.get_by_email(email)
        if user is None:
            return self.create(
                name=name,
                email=email,
                password_hash=password_hash,
                role=UserRoleEnum.admin,
                provider=AuthProviderEnum.local,
                email_verified=True,
            )
        user.role = UserRoleEnum.admin
        user.password_hash = password_hash
        user.is_active = True
        return self.save(user)

    def create_oauth_state(self, state: str) -> OAuthState:
        return self.save(OAuthState(state=state))

    def consume_oauth_state(self, state: str) -> bool:
        oauth_state = self.session.get(OAuthState, state)
        if not oauth_state:
            return False
        self.session.delete(oauth_state)
        self.session.commit()
        return True


class CustomersRepository(Repository):
    def _owned(self, admin_id: str):
        return select(User).where(User.role == UserRoleEnum.customer, User.created_by == admin_id)

    def list(
        self,
        admin_id: str,
        search: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 10,
        offset: int = 0,
    ) -> Tuple[List[User], int]:
        stmt = self._owned(admin_id)
        if search:
            pattern = f"%{search.lower()}%"
            stmt = stmt.where(or_(func.lower(User.name).like(pattern), func.lower(User.email).like(pattern)))
        if status:
            stmt = stmt.where(User.status == status)
        total = self.session.scalar(select(func.count()).select_from(stmt.subquery())) or 0
        stmt = stmt.order_by(User.created_at.desc()).limit(limit).offset(offset)
        return list(self.session.scalars(stmt).all()), total

    def get(self, customer_id: str) -> Optional[User]:
        stmt = select(User).where(User.id == customer_id, User.role == UserRoleEnum.customer)
        return self.session.scalars(stmt).first()

    def create(self, *, admin_id: str, name: str, email: str, **fields: Any) -> User:
        customer = User(
            name=name,
            email=email.strip().lower(),
            role=UserRoleEnum.customer,
            password_hash=None,
            created_by=admin_id,
            **fields,
        )
        return self.save(customer)

    def update(self, customer: User, **fields: Any) -> User:
        for key, value in fields.items():
            setattr(customer, key, value)
        return self.save(customer)

    def delete(self, customer: User) -> None:
        self.session.delete(customer)
        self.session.commit()

    def stats(self) -> dict[str, int]:
        status = func.lower(User.status)
        stmt = select(
            func.count(User.id),
            func.sum(case((status == "active", 1), else_=0)),
            func.sum(case((status == "inactive", 1), else_=0)),
        ).where(User.role == UserRoleEnum.customer)
        total, active, inactive = self.session.execute(stmt).one()
        return {
            "totalCustomers": int(total or 0),
            "activeCustomers": int(active or 0),
            "inactiveCustomers": int(inactive or 0),
        }

    def count(self) -> int:
        stmt = select(func.count(User.id)).where(User.role == UserRoleEnum.customer)
        return int(self.session.scalar(stmt) or 0)
