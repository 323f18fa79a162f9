from __future__ import annotations

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from werkzeug.security import check_password_hash

from licitasis.domain.contracts import AuthLoginInput, AuthUser
from licitasis.errors import AuthenticationError
from licitasis.infrastructure.repositories.licitacoes import UsuarioRepository


TOKEN_SALT = "licitasis-auth"
TOKEN_TYPE = "bearer"


def _auth_user(row: dict) -> AuthUser:
    return AuthUser(
        id=int(row["id"]),
        email=row["email"],
        username=row["username"],
        full_name=row.get("full_name"),
        is_active=bool(row.get("is_active")),
        is_admin=bool(row.get("is_admin")),
        cliente_id=row.get("cliente_id"),
    )


class AuthService:
    def __init__(self, secret_key: str, *, max_age_seconds: int = 43200, repository: UsuarioRepository | None = None) -> None:
        self.serializer = URLSafeTimedSerializer(secret_key, salt=TOKEN_SALT)
        self.max_age_seconds = int(max_age_seconds)
        self.repository = repository or UsuarioRepository()

    def authenticate(self, db, auth_input: AuthLoginInput) -> AuthUser:
        login = (auth_input.username or "").strip()
        password = auth_input.password or ""
        if not login or not password:
            raise AuthenticationError(code="invalid_credentials", message_key="invalid_credentials")

        row = self.repository.find_for_login(db, login)
        if not row or not check_password_hash(row["password_hash"], password):
            raise AuthenticationError(code="invalid_credentials", message_key="invalid_credentials")
        if not row.get("is_active"):
            raise AuthenticationError(code="inactive_user", message_key="inactive_user")
        return _auth_user(row)

    def login(self, db, auth_input: AuthLoginInput) -> dict:
        user = self.authenticate(db, auth_input)
        return {"access_token": self.issue_token(user.id), "token_type": TOKEN_TYPE}

    def issue_token(self, user_id: int) -> str:
        return self.serializer.dumps({"sub": int(user_id)})

    def user_for_token(self, db, token: str) -> AuthUser:
        try:
            data = self.serializer.loads(token, max_age=self.max_age_seconds)
        except SignatureExpired:
            raise AuthenticationError(code="token_expired", message_key="token_expired")
        except BadSignature:
            raise AuthenticationError(code="token_invalid", message_key="token_invalid")

        user_id = data.get("sub") if isinstance(data, dict) else None
        row = self.repository.get_by_id(db, int(user_id)) if user_id else None
        if not row:
            raise AuthenticationError(code="token_invalid", message_key="token_invalid")
        if not row.get("is_active"):
            raise AuthenticationError(code="inactive_user", message_key="inactive_user")
        return _auth_user(row)
