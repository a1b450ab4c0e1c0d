from typing import Optional

from itsdangerous import BadSignature, URLSafeTimedSerializer

from config import get_settings


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.token_secret, salt="owner-token")


def issue_owner_token(user_id: int) -> str:
    return _serializer().dumps({"u": user_id})


def resolve_owner_token(token: Optional[str]) -> Optional[int]:
    if not token:
        return None
    settings = get_settings()
    try:
        data = _serializer().loads(
            token, max_age=settings.token_max_age_days * 24 * 3600
        )
    except BadSignature:
        # SignatureExpired is a BadSignature too
        return None

    user_id = data.get("u") if isinstance(data, dict) else None
    if not isinstance(user_id, int):
        return None
    return user_id


def bearer_token(header: Optional[str]) -> Optional[str]:
    if not header or not header.startswith("Bearer "):
        return None
    return header[len("Bearer ") :].strip() or None
