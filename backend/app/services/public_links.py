from urllib.parse import urlencode

from app.core.config import settings


def build_public_path(path: str) -> str:
    base_path = (settings.public_app_base_path or "").strip()
    if base_path and not base_path.startswith("/"):
        base_path = f"/{base_path}"
    base_path = base_path.rstrip("/")
    if path and not path.startswith("/"):
        path = f"/{path}"
    return f"{base_path}{path}" if base_path else path


def build_public_link(path: str) -> str:
    base = (settings.public_app_origin or "").rstrip("/")
    full_path = build_public_path(path)
    return f"{base}{full_path}" if base else full_path


def questionnaire_link(token: str) -> str:
    return build_public_link(f"/questionnaire/{token}")


def submission_link(token: str) -> str:
    return build_public_link(f"/submit-test?{urlencode({'token': token})}")


def apply_link() -> str:
    return build_public_link("/apply")
